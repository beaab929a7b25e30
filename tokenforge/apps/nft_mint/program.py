"""
NFT mint program

Issues a non-fungible token in a single instruction. The requesting identity pays all fees and becomes the mint,
freeze, and metadata update authority.

Flow
----
1. Validate every account against its role, and the metadata payload against the registry limits.
   Nothing is mutated if validation fails.
2. Create the mint with zero decimals.
3. Create the requesting identity's holding account for the mint, if it does not already exist.
4. Mint exactly one token into the holding account.
5. Register the metadata record at the address derived from the mint.
6. Create the master edition record at the address derived from the mint.

Each step is a call into the program that owns the state being created. The program does not retry and does not
recover: any error aborts the transaction, and the ledger discards every write made by the earlier steps.

NOTES
-----
- The mint authority is not revoked after minting the single token, i.e., the mint authority can still mint more
  tokens in a later transaction.
- The master edition's max supply is left unlimited, i.e., prints can be created from it.
"""

from dataclasses import dataclass
from typing import Final

from solders.pubkey import Pubkey

from tokenforge.apps.nft_mint.accounts import InitNftAccounts, bind_accounts
from tokenforge.apps.nft_mint.instruction import InitNftArgs
from tokenforge.apps.nft_mint.state import MintFlowState
from tokenforge.config import NFT_MINT_PROGRAM_ID
from tokenforge.core.command import Command
from tokenforge.ledger.errors import LedgerError, MalformedRequest
from tokenforge.ledger.pubkeys import TOKEN_PROGRAM_ID
from tokenforge.ledger.runtime import Program, InvokeContext
from tokenforge.programs import associated_token, system, token, token_metadata
from tokenforge.programs.token_metadata import DataV2

NFT_DECIMALS: Final[int] = 0
NFT_SUPPLY: Final[int] = 1


@dataclass(frozen=True, slots=True)
class InitNftRequest:
    ctx: InvokeContext
    accounts: InitNftAccounts
    data: DataV2


class InitNft(Command[InitNftRequest, MintFlowState]):
    """
    Executes the issuance steps in order against validated accounts
    """

    def __call__(self, request: InitNftRequest) -> MintFlowState:
        logger = self.get_logger()
        steps = (
            # (step, execute, advances the flow state)
            ("initialize_mint", self._initialize_mint, True),
            ("provision_holding_account", self._provision_holding_account, False),
            ("mint_supply", self._mint_supply, True),
            ("create_metadata", self._create_metadata, True),
            ("create_master_edition", self._create_master_edition, True),
        )

        state = MintFlowState.UNINITIALIZED
        for step, execute, advances in steps:
            try:
                execute(request)
            except LedgerError as err:
                err.step = step if err.step is None else f"{step}.{err.step}"
                logger.warning(
                    "%r -> %r at step '%s': %s",
                    state,
                    MintFlowState.ABORTED,
                    step,
                    err,
                )
                raise
            if advances:
                next_state = state.next()
                logger.info("%r -> %r : mint=%s", state, next_state, request.accounts.mint)
                state = next_state
        return state

    @staticmethod
    def _initialize_mint(request: InitNftRequest):
        ctx, accounts = request.ctx, request.accounts
        ctx.invoke(
            system.create_account(
                payer=accounts.signer,
                new_account=accounts.mint,
                lamports=ctx.rent.minimum_balance(token.MINT_SIZE),
                space=token.MINT_SIZE,
                owner=TOKEN_PROGRAM_ID,
            )
        )
        ctx.invoke(
            token.initialize_mint(
                mint=accounts.mint,
                decimals=NFT_DECIMALS,
                mint_authority=accounts.signer,
                freeze_authority=accounts.signer,
            )
        )

    @staticmethod
    def _provision_holding_account(request: InitNftRequest):
        accounts = request.accounts
        request.ctx.invoke(
            associated_token.create_idempotent(
                payer=accounts.signer,
                owner=accounts.signer,
                mint=accounts.mint,
            )
        )

    @staticmethod
    def _mint_supply(request: InitNftRequest):
        accounts = request.accounts
        request.ctx.invoke(
            token.mint_to(
                mint=accounts.mint,
                destination=accounts.associated_token_account,
                authority=accounts.signer,
                amount=NFT_SUPPLY,
            )
        )

    @staticmethod
    def _create_metadata(request: InitNftRequest):
        accounts = request.accounts
        request.ctx.invoke(
            token_metadata.create_metadata_accounts_v3(
                metadata=accounts.metadata_account,
                mint=accounts.mint,
                mint_authority=accounts.signer,
                payer=accounts.signer,
                update_authority=accounts.signer,
                data=request.data,
                is_mutable=True,
                update_authority_is_signer=True,
                collection_details=None,
            )
        )

    @staticmethod
    def _create_master_edition(request: InitNftRequest):
        accounts = request.accounts
        request.ctx.invoke(
            token_metadata.create_master_edition_v3(
                edition=accounts.master_edition_account,
                mint=accounts.mint,
                update_authority=accounts.signer,
                mint_authority=accounts.signer,
                payer=accounts.signer,
                metadata=accounts.metadata_account,
                max_supply=None,
            )
        )


class NftMintProgram(Program):
    """
    Instruction dispatcher
    """

    def __init__(self, program_id: Pubkey = NFT_MINT_PROGRAM_ID):
        self.program_id = program_id
        self.__init_nft = InitNft()

    def process(self, ctx: InvokeContext) -> None:
        if ctx.program_id != self.program_id:
            raise MalformedRequest(
                f"incorrect program id: {ctx.program_id} != {self.program_id}",
                step="program_id",
            )
        args = InitNftArgs.unpack(ctx.instruction.data)
        accounts = bind_accounts(ctx)
        data = args.to_data_v2()
        data.validate(step="payload")
        state = self.__init_nft(InitNftRequest(ctx=ctx, accounts=accounts, data=data))
        ctx.log(f"init_nft: mint={accounts.mint} state={state.name}")
