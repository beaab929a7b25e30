"""
Account binding for the `init_nft` instruction

The instruction's accounts are positional. Each position is described by an :class:`AccountRole`, which declares the
constraints the supplied account must satisfy. :func:`bind_accounts` validates every account in a single pass before
the instruction mutates anything, and binds them to named fields.

Roles may derive their expected address from accounts bound earlier in the list, e.g., the metadata account is
derived from the mint. Roles are therefore validated in list order.
"""

from dataclasses import dataclass
from typing import Callable, Final, Mapping

from solders.pubkey import Pubkey

from tokenforge.ledger.errors import (
    AlreadyInitialized,
    ConstraintViolation,
    LedgerError,
    MalformedRequest,
)
from tokenforge.ledger.model import AccountMeta
from tokenforge.ledger.pubkeys import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    RENT_SYSVAR_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_METADATA_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
)
from tokenforge.ledger.runtime import InvokeContext
from tokenforge.programs import token
from tokenforge.programs.associated_token import get_associated_token_address
from tokenforge.programs.token_metadata import (
    find_metadata_account,
    find_master_edition_account,
)

# computes the expected address from the accounts bound so far
AddressRule = Callable[[Mapping[str, Pubkey]], Pubkey]


def canonical(address: Pubkey) -> AddressRule:
    return lambda _: address


@dataclass(frozen=True, slots=True)
class AccountRole:
    """
    Declarative account constraints

    - signer: the account must have signed the transaction
    - writable: the account must be passed as writable
    - address: the account address must equal the address computed by the rule
    - executable: the account must be a deployed program
    - init: the account must not exist yet, it is created by the instruction
    - init_if_needed: the account is created if it does not exist. If it does exist, it must be a token account
      for the mint and owner named by `token_mint` and `token_owner`
    """

    # pylint: disable=too-many-instance-attributes

    name: str
    signer: bool = False
    writable: bool = False
    address: AddressRule | None = None
    executable: bool = False
    init: bool = False
    init_if_needed: bool = False
    token_mint: str | None = None
    token_owner: str | None = None

    def check(
        self,
        ctx: InvokeContext,
        meta: AccountMeta,
        bound: Mapping[str, Pubkey],
        supplied: frozenset[Pubkey],
    ):
        """
        :param bound: accounts that have been validated so far, keyed by role name
        :param supplied: all account addresses passed to the instruction
        :exception LedgerError: the first constraint that failed
        """
        if self.signer and not (meta.is_signer and ctx.is_signer(meta.pubkey)):
            raise ConstraintViolation(f"{self.name}.signer", f"account must sign: {meta.pubkey}")
        if self.writable and not (meta.is_writable and ctx.is_writable(meta.pubkey)):
            raise ConstraintViolation(f"{self.name}.writable", f"account must be writable: {meta.pubkey}")

        if self.address is not None:
            expected = self.address(bound)
            if meta.pubkey != expected:
                if expected in supplied:
                    raise MalformedRequest(
                        f"account is out of position: expected {expected} but found {meta.pubkey}",
                        step=f"{self.name}.position",
                    )
                raise ConstraintViolation(
                    f"{self.name}.address",
                    f"address mismatch: expected {expected} but found {meta.pubkey}",
                )

        account = ctx.get_account(meta.pubkey)
        if self.executable and (account is None or not account.executable):
            raise ConstraintViolation(f"{self.name}.executable", f"account is not a program: {meta.pubkey}")
        if self.init and account is not None:
            raise AlreadyInitialized(meta.pubkey, step=f"{self.name}.init")
        if self.init_if_needed and account is not None:
            self._check_token_account(ctx, meta.pubkey, bound)

    def _check_token_account(self, ctx: InvokeContext, address: Pubkey, bound: Mapping[str, Pubkey]):
        try:
            _, holding = token.load_token_account(ctx, address)
        except LedgerError as err:
            raise ConstraintViolation(f"{self.name}.token", str(err)) from err
        if self.token_mint and holding.mint != bound[self.token_mint]:
            raise ConstraintViolation(
                f"{self.name}.token.mint",
                f"token account mint mismatch: {holding.mint} != {bound[self.token_mint]}",
            )
        if self.token_owner and holding.owner != bound[self.token_owner]:
            raise ConstraintViolation(
                f"{self.name}.token.owner",
                f"token account owner mismatch: {holding.owner} != {bound[self.token_owner]}",
            )


INIT_NFT_ACCOUNTS: Final[tuple[AccountRole, ...]] = (
    AccountRole("signer", signer=True, writable=True),
    AccountRole("mint", signer=True, writable=True, init=True),
    AccountRole(
        "associated_token_account",
        writable=True,
        address=lambda bound: get_associated_token_address(bound["signer"], bound["mint"]),
        init_if_needed=True,
        token_mint="mint",
        token_owner="signer",
    ),
    AccountRole(
        "metadata_account",
        writable=True,
        address=lambda bound: find_metadata_account(bound["mint"])[0],
    ),
    AccountRole(
        "master_edition_account",
        writable=True,
        address=lambda bound: find_master_edition_account(bound["mint"])[0],
    ),
    AccountRole("token_program", address=canonical(TOKEN_PROGRAM_ID), executable=True),
    AccountRole(
        "associated_token_program",
        address=canonical(ASSOCIATED_TOKEN_PROGRAM_ID),
        executable=True,
    ),
    AccountRole(
        "token_metadata_program",
        address=canonical(TOKEN_METADATA_PROGRAM_ID),
        executable=True,
    ),
    AccountRole("system_program", address=canonical(SYSTEM_PROGRAM_ID), executable=True),
    AccountRole("rent", address=canonical(RENT_SYSVAR_ID)),
)


@dataclass(frozen=True, slots=True)
class InitNftAccounts:
    """
    Validated `init_nft` accounts
    """

    # pylint: disable=too-many-instance-attributes

    signer: Pubkey
    mint: Pubkey
    associated_token_account: Pubkey
    metadata_account: Pubkey
    master_edition_account: Pubkey
    token_program: Pubkey
    associated_token_program: Pubkey
    token_metadata_program: Pubkey
    system_program: Pubkey
    rent: Pubkey


def bind_accounts(ctx: InvokeContext) -> InitNftAccounts:
    """
    Validates the instruction accounts against :data:`INIT_NFT_ACCOUNTS`.

    :exception MalformedRequest: if accounts are missing, extra, or out of position
    :exception ConstraintViolation: if an account does not satisfy its role
    :exception AlreadyInitialized: if the mint already exists
    """
    metas = ctx.instruction.accounts
    if len(metas) != len(INIT_NFT_ACCOUNTS):
        raise MalformedRequest(
            f"expected {len(INIT_NFT_ACCOUNTS)} accounts but found {len(metas)}",
            step="accounts",
        )
    supplied = frozenset(meta.pubkey for meta in metas)
    bound: dict[str, Pubkey] = {}
    for role, meta in zip(INIT_NFT_ACCOUNTS, metas):
        role.check(ctx, meta, bound, supplied)
        bound[role.name] = meta.pubkey
    return InitNftAccounts(**bound)


def init_nft_account_metas(payer: Pubkey, mint: Pubkey) -> tuple[AccountMeta, ...]:
    """
    :return: account metas in the order required by :data:`INIT_NFT_ACCOUNTS`, with derived addresses filled in
    """
    bound: dict[str, Pubkey] = {"signer": payer, "mint": mint}
    metas = []
    for role in INIT_NFT_ACCOUNTS:
        if role.name not in bound:
            bound[role.name] = role.address(bound)  # type: ignore
        metas.append(AccountMeta(bound[role.name], is_signer=role.signer, is_writable=role.writable))
    return tuple(metas)

