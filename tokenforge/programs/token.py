"""
Token program

Owns mint and token (holding) account state, and all supply arithmetic.

Instructions
------------
- InitializeMint: [mint(writable), rent]
- InitializeAccount: [account(writable), mint, owner, rent]
- MintTo: [mint(writable), destination(writable), authority(signer)]

Account data is msgpack encoded as a fixed order array, which keeps it within the fixed account sizes.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Final

import msgpack
from solders.pubkey import Pubkey

from tokenforge.core.logging import get_logger
from tokenforge.ledger.errors import (
    AlreadyInitialized,
    AuthorityMismatch,
    AccountNotFound,
    ArithmeticOverflow,
    ConstraintViolation,
    InsufficientFunds,
    InvalidAccountData,
    MalformedRequest,
)
from tokenforge.ledger.model import Account, AccountMeta, Instruction, U64_MAX
from tokenforge.ledger.pubkeys import TOKEN_PROGRAM_ID, RENT_SYSVAR_ID
from tokenforge.ledger.runtime import Program, InvokeContext
from tokenforge.programs import instruction_data

MINT_SIZE: Final[int] = 82
TOKEN_ACCOUNT_SIZE: Final[int] = 165


def _pubkey_or_none(value: bytes | None) -> Pubkey | None:
    return None if value is None else Pubkey(value)


def _bytes_or_none(value: Pubkey | None) -> bytes | None:
    return None if value is None else bytes(value)


@dataclass(slots=True)
class Mint:
    """
    Asset class record
    """

    decimals: int
    mint_authority: Pubkey | None
    freeze_authority: Pubkey | None
    supply: int = 0
    is_initialized: bool = True

    def pack(self) -> bytes:
        return msgpack.packb(
            [
                self.is_initialized,
                self.decimals,
                _bytes_or_none(self.mint_authority),
                self.supply,
                _bytes_or_none(self.freeze_authority),
            ]
        )

    @classmethod
    def unpack(cls, data: bytes) -> "Mint":
        try:
            is_initialized, decimals, mint_authority, supply, freeze_authority = msgpack.unpackb(data)
        except (ValueError, TypeError) as err:
            raise InvalidAccountData("invalid mint account data") from err
        return cls(
            decimals=decimals,
            mint_authority=_pubkey_or_none(mint_authority),
            freeze_authority=_pubkey_or_none(freeze_authority),
            supply=supply,
            is_initialized=is_initialized,
        )


class AccountState(IntEnum):
    UNINITIALIZED = 0
    INITIALIZED = 1


@dataclass(slots=True)
class TokenAccount:
    """
    Per owner balance for a single mint
    """

    mint: Pubkey
    owner: Pubkey
    amount: int = 0
    state: AccountState = AccountState.INITIALIZED

    def pack(self) -> bytes:
        return msgpack.packb(
            [bytes(self.mint), bytes(self.owner), self.amount, int(self.state)]
        )

    @classmethod
    def unpack(cls, data: bytes) -> "TokenAccount":
        try:
            mint, owner, amount, state = msgpack.unpackb(data)
        except (ValueError, TypeError) as err:
            raise InvalidAccountData("invalid token account data") from err
        return cls(
            mint=Pubkey(mint),
            owner=Pubkey(owner),
            amount=amount,
            state=AccountState(state),
        )


class TokenInstruction(IntEnum):
    INITIALIZE_MINT = 0
    INITIALIZE_ACCOUNT = 1
    MINT_TO = 7


def initialize_mint(
    *,
    mint: Pubkey,
    decimals: int,
    mint_authority: Pubkey,
    freeze_authority: Pubkey | None = None,
) -> Instruction:
    return Instruction(
        program_id=TOKEN_PROGRAM_ID,
        accounts=(AccountMeta.writable(mint), AccountMeta.readonly(RENT_SYSVAR_ID)),
        data=msgpack.packb(
            [
                TokenInstruction.INITIALIZE_MINT,
                decimals,
                bytes(mint_authority),
                _bytes_or_none(freeze_authority),
            ]
        ),
    )


def initialize_account(*, account: Pubkey, mint: Pubkey, owner: Pubkey) -> Instruction:
    return Instruction(
        program_id=TOKEN_PROGRAM_ID,
        accounts=(
            AccountMeta.writable(account),
            AccountMeta.readonly(mint),
            AccountMeta.readonly(owner),
            AccountMeta.readonly(RENT_SYSVAR_ID),
        ),
        data=msgpack.packb([TokenInstruction.INITIALIZE_ACCOUNT]),
    )


def mint_to(*, mint: Pubkey, destination: Pubkey, authority: Pubkey, amount: int) -> Instruction:
    return Instruction(
        program_id=TOKEN_PROGRAM_ID,
        accounts=(
            AccountMeta.writable(mint),
            AccountMeta.writable(destination),
            AccountMeta.signer(authority),
        ),
        data=msgpack.packb([TokenInstruction.MINT_TO, amount]),
    )


class TokenProgram(Program):
    program_id = TOKEN_PROGRAM_ID

    def __init__(self):
        self.logger = get_logger(self)

    def process(self, ctx: InvokeContext) -> None:
        tag, args = instruction_data.unpack(ctx.instruction.data, "token")
        accounts = [meta.pubkey for meta in ctx.instruction.accounts]
        match tag:
            case TokenInstruction.INITIALIZE_MINT:
                _check_accounts(accounts, 2)
                decimals, mint_authority, freeze_authority = instruction_data.fields(
                    args, 3, "initialize_mint"
                )
                self._initialize_mint(
                    ctx,
                    accounts[0],
                    instruction_data.uint("decimals", decimals, bits=8),
                    instruction_data.pubkey("mint_authority", mint_authority),
                    instruction_data.optional_pubkey("freeze_authority", freeze_authority),
                )
            case TokenInstruction.INITIALIZE_ACCOUNT:
                _check_accounts(accounts, 4)
                instruction_data.fields(args, 0, "initialize_account")
                self._initialize_account(ctx, *accounts[:3])
            case TokenInstruction.MINT_TO:
                _check_accounts(accounts, 3)
                (amount,) = instruction_data.fields(args, 1, "mint_to")
                self._mint_to(ctx, *accounts[:3], instruction_data.uint("amount", amount))
            case _:
                raise MalformedRequest(f"unknown token instruction: {tag}")

    def _initialize_mint(
        self,
        ctx: InvokeContext,
        address: Pubkey,
        decimals: int,
        mint_authority: Pubkey,
        freeze_authority: Pubkey | None,
    ):
        account = self._load_uninitialized(ctx, address)
        self._check_rent_exempt(ctx, address, account)
        account.data = Mint(
            decimals=decimals,
            mint_authority=mint_authority,
            freeze_authority=freeze_authority,
        ).pack()
        ctx.set_account(address, account)
        self.logger.debug("initialized mint: %s", address)
        ctx.log(f"initialized mint {address}: decimals={decimals}")

    def _initialize_account(
        self, ctx: InvokeContext, address: Pubkey, mint: Pubkey, owner: Pubkey
    ):
        account = self._load_uninitialized(ctx, address)
        self._check_rent_exempt(ctx, address, account)
        load_mint(ctx, mint)
        account.data = TokenAccount(mint=mint, owner=owner).pack()
        ctx.set_account(address, account)
        self.logger.debug("initialized token account: %s", address)
        ctx.log(f"initialized token account {address}: mint={mint} owner={owner}")

    def _mint_to(
        self,
        ctx: InvokeContext,
        mint_address: Pubkey,
        destination_address: Pubkey,
        authority: Pubkey,
        amount: int,
    ):
        mint_account, mint = load_mint(ctx, mint_address)
        if mint.mint_authority is None:
            raise AuthorityMismatch(f"mint has a fixed supply: {mint_address}")
        if mint.mint_authority != authority:
            raise AuthorityMismatch(
                f"authority does not match mint authority: {authority} != {mint.mint_authority}"
            )
        if not ctx.is_signer(authority):
            raise ConstraintViolation(
                "authority.signer", f"mint authority must sign: {authority}"
            )

        destination_account, destination = load_token_account(ctx, destination_address)
        if destination.mint != mint_address:
            raise ConstraintViolation(
                "destination.mint",
                f"token account mint does not match: {destination.mint} != {mint_address}",
            )

        mint.supply += amount
        destination.amount += amount
        if mint.supply > U64_MAX or destination.amount > U64_MAX:
            raise ArithmeticOverflow(f"supply overflow: {mint_address}")

        mint_account.data = mint.pack()
        destination_account.data = destination.pack()
        ctx.set_account(mint_address, mint_account)
        ctx.set_account(destination_address, destination_account)
        self.logger.debug("minted %s: mint=%s supply=%s", amount, mint_address, mint.supply)
        ctx.log(f"minted {amount} to {destination_address}: supply={mint.supply}")

    def _load_uninitialized(self, ctx: InvokeContext, address: Pubkey) -> Account:
        account = ctx.get_account(address)
        if account is None:
            raise AccountNotFound(f"account does not exist: {address}")
        if account.owner != self.program_id:
            raise InvalidAccountData(f"account is not owned by the token program: {address}")
        if account.data:
            raise AlreadyInitialized(address)
        return account

    @staticmethod
    def _check_rent_exempt(ctx: InvokeContext, address: Pubkey, account: Account):
        required = ctx.rent.minimum_balance(account.space)
        if account.lamports < required:
            raise InsufficientFunds(address, required=required, available=account.lamports)


def _check_accounts(accounts: list[Pubkey], count: int):
    if len(accounts) < count:
        raise MalformedRequest(f"expected at least {count} accounts but found {len(accounts)}")


def load_mint(ctx: InvokeContext, address: Pubkey) -> tuple[Account, Mint]:
    """
    :exception AccountNotFound: if the mint does not exist
    :exception InvalidAccountData: if the account is not an initialized mint owned by the token program
    """
    account = _load_owned(ctx, address)
    mint = Mint.unpack(account.data)
    if not mint.is_initialized:
        raise InvalidAccountData(f"mint is not initialized: {address}")
    return account, mint


def load_token_account(ctx: InvokeContext, address: Pubkey) -> tuple[Account, TokenAccount]:
    account = _load_owned(ctx, address)
    return account, TokenAccount.unpack(account.data)


def _load_owned(ctx: InvokeContext, address: Pubkey) -> Account:
    account = ctx.get_account(address)
    if account is None:
        raise AccountNotFound(f"account does not exist: {address}")
    if account.owner != TOKEN_PROGRAM_ID or not account.data:
        raise InvalidAccountData(f"not an initialized token program account: {address}")
    return account
