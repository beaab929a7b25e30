"""
Token metadata program

Registry of descriptive metadata and edition records for mints. Both records live at addresses derived from the
mint address, which lets anyone locate them from the mint alone:

- metadata: ["metadata", metadata_program_id, mint]
- master edition: ["metadata", metadata_program_id, mint, "edition"]

Instructions
------------
- CreateMetadataAccountsV3:
  [metadata(writable), mint, mint_authority(signer), payer(signer, writable), update_authority, system_program, rent]
- CreateMasterEditionV3:
  [edition(writable), mint(writable), update_authority(signer), mint_authority(signer), payer(signer, writable),
   metadata(writable), token_program, system_program, rent]

NOTES
-----
- Creating the master edition does not take over the mint's authorities. The mint authority stays with the
  requesting identity.
- The master edition's `max_supply` of None means an unlimited number of prints may be created from it.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Final, Any

import msgpack
from solders.pubkey import Pubkey

from tokenforge.core.logging import get_logger
from tokenforge.ledger.errors import (
    AccountNotFound,
    AlreadyInitialized,
    AuthorityMismatch,
    ConstraintViolation,
    InvalidAccountData,
    MalformedRequest,
    PayloadTooLarge,
)
from tokenforge.ledger.model import AccountMeta, Instruction
from tokenforge.ledger.pda import find_program_address
from tokenforge.ledger.pubkeys import (
    TOKEN_METADATA_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    RENT_SYSVAR_ID,
    TOKEN_PROGRAM_ID,
)
from tokenforge.ledger.runtime import Program, InvokeContext
from tokenforge.programs import instruction_data, system, token

PREFIX: Final[bytes] = b"metadata"
EDITION: Final[bytes] = b"edition"

MAX_NAME_LENGTH: Final[int] = 32
MAX_SYMBOL_LENGTH: Final[int] = 10
MAX_URI_LENGTH: Final[int] = 200
MAX_CREATOR_LIMIT: Final[int] = 5
MAX_SELLER_FEE_BASIS_POINTS: Final[int] = 10_000

MAX_METADATA_LEN: Final[int] = 679
MAX_MASTER_EDITION_LEN: Final[int] = 282


def find_metadata_account(mint: Pubkey) -> tuple[Pubkey, int]:
    return find_program_address(
        [PREFIX, bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint)],
        TOKEN_METADATA_PROGRAM_ID,
    )


def find_master_edition_account(mint: Pubkey) -> tuple[Pubkey, int]:
    return find_program_address(
        [PREFIX, bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint), EDITION],
        TOKEN_METADATA_PROGRAM_ID,
    )


class Key(IntEnum):
    """
    Account type tag stored as the first field of every registry account
    """

    UNINITIALIZED = 0
    METADATA_V1 = 4
    MASTER_EDITION_V2 = 6


@dataclass(frozen=True, slots=True)
class Creator:
    address: Pubkey
    verified: bool
    share: int


@dataclass(frozen=True, slots=True)
class Collection:
    verified: bool
    key: Pubkey


@dataclass(frozen=True, slots=True)
class Uses:
    use_method: int
    remaining: int
    total: int


@dataclass(frozen=True, slots=True)
class DataV2:
    """
    Descriptive payload supplied when a metadata record is created
    """

    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int = 0
    creators: tuple[Creator, ...] | None = None
    collection: Collection | None = None
    uses: Uses | None = None

    def validate(self, step: str | None = None):
        """
        :exception PayloadTooLarge: if name, symbol, or uri exceed the registry's byte length limits,
                                    or if there are too many creators
        :exception ConstraintViolation: if the royalty or creator shares are invalid
        """
        for field_name, value, limit in (
            ("name", self.name, MAX_NAME_LENGTH),
            ("symbol", self.symbol, MAX_SYMBOL_LENGTH),
            ("uri", self.uri, MAX_URI_LENGTH),
        ):
            size = len(value.encode())
            if size > limit:
                raise PayloadTooLarge(field_name, size, limit, step=step)
        if not 0 <= self.seller_fee_basis_points <= MAX_SELLER_FEE_BASIS_POINTS:
            raise ConstraintViolation(
                "data.seller_fee_basis_points",
                f"seller fee basis points must be within [0, {MAX_SELLER_FEE_BASIS_POINTS}]",
            )
        if self.creators is not None:
            if len(self.creators) > MAX_CREATOR_LIMIT:
                raise PayloadTooLarge("creators", len(self.creators), MAX_CREATOR_LIMIT, step=step)
            if len({creator.address for creator in self.creators}) != len(self.creators):
                raise ConstraintViolation("data.creators", "duplicate creator addresses")
            if self.creators and sum(creator.share for creator in self.creators) != 100:
                raise ConstraintViolation("data.creators", "creator shares must add up to 100")

    def to_list(self) -> list[Any]:
        return [
            self.name,
            self.symbol,
            self.uri,
            self.seller_fee_basis_points,
            None
            if self.creators is None
            else [[bytes(c.address), c.verified, c.share] for c in self.creators],
            None
            if self.collection is None
            else [self.collection.verified, bytes(self.collection.key)],
            None
            if self.uses is None
            else [self.uses.use_method, self.uses.remaining, self.uses.total],
        ]

    @classmethod
    def from_list(cls, values: list[Any]) -> "DataV2":
        """
        :exception ValueError: if the number of values does not match
        :exception TypeError: if a value has the wrong type
        """
        name, symbol, uri, seller_fee_basis_points, creators, collection, uses = values
        if not all(isinstance(value, str) for value in (name, symbol, uri)):
            raise TypeError("name, symbol, and uri must be strings")
        if isinstance(seller_fee_basis_points, bool) or not isinstance(seller_fee_basis_points, int):
            raise TypeError("seller_fee_basis_points must be an int")
        return cls(
            name=name,
            symbol=symbol,
            uri=uri,
            seller_fee_basis_points=seller_fee_basis_points,
            creators=None
            if creators is None
            else tuple(Creator(Pubkey(address), verified, share) for address, verified, share in creators),
            collection=None if collection is None else Collection(collection[0], Pubkey(collection[1])),
            uses=None if uses is None else Uses(*uses),
        )


@dataclass(slots=True)
class Metadata:
    """
    Metadata record
    """

    update_authority: Pubkey
    mint: Pubkey
    data: DataV2
    primary_sale_happened: bool = False
    is_mutable: bool = True
    key: Key = field(default=Key.METADATA_V1)

    def pack(self) -> bytes:
        return msgpack.packb(
            [
                int(self.key),
                bytes(self.update_authority),
                bytes(self.mint),
                self.data.to_list(),
                self.primary_sale_happened,
                self.is_mutable,
            ]
        )

    @classmethod
    def unpack(cls, data: bytes) -> "Metadata":
        try:
            key, update_authority, mint, data_v2, primary_sale_happened, is_mutable = msgpack.unpackb(data)
            if key != Key.METADATA_V1:
                raise ValueError(f"unexpected account key: {key}")
            return cls(
                update_authority=Pubkey(update_authority),
                mint=Pubkey(mint),
                data=DataV2.from_list(data_v2),
                primary_sale_happened=primary_sale_happened,
                is_mutable=is_mutable,
            )
        except (ValueError, TypeError) as err:
            raise InvalidAccountData("invalid metadata account data") from err


@dataclass(slots=True)
class MasterEdition:
    """
    Edition record

    `supply` counts the prints created from the master edition; `max_supply` of None is unlimited.
    """

    supply: int = 0
    max_supply: int | None = None
    key: Key = field(default=Key.MASTER_EDITION_V2)

    def pack(self) -> bytes:
        return msgpack.packb([int(self.key), self.supply, self.max_supply])

    @classmethod
    def unpack(cls, data: bytes) -> "MasterEdition":
        try:
            key, supply, max_supply = msgpack.unpackb(data)
            if key != Key.MASTER_EDITION_V2:
                raise ValueError(f"unexpected account key: {key}")
        except (ValueError, TypeError) as err:
            raise InvalidAccountData("invalid master edition account data") from err
        return cls(supply=supply, max_supply=max_supply)


class MetadataInstruction(IntEnum):
    CREATE_METADATA_ACCOUNTS_V3 = 33
    CREATE_MASTER_EDITION_V3 = 17


def create_metadata_accounts_v3(
    *,
    metadata: Pubkey,
    mint: Pubkey,
    mint_authority: Pubkey,
    payer: Pubkey,
    update_authority: Pubkey,
    data: DataV2,
    is_mutable: bool,
    update_authority_is_signer: bool,
    collection_details: int | None = None,
) -> Instruction:
    return Instruction(
        program_id=TOKEN_METADATA_PROGRAM_ID,
        accounts=(
            AccountMeta.writable(metadata),
            AccountMeta.readonly(mint),
            AccountMeta.signer(mint_authority),
            AccountMeta.signer(payer, is_writable=True),
            AccountMeta(update_authority, is_signer=update_authority_is_signer),
            AccountMeta.readonly(SYSTEM_PROGRAM_ID),
            AccountMeta.readonly(RENT_SYSVAR_ID),
        ),
        data=msgpack.packb(
            [
                MetadataInstruction.CREATE_METADATA_ACCOUNTS_V3,
                data.to_list(),
                is_mutable,
                collection_details,
            ]
        ),
    )


def create_master_edition_v3(
    *,
    edition: Pubkey,
    mint: Pubkey,
    update_authority: Pubkey,
    mint_authority: Pubkey,
    payer: Pubkey,
    metadata: Pubkey,
    max_supply: int | None = None,
) -> Instruction:
    return Instruction(
        program_id=TOKEN_METADATA_PROGRAM_ID,
        accounts=(
            AccountMeta.writable(edition),
            AccountMeta.writable(mint),
            AccountMeta.signer(update_authority),
            AccountMeta.signer(mint_authority),
            AccountMeta.signer(payer, is_writable=True),
            AccountMeta.writable(metadata),
            AccountMeta.readonly(TOKEN_PROGRAM_ID),
            AccountMeta.readonly(SYSTEM_PROGRAM_ID),
            AccountMeta.readonly(RENT_SYSVAR_ID),
        ),
        data=msgpack.packb([MetadataInstruction.CREATE_MASTER_EDITION_V3, max_supply]),
    )


def load_metadata(ctx: InvokeContext, address: Pubkey) -> Metadata:
    account = ctx.get_account(address)
    if account is None:
        raise AccountNotFound(f"metadata account does not exist: {address}")
    if account.owner != TOKEN_METADATA_PROGRAM_ID:
        raise InvalidAccountData(f"account is not owned by the metadata program: {address}")
    return Metadata.unpack(account.data)


class TokenMetadataProgram(Program):
    program_id = TOKEN_METADATA_PROGRAM_ID

    def __init__(self):
        self.logger = get_logger(self)

    def process(self, ctx: InvokeContext) -> None:
        tag, args = instruction_data.unpack(ctx.instruction.data, "token metadata")
        match tag:
            case MetadataInstruction.CREATE_METADATA_ACCOUNTS_V3:
                data, is_mutable, _collection_details = instruction_data.fields(
                    args, 3, "create_metadata_accounts_v3"
                )
                try:
                    data = DataV2.from_list(data)
                except (ValueError, TypeError) as err:
                    raise MalformedRequest(f"invalid metadata data: {err}") from err
                if not isinstance(is_mutable, bool):
                    raise MalformedRequest(f"is_mutable must be a bool: {is_mutable!r}")
                self._create_metadata_accounts_v3(ctx, data, is_mutable)
            case MetadataInstruction.CREATE_MASTER_EDITION_V3:
                (max_supply,) = instruction_data.fields(args, 1, "create_master_edition_v3")
                if max_supply is not None:
                    max_supply = instruction_data.uint("max_supply", max_supply)
                self._create_master_edition_v3(ctx, max_supply)
            case _:
                raise MalformedRequest(f"unknown token metadata instruction: {tag}")

    def _create_metadata_accounts_v3(self, ctx: InvokeContext, data: DataV2, is_mutable: bool):
        if len(ctx.instruction.accounts) < 7:
            raise MalformedRequest("not enough accounts")
        metadata_address, mint_address, mint_authority, payer, update_authority = (
            meta.pubkey for meta in ctx.instruction.accounts[:5]
        )

        expected_address, bump = find_metadata_account(mint_address)
        if metadata_address != expected_address:
            raise ConstraintViolation(
                "metadata.address",
                f"metadata address is not derived from the mint: {metadata_address} != {expected_address}",
            )
        data.validate()
        if ctx.get_account(metadata_address) is not None:
            raise AlreadyInitialized(metadata_address)

        _, mint = token.load_mint(ctx, mint_address)
        if mint.mint_authority != mint_authority:
            raise AuthorityMismatch(
                f"mint authority does not match: {mint_authority} != {mint.mint_authority}"
            )
        if not ctx.is_signer(mint_authority):
            raise ConstraintViolation("mint_authority.signer", f"mint authority must sign: {mint_authority}")
        if data.creators:
            for creator in data.creators:
                if creator.verified and not ctx.is_signer(creator.address):
                    raise ConstraintViolation(
                        "data.creators", f"verified creator must sign: {creator.address}"
                    )

        ctx.invoke(
            system.create_account(
                payer=payer,
                new_account=metadata_address,
                lamports=ctx.rent.minimum_balance(MAX_METADATA_LEN),
                space=MAX_METADATA_LEN,
                owner=self.program_id,
            ),
            signer_seeds=[[PREFIX, bytes(self.program_id), bytes(mint_address), bytes([bump])]],
        )
        account = ctx.get_account(metadata_address)
        account.data = Metadata(  # type: ignore
            update_authority=update_authority,
            mint=mint_address,
            data=data,
            is_mutable=is_mutable,
        ).pack()
        ctx.set_account(metadata_address, account)  # type: ignore
        self.logger.debug("created metadata: %s", metadata_address)
        ctx.log(f"created metadata {metadata_address}: mint={mint_address}")

    def _create_master_edition_v3(self, ctx: InvokeContext, max_supply: int | None):
        if len(ctx.instruction.accounts) < 9:
            raise MalformedRequest("not enough accounts")
        (
            edition_address,
            mint_address,
            update_authority,
            mint_authority,
            payer,
            metadata_address,
        ) = (meta.pubkey for meta in ctx.instruction.accounts[:6])

        expected_address, bump = find_master_edition_account(mint_address)
        if edition_address != expected_address:
            raise ConstraintViolation(
                "edition.address",
                f"edition address is not derived from the mint: {edition_address} != {expected_address}",
            )

        metadata = load_metadata(ctx, metadata_address)
        if metadata.mint != mint_address:
            raise ConstraintViolation(
                "metadata.mint", f"metadata does not belong to the mint: {metadata.mint} != {mint_address}"
            )
        if metadata.update_authority != update_authority:
            raise AuthorityMismatch(
                f"update authority does not match: {update_authority} != {metadata.update_authority}"
            )
        if not ctx.is_signer(update_authority):
            raise ConstraintViolation(
                "update_authority.signer", f"update authority must sign: {update_authority}"
            )

        _, mint = token.load_mint(ctx, mint_address)
        if mint.mint_authority != mint_authority:
            raise AuthorityMismatch(
                f"mint authority does not match: {mint_authority} != {mint.mint_authority}"
            )
        if mint.decimals != 0:
            raise ConstraintViolation("mint.decimals", "editions require a mint with zero decimals")
        if mint.supply != 1:
            raise ConstraintViolation("mint.supply", "editions must have exactly one token")
        if ctx.get_account(edition_address) is not None:
            raise AlreadyInitialized(edition_address)

        ctx.invoke(
            system.create_account(
                payer=payer,
                new_account=edition_address,
                lamports=ctx.rent.minimum_balance(MAX_MASTER_EDITION_LEN),
                space=MAX_MASTER_EDITION_LEN,
                owner=self.program_id,
            ),
            signer_seeds=[
                [PREFIX, bytes(self.program_id), bytes(mint_address), EDITION, bytes([bump])]
            ],
        )
        account = ctx.get_account(edition_address)
        account.data = MasterEdition(max_supply=max_supply).pack()  # type: ignore
        ctx.set_account(edition_address, account)  # type: ignore
        self.logger.debug("created master edition: %s", edition_address)
        ctx.log(f"created master edition {edition_address}: max_supply={max_supply}")
