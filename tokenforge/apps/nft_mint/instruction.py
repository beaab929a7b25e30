"""
`init_nft` instruction encoding

Instruction data = 8 byte discriminator || msgpack([name, symbol, uri])

The discriminator is the first 8 bytes of sha256("global:<instruction name>").
"""

import hashlib
from dataclasses import dataclass
from typing import Final

import msgpack
from solders.pubkey import Pubkey

from tokenforge.apps.nft_mint.accounts import init_nft_account_metas
from tokenforge.config import NFT_MINT_PROGRAM_ID
from tokenforge.ledger.errors import MalformedRequest
from tokenforge.ledger.model import Instruction
from tokenforge.programs.token_metadata import DataV2

DISCRIMINATOR_LEN: Final[int] = 8


def sighash(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:DISCRIMINATOR_LEN]


INIT_NFT_DISCRIMINATOR: Final[bytes] = sighash("init_nft")


@dataclass(frozen=True, slots=True)
class InitNftArgs:
    name: str
    symbol: str
    uri: str

    def pack(self) -> bytes:
        return INIT_NFT_DISCRIMINATOR + msgpack.packb([self.name, self.symbol, self.uri])

    @classmethod
    def unpack(cls, data: bytes) -> "InitNftArgs":
        """
        :exception MalformedRequest: if the data is not an encoded `init_nft` instruction
        """
        if data[:DISCRIMINATOR_LEN] != INIT_NFT_DISCRIMINATOR:
            raise MalformedRequest("unknown instruction discriminator", step="instruction")
        try:
            name, symbol, uri = msgpack.unpackb(data[DISCRIMINATOR_LEN:])
        except (ValueError, TypeError) as err:
            raise MalformedRequest("invalid init_nft instruction data", step="instruction") from err
        if not all(isinstance(value, str) for value in (name, symbol, uri)):
            raise MalformedRequest("name, symbol, and uri must be strings", step="instruction")
        return cls(name=name, symbol=symbol, uri=uri)

    def to_data_v2(self) -> DataV2:
        """
        Royalties are fixed at 0, and creators, collection, and uses are not set.
        """
        return DataV2(
            name=self.name,
            symbol=self.symbol,
            uri=self.uri,
            seller_fee_basis_points=0,
            creators=None,
            collection=None,
            uses=None,
        )


def init_nft(
    *,
    payer: Pubkey,
    mint: Pubkey,
    name: str,
    symbol: str,
    uri: str,
    program_id: Pubkey = NFT_MINT_PROGRAM_ID,
) -> Instruction:
    """
    Builds the `init_nft` instruction.

    :param payer: pays all fees and becomes the mint, freeze, and update authority
    :param mint: new mint account address. The corresponding keypair must sign the transaction.
    """
    return Instruction(
        program_id=program_id,
        accounts=init_nft_account_metas(payer, mint),
        data=InitNftArgs(name=name, symbol=symbol, uri=uri).pack(),
    )
