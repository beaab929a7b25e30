"""
Ledger domain model

Accounts are addressed by 32 byte public keys. Each account is owned by exactly one program, which is the only program
allowed to change its data or debit its lamports.
"""

from dataclasses import dataclass, field, replace
from typing import Final, NewType

from solders.pubkey import Pubkey

U64_MAX: Final[int] = 2**64 - 1

TxnId = NewType("TxnId", str)


@dataclass(slots=True)
class Account:
    """
    Account state as stored by the ledger
    """

    lamports: int
    owner: Pubkey
    space: int = 0
    data: bytes = b""
    executable: bool = False

    def copy(self) -> "Account":
        return replace(self)

    @property
    def is_empty(self) -> bool:
        """
        An account with no lamports and no data is indistinguishable from an account that was never created.
        """
        return self.lamports == 0 and self.space == 0 and not self.data


@dataclass(frozen=True, slots=True)
class AccountMeta:
    """
    Reference to an account that an instruction reads or writes
    """

    pubkey: Pubkey
    is_signer: bool = False
    is_writable: bool = False

    @classmethod
    def readonly(cls, pubkey: Pubkey) -> "AccountMeta":
        return cls(pubkey=pubkey)

    @classmethod
    def writable(cls, pubkey: Pubkey, is_signer: bool = False) -> "AccountMeta":
        return cls(pubkey=pubkey, is_signer=is_signer, is_writable=True)

    @classmethod
    def signer(cls, pubkey: Pubkey, is_writable: bool = False) -> "AccountMeta":
        return cls(pubkey=pubkey, is_signer=True, is_writable=is_writable)


@dataclass(frozen=True, slots=True)
class Instruction:
    """
    A single program call: the program to dispatch to, the ordered accounts it operates on, and opaque data
    which the program decodes.
    """

    program_id: Pubkey
    accounts: tuple[AccountMeta, ...] = field(default_factory=tuple)
    data: bytes = b""
