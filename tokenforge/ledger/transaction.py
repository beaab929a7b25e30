"""
Provides support to create and sign transactions.

A transaction is an ordered list of instructions that the ledger executes atomically: either every instruction
succeeds and all account changes are committed, or nothing is committed.
"""

from dataclasses import dataclass, field
from enum import Enum, auto

import msgpack
from solders.pubkey import Pubkey
from ulid import ULID

from tokenforge.ledger.errors import LedgerError
from tokenforge.ledger.keys import Keypair, verify_signature
from tokenforge.ledger.model import Instruction, TxnId


def create_lease() -> bytes:
    """
    Generates a unique lease, which makes each transaction message unique even when its instructions are identical.
    """
    return ULID().bytes


@dataclass(slots=True)
class Transaction:
    """
    Signatures are keyed by signer address.
    """

    instructions: list[Instruction]
    fee_payer: Pubkey
    lease: bytes = field(default_factory=create_lease)
    signatures: dict[Pubkey, bytes] = field(default_factory=dict)

    def message(self) -> bytes:
        """
        :return: transaction message used for signing
        """
        return msgpack.packb(
            [
                self.lease,
                bytes(self.fee_payer),
                [
                    [
                        bytes(instruction.program_id),
                        [
                            [bytes(meta.pubkey), meta.is_signer, meta.is_writable]
                            for meta in instruction.accounts
                        ],
                        instruction.data,
                    ]
                    for instruction in self.instructions
                ],
            ]
        )

    def required_signers(self) -> list[Pubkey]:
        """
        :return: fee payer followed by every account flagged as a signer, in first-seen order
        """
        signers = [self.fee_payer]
        for instruction in self.instructions:
            for meta in instruction.accounts:
                if meta.is_signer and meta.pubkey not in signers:
                    signers.append(meta.pubkey)
        return signers

    def sign(self, *keypairs: Keypair) -> "Transaction":
        message = self.message()
        for keypair in keypairs:
            self.signatures[keypair.pubkey] = keypair.sign(message)
        return self

    def verify_signatures(self) -> list[Pubkey]:
        """
        :return: list of signers whose signature is missing or invalid
        """
        message = self.message()
        return [
            signer
            for signer in self.required_signers()
            if signer not in self.signatures
            or not verify_signature(signer, message, self.signatures[signer])
        ]


class TransactionStatus(Enum):
    COMMITTED = auto()
    FAILED = auto()

    def __repr__(self) -> str:
        return f"{self.name}"


@dataclass(frozen=True, slots=True)
class TransactionResult:
    """
    Published by the ledger for every transaction it finishes processing.
    """

    txn_id: TxnId
    status: TransactionStatus
    # index of the top level instruction that failed
    failed_instruction: int | None = None
    error: LedgerError | None = None
    logs: tuple[str, ...] = ()
