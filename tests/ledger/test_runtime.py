import threading
import unittest

from tokenforge.ledger.errors import (
    InvalidAccountData,
    MalformedRequest,
    PrivilegeEscalation,
)
from tokenforge.ledger.keys import Keypair
from tokenforge.ledger.model import AccountMeta, Instruction
from tokenforge.ledger.pubkeys import SYSTEM_PROGRAM_ID
from tokenforge.ledger.runtime import Program, InvokeContext, MAX_INVOKE_DEPTH
from tokenforge.ledger.transaction import TransactionStatus, Transaction
from tokenforge.programs import system
from tests.test_support import LedgerTestCase


class RogueProgram(Program):
    """
    Misbehaves on request
    """

    def __init__(self):
        self.program_id = Keypair().pubkey
        self.max_depth = 0

    def process(self, ctx: InvokeContext) -> None:
        self.max_depth = max(self.max_depth, ctx.depth)
        accounts = [meta.pubkey for meta in ctx.instruction.accounts]
        match ctx.instruction.data:
            case b"fail":
                raise InvalidAccountData("failed on request")
            case b"steal":
                account = ctx.get_account(accounts[0])
                account.lamports -= 1  # type: ignore
                ctx.set_account(accounts[0], account)  # type: ignore
            case b"escalate":
                ctx.invoke(
                    system.transfer(source=accounts[0], destination=accounts[1], lamports=1)
                )
            case b"recurse":
                ctx.invoke(Instruction(program_id=self.program_id, data=b"recurse"))


class RuntimeTestCase(LedgerTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.rogue = RogueProgram()
        self.ledger.deploy(self.rogue)
        self.receiver = Keypair().pubkey

    def rogue_instruction(self, data: bytes, *accounts: AccountMeta) -> Instruction:
        return Instruction(program_id=self.rogue.program_id, accounts=accounts, data=data)

    def test_transfer_is_committed(self):
        balance = self.ledger.get_balance(self.payer.pubkey)
        txn_id = self.send(
            system.transfer(source=self.payer.pubkey, destination=self.receiver, lamports=100),
            signers=[self.payer],
        )
        self.assertEqual(self.ledger.get_balance(self.receiver), 100)
        self.assertEqual(self.ledger.get_balance(self.payer.pubkey), balance - 100)
        self.assertEqual(self.ledger.get_account(self.receiver).owner, SYSTEM_PROGRAM_ID)

        self.assertEqual(len(self.results), 1)
        self.assertEqual(self.results[0].txn_id, txn_id)
        self.assertEqual(self.results[0].status, TransactionStatus.COMMITTED)

    def test_failed_transaction_is_rolled_back(self):
        balance = self.ledger.get_balance(self.payer.pubkey)
        with self.assertRaises(InvalidAccountData):
            self.send(
                system.transfer(source=self.payer.pubkey, destination=self.receiver, lamports=100),
                self.rogue_instruction(b"fail"),
                signers=[self.payer],
            )
        self.assertIsNone(self.ledger.get_account(self.receiver))
        self.assertEqual(self.ledger.get_balance(self.payer.pubkey), balance)

        self.assertEqual(len(self.results), 1)
        result = self.results[0]
        self.assertEqual(result.status, TransactionStatus.FAILED)
        self.assertEqual(result.failed_instruction, 1)
        self.assertIsInstance(result.error, InvalidAccountData)

    def test_missing_signature(self):
        txn = Transaction(
            instructions=[
                system.transfer(source=self.payer.pubkey, destination=self.receiver, lamports=100)
            ],
            fee_payer=self.payer.pubkey,
        )
        with self.assertRaises(MalformedRequest) as err:
            self.ledger.send_transaction(txn)
        self.assertEqual(err.exception.step, "signatures")
        self.assertIsNone(self.ledger.get_account(self.receiver))

    def test_unknown_program(self):
        with self.assertRaises(MalformedRequest):
            self.send(Instruction(program_id=Keypair().pubkey), signers=[self.payer])

    def test_program_cannot_debit_account_it_does_not_own(self):
        balance = self.ledger.get_balance(self.payer.pubkey)
        with self.assertRaises(PrivilegeEscalation):
            self.send(
                self.rogue_instruction(b"steal", AccountMeta.writable(self.payer.pubkey)),
                signers=[self.payer],
            )
        self.assertEqual(self.ledger.get_balance(self.payer.pubkey), balance)

    def test_program_cannot_escalate_signer_privilege(self):
        victim = Keypair()
        self.ledger.airdrop(victim.pubkey, 1_000)
        with self.assertRaises(PrivilegeEscalation):
            self.send(
                self.rogue_instruction(
                    b"escalate",
                    AccountMeta.writable(victim.pubkey),
                    AccountMeta.writable(self.receiver),
                ),
                signers=[self.payer],
            )
        self.assertEqual(self.ledger.get_balance(victim.pubkey), 1_000)

    def test_max_invoke_depth(self):
        with self.assertRaises(MalformedRequest):
            self.send(self.rogue_instruction(b"recurse"), signers=[self.payer])
        self.assertEqual(self.rogue.max_depth, MAX_INVOKE_DEPTH)

    def test_rent(self):
        # (128 bytes overhead + 82 bytes) * 3480 lamports per byte year * 2 years
        self.assertEqual(self.ledger.rent.minimum_balance(82), 1_461_600)

    def test_subscribers_are_notified_after_the_lock_is_released(self):
        balances: list[int] = []
        readers: list[threading.Thread] = []

        def on_next(_result):
            # a reader thread blocks if the ledger is still locked while subscribers are notified
            reader = threading.Thread(target=lambda: balances.append(self.ledger.get_balance(self.receiver)))
            reader.start()
            reader.join(timeout=5)
            readers.append(reader)

        subscription = self.ledger.transactions.subscribe(on_next)
        try:
            self.send(
                system.transfer(source=self.payer.pubkey, destination=self.receiver, lamports=100),
                signers=[self.payer],
            )
        finally:
            subscription.dispose()
        self.assertEqual(len(readers), 1)
        self.assertFalse(readers[0].is_alive())
        self.assertEqual(balances, [100])


if __name__ == "__main__":
    unittest.main()
