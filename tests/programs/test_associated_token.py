import unittest

import msgpack
from solders.pubkey import Pubkey

from tokenforge.ledger.errors import (
    AccountNotFound,
    AlreadyInitialized,
    ConstraintViolation,
    InvalidAccountData,
    MalformedRequest,
)
from tokenforge.ledger.keys import Keypair
from tokenforge.ledger.model import AccountMeta, Instruction
from tokenforge.ledger.pubkeys import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID
from tokenforge.ledger.transaction import TransactionStatus
from tokenforge.programs import associated_token, system, token
from tokenforge.programs.associated_token import (
    AssociatedTokenInstruction,
    find_associated_token_address,
    get_associated_token_address,
)
from tokenforge.programs.token import TokenAccount, MINT_SIZE, TOKEN_ACCOUNT_SIZE
from tests.test_support import LedgerTestCase


class AssociatedTokenAddressTestCase(unittest.TestCase):
    def test_address_is_derived_from_owner_and_mint(self):
        owner = Keypair().pubkey
        mint = Keypair().pubkey
        address, bump = find_associated_token_address(owner, mint)
        self.assertEqual(
            (address, bump),
            Pubkey.find_program_address(
                [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)],
                ASSOCIATED_TOKEN_PROGRAM_ID,
            ),
        )
        self.assertEqual(get_associated_token_address(owner, mint), address)
        self.assertNotEqual(get_associated_token_address(owner, Keypair().pubkey), address)
        self.assertNotEqual(get_associated_token_address(Keypair().pubkey, mint), address)


class AssociatedTokenProgramTestCase(LedgerTestCase):
    def setUp(self) -> None:
        super().setUp()
        mint = Keypair()
        self.send(
            system.create_account(
                payer=self.payer.pubkey,
                new_account=mint.pubkey,
                lamports=self.ledger.rent.minimum_balance(MINT_SIZE),
                space=MINT_SIZE,
                owner=TOKEN_PROGRAM_ID,
            ),
            token.initialize_mint(mint=mint.pubkey, decimals=0, mint_authority=self.payer.pubkey),
            signers=[self.payer, mint],
        )
        self.mint = mint.pubkey
        self.owner = Keypair().pubkey
        self.address = get_associated_token_address(self.owner, self.mint)

    def test_create(self):
        balance = self.ledger.get_balance(self.payer.pubkey)
        self.send(
            associated_token.create(payer=self.payer.pubkey, owner=self.owner, mint=self.mint),
            signers=[self.payer],
        )

        account = self.ledger.get_account(self.address)
        self.assertEqual(account.owner, TOKEN_PROGRAM_ID)
        self.assertEqual(account.space, TOKEN_ACCOUNT_SIZE)
        self.assertEqual(account.lamports, 2_039_280)
        self.assertEqual(self.ledger.get_balance(self.payer.pubkey), balance - 2_039_280)

        holding = TokenAccount.unpack(account.data)
        self.assertEqual(holding.owner, self.owner)
        self.assertEqual(holding.mint, self.mint)
        self.assertEqual(holding.amount, 0)

    def test_create_when_account_exists(self):
        self.send(
            associated_token.create(payer=self.payer.pubkey, owner=self.owner, mint=self.mint),
            signers=[self.payer],
        )
        with self.assertRaises(AlreadyInitialized):
            self.send(
                associated_token.create(payer=self.payer.pubkey, owner=self.owner, mint=self.mint),
                signers=[self.payer],
            )

    def test_create_idempotent(self):
        for _ in range(2):
            self.send(
                associated_token.create_idempotent(
                    payer=self.payer.pubkey, owner=self.owner, mint=self.mint
                ),
                signers=[self.payer],
            )
        holding = TokenAccount.unpack(self.ledger.get_account(self.address).data)
        self.assertEqual(holding.owner, self.owner)

    def test_create_idempotent_rejects_occupied_address(self):
        self.ledger.airdrop(self.address, 1_000)
        with self.assertRaises(InvalidAccountData):
            self.send(
                associated_token.create_idempotent(
                    payer=self.payer.pubkey, owner=self.owner, mint=self.mint
                ),
                signers=[self.payer],
            )
        self.assertEqual(self.ledger.get_balance(self.address), 1_000)

    def test_create_with_wrong_address(self):
        instruction = associated_token.create(
            payer=self.payer.pubkey, owner=self.owner, mint=self.mint
        )
        accounts = list(instruction.accounts)
        accounts[1] = AccountMeta.writable(Keypair().pubkey)
        with self.assertRaises(ConstraintViolation) as err:
            self.send(
                Instruction(
                    program_id=instruction.program_id,
                    accounts=tuple(accounts),
                    data=instruction.data,
                ),
                signers=[self.payer],
            )
        self.assertEqual(err.exception.check, "associated_token_account.address")

    def test_create_for_unknown_mint(self):
        with self.assertRaises(AccountNotFound):
            self.send(
                associated_token.create(
                    payer=self.payer.pubkey, owner=self.owner, mint=Keypair().pubkey
                ),
                signers=[self.payer],
            )

    def test_malformed_instruction_data(self):
        instruction = associated_token.create(payer=self.payer.pubkey, owner=self.owner, mint=self.mint)
        for data in (
            b"\x07",
            b"",
            msgpack.packb([AssociatedTokenInstruction.CREATE, bytes(self.owner)]),
            msgpack.packb([9]),
        ):
            with self.subTest(data=data):
                with self.assertRaises(MalformedRequest):
                    self.send(
                        Instruction(program_id=instruction.program_id, accounts=instruction.accounts, data=data),
                        signers=[self.payer],
                    )
                self.assertEqual(self.results[-1].status, TransactionStatus.FAILED)
        self.assertIsNone(self.ledger.get_account(self.address))


if __name__ == "__main__":
    unittest.main()
