import unittest

import msgpack
from solders.pubkey import Pubkey

from tokenforge.ledger.errors import (
    AlreadyInitialized,
    AuthorityMismatch,
    ConstraintViolation,
    InsufficientFunds,
    MalformedRequest,
)
from tokenforge.ledger.keys import Keypair
from tokenforge.ledger.model import AccountMeta, Instruction
from tokenforge.ledger.pubkeys import TOKEN_PROGRAM_ID
from tokenforge.ledger.transaction import TransactionStatus
from tokenforge.programs import system, token
from tokenforge.programs.token import Mint, TokenAccount, MINT_SIZE, TOKEN_ACCOUNT_SIZE
from tests.test_support import LedgerTestCase


class TokenProgramTestCase(LedgerTestCase):
    def create_mint(self, decimals: int = 0) -> Pubkey:
        mint = Keypair()
        self.send(
            system.create_account(
                payer=self.payer.pubkey,
                new_account=mint.pubkey,
                lamports=self.ledger.rent.minimum_balance(MINT_SIZE),
                space=MINT_SIZE,
                owner=TOKEN_PROGRAM_ID,
            ),
            token.initialize_mint(
                mint=mint.pubkey, decimals=decimals, mint_authority=self.payer.pubkey
            ),
            signers=[self.payer, mint],
        )
        return mint.pubkey

    def create_token_account(self, mint: Pubkey, owner: Pubkey) -> Pubkey:
        account = Keypair()
        self.send(
            system.create_account(
                payer=self.payer.pubkey,
                new_account=account.pubkey,
                lamports=self.ledger.rent.minimum_balance(TOKEN_ACCOUNT_SIZE),
                space=TOKEN_ACCOUNT_SIZE,
                owner=TOKEN_PROGRAM_ID,
            ),
            token.initialize_account(account=account.pubkey, mint=mint, owner=owner),
            signers=[self.payer, account],
        )
        return account.pubkey

    def test_initialize_mint(self):
        mint_address = self.create_mint(decimals=6)
        mint = Mint.unpack(self.ledger.get_account(mint_address).data)
        self.assertEqual(mint.decimals, 6)
        self.assertEqual(mint.supply, 0)
        self.assertEqual(mint.mint_authority, self.payer.pubkey)
        self.assertIsNone(mint.freeze_authority)
        self.assertTrue(mint.is_initialized)

    def test_initialize_mint_twice(self):
        mint_address = self.create_mint()
        with self.assertRaises(AlreadyInitialized):
            self.send(
                token.initialize_mint(
                    mint=mint_address, decimals=0, mint_authority=Keypair().pubkey
                ),
                signers=[self.payer],
            )
        mint = Mint.unpack(self.ledger.get_account(mint_address).data)
        self.assertEqual(mint.mint_authority, self.payer.pubkey)

    def test_initialize_mint_requires_rent_exemption(self):
        mint = Keypair()
        with self.assertRaises(InsufficientFunds):
            self.send(
                system.create_account(
                    payer=self.payer.pubkey,
                    new_account=mint.pubkey,
                    lamports=self.ledger.rent.minimum_balance(MINT_SIZE) - 1,
                    space=MINT_SIZE,
                    owner=TOKEN_PROGRAM_ID,
                ),
                token.initialize_mint(
                    mint=mint.pubkey, decimals=0, mint_authority=self.payer.pubkey
                ),
                signers=[self.payer, mint],
            )
        self.assertIsNone(self.ledger.get_account(mint.pubkey))

    def test_mint_to(self):
        mint_address = self.create_mint()
        owner = Keypair().pubkey
        account_address = self.create_token_account(mint_address, owner)

        self.send(
            token.mint_to(
                mint=mint_address,
                destination=account_address,
                authority=self.payer.pubkey,
                amount=1,
            ),
            signers=[self.payer],
        )

        self.assertEqual(Mint.unpack(self.ledger.get_account(mint_address).data).supply, 1)
        holding = TokenAccount.unpack(self.ledger.get_account(account_address).data)
        self.assertEqual(holding.amount, 1)
        self.assertEqual(holding.owner, owner)
        self.assertEqual(holding.mint, mint_address)

    def test_mint_to_with_wrong_authority(self):
        mint_address = self.create_mint()
        account_address = self.create_token_account(mint_address, self.payer.pubkey)
        imposter = Keypair()
        with self.assertRaises(AuthorityMismatch):
            self.send(
                token.mint_to(
                    mint=mint_address,
                    destination=account_address,
                    authority=imposter.pubkey,
                    amount=1,
                ),
                signers=[self.payer, imposter],
            )
        self.assertEqual(Mint.unpack(self.ledger.get_account(mint_address).data).supply, 0)

    def test_mint_to_account_for_another_mint(self):
        mint_address = self.create_mint()
        other_mint_address = self.create_mint()
        account_address = self.create_token_account(other_mint_address, self.payer.pubkey)
        with self.assertRaises(ConstraintViolation) as err:
            self.send(
                token.mint_to(
                    mint=mint_address,
                    destination=account_address,
                    authority=self.payer.pubkey,
                    amount=1,
                ),
                signers=[self.payer],
            )
        self.assertEqual(err.exception.check, "destination.mint")

    def test_mint_to_negative_amount(self):
        mint_address = self.create_mint()
        account_address = self.create_token_account(mint_address, self.payer.pubkey)
        self.send(
            token.mint_to(
                mint=mint_address, destination=account_address, authority=self.payer.pubkey, amount=1
            ),
            signers=[self.payer],
        )
        with self.assertRaises(MalformedRequest):
            self.send(
                token.mint_to(
                    mint=mint_address, destination=account_address, authority=self.payer.pubkey, amount=-1
                ),
                signers=[self.payer],
            )
        self.assertEqual(Mint.unpack(self.ledger.get_account(mint_address).data).supply, 1)
        self.assertEqual(TokenAccount.unpack(self.ledger.get_account(account_address).data).amount, 1)

    def test_malformed_instruction_data(self):
        for data in (
            b"\x07",
            b"\x92\x02",  # truncated array
            msgpack.packb([token.TokenInstruction.MINT_TO]),
            msgpack.packb([token.TokenInstruction.MINT_TO, 1.5]),
            msgpack.packb([token.TokenInstruction.INITIALIZE_MINT, 256, bytes(self.payer.pubkey), None]),
            msgpack.packb([token.TokenInstruction.INITIALIZE_MINT, 0, "authority", None]),
        ):
            with self.subTest(data=data):
                with self.assertRaises(MalformedRequest):
                    self.send(Instruction(program_id=TOKEN_PROGRAM_ID, data=data), signers=[self.payer])
                self.assertEqual(self.results[-1].status, TransactionStatus.FAILED)
                self.assertIsInstance(self.results[-1].error, MalformedRequest)

    def test_not_enough_accounts(self):
        mint_address = self.create_mint()
        with self.assertRaises(MalformedRequest):
            self.send(
                Instruction(
                    program_id=TOKEN_PROGRAM_ID,
                    accounts=(AccountMeta.writable(mint_address),),
                    data=msgpack.packb([token.TokenInstruction.MINT_TO, 1]),
                ),
                signers=[self.payer],
            )
        self.assertEqual(Mint.unpack(self.ledger.get_account(mint_address).data).supply, 0)


if __name__ == "__main__":
    unittest.main()
