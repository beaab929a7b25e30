"""
System program

Allocates accounts and transfers lamports between system owned accounts.

Instructions
------------
- CreateAccount: [payer(signer, writable), new_account(signer, writable)]
- Transfer: [source(signer, writable), destination(writable)]

Instruction data is msgpack encoded: [instruction tag, *args]
"""

from enum import IntEnum

import msgpack
from solders.pubkey import Pubkey

from tokenforge.core.logging import get_logger
from tokenforge.ledger.errors import (
    AlreadyInitialized,
    InsufficientFunds,
    MalformedRequest,
    ConstraintViolation,
)
from tokenforge.ledger.model import Account, AccountMeta, Instruction
from tokenforge.ledger.pubkeys import SYSTEM_PROGRAM_ID
from tokenforge.ledger.runtime import Program, InvokeContext
from tokenforge.programs import instruction_data


class SystemInstruction(IntEnum):
    CREATE_ACCOUNT = 0
    TRANSFER = 2


def create_account(
    *,
    payer: Pubkey,
    new_account: Pubkey,
    lamports: int,
    space: int,
    owner: Pubkey,
) -> Instruction:
    return Instruction(
        program_id=SYSTEM_PROGRAM_ID,
        accounts=(
            AccountMeta.signer(payer, is_writable=True),
            AccountMeta.signer(new_account, is_writable=True),
        ),
        data=msgpack.packb(
            [SystemInstruction.CREATE_ACCOUNT, lamports, space, bytes(owner)]
        ),
    )


def transfer(*, source: Pubkey, destination: Pubkey, lamports: int) -> Instruction:
    return Instruction(
        program_id=SYSTEM_PROGRAM_ID,
        accounts=(
            AccountMeta.signer(source, is_writable=True),
            AccountMeta.writable(destination),
        ),
        data=msgpack.packb([SystemInstruction.TRANSFER, lamports]),
    )


class SystemProgram(Program):
    program_id = SYSTEM_PROGRAM_ID

    def __init__(self):
        self.logger = get_logger(self)

    def process(self, ctx: InvokeContext) -> None:
        tag, args = instruction_data.unpack(ctx.instruction.data, "system")
        if len(ctx.instruction.accounts) < 2:
            raise MalformedRequest("not enough accounts")
        match tag:
            case SystemInstruction.CREATE_ACCOUNT:
                lamports, space, owner = instruction_data.fields(args, 3, "create_account")
                self._create_account(
                    ctx,
                    instruction_data.uint("lamports", lamports),
                    instruction_data.uint("space", space),
                    instruction_data.pubkey("owner", owner),
                )
            case SystemInstruction.TRANSFER:
                (lamports,) = instruction_data.fields(args, 1, "transfer")
                self._transfer(ctx, instruction_data.uint("lamports", lamports))
            case _:
                raise MalformedRequest(f"unknown system instruction: {tag}")

    def _create_account(
        self, ctx: InvokeContext, lamports: int, space: int, owner: Pubkey
    ):
        payer_address, new_address = (meta.pubkey for meta in ctx.instruction.accounts[:2])
        if not ctx.is_signer(new_address):
            raise ConstraintViolation(
                "new_account.signer", f"new account must sign: {new_address}"
            )
        if ctx.get_account(new_address) is not None:
            raise AlreadyInitialized(new_address)

        payer = self._debit(ctx, payer_address, lamports)
        ctx.set_account(payer_address, payer)
        ctx.set_account(
            new_address, Account(lamports=lamports, owner=owner, space=space)
        )
        self.logger.debug("created account: %s", new_address)
        ctx.log(f"created account {new_address}: space={space} owner={owner}")

    def _transfer(self, ctx: InvokeContext, lamports: int):
        source_address, destination_address = (
            meta.pubkey for meta in ctx.instruction.accounts[:2]
        )
        source = self._debit(ctx, source_address, lamports)
        ctx.set_account(source_address, source)
        destination = ctx.get_account(destination_address) or Account(
            lamports=0, owner=SYSTEM_PROGRAM_ID
        )
        destination.lamports += lamports
        ctx.set_account(destination_address, destination)
        self.logger.debug(
            "transferred %s lamports: %s -> %s", lamports, source_address, destination_address
        )

    @staticmethod
    def _debit(ctx: InvokeContext, address: Pubkey, lamports: int) -> Account:
        if lamports < 0:
            raise MalformedRequest(f"lamports must not be negative: {lamports}")
        if not ctx.is_signer(address):
            raise ConstraintViolation("payer.signer", f"payer must sign: {address}")
        account = ctx.get_account(address)
        available = account.lamports if account else 0
        if account is None or available < lamports:
            raise InsufficientFunds(address, required=lamports, available=available)
        if account.owner != SYSTEM_PROGRAM_ID or account.data:
            raise ConstraintViolation(
                "payer.owner", f"payer must be a system account: {address}"
            )
        account.lamports -= lamports
        return account
