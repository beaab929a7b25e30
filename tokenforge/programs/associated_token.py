"""
Associated token program

Provisions the canonical holding account for an (owner, mint) pair. The holding account address is derived from
the owner and the mint, thus there is at most one associated token account per pair.

Instructions
------------
- Create: fails if the holding account already exists
- CreateIdempotent: no-op if the holding account already exists for the same (owner, mint)

Accounts: [payer(signer, writable), holding_account(writable), owner, mint, system_program, token_program]
"""

from enum import IntEnum

import msgpack
from solders.pubkey import Pubkey

from tokenforge.core.logging import get_logger
from tokenforge.ledger.errors import AlreadyInitialized, ConstraintViolation, MalformedRequest
from tokenforge.ledger.model import AccountMeta, Instruction
from tokenforge.ledger.pda import find_program_address
from tokenforge.ledger.pubkeys import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
)
from tokenforge.ledger.runtime import Program, InvokeContext
from tokenforge.programs import instruction_data, system, token


def find_associated_token_address(owner: Pubkey, mint: Pubkey) -> tuple[Pubkey, int]:
    return find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )


def get_associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    return find_associated_token_address(owner, mint)[0]


class AssociatedTokenInstruction(IntEnum):
    CREATE = 0
    CREATE_IDEMPOTENT = 1


def _instruction(
    tag: AssociatedTokenInstruction, payer: Pubkey, owner: Pubkey, mint: Pubkey
) -> Instruction:
    return Instruction(
        program_id=ASSOCIATED_TOKEN_PROGRAM_ID,
        accounts=(
            AccountMeta.signer(payer, is_writable=True),
            AccountMeta.writable(get_associated_token_address(owner, mint)),
            AccountMeta.readonly(owner),
            AccountMeta.readonly(mint),
            AccountMeta.readonly(SYSTEM_PROGRAM_ID),
            AccountMeta.readonly(TOKEN_PROGRAM_ID),
        ),
        data=msgpack.packb([tag]),
    )


def create(*, payer: Pubkey, owner: Pubkey, mint: Pubkey) -> Instruction:
    return _instruction(AssociatedTokenInstruction.CREATE, payer, owner, mint)


def create_idempotent(*, payer: Pubkey, owner: Pubkey, mint: Pubkey) -> Instruction:
    return _instruction(AssociatedTokenInstruction.CREATE_IDEMPOTENT, payer, owner, mint)


class AssociatedTokenProgram(Program):
    program_id = ASSOCIATED_TOKEN_PROGRAM_ID

    def __init__(self):
        self.logger = get_logger(self)

    def process(self, ctx: InvokeContext) -> None:
        tag, args = instruction_data.unpack(ctx.instruction.data, "associated token")
        if tag not in tuple(AssociatedTokenInstruction):
            raise MalformedRequest(f"unknown associated token instruction: {tag}")
        instruction_data.fields(args, 0, AssociatedTokenInstruction(tag).name.lower())
        if len(ctx.instruction.accounts) < 6:
            raise MalformedRequest("not enough accounts")

        payer, holding_address, owner, mint = (
            meta.pubkey for meta in ctx.instruction.accounts[:4]
        )
        expected_address, bump = find_associated_token_address(owner, mint)
        if holding_address != expected_address:
            raise ConstraintViolation(
                "associated_token_account.address",
                f"invalid associated token address: {holding_address} != {expected_address}",
            )

        holding_account = ctx.get_account(holding_address)
        if holding_account is not None:
            if tag == AssociatedTokenInstruction.CREATE:
                raise AlreadyInitialized(holding_address)
            _, holding = token.load_token_account(ctx, holding_address)
            if holding.owner != owner or holding.mint != mint:
                raise ConstraintViolation(
                    "associated_token_account.owner",
                    f"associated token account is not linked to owner={owner} mint={mint}",
                )
            ctx.log(f"associated token account already exists: {holding_address}")
            return

        # the mint must exist before a holding account can be linked to it
        token.load_mint(ctx, mint)
        ctx.invoke(
            system.create_account(
                payer=payer,
                new_account=holding_address,
                lamports=ctx.rent.minimum_balance(token.TOKEN_ACCOUNT_SIZE),
                space=token.TOKEN_ACCOUNT_SIZE,
                owner=TOKEN_PROGRAM_ID,
            ),
            signer_seeds=[[bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint), bytes([bump])]],
        )
        ctx.invoke(token.initialize_account(account=holding_address, mint=mint, owner=owner))
        self.logger.debug("created associated token account: %s", holding_address)
