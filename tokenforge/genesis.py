"""
Creates a ledger with the builtin programs deployed
"""

from tokenforge.ledger.rent import Rent
from tokenforge.ledger.runtime import Ledger, Program
from tokenforge.programs.associated_token import AssociatedTokenProgram
from tokenforge.programs.system import SystemProgram
from tokenforge.programs.token import TokenProgram
from tokenforge.programs.token_metadata import TokenMetadataProgram


def builtin_programs() -> list[Program]:
    return [
        SystemProgram(),
        TokenProgram(),
        AssociatedTokenProgram(),
        TokenMetadataProgram(),
    ]


def create_ledger(*programs: Program, rent: Rent | None = None) -> Ledger:
    """
    :param programs: additional programs to deploy after the builtin programs
    """
    ledger = Ledger(rent)
    for program in [*builtin_programs(), *programs]:
        ledger.deploy(program)
    return ledger
