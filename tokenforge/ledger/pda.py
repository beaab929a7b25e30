"""
Program derived addresses (PDA)

A derived address is computed from a list of seeds and the id of the program that owns it. It has no private key:
the address is guaranteed to be off the ed25519 curve, so only the owning program can "sign" for it by presenting
the seeds to the runtime.

Derivation is delegated to :meth:`solders.pubkey.Pubkey.find_program_address`, which searches the bump (discriminant)
from 255 down to 0 and returns the first address that is off the curve. The metadata registry, the associated token
program, and the runtime all use these functions, which is what keeps the caller's precomputed addresses and the
subsystems' addresses in agreement.

Only canonical bumps are accepted when a program signs with seeds, i.e., the bump returned by
:func:`find_program_address`.
"""

from typing import Final, Sequence

from solders.pubkey import Pubkey

from tokenforge.ledger.errors import DerivationError

MAX_SEEDS: Final[int] = 16
MAX_SEED_LEN: Final[int] = 32


def _check_seeds(seeds: Sequence[bytes], max_seeds: int):
    if len(seeds) > max_seeds:
        raise DerivationError(f"too many seeds: {len(seeds)} > {max_seeds}")
    for seed in seeds:
        if len(seed) > MAX_SEED_LEN:
            raise DerivationError(f"seed is too long: {len(seed)} > {MAX_SEED_LEN}")


def find_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> tuple[Pubkey, int]:
    """
    :return: (address, bump) where bump is the first discriminant, counting down from 255, that yields a valid
             derived address
    :exception DerivationError: if the seeds exceed the seed limits
    """
    # the bump seed takes up one of the seed slots
    _check_seeds(seeds, MAX_SEEDS - 1)
    return Pubkey.find_program_address(list(seeds), program_id)


def create_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
    """
    Recreates the derived address from seeds whose last seed is the bump.

    :exception DerivationError: if the seeds are invalid, or the bump is not the canonical bump for the other seeds
    """
    _check_seeds(seeds, MAX_SEEDS)
    if not seeds or len(seeds[-1]) != 1:
        raise DerivationError("the last seed must be the 1 byte bump")
    address, bump = find_program_address(seeds[:-1], program_id)
    if seeds[-1][0] != bump:
        raise DerivationError(f"not the canonical bump: {seeds[-1][0]} != {bump}")
    return address
