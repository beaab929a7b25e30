"""
Rent parameters

Accounts must hold enough lamports to be rent exempt for their allocated space.
The parameters are stored in the rent sysvar account and read from there by programs.
"""

from dataclasses import dataclass, asdict
from typing import Final

import msgpack

# every account pays for this many bytes of metadata on top of its allocated space
ACCOUNT_STORAGE_OVERHEAD: Final[int] = 128

DEFAULT_LAMPORTS_PER_BYTE_YEAR: Final[int] = 3480

DEFAULT_EXEMPTION_THRESHOLD: Final[float] = 2.0


@dataclass(frozen=True, slots=True)
class Rent:
    lamports_per_byte_year: int = DEFAULT_LAMPORTS_PER_BYTE_YEAR
    exemption_threshold: float = DEFAULT_EXEMPTION_THRESHOLD

    def minimum_balance(self, space: int) -> int:
        """
        :return: lamports required for an account with `space` bytes of data to be rent exempt
        """
        return int(
            (ACCOUNT_STORAGE_OVERHEAD + space)
            * self.lamports_per_byte_year
            * self.exemption_threshold
        )

    def pack(self) -> bytes:
        return msgpack.packb(asdict(self))

    @classmethod
    def unpack(cls, data: bytes) -> "Rent":
        return cls(**msgpack.unpackb(data))
