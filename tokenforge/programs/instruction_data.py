"""
Instruction data decoding shared by the builtin programs

Instruction data is msgpack encoded: [instruction tag, *args]. Data that does not decode, or whose args do not have
the expected count and types, is rejected with :class:`MalformedRequest` before the program touches any account.
"""

from typing import Any

import msgpack
from solders.pubkey import Pubkey

from tokenforge.ledger.errors import MalformedRequest


def unpack(data: bytes, program: str) -> tuple[Any, list[Any]]:
    """
    :return: (tag, args)
    """
    try:
        values = msgpack.unpackb(data)
    except (msgpack.UnpackException, ValueError, TypeError) as err:
        raise MalformedRequest(f"invalid {program} instruction data") from err
    if not isinstance(values, list) or not values:
        raise MalformedRequest(f"invalid {program} instruction data: expected [tag, *args]")
    return values[0], values[1:]


def fields(args: list[Any], count: int, instruction: str) -> list[Any]:
    if len(args) != count:
        raise MalformedRequest(f"{instruction} expects {count} args but found {len(args)}")
    return args


def uint(name: str, value: Any, bits: int = 64) -> int:
    """
    :exception MalformedRequest: if the value is not an unsigned integer that fits in `bits`
    """
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < 2**bits:
        raise MalformedRequest(f"{name} must be an unsigned {bits} bit integer: {value!r}")
    return value


def pubkey(name: str, value: Any) -> Pubkey:
    if not isinstance(value, bytes) or len(value) != 32:
        raise MalformedRequest(f"{name} must be a 32 byte address")
    return Pubkey(value)


def optional_pubkey(name: str, value: Any) -> Pubkey | None:
    return None if value is None else pubkey(name, value)
