"""
Small utilities shared across the ledger.

Event and payout ids are ULIDs: a 48-bit millisecond timestamp followed
by 80 random bits, written as 26 Crockford base32 characters. Ids made
in later milliseconds sort after earlier ones as plain strings. Integer
helpers enforce a fixed unsigned width: results outside [0, 2**bits)
raise instead of wrapping.
"""

from __future__ import annotations

import os
import time

from .errors import ArithmeticOverflow, InvalidAmount


_CROCKFORD32 = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"

DEFAULT_INT_BITS = 256


_ULID_LENGTH = 26
_ULID_TIME_CHARS = 10


def new_ulid(*, timestamp_ms: int | None = None) -> str:
    """Return a fresh ULID, stamped with `timestamp_ms` or the current time."""
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    if not 0 <= timestamp_ms < 2**48:
        raise ValueError(f"timestamp_ms out of ULID range: {timestamp_ms}")

    value = timestamp_ms << 80 | int.from_bytes(os.urandom(10), "big")
    digits = []
    while len(digits) < _ULID_LENGTH:
        value, digit = divmod(value, 32)
        digits.append(_CROCKFORD32[digit])
    return "".join(digits[::-1])


def ulid_timestamp_ms(ulid: str) -> int:
    """Millisecond timestamp carried in the first ten characters of `ulid`."""
    if len(ulid) != _ULID_LENGTH:
        raise ValueError(f"not a ULID: {ulid!r}")
    ms = 0
    for char in ulid[:_ULID_TIME_CHARS].upper():
        digit = _CROCKFORD32.find(char)
        if digit < 0:
            raise ValueError(f"not a ULID: {ulid!r}")
        ms = ms * 32 + digit
    return ms


def max_uint(bits: int = DEFAULT_INT_BITS) -> int:
    return (1 << bits) - 1


def checked_add(a: int, b: int, *, bits: int = DEFAULT_INT_BITS) -> int:
    result = a + b
    if result > max_uint(bits):
        raise ArithmeticOverflow(f"{a} + {b} exceeds uint{bits}")
    return result


def checked_mul(a: int, b: int, *, bits: int = DEFAULT_INT_BITS) -> int:
    result = a * b
    if result > max_uint(bits):
        raise ArithmeticOverflow(f"{a} * {b} exceeds uint{bits}")
    return result


def require_uint(name: str, value: object, *, bits: int = DEFAULT_INT_BITS) -> int:
    """Validate that `value` is a non-negative integer that fits in `bits`."""
    # bool is an int subclass; True is not a price
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidAmount(f"{name} must be non-negative, got {value}")
    if value > max_uint(bits):
        raise ArithmeticOverflow(f"{name}={value} exceeds uint{bits}")
    return value
