"""Conversions between ledger fixed-point integers and human float values.

Two encodings show up on the ledger:

* scaled integers, an integer paired with an implicit number of decimal places
  (token amounts, position sizes, funding indices);
* I80F48 fixed-point, a signed 128-bit integer with 48 fractional bits
  (collateral balances and interest multipliers).

Python integers are unbounded, so every intermediate product is exact and only
the final value is narrowed to a float.
"""

from __future__ import annotations

import math
from decimal import ROUND_DOWN, Decimal, localcontext
from fractions import Fraction

FRAC_BITS = 48
I80F48_ONE = 1 << FRAC_BITS

U16_MAX = (1 << 16) - 1
U64_MAX = (1 << 64) - 1
U128_MAX = (1 << 128) - 1


def div_to_float(n: int, precision: int) -> float:
    """Return ``n / 10**precision`` as a float.

    The quotient comes from truncating division on the magnitude and the
    remainder supplies the fractional part, so integers too wide for a double
    still keep their low digits.
    """
    p = 10 ** precision
    q, r = divmod(abs(n), p)
    value = q + (r / p)
    return -value if n < 0 else value


def big_to_small(amount: float, decimals: int) -> int:
    """Convert a non-negative human amount into native token units.

    The fractional part is truncated toward zero: 1.2345678 of a 6 decimal
    token becomes 1_234_567. The float is read through its shortest decimal
    representation so inputs like ``0.29`` are not shaved to ``0.2899...``.
    """
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise TypeError(f"amount must be a number, got {type(amount).__name__}")
    if not math.isfinite(amount) or amount < 0:
        raise ValueError(f"amount must be a finite non-negative number, got {amount}")
    with localcontext() as ctx:
        ctx.prec = 80
        value = Decimal(repr(float(amount)))
        whole = int(value.to_integral_value(rounding=ROUND_DOWN))
        frac = value - whole
        scaled = (frac * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN)
    return whole * 10 ** decimals + int(scaled)


def i80f48_mul(a: int, b: int) -> int:
    """Multiply two raw I80F48 values, flooring the 96 fractional bits back to 48."""
    return (a * b) >> FRAC_BITS


def i80f48_to_float(raw: int) -> float:
    return float(Fraction(raw, I80F48_ONE))


def float_to_i80f48(value: float) -> int:
    return math.floor(Fraction(value) * I80F48_ONE)


def small_to_big(raw: int, decimals: int) -> float:
    """Scale a raw I80F48 native amount down by ``10**decimals``."""
    return float(Fraction(raw, I80F48_ONE * 10 ** decimals))


def checked_u64(value: int, name: str) -> int:
    if value < 0 or value > U64_MAX:
        raise OverflowError(f"{name} {value} outside u64 range")
    return value


__all__ = [
    "FRAC_BITS",
    "I80F48_ONE",
    "U16_MAX",
    "U64_MAX",
    "U128_MAX",
    "div_to_float",
    "big_to_small",
    "i80f48_mul",
    "i80f48_to_float",
    "float_to_i80f48",
    "small_to_big",
    "checked_u64",
]
