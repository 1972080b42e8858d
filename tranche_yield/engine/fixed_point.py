"""
Fixed-Point Arithmetic
======================

Integer-only helpers used by every allocation formula in the engine.

Two fixed-point bases are in use:

- ``SCALE`` (10^18), the *standard* scale for token amounts and EMAs.
- ``SCALE_RAY`` (10^27), the *high-precision* scale for tranche shares.

All formulas multiply before dividing to preserve precision. Python ``int``
is arbitrary precision, so intermediate products never overflow.

Example
-------
>>> from tranche_yield.engine.fixed_point import floor_sub, mul_div, SCALE_RAY
>>> floor_sub(5, 9)
0
>>> mul_div(800, SCALE_RAY // 4, SCALE_RAY)
200
"""

from __future__ import annotations

from .errors import DivisionByZero

BIPS = 10_000
SCALE = 10**18
SCALE_RAY = 10**27
STANDARD_DECIMALS = 18
DAYS_PER_YEAR = 365
SECONDS_PER_DAY = 86_400


def floor_sub(a: int, b: int) -> int:
    """Return ``a - b`` floored at zero. Never raises."""
    return a - b if a > b else 0


def floor_div(a: int, b: int) -> int:
    """
    Integer floor division with an explicit zero guard.

    Parameters
    ----------
    a : int
        Dividend.
    b : int
        Divisor.

    Returns
    -------
    int
        ``a // b``.

    Raises
    ------
    DivisionByZero
        If ``b`` is zero.
    """
    if b == 0:
        raise DivisionByZero(f"floor_div({a}, 0)")
    return a // b


def fmin(a: int, b: int) -> int:
    return a if a < b else b


def mul_div(a: int, b: int, denominator: int) -> int:
    """Compute ``a * b // denominator`` with the product taken first."""
    return floor_div(a * b, denominator)


def rmul(a: int, b: int) -> int:
    """Multiply an amount by a high-precision (ray) fraction."""
    return a * b // SCALE_RAY


def apply_bips(amount: int, bips: int) -> int:
    """Return ``amount * bips / 10000`` rounded down."""
    return amount * bips // BIPS


def standardize(amount: int, decimals: int) -> int:
    """
    Convert a native-decimals amount to the 18-decimal standard scale.

    Amounts with more than 18 decimals are floored.

    Example
    -------
    >>> standardize(1_500_000, 6)  # 1.5 USDC
    1500000000000000000
    """
    if decimals == STANDARD_DECIMALS:
        return amount
    if decimals < STANDARD_DECIMALS:
        return amount * 10 ** (STANDARD_DECIMALS - decimals)
    return amount // 10 ** (decimals - STANDARD_DECIMALS)
