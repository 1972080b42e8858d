"""
Yield Target Calculator
=======================

Per-cycle yield the two tranches must earn to hit the configured target
rate. The junior tranche's size is weighted by the target ratio ``Q``::

    target = Y * T * (eSTT + eJTT * Q / BIPS) / BIPS / 365

where ``Y`` is the annual senior target rate in basis points, ``T`` the
cycle length in days, and ``eSTT`` / ``eJTT`` the smoothed tranche sizes
in standard scale. The result is in standard scale.
"""

from __future__ import annotations

from .fixed_point import BIPS, DAYS_PER_YEAR


def yield_target(e_stt: int, e_jtt: int, y: int, q: int, t: int) -> int:
    """
    Combined yield target for the period.

    Parameters
    ----------
    e_stt : int
        Smoothed senior tranche size (standard scale).
    e_jtt : int
        Smoothed junior tranche size (standard scale).
    y : int
        Target annual senior rate in basis points.
    q : int
        Target junior/senior ratio in basis points.
    t : int
        Cycle length in days.

    Returns
    -------
    int
        Yield target for the cycle (standard scale).

    Example
    -------
    >>> yield_target(30_000 * 10**18, 10_000 * 10**18, y=500, q=30_000, t=30)
    246575342465753424657
    """
    weighted_size = e_stt * BIPS + e_jtt * q
    return y * t * weighted_size // (BIPS * BIPS * DAYS_PER_YEAR)


def senior_yield_target(e_stt: int, y: int, t: int) -> int:
    """Flat-rate yield owed to the senior tranche alone for the period."""
    return y * e_stt * t // (BIPS * DAYS_PER_YEAR)
