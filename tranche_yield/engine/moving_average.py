"""
Moving Average Tracker
======================

Capped-window exponential moving averages (EMA) for the three smoothed
quantities the proportion solver depends on:

- ``ema_senior_supply``: senior tranche size
- ``ema_junior_supply``: junior tranche size
- ``ema_yield``: distributed post-fee yield

Each EMA is updated once per distribution cycle with the recursive form::

    smoothing = 2 * SCALE / (window + 1)
    value     = (smoothing * current + (SCALE - smoothing) * base) / SCALE

The window grows with the number of cycles until it reaches the
retrospective window cap, after which the smoothing factor is fixed.

Example
-------
>>> from tranche_yield.engine.moving_average import update_ema
>>> update_ema(base=100, current=400, window_size=1)
400
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .fixed_point import SCALE, floor_div, fmin

logger = logging.getLogger("TrancheYield.MovingAverage")


def update_ema(base: int, current: int, window_size: int) -> int:
    """
    Fold ``current`` into the running average ``base``.

    Parameters
    ----------
    base : int
        Previous EMA value (standard scale).
    current : int
        New observation (standard scale).
    window_size : int
        Effective averaging window; must be at least 1. A window of 1
        returns ``current`` unchanged.

    Returns
    -------
    int
        Updated EMA value (standard scale).

    Raises
    ------
    ValueError
        If ``window_size`` is less than 1, which would push the smoothing
        factor above one whole unit.
    """
    if window_size < 1:
        raise ValueError(f"EMA window size must be >= 1, got {window_size}")
    smoothing = floor_div(2 * SCALE, window_size + 1)
    return floor_div(smoothing * current + (SCALE - smoothing) * base, SCALE)


def effective_window(distribution_count: int, retrospective_window: int) -> int:
    """
    Window size for the cycle about to be folded in.

    Counts completed cycles plus the current one, capped at
    ``retrospective_window``.
    """
    return fmin(retrospective_window, distribution_count + 1)


@dataclass
class MovingAverageTracker:
    """
    Holder for the three smoothed magnitudes.

    The tracker is a plain value object; the distributor works on a copy
    and only commits it once the whole cycle has been computed.

    Attributes
    ----------
    ema_senior_supply : int
        Smoothed senior tranche size (standard scale).
    ema_junior_supply : int
        Smoothed junior tranche size (standard scale).
    ema_yield : int
        Smoothed distributed yield (standard scale).
    """

    ema_senior_supply: int = 0
    ema_junior_supply: int = 0
    ema_yield: int = 0

    def seed(self, senior_supply: int, junior_supply: int) -> None:
        """Seed the supply averages from live tranche sizes."""
        self.ema_senior_supply = senior_supply
        self.ema_junior_supply = junior_supply

    def fold_yield(self, value: int, distribution_count: int, retrospective_window: int) -> int:
        """
        Update the yield EMA with this cycle's standardized post-fee yield.

        On the very first cycle the average is assigned directly.
        """
        if distribution_count == 0:
            self.ema_yield = value
        else:
            window = effective_window(distribution_count, retrospective_window)
            self.ema_yield = update_ema(self.ema_yield, value, window)
        logger.debug(f"ema_yield -> {self.ema_yield} (cycle {distribution_count + 1})")
        return self.ema_yield

    def fold_supplies(
        self,
        senior_supply: int,
        junior_supply: int,
        distribution_count: int,
        retrospective_window: int,
    ) -> None:
        """Update the senior and junior supply EMAs, each from its own tranche."""
        window = effective_window(distribution_count, retrospective_window)
        self.ema_senior_supply = update_ema(self.ema_senior_supply, senior_supply, window)
        self.ema_junior_supply = update_ema(self.ema_junior_supply, junior_supply, window)
