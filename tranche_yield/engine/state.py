"""
Distribution State Management
=============================

This module provides the state and configuration records owned by a
:class:`~tranche_yield.engine.distributor.YieldDistributor` instance.

Key Classes
-----------
- :class:`DistributionState`: Mutable per-engine record (EMAs, cycle
  counter, last distribution timestamp, unlock flag).
- :class:`ConfigurationParameters`: Frozen, versioned governable parameters.
  Setters produce a new version instead of mutating in place.
- :class:`EngineStatus`: IDLE / IN_PROGRESS marker for re-entrancy control.

The state starts zeroed at construction, is activated once by
``initialize()``, and afterwards changes only when a distribution cycle
commits. Both records serialize to plain dicts so a persistence
collaborator can store them as durable key-value fields.

Example
-------
>>> from tranche_yield.engine.state import ConfigurationParameters
>>> params = ConfigurationParameters(target_apy_bips=500, target_ratio_bips=30_000)
>>> params.cycle_period_days
30
>>> params.replace(target_apy_bips=600).version
2

See Also
--------
distributor.YieldDistributor : The only writer of these records.
store.DistributionStateStore : File-backed persistence.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from .errors import InvalidParameter
from .fixed_point import BIPS, SECONDS_PER_DAY
from .moving_average import MovingAverageTracker

logger = logging.getLogger("TrancheYield.State")

CYCLE_PERIOD = 30 * SECONDS_PER_DAY
RETROSPECTIVE_WINDOW = 6
MAX_PROTOCOL_FEE_BIPS = 3_000
MAX_TARGET_APY_BIPS = BIPS
MAX_TARGET_RATIO_BIPS = 100 * BIPS


class EngineStatus(str, Enum):
    """Re-entrancy state of an engine instance."""

    IDLE = "idle"
    IN_PROGRESS = "in_progress"


@dataclass
class DistributionState:
    """
    Mutable record evolved once per distribution cycle.

    Attributes
    ----------
    ema_senior_supply : int
        Smoothed senior tranche size (standard scale).
    ema_junior_supply : int
        Smoothed junior tranche size (standard scale).
    ema_yield : int
        Smoothed distributed yield (standard scale).
    distribution_count : int
        Number of committed cycles.
    last_distribution_timestamp : int
        Timestamp (seconds) of the last commit or of initialization.
    unlocked : bool
        One-way activation flag.
    """

    ema_senior_supply: int = 0
    ema_junior_supply: int = 0
    ema_yield: int = 0
    distribution_count: int = 0
    last_distribution_timestamp: int = 0
    unlocked: bool = False

    def tracker(self) -> MovingAverageTracker:
        """Return a detached copy of the EMAs for working computations."""
        return MovingAverageTracker(
            ema_senior_supply=self.ema_senior_supply,
            ema_junior_supply=self.ema_junior_supply,
            ema_yield=self.ema_yield,
        )

    def next_cycle_at(self, cycle_period: int) -> int:
        return self.last_distribution_timestamp + cycle_period

    def committed(self, tracker: MovingAverageTracker, timestamp: int) -> "DistributionState":
        """
        Build the state that results from committing one cycle.

        The current record is left untouched; the caller swaps it in.
        """
        return DistributionState(
            ema_senior_supply=tracker.ema_senior_supply,
            ema_junior_supply=tracker.ema_junior_supply,
            ema_yield=tracker.ema_yield,
            distribution_count=self.distribution_count + 1,
            last_distribution_timestamp=timestamp,
            unlocked=self.unlocked,
        )

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DistributionState":
        return cls(**data)


@dataclass(frozen=True)
class ConfigurationParameters:
    """
    Governable engine parameters.

    Instances are immutable. Every change produces a new instance with
    ``version`` incremented, so an allocation can always be traced back to
    the exact parameter set it was computed with.

    Attributes
    ----------
    target_apy_bips : int
        Target annualized senior yield ``Y`` (basis points).
    target_ratio_bips : int
        Target junior/senior size ratio ``Q`` (basis points).
    protocol_fee_bips : int
        Protocol fee rate taken off the top of each cycle.
    asset_id : str
        Identifier of the unit-of-account asset.
    asset_decimals : int
        Native decimals of the unit-of-account asset.
    cycle_period : int
        Minimum seconds between cycles.
    retrospective_window : int
        EMA window cap and catch-up horizon ``R``.
    protocol_fee_cap_bips : int
        Hard ceiling for ``protocol_fee_bips``.
    version : int
        Monotonic configuration version.
    """

    target_apy_bips: int
    target_ratio_bips: int
    protocol_fee_bips: int = 0
    asset_id: str = "USD"
    asset_decimals: int = 18
    cycle_period: int = CYCLE_PERIOD
    retrospective_window: int = RETROSPECTIVE_WINDOW
    protocol_fee_cap_bips: int = MAX_PROTOCOL_FEE_BIPS
    version: int = 1

    def __post_init__(self) -> None:
        validate_target_apy(self.target_apy_bips)
        validate_target_ratio(self.target_ratio_bips)
        validate_protocol_fee(self.protocol_fee_bips, self.protocol_fee_cap_bips)
        if self.cycle_period < SECONDS_PER_DAY or self.cycle_period % SECONDS_PER_DAY:
            raise InvalidParameter(f"cycle_period must be a whole number of days, got {self.cycle_period}s")
        if self.retrospective_window < 1:
            raise InvalidParameter(f"retrospective_window must be >= 1, got {self.retrospective_window}")
        if self.asset_decimals < 0:
            raise InvalidParameter(f"asset_decimals must be >= 0, got {self.asset_decimals}")

    @property
    def cycle_period_days(self) -> int:
        """Cycle length ``T`` in days."""
        return self.cycle_period // SECONDS_PER_DAY

    def replace(self, **changes: Any) -> "ConfigurationParameters":
        """Return the next version with ``changes`` applied."""
        return dataclasses.replace(self, version=self.version + 1, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfigurationParameters":
        return cls(**data)


def _require_int(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParameter(f"{name} must be an integer, got {value!r}")


def validate_target_apy(bips: int) -> None:
    _require_int("target_apy_bips", bips)
    if not 0 < bips <= MAX_TARGET_APY_BIPS:
        raise InvalidParameter(f"target_apy_bips must be in (0, {MAX_TARGET_APY_BIPS}], got {bips}")


def validate_target_ratio(bips: int) -> None:
    _require_int("target_ratio_bips", bips)
    if not 0 < bips <= MAX_TARGET_RATIO_BIPS:
        raise InvalidParameter(f"target_ratio_bips must be in (0, {MAX_TARGET_RATIO_BIPS}], got {bips}")


def validate_protocol_fee(bips: int, cap: int = MAX_PROTOCOL_FEE_BIPS) -> None:
    """
    Validate a protocol fee rate against its cap.

    The cap itself may be lowered by the caller but never raised above
    :data:`MAX_PROTOCOL_FEE_BIPS`.
    """
    _require_int("protocol_fee_bips", bips)
    _require_int("protocol_fee_cap_bips", cap)
    if not 0 <= cap <= MAX_PROTOCOL_FEE_BIPS:
        raise InvalidParameter(f"Protocol fee cap must be in [0, {MAX_PROTOCOL_FEE_BIPS}], got {cap}")
    if not 0 <= bips <= cap:
        raise InvalidParameter(f"protocol_fee_bips must be in [0, {cap}], got {bips}")
