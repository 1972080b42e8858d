"""
Collaborator Interfaces
=======================

Capabilities the engine consumes but does not implement:

- :class:`TrancheSupplyProvider`: current adjusted tranche supplies
  (after default markdowns), in standard scale.
- ``Standardizer``: converts native asset amounts to the 18-decimal scale.
- ``Authorizer``: governance predicate ``(caller, action) -> bool``.
- ``Clock``: wall-clock seconds.
- :class:`AssetConverter`: swap/conversion strategy. The engine never calls
  it; :class:`TreasuryCollector` uses it to sweep foreign balances into the
  unit of account before a cycle is run.

Simple in-memory implementations are provided for services and tests.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional, Protocol

logger = logging.getLogger("TrancheYield.Collaborators")

Standardizer = Callable[[int], int]
Authorizer = Callable[[Optional[str], str], bool]
Clock = Callable[[], int]


@dataclass(frozen=True)
class TrancheSupplies:
    """Adjusted tranche supplies in standard scale."""

    senior: int
    junior: int


class TrancheSupplyProvider(Protocol):
    def adjusted_supplies(self) -> TrancheSupplies:
        ...


class AssetConverter(Protocol):
    def convert(self, asset_id: str, amount: int, to_asset_id: str) -> int:
        """Swap ``amount`` of ``asset_id`` and return the ``to_asset_id`` amount received."""
        ...


@dataclass
class StaticSupplyProvider:
    """Supply provider backed by two mutable integers."""

    senior: int = 0
    junior: int = 0

    def adjusted_supplies(self) -> TrancheSupplies:
        return TrancheSupplies(senior=self.senior, junior=self.junior)


def system_clock() -> int:
    return int(time.time())


def allow_all(caller: Optional[str], action: str) -> bool:
    return True


def allow_callers(callers: Iterable[str]) -> Authorizer:
    """Build an authorizer that admits a fixed set of callers for every action."""
    allowed = frozenset(callers)

    def _authorize(caller: Optional[str], action: str) -> bool:
        return caller in allowed

    return _authorize


@dataclass
class ManualClock:
    """Deterministic clock for simulations and tests."""

    now: int = 0

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


@dataclass
class TreasuryCollector:
    """
    Sweeps non-unit-of-account balances into the unit of account.

    The collector sits outside the engine. It converts each foreign balance
    through the injected :class:`AssetConverter` and reports the total
    unit-of-account earnings available for the next cycle.

    Attributes
    ----------
    unit_asset_id : str
        Asset the engine allocates in.
    converter : AssetConverter
        Swap strategy.
    balances : dict
        Asset id to native amount held.
    """

    unit_asset_id: str
    converter: AssetConverter
    balances: Dict[str, int] = field(default_factory=dict)

    def deposit(self, asset_id: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Deposit amount must be non-negative, got {amount}")
        self.balances[asset_id] = self.balances.get(asset_id, 0) + amount

    def sweep(self) -> int:
        """Convert every foreign balance and return the unit-of-account total."""
        for asset_id in sorted(self.balances):
            if asset_id == self.unit_asset_id or self.balances[asset_id] == 0:
                continue
            amount = self.balances[asset_id]
            received = self.converter.convert(asset_id, amount, self.unit_asset_id)
            logger.info(f"Converted {amount} {asset_id} -> {received} {self.unit_asset_id}")
            self.balances[asset_id] = 0
            self.balances[self.unit_asset_id] = self.balances.get(self.unit_asset_id, 0) + received
        return self.balances.get(self.unit_asset_id, 0)

    def withdraw_all(self) -> int:
        """Hand the unit-of-account balance over for distribution."""
        total = self.balances.get(self.unit_asset_id, 0)
        self.balances[self.unit_asset_id] = 0
        return total
