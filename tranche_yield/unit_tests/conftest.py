"""Shared fixtures: a 30k/10k senior/junior structure on a manual clock."""

from __future__ import annotations

from typing import Any, Callable, Dict

import pytest

from tranche_yield.engine import (
    AuditTrail,
    ConfigurationParameters,
    ManualClock,
    StaticSupplyProvider,
    YieldDistributor,
)

UNIT = 10**18
START = 1_700_000_000


@pytest.fixture
def params() -> ConfigurationParameters:
    """5% senior target, 3x junior ratio, 20% protocol fee."""
    return ConfigurationParameters(
        target_apy_bips=500,
        target_ratio_bips=30_000,
        protocol_fee_bips=2_000,
        asset_id="USD",
        asset_decimals=18,
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(now=START)


@pytest.fixture
def supplies() -> StaticSupplyProvider:
    return StaticSupplyProvider(senior=30_000 * UNIT, junior=10_000 * UNIT)


@pytest.fixture
def trail() -> AuditTrail:
    return AuditTrail()


@pytest.fixture
def make_engine(
    params: ConfigurationParameters,
    clock: ManualClock,
    supplies: StaticSupplyProvider,
    trail: AuditTrail,
) -> Callable[..., YieldDistributor]:
    """Factory for engines sharing the fixture clock, supplies and audit trail."""

    def _make(**overrides: Any) -> YieldDistributor:
        engine_params = overrides.pop("params", params)
        kwargs: Dict[str, Any] = {"clock": clock, "audit_trail": trail}
        kwargs.update(overrides)
        return YieldDistributor(engine_params, supplies, **kwargs)

    return _make


@pytest.fixture
def engine(make_engine: Callable[..., YieldDistributor]) -> YieldDistributor:
    """Initialized engine with two protocol and two residual recipients."""
    eng = make_engine()
    eng.initialize(
        caller="gov",
        protocol_recipients=[("treasury", 7_000), ("ops", 3_000)],
        residual_recipients=[("reserve", 5_000), ("insurance", 5_000)],
    )
    return eng


@pytest.fixture
def next_cycle(clock: ManualClock, params: ConfigurationParameters) -> Callable[[], int]:
    """Advance the clock by exactly one cycle period."""

    def _advance() -> int:
        return clock.advance(params.cycle_period)

    return _advance
