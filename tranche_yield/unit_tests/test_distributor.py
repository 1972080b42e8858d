"""
Distributor Tests
=================

End-to-end distribution cycles on a 30k/10k structure with a 20% protocol
fee: conservation, the cycle timer, regime progression, re-entrancy and
failure atomicity.
"""

from typing import List

import pytest

from tranche_yield.engine import (
    Allocation,
    AlreadyInitialized,
    ConfigurationParameters,
    CycleNotElapsed,
    EngineStatus,
    InvalidParameter,
    InvalidRecipients,
    NotUnlocked,
    RecipientKind,
    ReentrantCall,
    Regime,
    TreasuryCollector,
)
from tranche_yield.engine.fixed_point import SCALE_RAY
from tranche_yield.engine.moving_average import update_ema

UNIT = 10**18


def _assert_conserved(allocation: Allocation) -> None:
    assert (
        allocation.protocol_fee + allocation.senior + allocation.junior + allocation.residual
        == allocation.total_earnings
    )
    assert allocation.post_fee_yield == allocation.total_earnings - allocation.protocol_fee
    assert sum(a for _, a in allocation.protocol_allocations) <= allocation.protocol_fee
    assert sum(a for _, a in allocation.residual_allocations) <= allocation.residual
    assert allocation.truncation_loss >= 0


# =============================================================================
# Lifecycle
# =============================================================================


def test_initialize_seeds_supply_emas_and_unlocks(engine, clock) -> None:
    """Activation seeds the supply EMAs from live sizes and starts the timer."""
    state = engine.state
    assert state.unlocked
    assert state.ema_senior_supply == 30_000 * UNIT
    assert state.ema_junior_supply == 10_000 * UNIT
    assert state.ema_yield == 0
    assert state.distribution_count == 0
    assert state.last_distribution_timestamp == clock()
    assert engine.status is EngineStatus.IDLE


def test_initialize_twice_rejected(engine) -> None:
    with pytest.raises(AlreadyInitialized):
        engine.initialize(caller="gov")


def test_initialize_with_invalid_residual_installs_nothing(make_engine) -> None:
    """
    Test that initialization is all or nothing.

    A valid protocol set paired with an invalid residual set leaves both
    unset and the engine locked.
    """
    eng = make_engine()
    with pytest.raises(InvalidRecipients):
        eng.initialize(
            caller="gov",
            protocol_recipients=[("treasury", 10_000)],
            residual_recipients=[("reserve", 9_000)],
        )
    assert not eng.state.unlocked
    with pytest.raises(InvalidRecipients):
        eng.recipients(RecipientKind.PROTOCOL)


def test_initialize_falls_back_to_default_recipients(make_engine) -> None:
    eng = make_engine(
        default_recipients={
            RecipientKind.PROTOCOL: [("treasury", 10_000)],
            RecipientKind.RESIDUAL: [("reserve", 10_000)],
        }
    )
    eng.initialize(caller="gov")
    assert eng.recipients(RecipientKind.RESIDUAL).to_list() == [
        {"address": "reserve", "weight_bips": 10_000}
    ]


def test_initialize_notifies_unlock(engine, trail) -> None:
    (change,) = trail.changes_for("unlocked")
    assert change.old_value is False
    assert change.new_value is True
    assert change.caller == "gov"


def test_distribution_before_initialize_rejected(make_engine, next_cycle) -> None:
    """Both payout paths refuse to run on a locked engine."""
    eng = make_engine()
    next_cycle()
    with pytest.raises(NotUnlocked):
        eng.run_distribution(1_000)
    with pytest.raises(NotUnlocked):
        eng.supplement_yield(1_000)


# =============================================================================
# Cycle timer
# =============================================================================


def test_first_cycle_waits_one_period(engine, clock, params) -> None:
    """One second short of a full period is rejected with the ready time."""
    clock.advance(params.cycle_period - 1)
    with pytest.raises(CycleNotElapsed) as exc_info:
        engine.run_distribution(1_000)
    assert exc_info.value.ready_at == clock() + 1
    assert exc_info.value.now == clock()


def test_rejected_cycle_leaves_state_unchanged(engine, next_cycle, clock) -> None:
    """An early call changes nothing and leaves the engine idle."""
    next_cycle()
    engine.run_distribution(1_000)
    before = engine.state

    clock.advance(3_600)
    with pytest.raises(CycleNotElapsed):
        engine.run_distribution(5_000)

    assert engine.state == before
    assert len(engine.history) == 1
    assert engine.status is EngineStatus.IDLE


def test_cycle_runs_exactly_at_boundary(engine, next_cycle, clock) -> None:
    next_cycle()
    allocation = engine.run_distribution(1_000)
    assert allocation.cycle == 1
    assert allocation.timestamp == clock()
    assert engine.state.last_distribution_timestamp == clock()


def test_late_cycle_restarts_timer_from_commit(engine, clock, params) -> None:
    """Missed periods do not accumulate: the next cycle is one period after the commit."""
    clock.advance(params.cycle_period * 3)
    engine.run_distribution(1_000)
    clock.advance(params.cycle_period - 1)
    with pytest.raises(CycleNotElapsed):
        engine.run_distribution(1_000)


# =============================================================================
# Allocation scenarios
# =============================================================================


def test_shortfall_scenario_exact_amounts(engine, next_cycle) -> None:
    """1000 units at a 20% fee, far below target: senior and junior split 400/400."""
    next_cycle()
    allocation = engine.run_distribution(1_000)

    assert allocation.protocol_fee == 200
    assert allocation.post_fee_yield == 800
    assert allocation.regime is Regime.SHORTFALL
    assert allocation.senior_share == SCALE_RAY // 2
    assert allocation.junior_share == SCALE_RAY // 2
    assert allocation.senior == 400
    assert allocation.junior == 400
    assert allocation.residual == 0
    assert allocation.protocol_allocations == (("treasury", 140), ("ops", 60))
    assert allocation.residual_allocations == (("reserve", 0), ("insurance", 0))
    assert allocation.truncation_loss == 0
    _assert_conserved(allocation)


def test_first_cycle_assigns_yield_ema_directly(engine, next_cycle) -> None:
    """The first observation becomes the yield EMA without smoothing."""
    next_cycle()
    engine.run_distribution(1_000)
    assert engine.state.ema_yield == 800
    assert engine.state.distribution_count == 1


def test_nominal_cycle_sends_excess_to_residual(engine, next_cycle) -> None:
    """Earnings well above target pay the tranches their flat rate and the rest goes to residual."""
    next_cycle()
    allocation = engine.run_distribution(1_000 * UNIT)

    assert allocation.regime is Regime.NOMINAL
    assert allocation.senior == allocation.junior
    assert allocation.residual > allocation.senior + allocation.junior
    assert [a for a, _ in allocation.residual_allocations] == ["reserve", "insurance"]
    _assert_conserved(allocation)


def test_catchup_follows_shortfall(engine, next_cycle) -> None:
    """
    Test regime progression from shortfall into catch-up.

    A thin first cycle drags the yield EMA below target. The next cycle
    clears the target, so senior is compensated above its shortfall share.
    """
    next_cycle()
    first = engine.run_distribution(100 * UNIT)
    assert first.regime is Regime.SHORTFALL
    assert engine.state.ema_yield == 80 * UNIT

    next_cycle()
    second = engine.run_distribution(375 * UNIT)
    assert second.post_fee_yield == 300 * UNIT
    assert engine.state.ema_yield == update_ema(80 * UNIT, 300 * UNIT, 2)
    assert second.regime is Regime.CATCHUP
    assert second.senior > second.post_fee_yield // 2
    _assert_conserved(second)


def test_zero_earnings_cycle(engine, next_cycle) -> None:
    next_cycle()
    allocation = engine.run_distribution(0)
    assert allocation.regime is Regime.SHORTFALL
    assert allocation.itemized_total == 0
    assert engine.state.distribution_count == 1


@pytest.mark.parametrize("earnings", [1, 7, 999, 12_345, 10**21, 987_654_321 * UNIT])
def test_group_totals_conserve_value(engine, next_cycle, earnings: int) -> None:
    """Group totals always add back up to the earnings."""
    for _ in range(3):
        next_cycle()
        _assert_conserved(engine.run_distribution(earnings))


def test_truncation_loss_bounded_by_recipient_count(engine, next_cycle) -> None:
    next_cycle()
    allocation = engine.run_distribution(12_345)
    assert allocation.truncation_loss <= 2
    assert allocation.itemized_total + allocation.truncation_loss == allocation.total_earnings


def test_supply_emas_follow_their_own_tranche(engine, next_cycle, supplies) -> None:
    """Senior supply feeds the senior EMA and junior supply the junior EMA."""
    supplies.senior = 60_000 * UNIT
    supplies.junior = 5_000 * UNIT
    next_cycle()
    engine.run_distribution(1_000)
    state = engine.state
    # first cycle window is 1, so the EMAs jump straight to the live sizes
    assert state.ema_senior_supply == 60_000 * UNIT
    assert state.ema_junior_supply == 5_000 * UNIT

    supplies.senior = 0
    next_cycle()
    engine.run_distribution(1_000)
    assert engine.state.ema_senior_supply == update_ema(60_000 * UNIT, 0, 2)
    assert engine.state.ema_junior_supply == 5_000 * UNIT


def test_split_uses_previous_supply_emas(engine, next_cycle, supplies) -> None:
    """A tranche resize only affects the split from the following cycle on."""
    supplies.junior = 0
    next_cycle()
    first = engine.run_distribution(1_000)
    assert first.senior_share == SCALE_RAY // 2

    next_cycle()
    second = engine.run_distribution(1_000)
    assert second.senior_share == SCALE_RAY
    assert second.junior == 0


def test_six_decimal_asset_is_standardized(make_engine, next_cycle) -> None:
    params = ConfigurationParameters(
        target_apy_bips=500, target_ratio_bips=30_000, asset_id="USDC", asset_decimals=6
    )
    eng = make_engine(params=params)
    eng.initialize(caller="gov", protocol_recipients=[("t", 10_000)], residual_recipients=[("r", 10_000)])
    next_cycle()
    allocation = eng.run_distribution(1_000 * 10**6)
    assert eng.state.ema_yield == 1_000 * UNIT
    assert allocation.regime is Regime.NOMINAL
    _assert_conserved(allocation)


def test_empty_senior_tranche_does_not_block_later_cycles(make_engine, supplies, next_cycle) -> None:
    """
    Test that an engine seeded with an empty senior tranche keeps cycling.

    While the senior EMA is zero the zero-size guard hands the whole post-fee
    yield to senior. The live supplies still fold in on every commit, so once
    the senior tranche is funded again its EMA recovers and the ordinary
    shortfall split resumes.
    """
    supplies.senior = 0
    eng = make_engine()
    eng.initialize(caller="gov", protocol_recipients=[("t", 10_000)], residual_recipients=[("r", 10_000)])

    next_cycle()
    first = eng.run_distribution(1_000)
    assert first.senior_share == SCALE_RAY
    assert (first.senior, first.junior, first.residual) == (800, 0, 0)
    assert eng.state.ema_senior_supply == 0
    _assert_conserved(first)

    supplies.senior = 30_000 * UNIT
    next_cycle()
    second = eng.run_distribution(1_000)
    assert second.cycle == 2
    assert eng.state.distribution_count == 2
    assert eng.state.ema_senior_supply == update_ema(0, 30_000 * UNIT, 2)

    next_cycle()
    third = eng.run_distribution(1_000)
    assert third.regime is Regime.SHORTFALL
    assert 0 < third.senior_share < SCALE_RAY
    assert third.junior > 0
    _assert_conserved(third)


@pytest.mark.parametrize("bad", [-1, 1.5, "100", True])
def test_invalid_earnings_rejected(engine, next_cycle, bad) -> None:
    """Non-integer or negative earnings are rejected before any state change."""
    next_cycle()
    with pytest.raises(InvalidParameter):
        engine.run_distribution(bad)
    assert engine.state.distribution_count == 0


# =============================================================================
# Simulation and preview
# =============================================================================


def test_simulate_ignores_timer_and_commits_nothing(engine) -> None:
    """Simulation runs before the period elapses and leaves no trace."""
    before = engine.state
    simulated = engine.simulate_distribution(1_000)
    assert simulated.senior == 400
    assert engine.state == before
    assert engine.history == []


def test_preview_is_idempotent(engine, next_cycle) -> None:
    """Two previews without an intervening cycle are identical."""
    next_cycle()
    engine.run_distribution(1_000)
    first = engine.get_allocation_preview().to_dict()
    second = engine.get_allocation_preview().to_dict()
    assert first == second
    assert first["recipients"]["protocol"] == [
        {"address": "treasury", "weight_bips": 7_000},
        {"address": "ops", "weight_bips": 3_000},
    ]
    assert first["config"]["protocol_fee_bips"] == 2_000
    assert first["state"]["distribution_count"] == 1
    assert first["shortfall_senior_share"] == SCALE_RAY // 2
    assert first["shortfall_junior_share"] == SCALE_RAY // 2


def test_preview_before_initialize(make_engine, params) -> None:
    preview = make_engine().get_allocation_preview()
    assert preview.shortfall_senior_share is None
    assert preview.yield_target == 0
    assert preview.next_cycle_at == params.cycle_period
    assert preview.recipients == {"protocol": [], "residual": []}


# =============================================================================
# Supplements
# =============================================================================


def test_supplement_uses_nominal_split_and_keeps_state(engine) -> None:
    """
    Test that a supplement splits the whole amount between the tranches.

    1000 units against a 30-day senior target of ~123.29 units: senior takes
    its nominal claim and junior receives everything else. Nothing is left
    for residual recipients and the Distribution State does not move.
    """
    before = engine.state
    supplement = engine.supplement_yield(1_000 * UNIT)

    assert supplement.senior == 123287671232876712328
    assert supplement.junior == 1_000 * UNIT - 123287671232876712328
    assert supplement.senior + supplement.junior == supplement.amount
    assert supplement.senior_share + supplement.junior_share == SCALE_RAY
    assert engine.state == before
    assert engine.history == []


def test_small_supplement_goes_to_senior(engine) -> None:
    """Below the senior target the nominal share caps at one."""
    supplement = engine.supplement_yield(1_000)
    assert supplement.senior_share == SCALE_RAY
    assert supplement.senior == 1_000
    assert supplement.junior == 0


@pytest.mark.parametrize("amount", [1, 999, 10**21 + 7, 987_654_321 * UNIT])
def test_supplement_conserves_amount(engine, amount: int) -> None:
    supplement = engine.supplement_yield(amount)
    assert supplement.senior + supplement.junior == amount
    assert supplement.junior >= 0


@pytest.mark.parametrize("bad", [0, -5])
def test_supplement_requires_positive_amount(engine, bad: int) -> None:
    with pytest.raises(InvalidParameter):
        engine.supplement_yield(bad)


# =============================================================================
# Payout hook, re-entrancy and atomicity
# =============================================================================


def test_payout_hook_sees_in_progress_engine(make_engine, next_cycle) -> None:
    """The payout hook runs before the engine returns to IDLE."""
    seen: List[EngineStatus] = []
    holder = {}

    def payout(allocation):
        seen.append(holder["engine"].status)

    eng = make_engine(payout=payout)
    holder["engine"] = eng
    eng.initialize(caller="gov", protocol_recipients=[("t", 10_000)], residual_recipients=[("r", 10_000)])
    next_cycle()
    eng.run_distribution(1_000)
    assert seen == [EngineStatus.IN_PROGRESS]
    assert eng.status is EngineStatus.IDLE


def test_reentrant_distribution_from_payout_rejected(make_engine, next_cycle, clock, params) -> None:
    """
    Test that a payout hook cannot start a second cycle.

    The nested call is rejected with ReentrantCall and the outer cycle
    still commits exactly once.
    """
    errors: List[Exception] = []
    holder = {}

    def payout(allocation):
        clock.advance(params.cycle_period)
        try:
            holder["engine"].run_distribution(1_000)
        except ReentrantCall as e:
            errors.append(e)

    eng = make_engine(payout=payout)
    holder["engine"] = eng
    eng.initialize(caller="gov", protocol_recipients=[("t", 10_000)], residual_recipients=[("r", 10_000)])
    next_cycle()
    eng.run_distribution(1_000)

    assert len(errors) == 1
    assert errors[0].operation == "run_distribution"
    assert eng.state.distribution_count == 1


def test_reentrant_setter_from_payout_rejected(make_engine, next_cycle) -> None:
    """A setter called from the payout hook aborts the whole cycle."""
    holder = {}

    def payout(allocation):
        holder["engine"].set_target_apy(600, caller="gov")

    eng = make_engine(payout=payout)
    holder["engine"] = eng
    eng.initialize(caller="gov", protocol_recipients=[("t", 10_000)], residual_recipients=[("r", 10_000)])
    next_cycle()
    with pytest.raises(ReentrantCall):
        eng.run_distribution(1_000)
    assert eng.params.target_apy_bips == 500
    assert eng.state.distribution_count == 0
    assert eng.status is EngineStatus.IDLE


def test_failed_payout_commits_nothing(make_engine, next_cycle, trail) -> None:
    """A payout that raises leaves the engine exactly as it was."""
    def payout(allocation):
        raise RuntimeError("transfer failed")

    eng = make_engine(payout=payout)
    eng.initialize(caller="gov", protocol_recipients=[("t", 10_000)], residual_recipients=[("r", 10_000)])
    before = eng.state
    next_cycle()
    with pytest.raises(RuntimeError):
        eng.run_distribution(1_000)

    assert eng.state == before
    assert eng.history == []
    assert trail.cycles == []
    assert eng.status is EngineStatus.IDLE


def test_committed_cycle_is_traced(engine, next_cycle, trail) -> None:
    next_cycle()
    engine.run_distribution(1_000)
    (trace,) = trail.cycles
    assert trace.cycle == 1
    assert trace.regime == "shortfall"
    assert trace.ema_after["ema_yield"] == 800
    assert "Cycle 1 Summary" in trail.get_cycle_summary(1)


# =============================================================================
# Treasury collector
# =============================================================================


class _FixedRateConverter:
    def __init__(self, rates):
        self.rates = rates
        self.calls = []

    def convert(self, asset_id, amount, to_asset_id):
        self.calls.append((asset_id, amount, to_asset_id))
        return amount * self.rates[asset_id]


def test_treasury_collector_sweeps_foreign_balances(engine, next_cycle) -> None:
    """Foreign balances are converted into the unit asset before a cycle."""
    converter = _FixedRateConverter({"ETH": 2})
    collector = TreasuryCollector(unit_asset_id="USD", converter=converter)
    collector.deposit("USD", 600)
    collector.deposit("ETH", 200)

    assert collector.sweep() == 1_000
    assert converter.calls == [("ETH", 200, "USD")]
    assert collector.balances["ETH"] == 0

    next_cycle()
    allocation = engine.run_distribution(collector.withdraw_all())
    assert allocation.total_earnings == 1_000
    assert collector.balances["USD"] == 0


def test_treasury_collector_rejects_negative_deposit() -> None:
    collector = TreasuryCollector(unit_asset_id="USD", converter=_FixedRateConverter({}))
    with pytest.raises(ValueError):
        collector.deposit("USD", -1)
