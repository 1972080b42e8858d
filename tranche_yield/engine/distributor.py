"""
Waterfall Distributor
=====================

This module turns a single pool of earnings into a deterministic,
itemized allocation across protocol recipients, the senior and junior
tranches, and residual recipients. It is the only writer of the
:class:`~tranche_yield.engine.state.DistributionState`.

Cycle Mechanics
---------------
Each call to :meth:`YieldDistributor.run_distribution`:

1. Rejects the call unless the engine is unlocked, idle, and at least one
   cycle period has elapsed since the last distribution.
2. Takes the protocol fee off the top.
3. Folds the standardized post-fee yield into the yield EMA (direct
   assignment on the first cycle).
4. Solves the senior/junior split from *last* cycle's smoothed tranche
   sizes, then folds the current adjusted supplies into the supply EMAs.
5. Splits the protocol fee across protocol recipients.
6. Pays senior and junior their shares of the post-fee yield.
7. Splits what is left across residual recipients.
8. Advances the cycle counter and timestamp.

Everything is computed against a working copy of the state. The new state
is committed only after the optional payout hook returns, so a failure at
any step leaves the engine exactly as it was.

Concurrency
-----------
Each instance owns a re-entrant lock and an IDLE/IN_PROGRESS status. Other
threads wait on the lock; a nested call from the same thread (for example a
payout hook that calls back into the engine) finds the engine IN_PROGRESS
and is rejected with :class:`ReentrantCall`.

Example
-------
>>> from tranche_yield.engine import ConfigurationParameters, YieldDistributor
>>> from tranche_yield.engine.collaborators import ManualClock, StaticSupplyProvider
>>> params = ConfigurationParameters(
...     target_apy_bips=500, target_ratio_bips=30_000, protocol_fee_bips=2_000
... )
>>> clock = ManualClock(now=1_700_000_000)
>>> supplies = StaticSupplyProvider(senior=30_000 * 10**18, junior=10_000 * 10**18)
>>> engine = YieldDistributor(params, supplies, clock=clock)
>>> _ = engine.initialize(
...     caller="gov",
...     protocol_recipients=[("treasury", 10_000)],
...     residual_recipients=[("reserve", 10_000)],
... )
>>> _ = clock.advance(params.cycle_period)
>>> allocation = engine.run_distribution(1_000)
>>> allocation.regime.value, allocation.protocol_fee, allocation.senior, allocation.junior
('shortfall', 200, 400, 400)

See Also
--------
proportions.solve_proportions : Three-regime senior/junior solver.
recipients.RecipientRegistry : Protocol and residual recipient sets.
audit_trail.AuditTrail : Change notifications and cycle traces.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .audit_trail import AuditTrail, CycleTrace, ParameterChange
from .collaborators import (
    Authorizer,
    Clock,
    Standardizer,
    TrancheSupplyProvider,
    allow_all,
    system_clock,
)
from .errors import (
    AlreadyInitialized,
    CycleNotElapsed,
    InvalidParameter,
    InvariantViolation,
    NotUnlocked,
    PreconditionError,
    ReentrantCall,
    Unauthorized,
)
from .fixed_point import SCALE_RAY, apply_bips, floor_sub, rmul, standardize
from .proportions import (
    ProportionInputs,
    ProportionResult,
    Regime,
    junior_proportion,
    shortfall_proportion,
    solve_nominal,
    solve_proportions,
)
from .recipients import RecipientKind, RecipientLike, RecipientRegistry, RecipientSet
from .state import (
    MAX_PROTOCOL_FEE_BIPS,
    ConfigurationParameters,
    DistributionState,
    EngineStatus,
    validate_protocol_fee,
    validate_target_apy,
    validate_target_ratio,
)
from .yield_target import senior_yield_target, yield_target

logger = logging.getLogger("TrancheYield.Distributor")

Payout = Callable[[Any], None]


@dataclass(frozen=True)
class Allocation:
    """
    Itemized result of one distribution cycle.

    Group totals always conserve value::

        protocol_fee + senior + junior + residual == total_earnings

    Per-recipient amounts are floored, so the itemized sum can fall short of
    ``total_earnings`` by :attr:`truncation_loss` smallest units (at most
    ``recipient_count - 2`` across both recipient groups).

    Attributes
    ----------
    cycle : int
        1-indexed cycle number.
    timestamp : int
        Commit time (seconds).
    total_earnings : int
        Earnings pool handed to the engine (native units).
    protocol_fee : int
        Amount taken off the top for protocol recipients.
    post_fee_yield : int
        ``total_earnings - protocol_fee``.
    senior, junior, residual : int
        Tranche and residual totals (native units).
    protocol_allocations, residual_allocations : tuple of (str, int)
        Per-recipient amounts in recipient-set order.
    regime : Regime
        Solver branch used for the split.
    senior_share, junior_share : int
        Shares of ``post_fee_yield`` in high-precision scale.
    yield_target : int
        Combined cycle target (standard scale).
    config_version : int
        Version of the parameters the allocation was computed with.
    """

    cycle: int
    timestamp: int
    total_earnings: int
    protocol_fee: int
    post_fee_yield: int
    senior: int
    junior: int
    residual: int
    protocol_allocations: Tuple[Tuple[str, int], ...]
    residual_allocations: Tuple[Tuple[str, int], ...]
    regime: Regime
    senior_share: int
    junior_share: int
    yield_target: int
    config_version: int

    @property
    def itemized_total(self) -> int:
        return (
            sum(amount for _, amount in self.protocol_allocations)
            + self.senior
            + self.junior
            + sum(amount for _, amount in self.residual_allocations)
        )

    @property
    def truncation_loss(self) -> int:
        """Floor-division remainder left unallocated by per-recipient splits."""
        return self.total_earnings - self.itemized_total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle": self.cycle,
            "timestamp": self.timestamp,
            "total_earnings": self.total_earnings,
            "protocol_fee": self.protocol_fee,
            "post_fee_yield": self.post_fee_yield,
            "senior": self.senior,
            "junior": self.junior,
            "residual": self.residual,
            "protocol_allocations": [
                {"address": a, "amount": amt} for a, amt in self.protocol_allocations
            ],
            "residual_allocations": [
                {"address": a, "amount": amt} for a, amt in self.residual_allocations
            ],
            "regime": self.regime.value,
            "senior_share": self.senior_share,
            "junior_share": self.junior_share,
            "yield_target": self.yield_target,
            "config_version": self.config_version,
            "truncation_loss": self.truncation_loss,
        }


@dataclass(frozen=True)
class SupplementAllocation:
    """
    Split of an ad hoc top-up, computed with the nominal formula only.

    The whole amount goes to the tranches: senior takes its nominal share
    and junior takes the remainder, so ``senior + junior == amount``.
    """

    amount: int
    senior: int
    junior: int
    senior_share: int
    junior_share: int
    config_version: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": self.amount,
            "senior": self.senior,
            "junior": self.junior,
            "senior_share": self.senior_share,
            "junior_share": self.junior_share,
            "config_version": self.config_version,
        }


@dataclass(frozen=True)
class AllocationPreview:
    """
    Read-only view of everything that would drive the next cycle.

    ``yield_target`` and ``senior_yield_target`` use the current smoothed
    tranche sizes. The shortfall shares depend only on those sizes and the
    ratio, so they are exposed directly; ``None`` when the senior EMA is zero.
    """

    config: Dict[str, Any]
    state: Dict[str, Any]
    recipients: Dict[str, List[Dict[str, Any]]]
    next_cycle_at: int
    yield_target: int
    senior_yield_target: int
    shortfall_senior_share: Optional[int]
    shortfall_junior_share: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "config": dict(self.config),
            "state": dict(self.state),
            "recipients": {k: list(v) for k, v in self.recipients.items()},
            "next_cycle_at": self.next_cycle_at,
            "yield_target": self.yield_target,
            "senior_yield_target": self.senior_yield_target,
            "shortfall_senior_share": self.shortfall_senior_share,
            "shortfall_junior_share": self.shortfall_junior_share,
        }


@dataclass
class _CyclePlan:
    allocation: Allocation
    state: DistributionState
    trace: CycleTrace


class YieldDistributor:
    """
    Yield allocation engine for one two-tranche capital structure.

    Parameters
    ----------
    params : ConfigurationParameters
        Initial governable parameters.
    supply_provider : TrancheSupplyProvider
        Source of current adjusted tranche supplies (standard scale).
    authorizer : callable, default allow_all
        ``(caller, action) -> bool`` predicate for governed operations.
    clock : callable, default system_clock
        Returns the current time in seconds.
    standardizer : callable, optional
        Converts native amounts to the 18-decimal scale. Defaults to
        :func:`fixed_point.standardize` with ``params.asset_decimals``.
    audit_trail : AuditTrail, optional
        Receives change notifications and cycle traces.
    payout : callable, optional
        Invoked with each allocation while the engine is still
        IN_PROGRESS, before the new state is committed. If it raises,
        nothing is committed.
    default_recipients : dict, optional
        ``{RecipientKind: entries}`` installed by :meth:`initialize` when no
        explicit sets are passed.
    instance_id : str, default "default"
        Identifier used by persistence collaborators.

    Attributes
    ----------
    history : list of Allocation
        Committed allocations, oldest first.
    """

    def __init__(
        self,
        params: ConfigurationParameters,
        supply_provider: TrancheSupplyProvider,
        authorizer: Authorizer = allow_all,
        clock: Clock = system_clock,
        standardizer: Optional[Standardizer] = None,
        audit_trail: Optional[AuditTrail] = None,
        payout: Optional[Payout] = None,
        default_recipients: Optional[Dict[RecipientKind, Sequence[RecipientLike]]] = None,
        instance_id: str = "default",
    ) -> None:
        self.instance_id = instance_id
        self._params = params
        self._supplies = supply_provider
        self._authorizer = authorizer
        self._clock = clock
        self._standardizer = standardizer
        self.audit_trail = audit_trail if audit_trail is not None else AuditTrail()
        self._payout = payout
        self._default_recipients = dict(default_recipients or {})
        self._state = DistributionState()
        self._registry = RecipientRegistry()
        self._lock = threading.RLock()
        self._status = EngineStatus.IDLE
        self.history: List[Allocation] = []

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------
    @property
    def params(self) -> ConfigurationParameters:
        return self._params

    @property
    def state(self) -> DistributionState:
        """A copy of the current Distribution State."""
        return DistributionState(**self._state.to_dict())

    @property
    def status(self) -> EngineStatus:
        return self._status

    def recipients(self, kind: RecipientKind) -> RecipientSet:
        return self._registry.get(kind)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @contextmanager
    def _exclusive(self, operation: str) -> Iterator[None]:
        with self._lock:
            if self._status is EngineStatus.IN_PROGRESS:
                logger.warning(f"Rejected re-entrant {operation}")
                raise ReentrantCall(operation)
            self._status = EngineStatus.IN_PROGRESS
            try:
                yield
            finally:
                self._status = EngineStatus.IDLE

    def _authorize(self, caller: Optional[str], action: str) -> None:
        if not self._authorizer(caller, action):
            logger.warning(f"Unauthorized {action} by {caller!r}")
            raise Unauthorized(caller, action)

    def _require_unlocked(self) -> None:
        if not self._state.unlocked:
            raise NotUnlocked()

    def _standardize(self, amount: int) -> int:
        if self._standardizer is not None:
            return self._standardizer(amount)
        return standardize(amount, self._params.asset_decimals)

    def _notify(self, parameter: str, old: Any, new: Any, caller: Optional[str]) -> None:
        self.audit_trail.notify_change(
            ParameterChange(
                parameter=parameter,
                old_value=old,
                new_value=new,
                caller=caller,
                config_version=self._params.version,
            )
        )

    @staticmethod
    def _require_amount(name: str, value: Any, allow_zero: bool = True) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidParameter(f"{name} must be an integer, got {value!r}")
        if value < 0 or (value == 0 and not allow_zero):
            raise InvalidParameter(f"{name} must be {'>= 0' if allow_zero else '> 0'}, got {value}")

    def _proportion_inputs(self, distributable: int, ema_yield: int) -> ProportionInputs:
        return ProportionInputs(
            distributable=distributable,
            ema_yield=ema_yield,
            ema_senior_supply=self._state.ema_senior_supply,
            ema_junior_supply=self._state.ema_junior_supply,
            target_apy_bips=self._params.target_apy_bips,
            target_ratio_bips=self._params.target_ratio_bips,
            period_days=self._params.cycle_period_days,
            retrospective_window=self._params.retrospective_window,
        )

    def _plan_cycle(self, total_earnings: int, now: int) -> _CyclePlan:
        """Compute a full cycle against a working copy of the state."""
        params = self._params
        state = self._state
        tracker = state.tracker()
        ema_before = {
            "ema_senior_supply": state.ema_senior_supply,
            "ema_junior_supply": state.ema_junior_supply,
            "ema_yield": state.ema_yield,
        }

        # Protocol fee off the top
        protocol_fee = apply_bips(total_earnings, params.protocol_fee_bips)
        post_fee_yield = floor_sub(total_earnings, protocol_fee)

        distributable = self._standardize(post_fee_yield)
        tracker.fold_yield(distributable, state.distribution_count, params.retrospective_window)

        # Split uses last cycle's smoothed sizes; supplies are folded afterwards
        result: ProportionResult = solve_proportions(
            self._proportion_inputs(distributable, tracker.ema_yield)
        )
        supplies = self._supplies.adjusted_supplies()
        tracker.fold_supplies(
            supplies.senior, supplies.junior, state.distribution_count, params.retrospective_window
        )

        protocol_allocations = self._registry.get(RecipientKind.PROTOCOL).split(protocol_fee)
        senior = rmul(post_fee_yield, result.senior)
        junior = rmul(post_fee_yield, result.junior)
        residual = floor_sub(post_fee_yield, senior + junior)
        residual_allocations = self._registry.get(RecipientKind.RESIDUAL).split(residual)

        if protocol_fee + senior + junior + residual != total_earnings:
            logger.error(
                f"Conservation broken: fee={protocol_fee} senior={senior} "
                f"junior={junior} residual={residual} total={total_earnings}"
            )
            raise InvariantViolation("Allocation group totals do not sum to total earnings")

        cycle = state.distribution_count + 1
        allocation = Allocation(
            cycle=cycle,
            timestamp=now,
            total_earnings=total_earnings,
            protocol_fee=protocol_fee,
            post_fee_yield=post_fee_yield,
            senior=senior,
            junior=junior,
            residual=residual,
            protocol_allocations=tuple(protocol_allocations),
            residual_allocations=tuple(residual_allocations),
            regime=result.regime,
            senior_share=result.senior,
            junior_share=result.junior,
            yield_target=result.yield_target,
            config_version=params.version,
        )
        new_state = state.committed(tracker, now)
        trace = CycleTrace(
            cycle=cycle,
            timestamp=now,
            config_version=params.version,
            regime=result.regime.value,
            yield_target=result.yield_target,
            distributable=distributable,
            senior_share=result.senior,
            junior_share=result.junior,
            ema_before=ema_before,
            ema_after={
                "ema_senior_supply": new_state.ema_senior_supply,
                "ema_junior_supply": new_state.ema_junior_supply,
                "ema_yield": new_state.ema_yield,
            },
        )
        if allocation.truncation_loss:
            trace.add_note(f"Truncation loss: {allocation.truncation_loss}")
        return _CyclePlan(allocation=allocation, state=new_state, trace=trace)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def initialize(
        self,
        caller: Optional[str] = None,
        protocol_recipients: Optional[Sequence[RecipientLike]] = None,
        residual_recipients: Optional[Sequence[RecipientLike]] = None,
    ) -> DistributionState:
        """
        One-time activation.

        Seeds the supply EMAs from the live adjusted supplies, installs the
        default recipient sets, starts the cycle timer and unlocks the engine.

        Raises
        ------
        Unauthorized
            If the authorizer rejects ``caller``.
        AlreadyInitialized
            On a second call.
        InvalidRecipients
            If either recipient set is missing or invalid. Neither set is
            installed in that case.
        """
        with self._exclusive("initialize"):
            self._authorize(caller, "initialize")
            if self._state.unlocked:
                raise AlreadyInitialized()

            protocol = protocol_recipients
            if protocol is None:
                protocol = self._default_recipients.get(RecipientKind.PROTOCOL, [])
            residual = residual_recipients
            if residual is None:
                residual = self._default_recipients.get(RecipientKind.RESIDUAL, [])

            # Validate both sets before installing either
            protocol_set = RecipientSet.from_entries(protocol)
            residual_set = RecipientSet.from_entries(residual)
            supplies = self._supplies.adjusted_supplies()

            self._registry.set_recipients(RecipientKind.PROTOCOL, protocol_set)
            self._registry.set_recipients(RecipientKind.RESIDUAL, residual_set)
            tracker = self._state.tracker()
            tracker.seed(supplies.senior, supplies.junior)
            self._state = DistributionState(
                ema_senior_supply=tracker.ema_senior_supply,
                ema_junior_supply=tracker.ema_junior_supply,
                ema_yield=0,
                distribution_count=0,
                last_distribution_timestamp=self._clock(),
                unlocked=True,
            )
            logger.info(
                f"Engine {self.instance_id} initialized: senior={supplies.senior} "
                f"junior={supplies.junior}"
            )
            self._notify("unlocked", False, True, caller)
            return self.state

    @classmethod
    def restore(
        cls,
        params: ConfigurationParameters,
        state: DistributionState,
        recipients: Dict[str, Sequence[RecipientLike]],
        supply_provider: TrancheSupplyProvider,
        **kwargs: Any,
    ) -> "YieldDistributor":
        """
        Rebuild an engine from persisted records.

        Recipient sets are re-validated; a corrupted record raises
        ``InvalidRecipients`` rather than producing a half-configured engine.
        """
        engine = cls(params, supply_provider, **kwargs)
        for kind in RecipientKind:
            entries = recipients.get(kind.value) or []
            if entries:
                engine._registry.set_recipients(kind, entries)
        if state.unlocked and not engine._registry.is_configured():
            raise InvariantViolation("Unlocked state restored without both recipient sets")
        engine._state = state
        return engine

    # ------------------------------------------------------------------
    # Distribution
    # ------------------------------------------------------------------
    def run_distribution(self, total_earnings: int) -> Allocation:
        """
        Run one distribution cycle.

        Parameters
        ----------
        total_earnings : int
            Current balance of the unit-of-account asset (native units).

        Returns
        -------
        Allocation
            Itemized amounts for the collaborator to transfer.

        Raises
        ------
        NotUnlocked
            Before :meth:`initialize`.
        CycleNotElapsed
            If called before ``last_distribution_timestamp + cycle_period``.
        ReentrantCall
            If another engine operation is in progress on this thread.
        DivisionByZero
            If the nominal regime is reached with zero distributable yield
            while the senior tranche EMA is non-zero.
        InvariantViolation
            On any broken conservation or share bound.
        """
        with self._exclusive("run_distribution"):
            try:
                self._require_amount("total_earnings", total_earnings)
                self._require_unlocked()
                now = self._clock()
                ready_at = self._state.next_cycle_at(self._params.cycle_period)
                if now < ready_at:
                    raise CycleNotElapsed(ready_at=ready_at, now=now)
                plan = self._plan_cycle(total_earnings, now)
            except PreconditionError as e:
                logger.warning(f"Distribution rejected: {e}")
                raise

            logger.info(
                f"--- Cycle {plan.allocation.cycle}: {plan.allocation.regime.value} "
                f"earnings={total_earnings} senior={plan.allocation.senior} "
                f"junior={plan.allocation.junior} residual={plan.allocation.residual} ---"
            )
            if self._payout is not None:
                self._payout(plan.allocation)

            self._state = plan.state
            self.history.append(plan.allocation)
            self.audit_trail.record_cycle(plan.trace)
            return plan.allocation

    def simulate_distribution(self, total_earnings: int) -> Allocation:
        """
        Compute what :meth:`run_distribution` would return right now.

        Ignores the cycle timer and commits nothing.
        """
        with self._lock:
            self._require_amount("total_earnings", total_earnings)
            self._require_unlocked()
            return self._plan_cycle(total_earnings, self._clock()).allocation

    def supplement_yield(self, amount: int) -> SupplementAllocation:
        """
        Split an ad hoc top-up between the tranches.

        Uses the nominal formula only against the current smoothed sizes,
        independent of the cycle timer. Senior receives its nominal share
        and junior receives the rest of ``amount``. The Distribution State
        is not changed.

        Raises
        ------
        NotUnlocked
            Before :meth:`initialize`.
        InvalidParameter
            If ``amount`` is not a positive integer.
        """
        with self._exclusive("supplement_yield"):
            try:
                self._require_amount("amount", amount, allow_zero=False)
                self._require_unlocked()
                result = solve_nominal(
                    self._proportion_inputs(self._standardize(amount), self._state.ema_yield)
                )
            except PreconditionError as e:
                logger.warning(f"Supplement rejected: {e}")
                raise

            senior = rmul(amount, result.senior)
            junior = floor_sub(amount, senior)
            supplement = SupplementAllocation(
                amount=amount,
                senior=senior,
                junior=junior,
                senior_share=result.senior,
                junior_share=floor_sub(SCALE_RAY, result.senior),
                config_version=self._params.version,
            )
            logger.info(f"Supplement {amount}: senior={senior} junior={junior}")
            if self._payout is not None:
                self._payout(supplement)
            return supplement

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_allocation_preview(self) -> AllocationPreview:
        """Pure query over recipients, parameters and the would-be split inputs."""
        with self._lock:
            params = self._params
            state = self._state
            shortfall_senior: Optional[int] = None
            shortfall_junior: Optional[int] = None
            if state.ema_senior_supply > 0:
                shortfall_senior = shortfall_proportion(
                    state.ema_senior_supply, state.ema_junior_supply, params.target_ratio_bips
                )
                shortfall_junior = junior_proportion(
                    shortfall_senior,
                    state.ema_senior_supply,
                    state.ema_junior_supply,
                    params.target_ratio_bips,
                )
            return AllocationPreview(
                config=params.to_dict(),
                state=state.to_dict(),
                recipients=self._registry.snapshot(),
                next_cycle_at=state.next_cycle_at(params.cycle_period),
                yield_target=yield_target(
                    state.ema_senior_supply,
                    state.ema_junior_supply,
                    params.target_apy_bips,
                    params.target_ratio_bips,
                    params.cycle_period_days,
                ),
                senior_yield_target=senior_yield_target(
                    state.ema_senior_supply, params.target_apy_bips, params.cycle_period_days
                ),
                shortfall_senior_share=shortfall_senior,
                shortfall_junior_share=shortfall_junior,
            )

    # ------------------------------------------------------------------
    # Governed setters
    # ------------------------------------------------------------------
    def set_recipients(
        self,
        kind: RecipientKind,
        entries: Sequence[RecipientLike],
        caller: Optional[str] = None,
    ) -> Optional[RecipientSet]:
        """Atomically replace a recipient set; returns the previous set."""
        kind = RecipientKind(kind)
        with self._exclusive("set_recipients"):
            self._authorize(caller, f"set_{kind.value}_recipients")
            previous = self._registry.set_recipients(kind, entries)
            self._notify(
                f"{kind.value}_recipients",
                previous.to_list() if previous is not None else None,
                self._registry.get(kind).to_list(),
                caller,
            )
            return previous

    def set_target_apy(self, bips: int, caller: Optional[str] = None) -> int:
        """Set the target senior APY; returns the previous value."""
        with self._exclusive("set_target_apy"):
            self._authorize(caller, "set_target_apy")
            validate_target_apy(bips)
            old = self._params.target_apy_bips
            self._params = self._params.replace(target_apy_bips=bips)
            self._notify("target_apy_bips", old, bips, caller)
            return old

    def set_target_ratio(self, bips: int, caller: Optional[str] = None) -> int:
        """Set the target junior/senior ratio; returns the previous value."""
        with self._exclusive("set_target_ratio"):
            self._authorize(caller, "set_target_ratio")
            validate_target_ratio(bips)
            old = self._params.target_ratio_bips
            self._params = self._params.replace(target_ratio_bips=bips)
            self._notify("target_ratio_bips", old, bips, caller)
            return old

    def set_protocol_fee_rate(
        self, bips: int, caller: Optional[str] = None, cap: int = MAX_PROTOCOL_FEE_BIPS
    ) -> int:
        """Set the protocol fee rate, bounded by ``cap``; returns the previous value."""
        with self._exclusive("set_protocol_fee_rate"):
            self._authorize(caller, "set_protocol_fee_rate")
            validate_protocol_fee(bips, cap)
            old = self._params.protocol_fee_bips
            self._params = self._params.replace(protocol_fee_bips=bips)
            self._notify("protocol_fee_bips", old, bips, caller)
            return old
