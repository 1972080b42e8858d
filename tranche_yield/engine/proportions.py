"""
Senior/Junior Proportion Solver
===============================

Determines which fraction of the distributable yield ``yD`` is owed to the
senior and junior tranches. Three mutually exclusive regimes exist,
selected by comparing ``yD`` to the cycle target ``yT`` and the smoothed
historical yield ``yA``:

**Shortfall** (``yD < yT``)
    Senior share degrades toward a ratio-determined floor::

        sP = 1 / (1 + Q * eJTT / (eSTT * BIPS))

**Catch-up** (``yD >= yT`` and ``yT >= yA`` and ``yA != 0``)
    Senior compensates for past underperformance over ``R`` cycles::

        sP = ((R + 1) * yT - R * yA) / (yD * (1 + Q * eJTT / (eSTT * BIPS)))

**Nominal** (otherwise)
    Senior earns its flat target rate, junior keeps the excess::

        sP = (Y * eSTT * T / BIPS / 365) / yD

Every senior share is clamped to one whole unit (``SCALE_RAY``). The junior
share is always the complement-bounded residual::

    jP = min(Q * eJTT * sP / eSTT / BIPS, 1 - sP)

so ``sP + jP <= 1`` by construction. Results are re-checked after the
derivation clamp; any violation raises :class:`InvariantViolation`.

An empty senior tranche (``eSTT == 0``) is a zero-guard branch rather than
a division error: the senior share is one whole unit and the junior share
is zero, whatever the regime. Supplies keep folding into the EMAs, so the
next cycle prices a restored senior tranche normally.

Example
-------
>>> from tranche_yield.engine.proportions import ProportionInputs, solve_proportions
>>> inputs = ProportionInputs(
...     distributable=10**21, ema_yield=10**21,
...     ema_senior_supply=30_000 * 10**18, ema_junior_supply=10_000 * 10**18,
...     target_apy_bips=500, target_ratio_bips=30_000,
...     period_days=30, retrospective_window=6,
... )
>>> result = solve_proportions(inputs)
>>> result.regime
<Regime.NOMINAL: 'nominal'>
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .errors import InvariantViolation
from .fixed_point import BIPS, SCALE_RAY, floor_sub, fmin, mul_div
from .yield_target import senior_yield_target, yield_target

logger = logging.getLogger("TrancheYield.Proportions")


class Regime(str, Enum):
    """Formula branch governing the senior share for a cycle."""

    SHORTFALL = "shortfall"
    CATCHUP = "catchup"
    NOMINAL = "nominal"


@dataclass(frozen=True)
class ProportionInputs:
    """
    Everything the solver needs for one evaluation.

    Attributes
    ----------
    distributable : int
        Distributable yield ``yD`` (standard scale).
    ema_yield : int
        Smoothed historical yield ``yA`` (standard scale).
    ema_senior_supply : int
        Smoothed senior size ``eSTT`` (standard scale).
    ema_junior_supply : int
        Smoothed junior size ``eJTT`` (standard scale).
    target_apy_bips : int
        ``Y``.
    target_ratio_bips : int
        ``Q``.
    period_days : int
        ``T``.
    retrospective_window : int
        ``R``.
    """

    distributable: int
    ema_yield: int
    ema_senior_supply: int
    ema_junior_supply: int
    target_apy_bips: int
    target_ratio_bips: int
    period_days: int
    retrospective_window: int


@dataclass(frozen=True)
class ProportionResult:
    """Outcome of a solver run; shares are in high-precision scale."""

    regime: Regime
    senior: int
    junior: int
    yield_target: int

    @property
    def residual(self) -> int:
        """Share of distributable yield left for residual recipients."""
        return SCALE_RAY - self.senior - self.junior


def classify_regime(distributable: int, target: int, ema_yield: int) -> Regime:
    """Select the regime from ``yD``, ``yT`` and ``yA``."""
    if distributable < target:
        return Regime.SHORTFALL
    if target >= ema_yield and ema_yield != 0:
        return Regime.CATCHUP
    return Regime.NOMINAL


def shortfall_proportion(e_stt: int, e_jtt: int, q: int) -> int:
    """Senior share below target: ``RAY * eSTT*BIPS / (eSTT*BIPS + Q*eJTT)``."""
    senior_weight = e_stt * BIPS
    share = mul_div(SCALE_RAY, senior_weight, senior_weight + q * e_jtt)
    return fmin(share, SCALE_RAY)


def catchup_proportion(
    distributable: int,
    target: int,
    ema_yield: int,
    e_stt: int,
    e_jtt: int,
    q: int,
    window: int,
) -> int:
    """Senior share while recovering from below-target cycles."""
    owed = floor_sub((window + 1) * target, window * ema_yield)
    senior_weight = e_stt * BIPS
    share = mul_div(
        SCALE_RAY * owed,
        senior_weight,
        distributable * (senior_weight + q * e_jtt),
    )
    return fmin(share, SCALE_RAY)


def senior_proportion_base(e_stt: int, y: int, t: int, distributable: int) -> int:
    """Nominal senior share: flat senior target over distributable yield."""
    share = mul_div(senior_yield_target(e_stt, y, t), SCALE_RAY, distributable)
    return fmin(share, SCALE_RAY)


def junior_proportion(senior: int, e_stt: int, e_jtt: int, q: int) -> int:
    """Junior share, bounded by what the senior share leaves over."""
    proportional = mul_div(q * e_jtt, senior, e_stt * BIPS)
    return fmin(proportional, floor_sub(SCALE_RAY, senior))


def check_shares(senior: int, junior: int) -> None:
    """
    Verify ``0 <= sP``, ``0 <= jP`` and ``sP + jP <= 1``.

    Raises
    ------
    InvariantViolation
        If any bound is broken.
    """
    if senior < 0 or junior < 0 or senior > SCALE_RAY or senior + junior > SCALE_RAY:
        logger.error(f"Share invariant broken: senior={senior} junior={junior}")
        raise InvariantViolation(
            f"Tranche shares out of bounds: senior={senior}, junior={junior}, one={SCALE_RAY}"
        )


def _senior_share(regime: Regime, inputs: ProportionInputs, target: int) -> int:
    if regime is Regime.SHORTFALL:
        return shortfall_proportion(
            inputs.ema_senior_supply, inputs.ema_junior_supply, inputs.target_ratio_bips
        )
    if regime is Regime.CATCHUP:
        return catchup_proportion(
            inputs.distributable,
            target,
            inputs.ema_yield,
            inputs.ema_senior_supply,
            inputs.ema_junior_supply,
            inputs.target_ratio_bips,
            inputs.retrospective_window,
        )
    return senior_proportion_base(
        inputs.ema_senior_supply, inputs.target_apy_bips, inputs.period_days, inputs.distributable
    )


def _target(inputs: ProportionInputs) -> int:
    return yield_target(
        inputs.ema_senior_supply,
        inputs.ema_junior_supply,
        inputs.target_apy_bips,
        inputs.target_ratio_bips,
        inputs.period_days,
    )


def _split(regime: Regime, inputs: ProportionInputs, target: int) -> ProportionResult:
    if inputs.ema_senior_supply == 0:
        # Empty senior tranche: whole share to senior, nothing to junior
        logger.warning(f"{regime.value}: senior EMA is zero, using zero-size guard")
        return ProportionResult(regime=regime, senior=SCALE_RAY, junior=0, yield_target=target)

    senior = _senior_share(regime, inputs, target)
    junior = junior_proportion(
        senior, inputs.ema_senior_supply, inputs.ema_junior_supply, inputs.target_ratio_bips
    )
    check_shares(senior, junior)
    logger.debug(f"{regime.value}: yD={inputs.distributable} yT={target} sP={senior} jP={junior}")
    return ProportionResult(regime=regime, senior=senior, junior=junior, yield_target=target)


def solve_proportions(inputs: ProportionInputs) -> ProportionResult:
    """
    Run the three-regime solver.

    Parameters
    ----------
    inputs : ProportionInputs
        Distributable yield, EMAs and rate parameters.

    Returns
    -------
    ProportionResult
        Selected regime, senior and junior shares (high-precision scale)
        and the cycle yield target. With a zero senior EMA the shares are
        ``(SCALE_RAY, 0)`` in every regime.

    Raises
    ------
    DivisionByZero
        If the nominal regime is reached with zero distributable yield
        and a non-empty senior tranche.
    InvariantViolation
        If the derived shares break ``0 <= sP, jP`` and ``sP + jP <= 1``.
    """
    target = _target(inputs)
    regime = classify_regime(inputs.distributable, target, inputs.ema_yield)
    return _split(regime, inputs, target)


def solve_nominal(inputs: ProportionInputs) -> ProportionResult:
    """Split using the nominal formula only, as for ad hoc top-ups."""
    return _split(Regime.NOMINAL, inputs, _target(inputs))
