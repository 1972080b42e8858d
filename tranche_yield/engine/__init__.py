"""
Tranche Yield Allocation Engine
===============================

This package allocates periodic yield income across a two-tranche capital
structure (senior / junior) plus protocol and residual recipients. It
orchestrates the following steps each distribution cycle:

1. **Fee Extraction**: Take the protocol fee off the top of the earnings pool.
2. **Smoothing**: Fold the post-fee yield and tranche sizes into capped-window
   exponential moving averages.
3. **Proportion Solving**: Pick the shortfall, catch-up or nominal regime and
   derive the senior and junior shares in high-precision fixed point.
4. **Waterfall Allocation**: Apply the shares and recipient weights to produce
   a deterministic, itemized allocation.

The main entry point is :class:`YieldDistributor`; :func:`build_engine` wires
one up from a validated :class:`EngineConfig`.

Example
-------
>>> from tranche_yield.engine import EngineConfigLoader, build_engine
>>> config = EngineConfigLoader().load_from_path("engine.json")
>>> engine = build_engine(config, supply_provider)
>>> engine.initialize(caller="gov")
>>> allocation = engine.run_distribution(total_earnings)

See Also
--------
distributor.YieldDistributor : Cycle execution and governed setters.
proportions.solve_proportions : Three-regime senior/junior solver.
moving_average.MovingAverageTracker : EMA bookkeeping.
reporting.AllocationReportGenerator : Tabular allocation history.
"""

from __future__ import annotations

from typing import Any

from .audit_trail import AuditTrail, CycleTrace, ParameterChange
from .collaborators import (
    ManualClock,
    StaticSupplyProvider,
    TrancheSupplies,
    TrancheSupplyProvider,
    TreasuryCollector,
)
from .distributor import Allocation, AllocationPreview, SupplementAllocation, YieldDistributor
from .errors import (
    AlreadyInitialized,
    CycleNotElapsed,
    DivisionByZero,
    InvalidParameter,
    InvalidRecipients,
    InvariantViolation,
    NotUnlocked,
    PreconditionError,
    ReentrantCall,
    Unauthorized,
    YieldEngineError,
)
from .loader import EngineConfig, EngineConfigLoader
from .proportions import Regime
from .recipients import Recipient, RecipientKind, RecipientSet
from .reporting import AllocationReportGenerator
from .state import ConfigurationParameters, DistributionState, EngineStatus


def build_engine(
    config: EngineConfig,
    supply_provider: TrancheSupplyProvider,
    **kwargs: Any,
) -> YieldDistributor:
    """
    Create an engine from a loaded configuration document.

    The configuration's recipient sets become the defaults installed by
    ``initialize()``. Extra keyword arguments (clock, authorizer, payout,
    audit_trail, ...) are passed through to :class:`YieldDistributor`.
    """
    return YieldDistributor(
        config.parameters,
        supply_provider,
        default_recipients=config.default_recipients(),
        instance_id=config.instance_id,
        **kwargs,
    )


__all__ = [
    "Allocation",
    "AllocationPreview",
    "AllocationReportGenerator",
    "AlreadyInitialized",
    "AuditTrail",
    "ConfigurationParameters",
    "CycleNotElapsed",
    "CycleTrace",
    "DistributionState",
    "DivisionByZero",
    "EngineConfig",
    "EngineConfigLoader",
    "EngineStatus",
    "InvalidParameter",
    "InvalidRecipients",
    "InvariantViolation",
    "ManualClock",
    "NotUnlocked",
    "ParameterChange",
    "PreconditionError",
    "Recipient",
    "RecipientKind",
    "RecipientSet",
    "ReentrantCall",
    "Regime",
    "StaticSupplyProvider",
    "SupplementAllocation",
    "TrancheSupplies",
    "TrancheSupplyProvider",
    "TreasuryCollector",
    "Unauthorized",
    "YieldDistributor",
    "YieldEngineError",
    "build_engine",
]
