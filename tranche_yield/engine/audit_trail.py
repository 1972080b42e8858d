"""
Audit Trail Framework
=====================

Change notifications and per-cycle execution traces for the distributor.

This module captures:
- **Parameter changes**: every governed setter emits an old -> new
  :class:`ParameterChange` to the registered listeners (the collaborator's
  observability layer) and keeps it in the change log.
- **Cycle traces**: the regime, target, shares and EMA movement of every
  committed distribution, for root cause analysis of a given allocation.

Example
-------
>>> from tranche_yield.engine.audit_trail import AuditTrail
>>> trail = AuditTrail()
>>> trail.add_listener(lambda change: print(change.parameter))
>>> engine = YieldDistributor(params, supplies, audit_trail=trail)
>>> engine.set_target_apy(600, caller="gov")
target_apy_bips
>>> trail.export_to_json(Path("audit.json"))
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("TrancheYield.Audit")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ParameterChange:
    """
    Old -> new notification for a governed setter.

    Attributes
    ----------
    parameter : str
        Name of the changed parameter (``target_apy_bips``,
        ``protocol_recipients``, ...).
    old_value : Any
        Value before the change (``None`` if unset).
    new_value : Any
        Value after the change.
    caller : str, optional
        Identity that requested the change.
    config_version : int
        Configuration version after the change.
    """

    parameter: str
    old_value: Any
    new_value: Any
    caller: Optional[str] = None
    config_version: int = 0
    timestamp: str = field(default_factory=_utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CycleTrace:
    """
    Trace of one committed distribution cycle.

    Captures the solver decision and the EMA movement so a single
    allocation can be reproduced offline.
    """

    cycle: int
    timestamp: int
    config_version: int
    regime: str
    yield_target: int
    distributable: int
    senior_share: int
    junior_share: int
    ema_before: Dict[str, int] = field(default_factory=dict)
    ema_after: Dict[str, int] = field(default_factory=dict)
    notes: List[str] = field(default_factory=list)

    def add_note(self, note: str) -> None:
        self.notes.append(note)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


ChangeListener = Callable[[ParameterChange], None]


class AuditTrail:
    """
    Collects parameter changes and cycle traces for one engine.

    Parameters
    ----------
    enabled : bool
        Whether cycle traces are kept (change notifications always reach
        listeners).
    max_cycles : int, optional
        Maximum cycle traces retained in memory; oldest are dropped first.
    """

    def __init__(self, enabled: bool = True, max_cycles: Optional[int] = None) -> None:
        self.enabled = enabled
        self.max_cycles = max_cycles
        self.changes: List[ParameterChange] = []
        self.cycles: List[CycleTrace] = []
        self._listeners: List[ChangeListener] = []
        self.metadata = {"created_at": _utc_now(), "version": "1.0"}

    def add_listener(self, listener: ChangeListener) -> None:
        """Register a callable that receives every :class:`ParameterChange`."""
        self._listeners.append(listener)

    def notify_change(self, change: ParameterChange) -> None:
        """Record ``change`` and forward it to every listener."""
        self.changes.append(change)
        logger.info(
            f"{change.parameter} changed: {change.old_value!r} -> {change.new_value!r} "
            f"(caller={change.caller}, config v{change.config_version})"
        )
        for listener in self._listeners:
            listener(change)

    def record_cycle(self, trace: CycleTrace) -> None:
        if not self.enabled:
            return
        self.cycles.append(trace)
        if self.max_cycles and len(self.cycles) > self.max_cycles:
            self.cycles.pop(0)

    def changes_for(self, parameter: str) -> List[ParameterChange]:
        return [c for c in self.changes if c.parameter == parameter]

    def export_to_json(self, output_path: Path) -> None:
        """
        Export changes and cycle traces to a JSON file.

        Parameters
        ----------
        output_path : Path
            Output file path.
        """
        output = {
            "metadata": self.metadata,
            "changes": [c.to_dict() for c in self.changes],
            "cycles": [c.to_dict() for c in self.cycles],
        }
        with open(output_path, "w") as f:
            json.dump(output, f, indent=2, default=str)

    def get_cycle_summary(self, cycle: int) -> str:
        """
        Generate a human-readable summary of a cycle.

        Parameters
        ----------
        cycle : int
            Cycle number (1-indexed).

        Returns
        -------
        str
            Formatted summary.
        """
        trace = next((c for c in self.cycles if c.cycle == cycle), None)
        if not trace:
            return f"Cycle {cycle} not found"

        lines = []
        lines.append(f"Cycle {cycle} Summary")
        lines.append("=" * 80)
        lines.append(f"Timestamp: {trace.timestamp}")
        lines.append(f"Config version: {trace.config_version}")
        lines.append(f"Regime: {trace.regime}")
        lines.append(f"Yield target: {trace.yield_target}")
        lines.append(f"Distributable: {trace.distributable}")
        lines.append(f"Senior share: {trace.senior_share}")
        lines.append(f"Junior share: {trace.junior_share}")
        lines.append("")
        lines.append("EMAs:")
        for name, after in trace.ema_after.items():
            before = trace.ema_before.get(name, 0)
            lines.append(f"  {name}: {before} -> {after}")
        if trace.notes:
            lines.append("")
            lines.append("Notes:")
            for note in trace.notes:
                lines.append(f"  - {note}")
        return "\n".join(lines)

    def clear(self) -> None:
        """Clear all stored traces and changes."""
        self.changes.clear()
        self.cycles.clear()
