"""
Distribution Reporting
======================

This module converts committed allocation history into analyst-friendly
tabular form. The :class:`AllocationReportGenerator` takes the engine's
``history`` list and produces one row per cycle.

The output DataFrame includes:

- Cycle number, timestamp and configuration version
- Solver regime, yield target and tranche shares
- Protocol fee, senior, junior and residual totals
- Per-recipient amounts (``Protocol.<address>``, ``Residual.<address>``)
- Truncation loss

Amounts stay Python ``int`` (object dtype) so no precision is lost to
float conversion.

Example
-------
>>> from tranche_yield.engine.reporting import AllocationReportGenerator
>>> reporter = AllocationReportGenerator(engine.history)
>>> df = reporter.generate_allocation_report()
>>> print(df[["Cycle", "Regime", "Senior", "Junior"]])
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import pandas as pd

from .distributor import Allocation
from .fixed_point import SCALE_RAY

logger = logging.getLogger("TrancheYield.Reporting")

_LEADING_COLUMNS = ["Cycle", "Timestamp", "ConfigVersion", "Regime"]


class AllocationReportGenerator:
    """
    Build tabular reports from committed allocations.

    Parameters
    ----------
    history : list of Allocation
        Chronological allocations, one per cycle.
    """

    def __init__(self, history: List[Allocation]) -> None:
        self.history = history

    def generate_allocation_report(self) -> pd.DataFrame:
        """
        Flatten allocations into a cycle-by-cycle DataFrame.

        Returns
        -------
        pd.DataFrame
            One row per cycle. Returns an empty DataFrame if history is empty.
        """
        if not self.history:
            logger.warning("No history found. Returning empty DataFrame.")
            return pd.DataFrame()

        rows: List[Dict[str, Any]] = []
        for alloc in self.history:
            row: Dict[str, Any] = {
                "Cycle": alloc.cycle,
                "Timestamp": alloc.timestamp,
                "ConfigVersion": alloc.config_version,
                "Regime": alloc.regime.value,
                "YieldTarget": alloc.yield_target,
                "TotalEarnings": alloc.total_earnings,
                "ProtocolFee": alloc.protocol_fee,
                "PostFeeYield": alloc.post_fee_yield,
                "Senior": alloc.senior,
                "Junior": alloc.junior,
                "Residual": alloc.residual,
                "SeniorShare": alloc.senior_share,
                "JuniorShare": alloc.junior_share,
                "TruncationLoss": alloc.truncation_loss,
            }
            for address, amount in alloc.protocol_allocations:
                row[f"Protocol.{address}"] = amount
            for address, amount in alloc.residual_allocations:
                row[f"Residual.{address}"] = amount
            rows.append(row)

        df = pd.DataFrame(rows, dtype=object)

        # Recipient columns only exist for cycles where the recipient was set
        recipient_cols = [c for c in df.columns if c.startswith(("Protocol.", "Residual."))]
        df[recipient_cols] = df[recipient_cols].fillna(0)

        cols = _LEADING_COLUMNS + [c for c in df.columns if c not in _LEADING_COLUMNS]
        return df[cols]

    def generate_share_summary(self) -> pd.DataFrame:
        """
        Regime counts and mean tranche shares as fractions of one.

        Float conversion is applied here only, for display.
        """
        df = self.generate_allocation_report()
        if df.empty:
            return pd.DataFrame()
        shares = pd.DataFrame(
            {
                "Regime": df["Regime"],
                "SeniorShare": df["SeniorShare"].map(lambda v: v / SCALE_RAY),
                "JuniorShare": df["JuniorShare"].map(lambda v: v / SCALE_RAY),
            }
        )
        summary = shares.groupby("Regime").agg(
            Cycles=("SeniorShare", "size"),
            MeanSeniorShare=("SeniorShare", "mean"),
            MeanJuniorShare=("JuniorShare", "mean"),
        )
        return summary.reset_index()

    def save_to_csv(self, df: pd.DataFrame, filename: str) -> None:
        """
        Persist a report to disk as CSV.

        Uses UTF-8 encoding and excludes the DataFrame index.
        """
        df.to_csv(filename, index=False)
        logger.info(f"Report saved to {filename}")
