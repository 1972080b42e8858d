"""
Distribution State Store
========================

File-backed persistence for engine instances. The engine itself does not
persist anything; a collaborator saves the Distribution State, the
configuration parameters and both recipient sets after each committed
operation and restores them on start-up.

Storage layout: one JSON file holding one record per instance id::

    {
      "instances": {
        "<instance_id>": {
          "state": {...},
          "parameters": {...},
          "recipients": {"protocol": [...], "residual": [...]},
          "saved_at": "2026-01-01T00:00:00+00:00"
        }
      }
    }

Integers are written as JSON integers, so 10^27-scale values survive the
round trip without loss.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .collaborators import TrancheSupplyProvider
from .distributor import YieldDistributor
from .recipients import RecipientKind
from .state import ConfigurationParameters, DistributionState

logger = logging.getLogger("TrancheYield.Store")


class DistributionStateStore:
    """
    Save and restore engine records on disk.

    Parameters
    ----------
    storage_path : Path
        Directory for the store file; created if missing.
    """

    def __init__(self, storage_path: Path) -> None:
        self.storage_path = Path(storage_path)
        self.state_file = self.storage_path / "distribution_state.json"
        self._ensure_storage()

    def _ensure_storage(self) -> None:
        """Ensure storage directory and file exist."""
        self.storage_path.mkdir(parents=True, exist_ok=True)
        if not self.state_file.exists():
            self._save_data({"instances": {}})

    def _load_data(self) -> Dict[str, Any]:
        return json.loads(self.state_file.read_text(encoding="utf-8"))

    def _save_data(self, data: Dict[str, Any]) -> None:
        # Write-then-rename so a crash never leaves a truncated file behind
        tmp = self.state_file.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp, self.state_file)

    def save(self, engine: YieldDistributor) -> None:
        """Persist the engine's state, parameters and recipient sets."""
        data = self._load_data()
        record = {
            "state": engine.state.to_dict(),
            "parameters": engine.params.to_dict(),
            "recipients": engine.get_allocation_preview().recipients,
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }
        data.setdefault("instances", {})[engine.instance_id] = record
        self._save_data(data)
        logger.info(
            f"Saved engine {engine.instance_id} at cycle {record['state']['distribution_count']}"
        )

    def get_record(self, instance_id: str) -> Optional[Dict[str, Any]]:
        return self._load_data().get("instances", {}).get(instance_id)

    def list_instances(self) -> List[str]:
        return sorted(self._load_data().get("instances", {}))

    def load(
        self,
        instance_id: str,
        supply_provider: TrancheSupplyProvider,
        **engine_kwargs: Any,
    ) -> YieldDistributor:
        """
        Rebuild a :class:`YieldDistributor` from its stored record.

        Raises
        ------
        KeyError
            If no record exists for ``instance_id``.
        """
        record = self.get_record(instance_id)
        if record is None:
            raise KeyError(f"No stored engine '{instance_id}'")
        recipients = {
            kind.value: record["recipients"].get(kind.value, []) for kind in RecipientKind
        }
        return YieldDistributor.restore(
            params=ConfigurationParameters.from_dict(record["parameters"]),
            state=DistributionState.from_dict(record["state"]),
            recipients=recipients,
            supply_provider=supply_provider,
            instance_id=instance_id,
            **engine_kwargs,
        )

    def delete(self, instance_id: str) -> bool:
        data = self._load_data()
        removed = data.get("instances", {}).pop(instance_id, None)
        if removed is not None:
            self._save_data(data)
        return removed is not None
