"""
Engine Configuration Loader and Validator
=========================================

This module parses and validates engine configuration documents (JSON)
and hydrates them into typed objects. The loader performs:

1. **Syntactic Validation**: JSON schema compliance via ``jsonschema``.
2. **Hydration**: Convert raw JSON into :class:`ConfigurationParameters`
   and validated :class:`RecipientSet` values.
3. **Semantic Validation**: Parameter bounds and recipient weight sums.

Document layout::

    {
      "instance_id": "usdc-vault",
      "parameters": {
        "target_apy_bips": 500,
        "target_ratio_bips": 30000,
        "protocol_fee_bips": 2000,
        "asset_id": "USDC",
        "asset_decimals": 6
      },
      "recipients": {
        "protocol": [{"address": "treasury", "weight_bips": 10000}],
        "residual": [{"address": "reserve", "weight_bips": 10000}]
      }
    }

Example
-------
>>> from tranche_yield.engine.loader import EngineConfigLoader
>>> loader = EngineConfigLoader()
>>> config = loader.load_from_path("engine.json")
>>> print(config.parameters.target_apy_bips)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Union

from jsonschema import ValidationError, validate

from .errors import ConfigLoadError, InvalidParameter, InvalidRecipients, SchemaViolationError
from .recipients import RecipientKind, RecipientSet
from .state import ConfigurationParameters

logger = logging.getLogger("TrancheYield.Loader")

_RECIPIENT_LIST_SCHEMA: Dict[str, Any] = {
    "type": "array",
    "minItems": 1,
    "items": {
        "type": "object",
        "required": ["address", "weight_bips"],
        "properties": {
            "address": {"type": "string", "minLength": 1},
            "weight_bips": {"type": "integer", "minimum": 1},
        },
        "additionalProperties": False,
    },
}

ENGINE_CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["parameters", "recipients"],
    "properties": {
        "instance_id": {"type": "string", "minLength": 1},
        "parameters": {
            "type": "object",
            "required": ["target_apy_bips", "target_ratio_bips"],
            "properties": {
                "target_apy_bips": {"type": "integer"},
                "target_ratio_bips": {"type": "integer"},
                "protocol_fee_bips": {"type": "integer"},
                "asset_id": {"type": "string"},
                "asset_decimals": {"type": "integer", "minimum": 0},
                "cycle_period": {"type": "integer"},
                "retrospective_window": {"type": "integer"},
                "protocol_fee_cap_bips": {"type": "integer"},
            },
            "additionalProperties": False,
        },
        "recipients": {
            "type": "object",
            "required": ["protocol", "residual"],
            "properties": {
                "protocol": _RECIPIENT_LIST_SCHEMA,
                "residual": _RECIPIENT_LIST_SCHEMA,
            },
            "additionalProperties": False,
        },
    },
}


@dataclass(frozen=True)
class EngineConfig:
    """
    Validated engine configuration document.

    Attributes
    ----------
    instance_id : str
        Engine instance identifier.
    parameters : ConfigurationParameters
        Initial governable parameters (version 1).
    protocol_recipients : RecipientSet
        Default protocol-earnings recipients.
    residual_recipients : RecipientSet
        Default residual-earnings recipients.
    """

    instance_id: str
    parameters: ConfigurationParameters
    protocol_recipients: RecipientSet
    residual_recipients: RecipientSet

    def default_recipients(self) -> Dict[RecipientKind, RecipientSet]:
        return {
            RecipientKind.PROTOCOL: self.protocol_recipients,
            RecipientKind.RESIDUAL: self.residual_recipients,
        }


class EngineConfigLoader:
    """
    Load and validate engine configuration documents.

    Parameters
    ----------
    schema : dict, optional
        Override schema; defaults to :data:`ENGINE_CONFIG_SCHEMA`.
    """

    def __init__(self, schema: Dict[str, Any] = None) -> None:
        self.schema = schema if schema is not None else ENGINE_CONFIG_SCHEMA

    def load_from_json(self, raw: Dict[str, Any]) -> EngineConfig:
        """
        Validate and hydrate a configuration dict.

        Raises
        ------
        SchemaViolationError
            If ``raw`` does not match the schema.
        ConfigLoadError
            If parameters are out of bounds or recipient weights are invalid.
        """
        try:
            validate(instance=raw, schema=self.schema)
        except ValidationError as e:
            logger.error(f"Schema violation: {e.message}")
            raise SchemaViolationError(f"Schema violation at {list(e.path)}: {e.message}") from e

        try:
            parameters = ConfigurationParameters(**raw["parameters"])
            protocol = RecipientSet.from_entries(raw["recipients"]["protocol"])
            residual = RecipientSet.from_entries(raw["recipients"]["residual"])
        except (InvalidParameter, InvalidRecipients) as e:
            logger.error(f"Invalid engine configuration: {e}")
            raise ConfigLoadError(str(e)) from e

        config = EngineConfig(
            instance_id=raw.get("instance_id", "default"),
            parameters=parameters,
            protocol_recipients=protocol,
            residual_recipients=residual,
        )
        logger.info(
            f"Loaded engine config '{config.instance_id}': "
            f"{len(protocol)} protocol / {len(residual)} residual recipients"
        )
        return config

    def load_from_path(self, path: Union[str, Path]) -> EngineConfig:
        """Read a JSON file and hand it to :meth:`load_from_json`."""
        path = Path(path)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigLoadError(f"Cannot read engine config {path}: {e}") from e
        return self.load_from_json(raw)
