"""
Tranche Yield Configuration
===========================

Centralized configuration management using environment variables with
sensible defaults.

This module provides a singleton ``Settings`` instance that loads
configuration from environment variables prefixed with ``TRANCHE_YIELD_``.
All settings have defaults suitable for local development.

Environment Variables
---------------------
TRANCHE_YIELD_API_HOST : str
    Host address for the API server (default: "127.0.0.1").
TRANCHE_YIELD_API_PORT : int
    Port for the API server (default: 8000).
TRANCHE_YIELD_LOG_LEVEL : str
    Logging level (DEBUG, INFO, WARNING, ERROR).
TRANCHE_YIELD_ENGINE_CONFIG_PATH : str
    Optional JSON engine configuration; when set it overrides the
    parameter and recipient defaults below.

Example
-------
Using environment variables::

    export TRANCHE_YIELD_TARGET_APY_BIPS=650
    export TRANCHE_YIELD_LOG_LEVEL=DEBUG
    python -m uvicorn tranche_yield.api_main:app

Accessing settings in code::

    from tranche_yield.config import settings
    print(f"Target APY: {settings.target_apy_bips} bips")
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

# Determine the package root directory
_PACKAGE_ROOT = Path(__file__).resolve().parent


def _get_env(key: str, default: Any, value_type: type = str) -> Any:
    """
    Get an environment variable with type conversion.

    Parameters
    ----------
    key : str
        Environment variable name (will be prefixed with TRANCHE_YIELD_).
    default : Any
        Default value if not set.
    value_type : type
        Type to convert to (str, int, bool, list).

    Returns
    -------
    Any
        The environment variable value converted to the specified type.
    """
    env_name = f"TRANCHE_YIELD_{key.upper()}"
    env_value = os.environ.get(env_name)

    if env_value is None:
        return default

    try:
        if value_type == bool:
            return env_value.lower() in ("true", "1", "yes", "on")
        elif value_type == int:
            return int(env_value)
        elif value_type == list:
            try:
                return json.loads(env_value)
            except json.JSONDecodeError:
                return env_value.split(",")
        else:
            return env_value
    except (ValueError, TypeError):
        return default


class Settings:
    """
    Application configuration loaded from environment variables.

    All settings have sensible defaults for local development. In
    production, override via environment variables prefixed with
    ``TRANCHE_YIELD_``.
    """

    def __init__(self) -> None:
        """Initialize settings from environment variables."""
        # =====================================================================
        # API Server Configuration
        # =====================================================================
        self.api_host: str = _get_env("API_HOST", "127.0.0.1", str)
        self.api_port: int = _get_env("API_PORT", 8000, int)

        # =====================================================================
        # Storage Paths
        # =====================================================================
        self.state_dir: str = _get_env("STATE_DIR", str(_PACKAGE_ROOT / "state"), str)
        self.engine_config_path: Optional[str] = _get_env("ENGINE_CONFIG_PATH", None, str)
        self.persist_state: bool = _get_env("PERSIST_STATE", False, bool)

        # =====================================================================
        # Logging Configuration
        # =====================================================================
        self.log_level: str = _get_env("LOG_LEVEL", "INFO", str)
        self.log_format: str = _get_env("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s", str)

        # =====================================================================
        # Engine Defaults
        # =====================================================================
        self.instance_id: str = _get_env("INSTANCE_ID", "default", str)
        self.target_apy_bips: int = _get_env("TARGET_APY_BIPS", 500, int)
        self.target_ratio_bips: int = _get_env("TARGET_RATIO_BIPS", 30_000, int)
        self.protocol_fee_bips: int = _get_env("PROTOCOL_FEE_BIPS", 0, int)
        self.asset_id: str = _get_env("ASSET_ID", "USD", str)
        self.asset_decimals: int = _get_env("ASSET_DECIMALS", 18, int)
        self.protocol_recipients: List[Any] = _get_env("PROTOCOL_RECIPIENTS", [["treasury", 10_000]], list)
        self.residual_recipients: List[Any] = _get_env("RESIDUAL_RECIPIENTS", [["reserve", 10_000]], list)

        # =====================================================================
        # Security
        # =====================================================================
        self.require_rbac: bool = _get_env("REQUIRE_RBAC", True, bool)
        self.governor_roles: List[str] = _get_env("GOVERNOR_ROLES", ["governor"], list)

    @property
    def package_root(self) -> Path:
        """Return the package root directory."""
        return _PACKAGE_ROOT

    @property
    def log_level_int(self) -> int:
        """Return the log level as an integer constant."""
        return getattr(logging, self.log_level.upper(), logging.INFO)

    def get_path(self, name: str) -> Path:
        """
        Get a storage path as a Path object, creating it if necessary.

        Parameters
        ----------
        name : str
            Name of the path setting (e.g. state_dir).

        Returns
        -------
        Path
            Resolved Path object.
        """
        path_str = getattr(self, name, None)
        if path_str is None:
            raise ValueError(f"Unknown path setting: {name}")
        path = Path(path_str)
        if not path.is_absolute():
            path = _PACKAGE_ROOT / path
        path.mkdir(parents=True, exist_ok=True)
        return path.resolve()

    def engine_config_document(self) -> Dict[str, Any]:
        """
        Engine configuration document built from the defaults above.

        Recipient lists may be given as ``[address, weight]`` pairs or as
        ``{"address": ..., "weight_bips": ...}`` objects.
        """

        def _entries(raw: List[Any]) -> List[Dict[str, Any]]:
            return [
                e if isinstance(e, dict) else {"address": e[0], "weight_bips": int(e[1])}
                for e in raw
            ]

        return {
            "instance_id": self.instance_id,
            "parameters": {
                "target_apy_bips": self.target_apy_bips,
                "target_ratio_bips": self.target_ratio_bips,
                "protocol_fee_bips": self.protocol_fee_bips,
                "asset_id": self.asset_id,
                "asset_decimals": self.asset_decimals,
            },
            "recipients": {
                "protocol": _entries(self.protocol_recipients),
                "residual": _entries(self.residual_recipients),
            },
        }

    def configure_logging(self) -> None:
        """
        Configure application logging based on settings.

        Sets up the root logger with the configured level and format.
        """
        logging.basicConfig(
            level=self.log_level_int,
            format=self.log_format,
        )
        # Quiet noisy loggers
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


@lru_cache()
def get_settings() -> Settings:
    """
    Return the cached application settings instance.

    Returns
    -------
    Settings
        Application settings instance.
    """
    return Settings()


# Module-level singleton for convenience
settings = get_settings()
