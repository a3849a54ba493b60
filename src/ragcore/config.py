# src/ragcore/config.py
"""
Process configuration for ragcore.

The configuration hierarchy:
    RagCoreConfig (root)
    ├── logging   - dict passed to ragcore.logging_config.configure_logging
    ├── app_root  - base directory for relative embedded-disk store paths
    └── http      - HTTPConfig (streaming client defaults)

Usage:
    >>> from ragcore.config import load_config
    >>> config = load_config()  # All defaults
    >>> config.http.timeout
    300.0

    >>> config = load_config(config_path=Path("ragcore.toml"))
    >>> config = load_config(config_dict={"http": {"timeout": 30}})

Environment variables of the form ``RAGCORE__<SECTION>__<KEY>`` override
file and dict values, e.g. ``RAGCORE__HTTP__TIMEOUT=30``.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "RAGCORE__"


# =============================================================================
# MODELS
# =============================================================================


class HTTPConfig(BaseModel):
    """Defaults for the streaming LLM client."""

    timeout: float = Field(default=300.0, gt=0, description="Per-request timeout in seconds")


class RagCoreConfig(BaseModel):
    """Root configuration model."""

    app_root: str = Field(
        default_factory=os.getcwd,
        description="Root directory used to resolve relative embedded-disk store paths",
    )
    logging: Dict[str, Any] = Field(
        default_factory=dict, description="Logging section, see logging_config.DEFAULT_LOGGING_CONFIG"
    )
    http: HTTPConfig = Field(default_factory=HTTPConfig)

    @field_validator("app_root")
    @classmethod
    def expand_app_root(cls, v: str) -> str:
        """Expand ``~`` and make the root absolute."""
        return str(Path(os.path.expanduser(v)).resolve())


# =============================================================================
# LOADING
# =============================================================================


def load_config(
    config_path: Optional[Path | str] = None,
    config_dict: Optional[Dict[str, Any]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> RagCoreConfig:
    """
    Load configuration with precedence handling.

    Precedence (lowest to highest):
        1. Model defaults
        2. TOML config file (if provided; a ``[ragcore]`` table is used when present)
        3. Config dictionary (if provided)
        4. Environment variables (RAGCORE__*)
        5. Runtime overrides (if provided)

    Returns:
        RagCoreConfig instance. An invalid merged configuration is logged
        and replaced by the defaults.
    """
    merged_config: Dict[str, Any] = {}

    if config_path is not None:
        try:
            with open(config_path, "rb") as f:
                full_config = tomllib.load(f)
            section = full_config.get("ragcore", full_config)
            merged_config = _deep_merge(merged_config, section)
            logger.debug(f"Loaded ragcore config from {config_path}")
        except FileNotFoundError:
            logger.warning(f"Config file not found: {config_path}")
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning(f"Failed to load ragcore config from {config_path}: {e}")

    if config_dict is not None:
        merged_config = _deep_merge(merged_config, config_dict)

    merged_config = _apply_env_overrides(merged_config)

    if overrides is not None:
        merged_config = _deep_merge(merged_config, overrides)

    try:
        return RagCoreConfig(**merged_config)
    except ValueError as e:
        logger.error(f"Invalid ragcore configuration: {e}")
        logger.warning("Using default configuration")
        return RagCoreConfig()


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply ``RAGCORE__<SECTION>__<KEY>`` environment overrides.

    A single segment (``RAGCORE__APP_ROOT``) sets a top-level key.
    """
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        path_parts = key[len(ENV_PREFIX):].lower().split("__")
        if not path_parts or not path_parts[0]:
            continue

        current = config
        for part in path_parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]
        current[path_parts[-1]] = _convert_env_value(value)

    return config


def _convert_env_value(value: str) -> Any:
    """Convert an environment string to bool, int, float or str."""
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value


def resolve_env(value: Any) -> Any:
    """
    Resolve a ``$ENV.NAME`` reference against the environment.

    Non-string values and plain strings are returned unchanged; an unset
    variable resolves to an empty string.
    """
    if isinstance(value, str) and value.startswith("$ENV."):
        return os.environ.get(value[len("$ENV."):], "")
    return value


_config: RagCoreConfig | None = None


def get_config() -> RagCoreConfig:
    """Return the process configuration, loading defaults on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: RagCoreConfig | None) -> None:
    """Install (or with None, reset) the process configuration."""
    global _config
    _config = config
