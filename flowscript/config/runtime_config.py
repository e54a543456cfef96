"""Runtime configuration for the flow script parser.

Provides centralized access to parser tunables.
Environment variables take precedence over YAML config.

Usage:
    from flowscript.config.runtime_config import get_column_tolerance, get_hash_range

    tolerance = get_column_tolerance()  # Returns 5 unless overridden
    base, span = get_hash_base(), get_hash_range()
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).parent / "parser.yaml"
_cached_config: Optional[Dict[str, Any]] = None


def _load_config() -> Dict[str, Any]:
    """Load parser.yaml configuration, with caching."""
    global _cached_config
    if _cached_config is not None:
        return _cached_config

    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            _cached_config = yaml.safe_load(f) or _default_config()
    else:
        _cached_config = _default_config()

    return _cached_config


def _default_config() -> Dict[str, Any]:
    """Return default configuration if parser.yaml doesn't exist."""
    return {
        "version": "1.0",
        "workflow": {"column_tolerance": 5},
        "locator": {"variable_line_tolerance": 2},
        "dependency_graph": {"hash_base": 100000, "hash_range": 900000},
    }


def reset_config() -> None:
    """Reset cached config (for testing)."""
    global _cached_config
    _cached_config = None


def _get_int(section: str, key: str, env_var: str, minimum: int) -> int:
    """Resolve an integer setting.

    Precedence (highest to lowest):
    1. Environment variable
    2. Config file value
    3. Built-in default

    Invalid values are logged and skipped.
    """
    default = _default_config()[section][key]

    env_value = os.environ.get(env_var)
    if env_value is not None:
        try:
            value = int(env_value)
            if value >= minimum:
                return value
            logger.warning("%s=%s is below minimum %d; ignoring", env_var, env_value, minimum)
        except ValueError:
            logger.warning("%s=%r is not an integer; ignoring", env_var, env_value)

    config_value = _load_config().get(section, {}).get(key)
    if config_value is not None:
        if isinstance(config_value, int) and config_value >= minimum:
            return config_value
        logger.warning(
            "Config '%s.%s' has invalid value %r; using default %d",
            section,
            key,
            config_value,
            default,
        )

    return default


def get_column_tolerance() -> int:
    """Column slack when matching workflow statements to located bubbles."""
    return _get_int("workflow", "column_tolerance", "FLOWSCRIPT_COLUMN_TOLERANCE", 0)


def get_variable_line_tolerance() -> int:
    """Line slack when matching a bubble declarator to its scope variable."""
    return _get_int("locator", "variable_line_tolerance", "FLOWSCRIPT_VARIABLE_LINE_TOLERANCE", 0)


def get_hash_base() -> int:
    """Smallest synthetic dependency node id."""
    return _get_int("dependency_graph", "hash_base", "FLOWSCRIPT_HASH_BASE", 1)


def get_hash_range() -> int:
    """Width of the synthetic dependency node id range."""
    return _get_int("dependency_graph", "hash_range", "FLOWSCRIPT_HASH_RANGE", 1)
