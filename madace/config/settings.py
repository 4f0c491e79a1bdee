"""Runtime settings for the MADACE core.

Environment variables take precedence over settings.yaml, which takes
precedence over built-in defaults.

Usage:
    from madace.config.settings import get_log_level, get_template_max_depth

    level = get_log_level()            # "INFO" unless MADACE_LOG_LEVEL is set
    depth = get_template_max_depth()   # 5 unless MADACE_TEMPLATE_MAX_DEPTH is set
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"
_cached_settings: Optional[Dict[str, Any]] = None

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _default_settings() -> Dict[str, Any]:
    return {
        "log_level": "INFO",
        "template_max_depth": 5,
        "default_module": "mam",
    }


def _load_settings() -> Dict[str, Any]:
    """Load settings.yaml merged over defaults, with caching."""
    global _cached_settings
    if _cached_settings is not None:
        return _cached_settings

    settings = _default_settings()
    if _SETTINGS_PATH.exists():
        with open(_SETTINGS_PATH, encoding="utf-8") as f:
            settings.update(yaml.safe_load(f) or {})
    _cached_settings = settings
    return _cached_settings


def reset_settings() -> None:
    """Reset cached settings (for testing)."""
    global _cached_settings
    _cached_settings = None


def get_log_level() -> str:
    """Get the log level name.

    Precedence: MADACE_LOG_LEVEL, settings.yaml, "INFO".
    """
    value = os.environ.get("MADACE_LOG_LEVEL") or str(_load_settings()["log_level"])
    level = value.upper()
    if level not in VALID_LOG_LEVELS:
        logger.warning(
            "Invalid log level '%s' (valid: %s). Falling back to INFO.",
            value,
            ", ".join(VALID_LOG_LEVELS),
        )
        return "INFO"
    return level


def get_template_max_depth() -> int:
    """Get the maximum number of nested template rendering passes."""
    env_value = os.environ.get("MADACE_TEMPLATE_MAX_DEPTH")
    if env_value:
        try:
            depth = int(env_value)
        except ValueError:
            logger.warning("Invalid MADACE_TEMPLATE_MAX_DEPTH '%s', using settings", env_value)
        else:
            if depth >= 1:
                return depth
            logger.warning("MADACE_TEMPLATE_MAX_DEPTH must be >= 1, got %d", depth)
    return int(_load_settings()["template_max_depth"])


def get_default_module() -> str:
    """Get the module used when none is named."""
    value = os.environ.get("MADACE_DEFAULT_MODULE") or str(_load_settings()["default_module"])
    return value.strip().lower()
