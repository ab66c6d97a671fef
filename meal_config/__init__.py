"""
Business configuration for the meal-benefit engine.

Public API:
    get_active_config() -> BusinessConfig
    reset_active_config()
    BusinessConfig, load_business_config, parse_cutoff_time

Engines never call ``get_active_config()``; they take the configuration as
a parameter.  Services fall back to it when none is injected.
"""

from __future__ import annotations

import threading

from meal_config.loader import load_business_config
from meal_config.schema import BusinessConfig, parse_cutoff_time

_active: BusinessConfig | None = None
_lock = threading.Lock()


def get_active_config() -> BusinessConfig:
    """Return the process-wide configuration, loading the defaults once."""
    global _active
    with _lock:
        if _active is None:
            _active = load_business_config()
        return _active


def set_active_config(config: BusinessConfig) -> None:
    """Install ``config`` as the process-wide configuration."""
    global _active
    with _lock:
        _active = config


def reset_active_config() -> None:
    """Forget the cached configuration. FOR TESTING ONLY."""
    global _active
    with _lock:
        _active = None


__all__ = [
    "BusinessConfig",
    "get_active_config",
    "load_business_config",
    "parse_cutoff_time",
    "reset_active_config",
    "set_active_config",
]
