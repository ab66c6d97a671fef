"""
Configuration Loader (``meal_config.loader``).

Responsibility
--------------
Loads business configuration YAML files and parses them into
``meal_config.schema.BusinessConfig``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` / ``ValidationError`` from the schema.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from meal_config.schema import BusinessConfig
from meal_kernel.logging_config import get_logger

logger = get_logger("config.loader")

DEFAULTS_PATH = Path(__file__).parent / "defaults" / "business.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_business_config(path: Path | str | None = None) -> BusinessConfig:
    """Load ``BusinessConfig`` from ``path`` or the packaged defaults."""
    source = Path(path) if path is not None else DEFAULTS_PATH
    data = load_yaml_file(source)
    config = BusinessConfig.from_dict(data)
    logger.info(
        "business_config_loaded",
        extra={
            "path": str(source),
            "min_subscription_days": config.min_subscription_days,
            "max_freezes_per_week": config.max_freezes_per_week,
        },
    )
    return config
