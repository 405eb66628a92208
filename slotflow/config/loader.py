"""
Static configuration loader.

Reads a ``StaticConfig`` from a YAML or JSON file. Publishers usually
configure the tag from code or a config endpoint; files are convenient for
development, fixtures and tests.

Usage:
    config = load_static_config("config/ad-tag.yaml")
    tag.configure(config)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from slotflow.errors import ConfigurationError

from .schemas import StaticConfig

logger = logging.getLogger(__name__)


def _load_file(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        return yaml.safe_load(text)
    return json.loads(text)


def load_static_config(path: str | Path) -> StaticConfig:
    """
    Load and validate a static configuration.

    Args:
        path: YAML (``.yaml``/``.yml``) or JSON file

    Returns:
        The validated StaticConfig

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        data = _load_file(path)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to parse {path}: {e}") from e

    try:
        config = StaticConfig.model_validate(data or {})
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e

    logger.info(f"[config_loader] Loaded {len(config.slots)} slots from {path}")
    return config
