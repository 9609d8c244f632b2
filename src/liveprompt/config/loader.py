"""Configuration loader with YAML and environment variable support.

This module reads settings from ~/.config/liveprompt/config.yaml and allows
environment variable overrides using the LIVEPROMPT_* prefix.

Environment variables:
- LIVEPROMPT_ENABLED: Override enabled ("1"/"true"/"yes" or "0"/"false"/"no")
- LIVEPROMPT_METADATA_FIELDS: Comma-separated metadata rows
- LIVEPROMPT_EXTRA_SECTIONS: Comma-separated outline sections
- LIVEPROMPT_OVERRIDE_SCOPE: Override capture scope (session or workspace)
- LIVEPROMPT_OVERRIDE_STORE_PATH: Workspace override store file
- LIVEPROMPT_PARITY_ENDPOINT: Override request log service URL
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from liveprompt.models.config import InspectorSettings
from liveprompt.utils.logging import get_logger


logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "liveprompt" / "config.yaml"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def load_settings(config_path: Optional[Path] = None) -> InspectorSettings:
    """Load settings from a YAML file with environment variable overrides.

    A missing file is not an error: defaults apply and environment variables
    fill in the rest.

    Args:
        config_path: Path to config file. If None, uses ~/.config/liveprompt/config.yaml

    Returns:
        Validated InspectorSettings object

    Raises:
        ValueError: If the file is not a YAML mapping or validation fails
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if config_path.exists():
        with config_path.open() as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(
                f"Configuration file must contain a mapping: {config_path}"
            )
        logger.info("config_loaded", path=str(config_path))
    else:
        data = {}

    data = _apply_env_overrides(data)

    # Pydantic validates the structure
    return InspectorSettings(**data)


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    """Apply LIVEPROMPT_* environment variable overrides.

    Args:
        data: Base configuration dictionary from YAML

    Returns:
        Configuration dictionary with environment overrides applied
    """
    data = dict(data)

    if env_enabled := os.getenv("LIVEPROMPT_ENABLED"):
        value = env_enabled.strip().lower()
        if value in _TRUE_VALUES:
            data["enabled"] = True
        elif value in _FALSE_VALUES:
            data["enabled"] = False
        else:
            logger.warning("config_env_ignored", variable="LIVEPROMPT_ENABLED", value=env_enabled)

    if env_fields := os.getenv("LIVEPROMPT_METADATA_FIELDS"):
        data["metadata_fields"] = _split_list(env_fields)

    if env_sections := os.getenv("LIVEPROMPT_EXTRA_SECTIONS"):
        data["extra_sections"] = _split_list(env_sections)

    if env_scope := os.getenv("LIVEPROMPT_OVERRIDE_SCOPE"):
        data["override_scope"] = env_scope.strip().lower()

    if env_store := os.getenv("LIVEPROMPT_OVERRIDE_STORE_PATH"):
        data["override_store_path"] = env_store

    if env_endpoint := os.getenv("LIVEPROMPT_PARITY_ENDPOINT"):
        data["parity_endpoint"] = env_endpoint

    return data


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]
