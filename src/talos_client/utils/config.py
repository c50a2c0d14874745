"""
Configuration utilities for loading and merging updater settings.
"""

from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from ..exceptions import ConfigurationError
from ..models import UpdaterConfig


def load_config_file(path: str) -> Dict[str, Any]:
    """
    Load updater settings from a YAML file.

    Args:
        path: Path to the YAML configuration file

    Returns:
        Dict[str, Any]: Mapping of UpdaterConfig field names to values

    Raises:
        ConfigurationError: If the file is missing, malformed or has unknown keys
    """
    config_path = Path(path).expanduser()
    try:
        with open(config_path, "r") as file:
            values = yaml.safe_load(file)
    except FileNotFoundError:
        raise ConfigurationError(f"Config file not found at path: {config_path}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Error parsing config file {config_path}: {e}")

    if values is None:
        return {}
    if not isinstance(values, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    unknown = sorted(set(values) - set(UpdaterConfig.model_fields))
    if unknown:
        raise ConfigurationError(
            f"Unknown keys in {config_path}: {', '.join(unknown)}. "
            f"Available keys: {', '.join(UpdaterConfig.model_fields)}"
        )
    return values


def build_updater_config(
    file_values: Optional[Mapping[str, Any]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> UpdaterConfig:
    """Merge config file values with command line overrides; None overrides are ignored."""
    merged: Dict[str, Any] = dict(file_values or {})
    merged.update({key: value for key, value in (overrides or {}).items() if value is not None})

    missing = [key for key in ("node", "tag") if not merged.get(key)]
    if missing:
        raise ConfigurationError(
            "missing required settings: " + " and ".join(f"--{key}" for key in missing) + " are required"
        )

    try:
        return UpdaterConfig(**merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}")
