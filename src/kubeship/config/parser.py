"""YAML settings parser."""

import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from .models import EngineSettings

# Environment variables that override settings loaded from file
ENV_OVERRIDES = {
    "KUBESHIP_NAMESPACE": "namespace",
    "KUBESHIP_MAX_HISTORY": "max_history",
}


class ConfigValidationError(Exception):
    """Exception raised when settings validation fails."""

    def __init__(self, message: str, errors: Optional[List[Dict]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(self.message)

    def __str__(self) -> str:
        """Format validation errors for display."""
        if not self.errors:
            return self.message

        error_lines = [self.message, ""]
        for error in self.errors:
            location = " -> ".join(str(loc) for loc in error.get("loc", []))
            msg = error.get("msg", "Unknown error")
            error_lines.append(f"  - {location}: {msg}")

        return "\n".join(error_lines)


def apply_env_overrides(data: Dict, environ: Optional[Mapping[str, str]] = None) -> Dict:
    """Overlay KUBESHIP_* environment variables on raw settings.

    Args:
        data: Raw settings mapping
        environ: Environment to read, defaults to os.environ

    Returns:
        New mapping with overrides applied
    """
    environ = os.environ if environ is None else environ
    merged = dict(data)
    for variable, key in ENV_OVERRIDES.items():
        value = environ.get(variable)
        if value not in (None, ""):
            merged[key] = value
    return merged


def parse_settings(data: Optional[Dict], environ: Optional[Mapping[str, str]] = None) -> EngineSettings:
    """Validate a raw settings mapping.

    Raises:
        ConfigValidationError: If any setting is invalid
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigValidationError("Settings must be a mapping")

    # Settings may be nested under a top-level "kubeship" key
    if "kubeship" in data and isinstance(data["kubeship"], dict):
        data = data["kubeship"]

    data = apply_env_overrides(data, environ)

    try:
        return EngineSettings(**data)
    except ValidationError as e:
        errors = [{"loc": list(error["loc"]), "msg": error["msg"]} for error in e.errors()]
        raise ConfigValidationError(
            f"Settings validation failed with {len(errors)} error(s)", errors
        )


def load_settings(
    config_path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None
) -> EngineSettings:
    """Load and validate settings from a YAML file.

    Args:
        config_path: Path to the settings file; None uses defaults
        environ: Environment for overrides, defaults to os.environ

    Returns:
        Validated settings

    Raises:
        ConfigValidationError: If settings are invalid
        FileNotFoundError: If the settings file doesn't exist
    """
    if config_path is None:
        return parse_settings({}, environ)

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Failed to parse YAML: {e}")

    return parse_settings(data, environ)
