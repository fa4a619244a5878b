"""Engine settings."""

from .models import EngineSettings
from .parser import ConfigValidationError, load_settings, parse_settings

__all__ = [
    "EngineSettings",
    "ConfigValidationError",
    "load_settings",
    "parse_settings",
]
