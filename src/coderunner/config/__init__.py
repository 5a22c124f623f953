"""Static controller configuration, loaded once at start-up."""

from coderunner.config.loader import SettingsLoader, load_settings
from coderunner.config.models import (
    ControllerSettings,
    DockerSettings,
    LocalSettings,
    TelemetrySettings,
)

__all__ = [
    "ControllerSettings",
    "DockerSettings",
    "LocalSettings",
    "SettingsLoader",
    "TelemetrySettings",
    "load_settings",
]
