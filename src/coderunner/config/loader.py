"""Settings loading for the sandbox controller."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from coderunner.config.models import ControllerSettings
from coderunner.errors import SettingsError


class SettingsLoader:
    """Load and validate a settings YAML file into :class:`ControllerSettings`."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def load(self) -> ControllerSettings:
        """Read YAML, interpolate env vars, and validate.

        Environment variables in the form ``${VAR}`` or ``$VAR`` are expanded
        using :func:`os.path.expandvars` before YAML parsing.  An empty file
        yields the default settings.

        Raises:
            SettingsError: On read errors, YAML parse errors or schema
                validation failures.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise SettingsError(f"Cannot read {self._path}: {exc}") from exc

        expanded = os.path.expandvars(raw)

        try:
            data: Any = yaml.safe_load(expanded)
        except yaml.YAMLError as exc:
            raise SettingsError(f"YAML parse error: {exc}") from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise SettingsError("Settings YAML must be a mapping")

        try:
            return ControllerSettings.model_validate(data)
        except ValidationError as exc:
            raise SettingsError(str(exc)) from exc


def load_settings(path: str | Path | None = None) -> ControllerSettings:
    """Load settings from *path*, or return defaults when *path* is ``None``."""
    if path is None:
        return ControllerSettings()
    return SettingsLoader(Path(path)).load()
