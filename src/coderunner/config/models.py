"""Pydantic models for the controller settings file."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from coderunner.utils.sizes import parse_size


class TelemetrySettings(BaseModel):
    """Optional telemetry configuration."""

    enabled: bool = False
    otlp_endpoint: str | None = None
    export_to_console: bool = False


class DockerSettings(BaseModel):
    """Options for the Docker backend."""

    binary: str = Field(default="docker", description="Docker CLI executable.")
    cpu_shares: int = Field(default=512, gt=0, description="Relative CPU weight (1024 = one CPU).")
    network_enabled: bool = Field(default=False, description="Allow network access in containers.")
    read_only: bool = Field(default=True, description="Mount the image root filesystem read-only.")
    tmpfs_size: str = Field(default="64m", description="Size of the writable workdir and /tmp mounts.")
    command_timeout: float = Field(
        default=30.0, gt=0, description="Ceiling for docker CLI housekeeping calls."
    )


class LocalSettings(BaseModel):
    """Options for the local (process-level) backend."""

    base_dir: Path | None = Field(default=None, description="Parent of per-context directories.")
    monitor_interval: float = Field(default=0.05, gt=0, description="Resource poll interval (s).")
    max_file_size: int = Field(default=16 * 1024 * 1024, gt=0, description="RLIMIT_FSIZE in bytes.")
    max_open_files: int = Field(default=256, gt=0, description="RLIMIT_NOFILE.")
    adopt_orphans: bool = Field(
        default=True,
        description="Become a child subreaper (Linux) so processes that leave their session stay reachable.",
    )

    @field_validator("max_file_size", mode="before")
    @classmethod
    def _parse_file_size(cls, value: int | str) -> int:
        return parse_size(value)


class ControllerSettings(BaseModel):
    """Top-level settings parsed from YAML."""

    backend: Literal["docker", "local"] = "docker"
    max_output_bytes: int = Field(default=64 * 1024, gt=0, description="Capture cap per stream.")
    enabled_languages: list[str] | None = None
    profiles: dict[str, dict[str, Any]] = Field(default_factory=dict)
    docker: DockerSettings = Field(default_factory=DockerSettings)
    local: LocalSettings = Field(default_factory=LocalSettings)
    telemetry: TelemetrySettings | None = None

    @field_validator("max_output_bytes", mode="before")
    @classmethod
    def _parse_output_cap(cls, value: int | str) -> int:
        return parse_size(value)
