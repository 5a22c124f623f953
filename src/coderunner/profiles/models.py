"""Data models for language execution profiles."""

from __future__ import annotations

import re
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from coderunner.errors import InvalidSubmissionError
from coderunner.utils.sizes import parse_size

_MiB = 1024 * 1024


class PrivilegeLevel(str, Enum):
    """Identity a sandboxed submission runs under.

    Neither level is administrative: both run as a non-root uid/gid, and
    ``RESTRICTED`` additionally drops every Linux capability.
    """

    UNPRIVILEGED = "unprivileged"
    RESTRICTED = "restricted"


class LaunchPlan(BaseModel):
    """Concrete file name and argv for one submission under one profile."""

    model_config = ConfigDict(frozen=True)

    source_name: str
    compile_command: list[str] | None = None
    run_command: list[str]


class ExecutionProfile(BaseModel):
    """Fixed execution envelope for one supported language.

    Command templates may reference ``{source}`` (the source file name) and
    ``{main_class}`` (captured by ``main_class_pattern``).
    """

    model_config = ConfigDict(frozen=True)

    language: str = Field(..., description="Unique language identifier (lower-case).")
    display_name: str = Field(default="", description="Human-readable name.")
    aliases: tuple[str, ...] = Field(default=(), description="Alternative identifiers.")
    image: str = Field(..., description="Container image providing the runtime.")
    source_name: str = Field(..., description="Source file name template.")
    main_class_pattern: str | None = Field(
        default=None,
        description="Regex whose first group names the entry class (e.g. Java).",
    )
    compile_command: tuple[str, ...] | None = Field(
        default=None, description="Compile argv template, if the language compiles."
    )
    run_command: tuple[str, ...] = Field(..., description="Entrypoint argv template.")
    memory_limit: int = Field(default=128 * _MiB, gt=0, description="Memory ceiling in bytes.")
    timeout: float = Field(default=10.0, gt=0, description="Wall-clock ceiling in seconds.")
    compile_timeout: float = Field(default=30.0, gt=0, description="Compile phase ceiling in seconds.")
    max_processes: int = Field(default=50, gt=0, description="Process-count ceiling.")
    privilege: PrivilegeLevel = Field(default=PrivilegeLevel.RESTRICTED)
    run_as_uid: int = Field(default=1000, description="Numeric uid submissions run as.")
    run_as_gid: int = Field(default=1000, description="Numeric gid submissions run as.")
    run_as_user: str = Field(default="coderunner", description="User name inside the image.")
    workdir: str = Field(default="/app", description="Working directory inside the sandbox.")
    env: tuple[tuple[str, str], ...] = Field(
        default=(), description="Fixed extra environment as (name, value) pairs."
    )
    stderr_filters: tuple[str, ...] = Field(
        default=(), description="Regexes for runtime noise lines removed from stderr."
    )
    memory_error_patterns: tuple[str, ...] = Field(
        default=(), description="Substrings in stderr that indicate memory exhaustion."
    )
    limit_address_space: bool = Field(
        default=True,
        description="Cap the address space at the memory ceiling (local backend only).",
    )

    @field_validator("language")
    @classmethod
    def _normalise_language(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            msg = "language must not be empty"
            raise ValueError(msg)
        return value

    @field_validator("aliases")
    @classmethod
    def _normalise_aliases(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(alias.strip().lower() for alias in value if alias.strip())

    @field_validator("env", mode="before")
    @classmethod
    def _freeze_env(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return tuple(value.items())
        return value

    @field_serializer("env")
    def _dump_env(self, env: tuple[tuple[str, str], ...]) -> dict[str, str]:
        return dict(env)

    @field_validator("memory_limit", mode="before")
    @classmethod
    def _parse_memory(cls, value: int | str) -> int:
        return parse_size(value)

    @field_validator("run_command")
    @classmethod
    def _require_entrypoint(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            msg = "run_command must not be empty"
            raise ValueError(msg)
        return value

    @model_validator(mode="after")
    def _forbid_administrative_identity(self) -> ExecutionProfile:
        if self.run_as_uid <= 0 or self.run_as_gid <= 0:
            msg = f"profile {self.language!r} must run as a non-root uid/gid"
            raise ValueError(msg)
        if self.run_as_user == "root":
            msg = f"profile {self.language!r} must not run as root"
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def _check_templates(self) -> ExecutionProfile:
        templates = [self.source_name, *self.run_command, *(self.compile_command or ())]
        if not self.main_class_pattern and any("{main_class}" in t for t in templates):
            msg = f"profile {self.language!r} uses {{main_class}} without main_class_pattern"
            raise ValueError(msg)
        if "/" in self.source_name:
            msg = f"profile {self.language!r} source_name must be a bare file name"
            raise ValueError(msg)
        return self

    @property
    def identifiers(self) -> tuple[str, ...]:
        """Canonical identifier followed by aliases."""
        return (self.language, *self.aliases)

    def launch_plan(self, source: bytes) -> LaunchPlan:
        """Resolve file name and commands for *source*.

        Raises:
            InvalidSubmissionError: If the source is empty or the profile's
                entry class cannot be found.
        """
        if not source.strip():
            raise InvalidSubmissionError("source is empty")

        variables: dict[str, str] = {}
        if self.main_class_pattern:
            text = source.decode("utf-8", errors="replace")
            match = re.search(self.main_class_pattern, text)
            if match is None:
                raise InvalidSubmissionError(
                    f"{self.display_name or self.language} code must contain a public class"
                )
            variables["main_class"] = match.group(1)

        source_name = self.source_name.format(**variables)
        variables["source"] = source_name

        compile_command = None
        if self.compile_command:
            compile_command = [part.format(**variables) for part in self.compile_command]

        return LaunchPlan(
            source_name=source_name,
            compile_command=compile_command,
            run_command=[part.format(**variables) for part in self.run_command],
        )
