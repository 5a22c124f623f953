"""Data models for submissions and raw execution results."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExecutionState(str, Enum):
    """Lifecycle of one command inside a sandbox context."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    KILLED = "killed"

    @property
    def terminal(self) -> bool:
        return self in (ExecutionState.COMPLETED, ExecutionState.TIMED_OUT, ExecutionState.KILLED)


class Phase(str, Enum):
    """Which command of a launch plan produced a result."""

    COMPILE = "compile"
    RUN = "run"


class ResourceLimit(str, Enum):
    """Resource ceilings whose breach interrupts a submission."""

    MEMORY = "memory"
    PROCESSES = "processes"
    CPU = "cpu"
    FILE_SIZE = "file_size"


class Submission(BaseModel):
    """A request to execute one source file in a language sandbox."""

    model_config = ConfigDict(frozen=True)

    language: str = Field(..., min_length=1, description="Declared language identifier.")
    source: bytes = Field(..., description="Source code.")
    stdin: bytes | None = Field(default=None, description="Optional standard input payload.")
    timeout: float | None = Field(
        default=None,
        gt=0,
        description="Caller timeout override; clamped to the profile ceiling.",
    )

    @field_validator("source", "stdin", mode="before")
    @classmethod
    def _encode_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.encode("utf-8")
        return value

    def effective_timeout(self, ceiling: float) -> float:
        """Return ``min(ceiling, self.timeout)``."""
        if self.timeout is None:
            return ceiling
        return min(ceiling, self.timeout)


class RawResult(BaseModel):
    """What the runner observed for one command, before classification."""

    model_config = ConfigDict(frozen=True)

    state: ExecutionState
    phase: Phase = Phase.RUN
    exit_code: int | None = Field(default=None, description="Exit status on normal exit.")
    signal: int | None = Field(default=None, description="Terminating signal number, if any.")
    stdout: bytes = b""
    stderr: bytes = b""
    stdout_truncated: bool = False
    stderr_truncated: bool = False
    elapsed: float = Field(default=0.0, ge=0, description="Wall-clock seconds.")
    timeout: float = Field(default=0.0, ge=0, description="Effective deadline in seconds.")
    forced: bool = Field(default=False, description="Terminated by the controller.")
    limit_breach: ResourceLimit | None = None

    @property
    def truncated(self) -> bool:
        return self.stdout_truncated or self.stderr_truncated
