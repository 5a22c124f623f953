"""Canonical outcome taxonomy returned by the sandbox controller.

``Outcome`` is a union tagged by ``kind``; exactly one is produced per
``execute`` call.  Failing submissions are ordinary values here, not
exceptions.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from coderunner.execution.models import Phase, ResourceLimit


class _OutcomeBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class Success(_OutcomeBase):
    """Normal exit with status 0."""

    kind: Literal["success"] = "success"
    stdout: bytes = b""
    stderr: bytes = b""
    exit_code: int = 0
    stdout_truncated: bool = False
    stderr_truncated: bool = False
    elapsed: float = 0.0

    @property
    def truncated(self) -> bool:
        return self.stdout_truncated or self.stderr_truncated


class RuntimeFailure(_OutcomeBase):
    """Non-zero exit (or uncontrolled signal) in the compile or run phase."""

    kind: Literal["runtime_failure"] = "runtime_failure"
    exit_code: int | None = None
    signal: int | None = None
    stderr: bytes = b""
    stdout: bytes = b""
    phase: Phase = Phase.RUN
    stdout_truncated: bool = False
    stderr_truncated: bool = False
    elapsed: float = 0.0

    @property
    def truncated(self) -> bool:
        return self.stdout_truncated or self.stderr_truncated


class Timeout(_OutcomeBase):
    """The effective deadline elapsed before the process exited."""

    kind: Literal["timeout"] = "timeout"
    elapsed: float
    limit: float = Field(default=0.0, description="Effective deadline in seconds.")
    phase: Phase = Phase.RUN
    stdout: bytes = b""
    stderr: bytes = b""


class ResourceLimitExceeded(_OutcomeBase):
    """A resource ceiling was breached and the submission was interrupted."""

    kind: Literal["resource_limit_exceeded"] = "resource_limit_exceeded"
    limit: ResourceLimit
    elapsed: float = 0.0
    phase: Phase = Phase.RUN
    stdout: bytes = b""
    stderr: bytes = b""


class ProvisioningFailure(_OutcomeBase):
    """No isolated context could be provided; nothing was executed."""

    kind: Literal["provisioning_failure"] = "provisioning_failure"
    reason: str


Outcome = Success | RuntimeFailure | Timeout | ResourceLimitExceeded | ProvisioningFailure
