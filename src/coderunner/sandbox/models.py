"""Data models for the sandbox subsystem."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from coderunner.profiles.models import ExecutionProfile


def _new_context_id() -> str:
    return uuid.uuid4().hex[:16]


class SandboxContext(BaseModel):
    """One acquired, disposable isolated environment.

    Owned by exactly one ``execute`` call and bound to one profile.  The
    backend fills in either ``host_dir`` (local) or ``container`` (Docker).
    """

    id: str = Field(default_factory=_new_context_id)
    profile: ExecutionProfile
    workdir: str = Field(..., description="Working directory as seen by the submission.")
    backend: str = Field(..., description="Name of the provisioner that created the context.")
    host_dir: Path | None = Field(default=None, description="Host directory (local backend).")
    container: str | None = Field(default=None, description="Container name (Docker backend).")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    process_groups: set[int] = Field(default_factory=set, description="Live process group ids.")
    processes: dict[int, float] = Field(
        default_factory=dict, description="Descendant pid -> create time seen by the monitor."
    )
    released: bool = False
