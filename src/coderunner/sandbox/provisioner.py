"""IsolationProvisioner protocol — the common interface for sandbox backends."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from coderunner.execution.models import Phase, ResourceLimit
    from coderunner.profiles.models import ExecutionProfile
    from coderunner.sandbox.models import SandboxContext


@runtime_checkable
class IsolationProvisioner(Protocol):
    """Acquires, drives and tears down isolated execution contexts.

    ``acquire()`` returns a context disjoint from every other live context;
    ``release()`` must be idempotent and must never raise.
    """

    name: str

    async def acquire(self, profile: ExecutionProfile) -> SandboxContext:
        """Create a fresh context for *profile* (raises ``ProvisioningError``)."""
        ...

    async def release(self, context: SandboxContext) -> None:
        """Kill remaining processes and discard all context-local state."""
        ...

    async def write_file(self, context: SandboxContext, name: str, data: bytes) -> None:
        """Write *data* to *name* inside the context's working directory."""
        ...

    async def spawn(
        self,
        context: SandboxContext,
        argv: list[str],
        *,
        env: dict[str, str],
        phase: Phase,
    ) -> asyncio.subprocess.Process:
        """Start *argv* inside the context with piped stdio."""
        ...

    async def watch(
        self, context: SandboxContext, process: asyncio.subprocess.Process
    ) -> ResourceLimit | None:
        """Monitor *process*; return the breached limit, or ``None`` once it exits."""
        ...

    async def inspect_exit(self, context: SandboxContext, returncode: int) -> ResourceLimit | None:
        """Attribute a natural exit to a resource limit, if the backend can tell."""
        ...

    async def finish(self, context: SandboxContext, process: asyncio.subprocess.Process) -> None:
        """Called once *process* has been reaped; sweep anything it left running."""
        ...

    async def terminate(self, context: SandboxContext) -> None:
        """Forcibly kill every process running in the context."""
        ...

    async def check_health(self) -> tuple[bool, str]:
        """Return ``(healthy, detail)`` for this backend."""
        ...

    async def cleanup(self) -> None:
        """Release every context this provisioner still tracks."""
        ...


@asynccontextmanager
async def provisioned(
    provisioner: IsolationProvisioner, profile: ExecutionProfile
) -> AsyncIterator[SandboxContext]:
    """Acquire a context for *profile* and release it on every exit path.

    Release is shielded so that a second cancellation of the caller cannot
    abandon teardown half-way.
    """
    context = await provisioner.acquire(profile)
    try:
        yield context
    finally:
        await asyncio.shield(provisioner.release(context))
