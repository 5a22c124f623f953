"""LocalProvisioner — process-level sandboxes on the host.

This is a development/fallback backend.  Each context gets a private
``0700`` directory, every command runs in its own session (process group),
privileges are dropped to the profile's uid/gid when the controller runs as
root, rlimits are applied before ``exec``, and a ``psutil`` monitor polls
the resident memory and process count of the command's process tree.

Every command carries a ``CODERUNNER_CONTEXT`` marker in its environment.
On Linux the controller becomes a child subreaper, so a process that leaves
its session (``setsid``, double fork) is re-parented to the controller and
found again by that marker when the context is swept.

There are no namespaces: submissions still see the host filesystem and
process table.  Emits ``warnings.warn`` and ``logger.warning`` on
construction.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import os
import shutil
import signal
import sys
import tempfile
import time
import uuid
import warnings
from collections.abc import Callable
from pathlib import Path
from typing import Any

import psutil

from coderunner.config.models import LocalSettings
from coderunner.errors import ExecutionError, ProvisioningError
from coderunner.execution.models import Phase, ResourceLimit
from coderunner.profiles.models import ExecutionProfile
from coderunner.sandbox.models import SandboxContext

logger = logging.getLogger(__name__)

_WARNING_MSG = (
    "LocalProvisioner isolates submissions with process groups, private directories "
    "and rlimits only (no namespaces). Use DockerProvisioner for untrusted workloads."
)

CONTEXT_ENV = "CODERUNNER_CONTEXT"

_PR_SET_CHILD_SUBREAPER = 36

# Time allowed for swept processes to exit and be reaped.
_SWEEP_GRACE = 2.0


class LocalProvisioner:
    """Host-local sandbox backend.

    Satisfies the :class:`~coderunner.sandbox.provisioner.IsolationProvisioner`
    protocol.
    """

    name = "local"

    def __init__(self, settings: LocalSettings | None = None) -> None:
        self._settings = settings or LocalSettings()
        self._live: dict[str, SandboxContext] = {}
        warnings.warn(_WARNING_MSG, stacklevel=2)
        logger.warning(_WARNING_MSG)
        if self._settings.adopt_orphans and sys.platform.startswith("linux"):
            _become_subreaper()

    @property
    def live_contexts(self) -> list[SandboxContext]:
        """Contexts acquired and not yet released."""
        return list(self._live.values())

    @staticmethod
    def _drops_privileges() -> bool:
        return os.geteuid() == 0

    async def acquire(self, profile: ExecutionProfile) -> SandboxContext:
        """Create a private working directory owned by the profile identity."""
        if os.name != "posix":
            raise ProvisioningError("local backend requires a POSIX host")

        context_id = uuid.uuid4().hex[:16]
        host_dir: Path | None = None
        try:
            host_dir = Path(
                tempfile.mkdtemp(prefix=f"coderunner-{context_id}-", dir=self._settings.base_dir)
            )
            if self._drops_privileges():
                os.chown(host_dir, profile.run_as_uid, profile.run_as_gid)
            os.chmod(host_dir, 0o700)
        except OSError as exc:
            if host_dir is not None:
                shutil.rmtree(host_dir, ignore_errors=True)
            raise ProvisioningError(f"Cannot create working directory: {exc}") from exc

        context = SandboxContext(
            id=context_id,
            profile=profile,
            workdir=str(host_dir),
            backend=self.name,
            host_dir=host_dir,
        )
        self._live[context.id] = context
        logger.debug("Acquired local context %s at %s", context.id, host_dir)
        return context

    async def release(self, context: SandboxContext) -> None:
        """Kill remaining process groups and delete the working directory."""
        if context.released:
            return
        context.released = True
        self._live.pop(context.id, None)

        await self.terminate(context)
        context.process_groups.clear()
        context.processes.clear()

        if context.host_dir is not None:
            try:
                await asyncio.to_thread(shutil.rmtree, context.host_dir)
            except OSError as exc:
                logger.warning("Context %s: could not remove %s: %s", context.id, context.host_dir, exc)
        logger.debug("Released local context %s", context.id)

    async def write_file(self, context: SandboxContext, name: str, data: bytes) -> None:
        """Write *data* into the context directory as the profile identity."""
        path = self._resolve(context, name)
        profile = context.profile
        try:
            await asyncio.to_thread(path.write_bytes, data)
            if self._drops_privileges():
                os.chown(path, profile.run_as_uid, profile.run_as_gid)
        except OSError as exc:
            raise ExecutionError(f"Cannot write {name}: {exc}") from exc

    async def spawn(
        self,
        context: SandboxContext,
        argv: list[str],
        *,
        env: dict[str, str],
        phase: Phase,
    ) -> asyncio.subprocess.Process:
        """Start *argv* in a new session inside the context directory."""
        profile = context.profile
        identity: dict[str, Any] = {}
        if self._drops_privileges():
            identity = {
                "user": profile.run_as_uid,
                "group": profile.run_as_gid,
                "extra_groups": [],
            }

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=context.host_dir,
                env={**env, CONTEXT_ENV: context.id},
                start_new_session=True,
                preexec_fn=self._limits(profile, phase),
                **identity,
            )
        except OSError as exc:
            raise ExecutionError(f"Failed to start {argv[0]}: {exc}") from exc

        context.process_groups.add(process.pid)
        logger.debug("Context %s: started %s (pid %d)", context.id, argv, process.pid)
        return process

    async def watch(
        self, context: SandboxContext, process: asyncio.subprocess.Process
    ) -> ResourceLimit | None:
        """Poll the process tree until it exits or breaches a ceiling."""
        profile = context.profile
        try:
            root = psutil.Process(process.pid)
        except psutil.NoSuchProcess:
            return None

        while process.returncode is None:
            try:
                tree = [root, *root.children(recursive=True)]
            except psutil.NoSuchProcess:
                return None

            rss = 0
            for proc in tree:
                with contextlib.suppress(psutil.NoSuchProcess, psutil.AccessDenied):
                    context.processes.setdefault(proc.pid, proc.create_time())
                    rss += proc.memory_info().rss

            if rss > profile.memory_limit:
                logger.warning(
                    "Context %s: resident memory %d exceeds ceiling %d",
                    context.id, rss, profile.memory_limit,
                )
                return ResourceLimit.MEMORY
            if len(tree) > profile.max_processes:
                logger.warning(
                    "Context %s: %d processes exceed ceiling %d",
                    context.id, len(tree), profile.max_processes,
                )
                return ResourceLimit.PROCESSES

            await asyncio.sleep(self._settings.monitor_interval)
        return None

    async def inspect_exit(self, context: SandboxContext, returncode: int) -> ResourceLimit | None:
        """Map rlimit signals (SIGXCPU, SIGXFSZ) to the breached limit."""
        if returncode == -signal.SIGXCPU:
            return ResourceLimit.CPU
        if returncode == -signal.SIGXFSZ:
            return ResourceLimit.FILE_SIZE
        return None

    async def finish(self, context: SandboxContext, process: asyncio.subprocess.Process) -> None:
        """Kill stragglers the reaped command left behind, in or out of its group."""
        self._kill_group(context, process.pid)
        await asyncio.to_thread(self._sweep, context)
        context.process_groups.discard(process.pid)

    async def terminate(self, context: SandboxContext) -> None:
        """SIGKILL every tracked process group and every marked process."""
        for pgid in list(context.process_groups):
            self._kill_group(context, pgid)
        await asyncio.to_thread(self._sweep, context)

    async def check_health(self) -> tuple[bool, str]:
        if os.name != "posix":
            return False, "local backend requires a POSIX host"
        if self._drops_privileges():
            identity = "running as root, dropping to profile uid/gid"
        else:
            identity = f"running as uid {os.geteuid()}"
        return True, f"local process isolation ready ({identity}, psutil {psutil.__version__})"

    async def cleanup(self) -> None:
        """Release all tracked contexts."""
        for context in list(self._live.values()):
            await self.release(context)

    @staticmethod
    def _kill_group(context: SandboxContext, pgid: int) -> None:
        try:
            os.killpg(pgid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except PermissionError as exc:
            logger.warning("Context %s: cannot kill process group %d: %s", context.id, pgid, exc)

    @staticmethod
    def _sweep(context: SandboxContext) -> None:
        """SIGKILL and reap every process that belongs to *context*.

        Candidates are the descendants the monitor recorded (matched on create
        time, so a reused pid is left alone) and any process re-parented to the
        controller that carries the context marker.  Commands started by
        :meth:`spawn` are reaped by asyncio and only killed here.
        """
        victims: dict[int, psutil.Process] = {}
        for pid, created in list(context.processes.items()):
            try:
                proc = psutil.Process(pid)
                if proc.create_time() == created:
                    victims[pid] = proc
                    continue
            except psutil.NoSuchProcess:
                pass
            del context.processes[pid]

        with contextlib.suppress(psutil.NoSuchProcess):
            for proc in psutil.Process().children(recursive=True):
                if proc.pid not in victims and _carries_marker(proc, context.id):
                    victims[proc.pid] = proc

        for proc in victims.values():
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                pass
            except psutil.AccessDenied as exc:
                logger.warning("Context %s: cannot kill pid %d: %s", context.id, proc.pid, exc)

        adopted = [proc for pid, proc in victims.items() if pid not in context.process_groups]
        if adopted:
            for proc in _reap(adopted, _SWEEP_GRACE):
                logger.warning("Context %s: pid %d survived the sweep", context.id, proc.pid)
        if victims:
            logger.debug("Context %s: swept %d process(es)", context.id, len(victims))

    @staticmethod
    def _resolve(context: SandboxContext, name: str) -> Path:
        if context.host_dir is None or not name or "/" in name or name in (".", ".."):
            raise ExecutionError(f"Invalid file name: {name!r}")
        return context.host_dir / name

    def _limits(self, profile: ExecutionProfile, phase: Phase) -> Callable[[], None]:
        """Build the ``preexec_fn`` applying rlimits in the child before ``exec``."""
        budget = profile.timeout if phase == Phase.RUN else profile.compile_timeout
        cpu_seconds = math.ceil(budget) + 1
        address_space = (
            profile.memory_limit if phase == Phase.RUN and profile.limit_address_space else None
        )
        file_size = self._settings.max_file_size
        open_files = self._settings.max_open_files

        def apply_limits() -> None:
            import resource

            _set_limit(resource.RLIMIT_CORE, 0)
            _set_limit(resource.RLIMIT_CPU, cpu_seconds, cpu_seconds + 1)
            _set_limit(resource.RLIMIT_FSIZE, file_size)
            _set_limit(resource.RLIMIT_NOFILE, open_files)
            if address_space is not None:
                _set_limit(resource.RLIMIT_AS, address_space)

        return apply_limits


def _carries_marker(proc: psutil.Process, context_id: str) -> bool:
    try:
        return proc.environ().get(CONTEXT_ENV) == context_id
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False


def _reap(procs: list[psutil.Process], timeout: float) -> list[psutil.Process]:
    """Wait for killed *procs* to die, reaping the ones re-parented to us.

    Returns the processes still alive after *timeout*.
    """
    me = os.getpid()
    deadline = time.monotonic() + timeout
    pending = procs
    while pending:
        alive = []
        for proc in pending:
            try:
                if not proc.is_running():
                    continue
                if proc.ppid() == me:
                    with contextlib.suppress(ChildProcessError):
                        os.waitpid(proc.pid, os.WNOHANG)
                    if not proc.is_running():
                        continue
                if proc.status() == psutil.STATUS_ZOMBIE and proc.ppid() != me:
                    continue
            except psutil.NoSuchProcess:
                continue
            except psutil.AccessDenied:
                pass
            alive.append(proc)
        pending = alive
        if not pending or time.monotonic() >= deadline:
            break
        time.sleep(0.01)
    return pending


def _become_subreaper() -> bool:
    """Mark the controller as child subreaper (``PR_SET_CHILD_SUBREAPER``)."""
    import ctypes

    libc = ctypes.CDLL(None, use_errno=True)
    if libc.prctl(_PR_SET_CHILD_SUBREAPER, 1, 0, 0, 0) != 0:
        errno = ctypes.get_errno()
        logger.warning("Cannot become a child subreaper: %s", os.strerror(errno))
        return False
    logger.debug("Controller is now a child subreaper")
    return True


def _set_limit(limit: int, soft: int, hard: int | None = None) -> None:
    """Lower *limit* to ``(soft, hard)`` without exceeding the inherited hard cap."""
    import resource

    if hard is None:
        hard = soft
    try:
        _, current_hard = resource.getrlimit(limit)
        if current_hard != resource.RLIM_INFINITY:
            soft = min(soft, current_hard)
            hard = min(hard, current_hard)
        resource.setrlimit(limit, (soft, hard))
    except (ValueError, OSError):
        pass
