"""DockerProvisioner — one ephemeral container per sandbox context.

Uses the ``docker`` CLI via subprocess (no docker-py dependency).

Each context:
1. ``docker create`` with the profile's memory ceiling, pids limit, CPU
   weight, non-root user, no network, no new privileges and a read-only
   root with private tmpfs mounts for the working directory and ``/tmp``.
2. ``docker start`` (the container idles on ``/bin/sh`` with stdin open).
3. Files are written and commands run with ``docker exec`` as the profile
   identity.
4. ``docker rm -f`` on release.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
import uuid

from coderunner.config.models import DockerSettings
from coderunner.errors import ExecutionError, ProvisioningError, SandboxError
from coderunner.execution.models import Phase, ResourceLimit
from coderunner.profiles.models import ExecutionProfile, PrivilegeLevel
from coderunner.sandbox.models import SandboxContext

logger = logging.getLogger(__name__)

# 128 + SIGKILL, as reported by the exec client.
_SIGKILL_STATUS = 137

# cgroup v2 first, then the v1 memory controller; both carry an oom_kill line.
_OOM_EVENTS_CMD = "cat /sys/fs/cgroup/memory.events /sys/fs/cgroup/memory/memory.oom_control 2>/dev/null"


class DockerProvisioner:
    """Ephemeral Docker container backend.

    Satisfies the :class:`~coderunner.sandbox.provisioner.IsolationProvisioner`
    protocol.
    """

    name = "docker"

    def __init__(self, settings: DockerSettings | None = None) -> None:
        self._settings = settings or DockerSettings()
        self._active_containers: dict[str, SandboxContext] = {}

    @property
    def live_contexts(self) -> list[SandboxContext]:
        return list(self._active_containers.values())

    async def acquire(self, profile: ExecutionProfile) -> SandboxContext:
        """Create and start a container for *profile*."""
        context_id = uuid.uuid4().hex[:16]
        container_name = f"coderunner-{profile.language}-{context_id}"
        context = SandboxContext(
            id=context_id,
            profile=profile,
            workdir=profile.workdir,
            backend=self.name,
            container=container_name,
        )

        try:
            await self._run_docker(self._build_create_command(container_name, profile))
            self._active_containers[container_name] = context
            await self._run_docker([self._settings.binary, "start", container_name])
        except SandboxError as exc:
            await self._remove_container(container_name)
            raise ProvisioningError(exc.detail) from exc

        logger.debug("Acquired container %s for %s", container_name, profile.language)
        return context

    async def release(self, context: SandboxContext) -> None:
        """Force-remove the context's container."""
        if context.released:
            return
        context.released = True
        if context.container is not None:
            await self._remove_container(context.container)
        logger.debug("Released container %s", context.container)

    async def write_file(self, context: SandboxContext, name: str, data: bytes) -> None:
        """Stream *data* into ``<workdir>/<name>`` through ``docker exec``."""
        if not name or "/" in name or name in (".", ".."):
            raise ExecutionError(f"Invalid file name: {name!r}")
        target = f"{context.workdir.rstrip('/')}/{name}"
        cmd = [
            *self._exec_prefix(context, interactive=True),
            "sh", "-c", f"cat > {shlex.quote(target)}",
        ]
        try:
            await self._run_docker(cmd, input=data, timeout=self._settings.command_timeout)
        except SandboxError as exc:
            raise ExecutionError(f"Cannot write {name}: {exc.detail}") from exc

    async def spawn(
        self,
        context: SandboxContext,
        argv: list[str],
        *,
        env: dict[str, str],
        phase: Phase,
    ) -> asyncio.subprocess.Process:
        """Run *argv* in the container; the exec client's stdio is the child's."""
        cmd = self._exec_prefix(context, interactive=True, env=env)
        cmd.extend(argv)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ExecutionError(f"Failed to run docker: {exc}") from exc
        logger.debug("Container %s: %s phase started %s", context.container, phase.value, argv)
        return process

    async def watch(
        self, context: SandboxContext, process: asyncio.subprocess.Process
    ) -> ResourceLimit | None:
        """The cgroup enforces the ceilings; nothing to poll."""
        await process.wait()
        return None

    async def inspect_exit(self, context: SandboxContext, returncode: int) -> ResourceLimit | None:
        """Report a memory breach for status 137 only if the cgroup OOM killer fired.

        A submission can exit with 137 or SIGKILL itself; without an OOM
        record that stays an ordinary runtime failure.
        """
        if returncode != _SIGKILL_STATUS or context.container is None:
            return None
        if await self._oom_killed(context):
            logger.warning("Container %s: command killed by the OOM killer", context.container)
            return ResourceLimit.MEMORY
        logger.info("Container %s: exit status 137 without an OOM kill", context.container)
        return None

    async def _oom_killed(self, context: SandboxContext) -> bool:
        inspected = await self._run_docker(
            [self._settings.binary, "inspect", "--format", "{{.State.OOMKilled}}", context.container or ""],
            ignore_errors=True,
            timeout=self._settings.command_timeout,
        )
        if inspected.stdout.lower() == "true":
            return True
        events = await self._run_docker(
            [*self._exec_prefix(context), "sh", "-c", _OOM_EVENTS_CMD],
            ignore_errors=True,
            timeout=self._settings.command_timeout,
        )
        return _oom_kill_count(events.stdout) > 0

    async def finish(self, context: SandboxContext, process: asyncio.subprocess.Process) -> None:
        """Nothing to sweep per command; the container is discarded on release."""

    async def terminate(self, context: SandboxContext) -> None:
        """Kill every process the sandbox user owns (all but the idle init)."""
        if context.container is None or context.released:
            return
        await self._run_docker(
            [*self._exec_prefix(context), "sh", "-c", "kill -9 -1"],
            ignore_errors=True,
            timeout=self._settings.command_timeout,
        )

    async def check_health(self) -> tuple[bool, str]:
        """Return (healthy, detail) for docker daemon availability."""
        try:
            result = await self._run_docker(
                [self._settings.binary, "info", "--format", "{{.ServerVersion}}"],
                timeout=self._settings.command_timeout,
            )
        except SandboxError as exc:
            return False, exc.detail or "docker daemon unavailable"
        version = result.stdout or "unknown"
        return True, f"docker daemon ready (server {version})"

    async def cleanup(self) -> None:
        """Remove all tracked containers."""
        for context in list(self._active_containers.values()):
            await self.release(context)

    def _build_create_command(self, container_name: str, profile: ExecutionProfile) -> list[str]:
        """Build the ``docker create`` command with the profile's envelope."""
        cfg = self._settings
        cmd: list[str] = [
            cfg.binary, "create",
            "--name", container_name,
            "--interactive",
            "--label", "coderunner.language=" + profile.language,
            "--user", f"{profile.run_as_uid}:{profile.run_as_gid}",
            "--workdir", profile.workdir,
            "--memory", str(profile.memory_limit),
            "--memory-swap", str(profile.memory_limit),
            "--pids-limit", str(profile.max_processes),
            "--cpu-shares", str(cfg.cpu_shares),
            "--security-opt", "no-new-privileges",
        ]

        if profile.privilege == PrivilegeLevel.RESTRICTED:
            cmd.extend(["--cap-drop", "ALL"])

        if not cfg.network_enabled:
            cmd.extend(["--network", "none"])

        if cfg.read_only:
            cmd.append("--read-only")
            cmd.extend(["--tmpfs", f"/tmp:rw,noexec,nosuid,size={cfg.tmpfs_size}"])

        # Private, writable and executable (compiled binaries) working directory.
        cmd.extend([
            "--tmpfs",
            f"{profile.workdir}:rw,exec,nosuid,size={cfg.tmpfs_size},"
            f"uid={profile.run_as_uid},gid={profile.run_as_gid},mode=0700",
        ])

        cmd.append(profile.image)
        cmd.append("/bin/sh")
        return cmd

    def _exec_prefix(
        self,
        context: SandboxContext,
        *,
        interactive: bool = False,
        env: dict[str, str] | None = None,
    ) -> list[str]:
        profile = context.profile
        cmd = [self._settings.binary, "exec"]
        if interactive:
            cmd.append("--interactive")
        cmd.extend([
            "--user", f"{profile.run_as_uid}:{profile.run_as_gid}",
            "--workdir", context.workdir,
        ])
        for key, value in (env or {}).items():
            cmd.extend(["--env", f"{key}={value}"])
        cmd.append(context.container or "")
        return cmd

    async def _remove_container(self, name: str) -> None:
        """Force-remove a container, logging (not raising) failures."""
        result = await self._run_docker(
            [self._settings.binary, "rm", "-f", name],
            ignore_errors=True,
            timeout=self._settings.command_timeout,
        )
        if result.failed:
            logger.warning("Could not remove container %s: %s", name, result.stderr or "unknown error")
        self._active_containers.pop(name, None)

    @staticmethod
    async def _run_docker(
        cmd: list[str],
        *,
        ignore_errors: bool = False,
        input: bytes | None = None,
        timeout: float | None = None,
    ) -> _DockerOutput:
        """Run a docker CLI command and return its output."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            if ignore_errors:
                return _DockerOutput(stderr=str(exc), failed=True)
            raise SandboxError(f"Failed to run docker: {exc}") from exc

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(input=input), timeout=timeout
            )
        except TimeoutError:
            proc.kill()
            await proc.wait()
            if ignore_errors:
                return _DockerOutput(stderr="docker command timed out", failed=True)
            raise SandboxError(f"docker command timed out after {timeout}s: {cmd[1]}")

        stdout = stdout_bytes.decode(errors="replace").strip() if stdout_bytes else ""
        stderr = stderr_bytes.decode(errors="replace").strip() if stderr_bytes else ""
        failed = proc.returncode != 0

        if failed and not ignore_errors:
            raise SandboxError(f"docker command failed (rc={proc.returncode}): {stderr or stdout}")

        return _DockerOutput(stdout=stdout, stderr=stderr, failed=failed)


def _oom_kill_count(text: str) -> int:
    """Largest ``oom_kill N`` counter in cgroup memory event output."""
    count = 0
    for line in text.splitlines():
        key, _, value = line.strip().partition(" ")
        if key == "oom_kill" and value.strip().isdigit():
            count = max(count, int(value))
    return count


class _DockerOutput:
    """Simple container for docker CLI output."""

    __slots__ = ("stdout", "stderr", "failed")

    def __init__(self, stdout: str = "", stderr: str = "", failed: bool = False) -> None:
        self.stdout = stdout
        self.stderr = stderr
        self.failed = failed
