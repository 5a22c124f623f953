"""ExecutionRunner — runs a submission inside an acquired sandbox context.

One command goes through ``PENDING → RUNNING → {COMPLETED, TIMED_OUT,
KILLED}``.  While it runs, the event loop waits on three things at once:
process exit, the provisioner's resource monitor and the deadline.  The
child cannot delay any of them, so a hung or hostile submission is always
terminated on time.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
import time
from typing import TYPE_CHECKING

from coderunner.execution.buffers import BoundedBuffer
from coderunner.execution.models import ExecutionState, Phase, RawResult, ResourceLimit

if TYPE_CHECKING:
    from coderunner.execution.models import Submission
    from coderunner.sandbox.models import SandboxContext
    from coderunner.sandbox.provisioner import IsolationProvisioner

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_BYTES = 64 * 1024

_BASE_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"

# Time allowed for a killed process to be reaped and its pipes to close.
_REAP_GRACE = 5.0

_TRANSITIONS: dict[ExecutionState, frozenset[ExecutionState]] = {
    ExecutionState.PENDING: frozenset({ExecutionState.RUNNING}),
    ExecutionState.RUNNING: frozenset(
        {ExecutionState.COMPLETED, ExecutionState.TIMED_OUT, ExecutionState.KILLED}
    ),
    ExecutionState.COMPLETED: frozenset(),
    ExecutionState.TIMED_OUT: frozenset(),
    ExecutionState.KILLED: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    """An execution was moved to a state its current state cannot reach."""


class ExecutionStateMachine:
    """Tracks the lifecycle of one command."""

    def __init__(self) -> None:
        self._state = ExecutionState.PENDING

    @property
    def state(self) -> ExecutionState:
        return self._state

    def transition(self, target: ExecutionState) -> None:
        if target not in _TRANSITIONS[self._state]:
            msg = f"cannot move from {self._state.value} to {target.value}"
            raise InvalidTransitionError(msg)
        self._state = target


class ExecutionRunner:
    """Write a submission into a context, compile it if needed, and run it."""

    def __init__(
        self,
        provisioner: IsolationProvisioner,
        *,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ) -> None:
        self._provisioner = provisioner
        self._max_output_bytes = max_output_bytes

    @property
    def max_output_bytes(self) -> int:
        return self._max_output_bytes

    async def run(self, context: SandboxContext, submission: Submission) -> RawResult:
        """Execute *submission* in *context* and return what was observed.

        Raises:
            InvalidSubmissionError: If the profile cannot build a launch plan.
            ExecutionError: If the backend cannot write files or start commands.
        """
        profile = context.profile
        plan = profile.launch_plan(submission.source)
        await self._provisioner.write_file(context, plan.source_name, submission.source)

        if plan.compile_command:
            compiled = await self._execute(
                context,
                plan.compile_command,
                stdin=None,
                timeout=profile.compile_timeout,
                phase=Phase.COMPILE,
            )
            if compiled.state != ExecutionState.COMPLETED or compiled.exit_code != 0:
                return compiled

        return await self._execute(
            context,
            plan.run_command,
            stdin=submission.stdin,
            timeout=submission.effective_timeout(profile.timeout),
            phase=Phase.RUN,
        )

    def environment(self, context: SandboxContext) -> dict[str, str]:
        """Fixed minimal environment; nothing is inherited from the host."""
        return {
            "PATH": _BASE_PATH,
            "HOME": context.workdir,
            "TMPDIR": context.workdir,
            "LANG": "C.UTF-8",
            **dict(context.profile.env),
        }

    async def _execute(
        self,
        context: SandboxContext,
        argv: list[str],
        *,
        stdin: bytes | None,
        timeout: float,
        phase: Phase,
    ) -> RawResult:
        machine = ExecutionStateMachine()
        stdout = BoundedBuffer(self._max_output_bytes)
        stderr = BoundedBuffer(self._max_output_bytes)

        process = await self._provisioner.spawn(
            context, argv, env=self.environment(context), phase=phase
        )
        started = time.monotonic()
        machine.transition(ExecutionState.RUNNING)

        assert process.stdout is not None and process.stderr is not None
        readers = [
            asyncio.create_task(stdout.drain(process.stdout)),
            asyncio.create_task(stderr.drain(process.stderr)),
        ]
        feeder = asyncio.create_task(_feed_stdin(process, stdin))
        waiter = asyncio.create_task(process.wait())
        monitor = asyncio.create_task(self._provisioner.watch(context, process))

        breach: ResourceLimit | None = None
        forced = False
        try:
            breach = await self._supervise(machine, waiter, monitor, started + timeout)
            elapsed = time.monotonic() - started

            if machine.state != ExecutionState.COMPLETED:
                forced = True
                logger.info(
                    "Context %s: %s phase %s after %.2fs, terminating",
                    context.id, phase.value, machine.state.value, elapsed,
                )
                await self._provisioner.terminate(context)
                await self._reap(process, waiter)

            await self._provisioner.finish(context, process)
            await self._collect(readers)
        except asyncio.CancelledError:
            logger.info("Context %s: execution cancelled, terminating", context.id)
            await asyncio.shield(self._abort(context, process, waiter))
            raise
        finally:
            for task in (feeder, monitor, waiter, *readers):
                if not task.done():
                    task.cancel()

        returncode = process.returncode
        if machine.state == ExecutionState.COMPLETED and returncode is not None:
            breach = await self._provisioner.inspect_exit(context, returncode)

        err = _filter_stderr(stderr.getvalue(), context.profile.stderr_filters)
        exit_code, signal_number = _split_status(returncode) if not forced else (None, None)

        if (
            breach is None
            and exit_code not in (None, 0)
            and _mentions(err, context.profile.memory_error_patterns)
        ):
            breach = ResourceLimit.MEMORY

        return RawResult(
            state=machine.state,
            phase=phase,
            exit_code=exit_code,
            signal=signal_number,
            stdout=stdout.getvalue(),
            stderr=err,
            stdout_truncated=stdout.truncated,
            stderr_truncated=stderr.truncated,
            elapsed=elapsed,
            timeout=timeout,
            forced=forced,
            limit_breach=breach,
        )

    @staticmethod
    async def _supervise(
        machine: ExecutionStateMachine,
        waiter: asyncio.Task[int],
        monitor: asyncio.Task[ResourceLimit | None],
        deadline: float,
    ) -> ResourceLimit | None:
        """Wait for exit, breach or deadline, whichever comes first."""
        pending: set[asyncio.Task[object]] = {waiter, monitor}  # type: ignore[arg-type]
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                machine.transition(ExecutionState.TIMED_OUT)
                return None

            done, pending = await asyncio.wait(
                pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
            if monitor in done and monitor.result() is not None:
                machine.transition(ExecutionState.KILLED)
                return monitor.result()
            if waiter in done:
                machine.transition(ExecutionState.COMPLETED)
                return None
            if not done:
                machine.transition(ExecutionState.TIMED_OUT)
                return None
            # The monitor stopped without a breach; keep waiting for exit.

    @staticmethod
    async def _reap(process: asyncio.subprocess.Process, waiter: asyncio.Task[int]) -> None:
        try:
            await asyncio.wait_for(asyncio.shield(waiter), timeout=_REAP_GRACE)
        except TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await waiter

    @staticmethod
    async def _collect(readers: list[asyncio.Task[None]]) -> None:
        """Let the readers hit EOF; give up if a stray process holds the pipes."""
        done, pending = await asyncio.wait(readers, timeout=_REAP_GRACE)
        for task in pending:
            task.cancel()
        for task in done:
            task.result()

    async def _abort(
        self,
        context: SandboxContext,
        process: asyncio.subprocess.Process,
        waiter: asyncio.Task[int],
    ) -> None:
        await self._provisioner.terminate(context)
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        with contextlib.suppress(TimeoutError, asyncio.CancelledError):
            await asyncio.wait_for(asyncio.shield(waiter), timeout=_REAP_GRACE)
        await self._provisioner.finish(context, process)


async def _feed_stdin(process: asyncio.subprocess.Process, data: bytes | None) -> None:
    """Write *data* to the child's stdin, then close it."""
    stream = process.stdin
    if stream is None:
        return
    try:
        if data:
            stream.write(data)
            await stream.drain()
    except (BrokenPipeError, ConnectionResetError):
        logger.debug("Child closed stdin before reading all input")
    finally:
        stream.close()


def _split_status(returncode: int | None) -> tuple[int | None, int | None]:
    """Return ``(exit_code, signal)``; negative return codes are signals."""
    if returncode is None:
        return None, None
    if returncode < 0:
        return None, -returncode
    return returncode, None


def _filter_stderr(data: bytes, patterns: tuple[str, ...]) -> bytes:
    """Drop lines matching any of *patterns* (runtime start-up noise)."""
    if not patterns or not data:
        return data
    compiled = [re.compile(p.encode()) for p in patterns]
    kept = [
        line
        for line in data.splitlines(keepends=True)
        if not any(rx.search(line) for rx in compiled)
    ]
    return b"".join(kept)


def _mentions(data: bytes, needles: tuple[str, ...]) -> bool:
    return any(needle.encode() in data for needle in needles)
