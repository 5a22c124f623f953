"""Tests for LocalProvisioner (real host processes)."""

from __future__ import annotations

import asyncio
import os
import shutil
import signal
import sys
import warnings

import psutil
import pytest

from coderunner.config.models import LocalSettings
from coderunner.errors import ExecutionError
from coderunner.execution.models import Phase, ResourceLimit
from coderunner.profiles.models import ExecutionProfile
from coderunner.sandbox.local_provisioner import _WARNING_MSG, CONTEXT_ENV, LocalProvisioner
from coderunner.sandbox.provisioner import IsolationProvisioner, provisioned

pytestmark = pytest.mark.skipif(os.name != "posix", reason="local backend requires POSIX")

_SH = ExecutionProfile(
    language="sh",
    image="unused",
    source_name="script.sh",
    run_command=("sh", "{source}"),
    max_processes=20,
)

_ENV = {"PATH": "/usr/local/bin:/usr/bin:/bin"}

_linux_with_setsid = pytest.mark.skipif(
    not sys.platform.startswith("linux") or shutil.which("setsid") is None,
    reason="needs Linux and setsid",
)


def _make_provisioner(**kwargs) -> LocalProvisioner:
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        return LocalProvisioner(LocalSettings(**kwargs) if kwargs else None)


def _live_with_cmdline(cmdline: list[str]) -> list[psutil.Process]:
    found = []
    for proc in psutil.process_iter(["cmdline", "status"]):
        if proc.info["cmdline"] == cmdline and proc.info["status"] != psutil.STATUS_ZOMBIE:
            found.append(proc)
    return found


class TestLocalProvisioner:
    def test_constructor_emits_warning(self) -> None:
        with warnings.catch_warnings(record=True) as w:
            warnings.simplefilter("always")
            LocalProvisioner()
            assert len(w) == 1
            assert _WARNING_MSG in str(w[0].message)

    def test_satisfies_protocol(self) -> None:
        assert isinstance(_make_provisioner(), IsolationProvisioner)

    async def test_acquire_creates_private_directory(self) -> None:
        provisioner = _make_provisioner()
        context = await provisioner.acquire(_SH)
        try:
            assert context.host_dir is not None
            assert context.host_dir.is_dir()
            assert context.workdir == str(context.host_dir)
            assert context.backend == "local"
            assert os.stat(context.host_dir).st_mode & 0o777 == 0o700
            assert provisioner.live_contexts == [context]
        finally:
            await provisioner.release(context)

        assert not context.host_dir.exists()
        assert context.released
        assert provisioner.live_contexts == []

    async def test_contexts_are_disjoint(self) -> None:
        provisioner = _make_provisioner()
        a, b = await asyncio.gather(provisioner.acquire(_SH), provisioner.acquire(_SH))
        try:
            assert a.id != b.id
            assert a.host_dir != b.host_dir
            await provisioner.write_file(a, "only_in_a.txt", b"secret")
            assert b.host_dir is not None
            assert not (b.host_dir / "only_in_a.txt").exists()
        finally:
            await provisioner.cleanup()

        assert provisioner.live_contexts == []

    async def test_release_is_idempotent(self) -> None:
        provisioner = _make_provisioner()
        context = await provisioner.acquire(_SH)
        await provisioner.release(context)
        await provisioner.release(context)
        assert context.released

    async def test_provisioned_releases_on_error(self) -> None:
        provisioner = _make_provisioner()
        with pytest.raises(RuntimeError, match="boom"):
            async with provisioned(provisioner, _SH) as context:
                raise RuntimeError("boom")
        assert context.released
        assert provisioner.live_contexts == []

    @pytest.mark.parametrize("name", ["", ".", "..", "../x", "a/b"])
    async def test_write_file_rejects_paths(self, name: str) -> None:
        provisioner = _make_provisioner()
        async with provisioned(provisioner, _SH) as context:
            with pytest.raises(ExecutionError, match="Invalid file name"):
                await provisioner.write_file(context, name, b"x")

    async def test_spawn_runs_in_new_session(self) -> None:
        provisioner = _make_provisioner()
        async with provisioned(provisioner, _SH) as context:
            await provisioner.write_file(context, "script.sh", b"pwd\n")
            process = await provisioner.spawn(context, ["sh", "script.sh"], env=_ENV, phase=Phase.RUN)
            assert process.pid in context.process_groups
            stdout, _ = await process.communicate()
            await provisioner.finish(context, process)

            assert process.returncode == 0
            assert os.path.realpath(stdout.decode().strip()) == os.path.realpath(context.workdir)
            assert process.pid not in context.process_groups

    async def test_spawn_missing_executable(self) -> None:
        provisioner = _make_provisioner()
        async with provisioned(provisioner, _SH) as context:
            with pytest.raises(ExecutionError, match="Failed to start"):
                await provisioner.spawn(
                    context, ["nonexistent_command_xyz"], env=_ENV, phase=Phase.RUN
                )

    async def test_environment_is_not_inherited(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CODERUNNER_HOST_SECRET", "leak")
        provisioner = _make_provisioner()
        async with provisioned(provisioner, _SH) as context:
            process = await provisioner.spawn(
                context, ["sh", "-c", "echo ${CODERUNNER_HOST_SECRET:-clean}"], env=_ENV, phase=Phase.RUN
            )
            stdout, _ = await process.communicate()
            assert stdout.strip() == b"clean"

    async def test_spawn_marks_context_environment(self) -> None:
        provisioner = _make_provisioner()
        async with provisioned(provisioner, _SH) as context:
            process = await provisioner.spawn(
                context, ["sh", "-c", f"echo ${CONTEXT_ENV}"], env=_ENV, phase=Phase.RUN
            )
            stdout, _ = await process.communicate()
            assert stdout.strip() == context.id.encode()

    @_linux_with_setsid
    async def test_release_kills_processes_outside_the_group(self) -> None:
        provisioner = _make_provisioner()
        async with provisioned(provisioner, _SH) as context:
            process = await provisioner.spawn(
                context,
                ["sh", "-c", "setsid sleep 4323 </dev/null >/dev/null 2>&1 & echo started"],
                env=_ENV,
                phase=Phase.RUN,
            )
            stdout, _ = await process.communicate()
            assert stdout.strip() == b"started"
            await asyncio.sleep(0.1)
            assert _live_with_cmdline(["sleep", "4323"])
        assert _live_with_cmdline(["sleep", "4323"]) == []

    async def test_terminate_kills_process_group(self) -> None:
        provisioner = _make_provisioner()
        async with provisioned(provisioner, _SH) as context:
            process = await provisioner.spawn(
                context, ["sh", "-c", "sleep 30 & sleep 30"], env=_ENV, phase=Phase.RUN
            )
            await asyncio.sleep(0.2)
            await provisioner.terminate(context)
            returncode = await asyncio.wait_for(process.wait(), timeout=5)
            assert returncode == -signal.SIGKILL

    async def test_watch_reports_process_breach(self) -> None:
        profile = _SH.model_copy(update={"max_processes": 3})
        provisioner = _make_provisioner(monitor_interval=0.02)
        async with provisioned(provisioner, profile) as context:
            process = await provisioner.spawn(
                context,
                ["sh", "-c", "for i in 1 2 3 4 5 6; do sleep 30 & done; wait"],
                env=_ENV,
                phase=Phase.RUN,
            )
            breach = await asyncio.wait_for(provisioner.watch(context, process), timeout=10)
            assert breach == ResourceLimit.PROCESSES
            await provisioner.terminate(context)
            await process.wait()

    async def test_watch_returns_none_on_exit(self) -> None:
        provisioner = _make_provisioner(monitor_interval=0.02)
        async with provisioned(provisioner, _SH) as context:
            process = await provisioner.spawn(context, ["true"], env=_ENV, phase=Phase.RUN)
            waiter = asyncio.create_task(process.wait())
            breach = await asyncio.wait_for(provisioner.watch(context, process), timeout=10)
            await waiter
            assert breach is None

    async def test_inspect_exit_maps_rlimit_signals(self) -> None:
        provisioner = _make_provisioner()
        async with provisioned(provisioner, _SH) as context:
            assert await provisioner.inspect_exit(context, -signal.SIGXCPU) == ResourceLimit.CPU
            assert await provisioner.inspect_exit(context, -signal.SIGXFSZ) == ResourceLimit.FILE_SIZE
            assert await provisioner.inspect_exit(context, 1) is None
            assert await provisioner.inspect_exit(context, -signal.SIGSEGV) is None

    async def test_check_health(self) -> None:
        healthy, detail = await _make_provisioner().check_health()
        assert healthy
        assert "local" in detail
