"""
Tests for feedharness.integrations.process
============================================

These tests spawn the running Python interpreter as the child process, so
they need nothing beyond the test environment itself.

What's Being Tested:
    - Buffered stdout/stderr and exit codes (non-zero is data, not an error)
    - Executable resolution and ProcessLaunchError
    - Timeouts kill the child and raise ProcessTimeoutError
    - Per-call environment overrides never leak into os.environ
    - prepend_search_path() ordering and effect on resolution
"""

import asyncio
import os
import sys
from pathlib import Path

import pytest

from feedharness.core.config import HarnessConfig
from feedharness.core.exceptions import ProcessLaunchError, ProcessTimeoutError
from feedharness.integrations.process import ProcessRunner


PYTHON = sys.executable


# =============================================================================
# Fixtures
# =============================================================================
@pytest.fixture
def runner(harness_config: HarnessConfig) -> ProcessRunner:
    return ProcessRunner(harness_config)


def _script(directory: Path, name: str, body: str) -> Path:
    """Write an executable script (POSIX shebang)."""
    path = directory / name
    path.write_text(f"#!{PYTHON}\n{body}")
    path.chmod(0o755)
    return path


# =============================================================================
# Tests: Running
# =============================================================================
class TestRun:
    """Tests for ProcessRunner.run()."""

    async def test_captures_stdout(self, runner: ProcessRunner) -> None:
        result = await runner.run(PYTHON, ["-c", "print('hello from the bot')"])
        assert result.exit_code == 0
        assert result.stdout.strip() == "hello from the bot"
        assert result.succeeded
        assert result.duration_seconds >= 0

    async def test_captures_stderr_separately(self, runner: ProcessRunner) -> None:
        result = await runner.run(
            PYTHON, ["-c", "import sys; print('out'); print('err', file=sys.stderr)"]
        )
        assert result.stdout.strip() == "out"
        assert result.stderr.strip() == "err"

    async def test_non_zero_exit_is_returned(self, runner: ProcessRunner) -> None:
        result = await runner.run(PYTHON, ["-c", "import sys; sys.exit(7)"])
        assert result.exit_code == 7
        assert not result.succeeded

    async def test_command_records_resolved_executable(self, runner: ProcessRunner) -> None:
        result = await runner.run(PYTHON, ["-c", "pass"])
        assert result.command[1:] == ("-c", "pass")
        assert Path(result.command[0]).name == Path(PYTHON).name

    async def test_runs_in_cwd(self, runner: ProcessRunner, tmp_path: Path) -> None:
        result = await runner.run(PYTHON, ["-c", "import os; print(os.getcwd())"], cwd=tmp_path)
        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    async def test_undecodable_output_is_replaced(self, runner: ProcessRunner) -> None:
        result = await runner.run(
            PYTHON, ["-c", "import sys; sys.stdout.buffer.write(b'ok \\xff')"]
        )
        assert result.stdout.startswith("ok ")
        assert "\ufffd" in result.stdout

    async def test_stdin_is_closed(self, runner: ProcessRunner) -> None:
        result = await runner.run(PYTHON, ["-c", "import sys; print(repr(sys.stdin.read()))"])
        assert result.stdout.strip() == "''"


# =============================================================================
# Tests: Failures
# =============================================================================
class TestRunFailures:
    """Conditions that raise instead of returning a result."""

    async def test_missing_executable_raises(self, runner: ProcessRunner) -> None:
        with pytest.raises(ProcessLaunchError) as exc_info:
            await runner.run("feedharness-no-such-tool")
        assert exc_info.value.executable == "feedharness-no-such-tool"
        assert exc_info.value.error_code == "EXECUTABLE_NOT_FOUND"

    async def test_timeout_kills_and_raises(self, runner: ProcessRunner) -> None:
        with pytest.raises(ProcessTimeoutError) as exc_info:
            await runner.run(PYTHON, ["-c", "import time; time.sleep(30)"], timeout=0.5)
        assert exc_info.value.timeout_seconds == 0.5

    async def test_default_timeout_comes_from_config(self, harness_config: HarnessConfig) -> None:
        config = harness_config.model_copy(update={"process_timeout_seconds": 0.5})
        with pytest.raises(ProcessTimeoutError):
            await ProcessRunner(config).run(PYTHON, ["-c", "import time; time.sleep(30)"])

    async def test_cancellation_propagates(self, runner: ProcessRunner) -> None:
        task = asyncio.create_task(
            runner.run(PYTHON, ["-c", "import time; time.sleep(30)"])
        )
        await asyncio.sleep(0.5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


# =============================================================================
# Tests: Environment
# =============================================================================
class TestEnvironment:
    """Child environments are built per call."""

    async def test_override_reaches_child_only(
        self, runner: ProcessRunner, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("NUGET_PACKAGES", raising=False)
        result = await runner.run(
            PYTHON,
            ["-c", "import os; print(os.environ['NUGET_PACKAGES'])"],
            env={"NUGET_PACKAGES": "/ws/.nuget/packages"},
        )
        assert result.stdout.strip() == "/ws/.nuget/packages"
        assert "NUGET_PACKAGES" not in os.environ

    def test_ambient_environment_is_read_per_call(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FEEDHARNESS_TEST_MARKER", "before")
        runner = ProcessRunner()
        monkeypatch.setenv("FEEDHARNESS_TEST_MARKER", "after")
        monkeypatch.setenv("NUGET_PACKAGES", "/ws/.nuget/packages")
        environment = runner.build_environment()
        assert environment["FEEDHARNESS_TEST_MARKER"] == "after"
        assert environment["NUGET_PACKAGES"] == "/ws/.nuget/packages"

    def test_explicit_base_environment_is_copied(self) -> None:
        base = {"PATH": "/usr/bin"}
        runner = ProcessRunner(base_environment=base)
        base["HOME"] = "/home/test"
        assert "HOME" not in runner.build_environment()

    def test_explicit_base_environment(self) -> None:
        runner = ProcessRunner(base_environment={"PATH": "/usr/bin", "HOME": "/home/test"})
        environment = runner.build_environment({"HOME": "/tmp/ws"})
        assert environment == {"PATH": "/usr/bin", "HOME": "/tmp/ws"}


# =============================================================================
# Tests: Search Path
# =============================================================================
class TestSearchPath:
    """Tests for prepend_search_path() and resolve()."""

    def test_prepend_puts_directory_first(self) -> None:
        runner = ProcessRunner(base_environment={"PATH": "/usr/bin"})
        runner.prepend_search_path("/ws/tools")
        assert runner.search_path == os.pathsep.join(["/ws/tools", "/usr/bin"])

    def test_prepend_again_moves_to_front(self) -> None:
        runner = ProcessRunner(base_environment={"PATH": "/usr/bin"})
        runner.prepend_search_path("/a")
        runner.prepend_search_path("/b")
        runner.prepend_search_path("/a")
        assert runner.search_path == os.pathsep.join(["/a", "/b", "/usr/bin"])

    def test_remove_drops_only_that_entry(self) -> None:
        runner = ProcessRunner(base_environment={"PATH": "/usr/bin"})
        runner.prepend_search_path("/a")
        runner.prepend_search_path("/b")
        runner.remove_search_path("/a")
        runner.remove_search_path("/not-prepended")
        assert runner.search_path == os.pathsep.join(["/b", "/usr/bin"])

    def test_prepend_does_not_touch_os_environ(self) -> None:
        before = os.environ.get("PATH")
        ProcessRunner().prepend_search_path("/ws/tools")
        assert os.environ.get("PATH") == before

    def test_child_sees_prepended_path(self) -> None:
        runner = ProcessRunner(base_environment={"PATH": "/usr/bin"})
        runner.prepend_search_path("/ws/tools")
        assert runner.build_environment()["PATH"].split(os.pathsep)[0] == "/ws/tools"

    @pytest.mark.skipif(sys.platform == "win32", reason="shebang scripts")
    async def test_tool_found_only_after_prepend(
        self, runner: ProcessRunner, tmp_path: Path
    ) -> None:
        tools = tmp_path / "tools"
        tools.mkdir()
        _script(tools, "sample-tool", "print('installed tool ran')\n")

        with pytest.raises(ProcessLaunchError):
            runner.resolve("sample-tool")

        runner.prepend_search_path(tools)
        result = await runner.run("sample-tool")
        assert result.stdout.strip() == "installed tool ran"

    @pytest.mark.skipif(sys.platform == "win32", reason="shebang scripts")
    def test_prepended_entry_shadows_ambient(self, tmp_path: Path) -> None:
        ambient = tmp_path / "ambient"
        local = tmp_path / "local"
        ambient.mkdir()
        local.mkdir()
        _script(ambient, "sample-tool", "print('ambient')\n")
        _script(local, "sample-tool", "print('local')\n")

        runner = ProcessRunner(base_environment={"PATH": str(ambient)})
        assert runner.resolve("sample-tool") == str(ambient / "sample-tool")
        runner.prepend_search_path(local)
        assert runner.resolve("sample-tool") == str(local / "sample-tool")
