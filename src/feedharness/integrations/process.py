"""
feedharness.integrations.process - Process Invocation Boundary
================================================================

Runs external commands (package-manager installs, installed tools, builds)
and hands back a buffered ProcessResult.

Behavior:
    - Asynchronous: the caller suspends until the child exits. Output is
      read in full before returning; nothing is streamed.
    - Executables are resolved against the runner's own search path, which
      is the ambient PATH with any ``prepend_search_path`` entries in front.
      A tool installed into the workspace is only found if its directory
      was prepended *before* the call.
    - The runner never writes to ``os.environ``: the search path and any
      ``env`` overrides (e.g. a RepositoryContext's cache redirect) are
      passed to the child only.
    - Exit codes are data. A tool that runs and fails gives a ProcessResult
      with a non-zero ``exit_code``. Only "could not run at all" raises.
    - Timeouts and cancellation kill the child before propagating.
    - No retries.

Usage:
    >>> runner = ProcessRunner(config)
    >>> runner.prepend_search_path(workspace.bin_dir)
    >>> result = await runner.run("botsay", ["hello", "from", "the", "bot"])
    >>> assert result.exit_code == 0
"""

from __future__ import annotations

import asyncio
import os
import shutil
import time
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

import structlog

from feedharness.core.config import HarnessConfig
from feedharness.core.exceptions import ProcessLaunchError, ProcessTimeoutError
from feedharness.core.models import ProcessResult


logger = structlog.get_logger()

PathLike = Union[str, Path]


class ProcessRunner:
    """Spawns external processes with a private search path.

    Attributes:
        config: Harness configuration (default timeout).
        base_environment: Fixed environment children inherit before
            overrides, or None to read ``os.environ`` at each run.
    """

    def __init__(
        self,
        config: Optional[HarnessConfig] = None,
        base_environment: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.config = config or HarnessConfig()
        self.base_environment: Optional[dict[str, str]] = (
            None if base_environment is None else dict(base_environment)
        )
        self._prefix: list[str] = []
        self._logger = logger.bind(component="process_runner")

    # =========================================================================
    # Search Path
    # =========================================================================

    def prepend_search_path(self, directory: PathLike) -> None:
        """Put ``directory`` in front of the search path for later runs.

        Prepending the same directory again moves it to the front. Use
        ``remove_search_path`` to take it out again.
        """
        entry = str(directory)
        if entry in self._prefix:
            self._prefix.remove(entry)
        self._prefix.insert(0, entry)
        self._logger.debug("search_path_prepended", directory=entry)

    def remove_search_path(self, directory: PathLike) -> None:
        """Drop a previously prepended directory. Unknown entries are ignored."""
        entry = str(directory)
        if entry in self._prefix:
            self._prefix.remove(entry)
            self._logger.debug("search_path_removed", directory=entry)

    @property
    def search_path(self) -> str:
        """The PATH value used for resolution and passed to children."""
        ambient = self._inherited_environment().get("PATH", os.defpath)
        return os.pathsep.join(self._prefix + ([ambient] if ambient else []))

    def resolve(self, executable: str) -> str:
        """Resolve an executable name to a full path.

        Raises:
            ProcessLaunchError: If it cannot be found on the search path.
        """
        resolved = shutil.which(executable, path=self.search_path)
        if resolved is None:
            raise ProcessLaunchError(
                message=f"Executable {executable!r} not found on the search path",
                executable=executable,
                error_code="EXECUTABLE_NOT_FOUND",
                details={"search_path": self.search_path},
            )
        return resolved

    def _inherited_environment(self) -> Mapping[str, str]:
        # Read live: PROCESS mode sets NUGET_PACKAGES after construction.
        return os.environ if self.base_environment is None else self.base_environment

    def build_environment(self, env: Optional[Mapping[str, str]] = None) -> dict[str, str]:
        """Child environment: base, then the search path, then overrides."""
        environment = dict(self._inherited_environment())
        environment["PATH"] = self.search_path
        if env:
            environment.update(env)
        return environment

    # =========================================================================
    # Execution
    # =========================================================================

    async def run(
        self,
        executable: str,
        args: Sequence[str] = (),
        cwd: Optional[PathLike] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        """Run a command to completion and return its buffered result.

        Args:
            executable: Name (resolved on the search path) or path.
            args: Arguments, passed without a shell.
            cwd: Working directory for the child.
            env: Environment overrides for this child only.
            timeout: Seconds before the child is killed. Defaults to
                ``config.process_timeout_seconds``.

        Returns:
            ProcessResult with exit code and decoded stdout/stderr.

        Raises:
            ProcessLaunchError: Executable not found or spawn failed.
            ProcessTimeoutError: The child outlived the timeout.
        """
        resolved = self.resolve(executable)
        command = [resolved, *[str(arg) for arg in args]]
        timeout = self.config.process_timeout_seconds if timeout is None else timeout

        self._logger.info(
            "process_starting",
            executable=executable,
            args=list(command[1:]),
            cwd=str(cwd) if cwd is not None else None,
        )
        started = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(cwd) if cwd is not None else None,
                env=self.build_environment(env),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessLaunchError(
                message=f"Failed to start {executable!r}: {e}",
                executable=executable,
                details={"resolved": resolved, "os_error": str(e)},
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await _kill(process)
            self._logger.error("process_timed_out", executable=executable, timeout=timeout)
            raise ProcessTimeoutError(
                message=f"{executable!r} did not exit within {timeout}s",
                command=command,
                timeout_seconds=timeout,
            ) from None
        except asyncio.CancelledError:
            await _kill(process)
            self._logger.warning("process_cancelled", executable=executable)
            raise

        result = ProcessResult(
            command=tuple(command),
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            duration_seconds=time.monotonic() - started,
        )
        self._logger.info(
            "process_exited",
            executable=executable,
            exit_code=result.exit_code,
            duration_seconds=round(result.duration_seconds, 3),
        )
        return result


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        return
    await process.wait()
