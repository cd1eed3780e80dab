"""
feedharness.core.exceptions - Custom Exception Hierarchy
==========================================================

Every failure the harness can surface is a subclass of ``HarnessError``.
Each one carries a machine-readable ``error_code`` and a ``details`` dict
so that test output and structured logs show what went wrong without
having to parse the message.

Exception Hierarchy:
    HarnessError (base)
        ├── ConfigurationError              - Invalid config / missing build metadata
        ├── NotFoundError                   - No package files under the artifacts root
        ├── AmbiguousOrMissingArtifactError - No artifact with the requested name
        ├── WorkspaceUnavailableError       - Workspace missing, closed, or not writable
        ├── RepositoryLockError             - Environment lock could not be acquired
        ├── ProcessLaunchError              - Executable not found or not spawnable
        ├── ProcessTimeoutError             - Child process exceeded its timeout
        ├── ProcessFailedError              - Raised by ProcessResult.check() only
        └── ScenarioStateError              - Invalid scenario state transition

    CleanupWarning (UserWarning)            - Best-effort teardown failed

Error Handling Flow:
    Nothing in the harness retries. Errors propagate immediately, and the
    context managers (Workspace, RepositoryContext, PackageScenario) unwind
    on the way out. Teardown problems are reported as ``CleanupWarning`` so
    they never mask the test's own result.

Usage:
    >>> from feedharness.core.exceptions import NotFoundError
    >>> raise NotFoundError(
    ...     message="No .nupkg files found",
    ...     details={"root": "/repo/artifacts"},
    ... )
"""

from __future__ import annotations

from typing import Any, Optional


# =============================================================================
# Base Exception
# =============================================================================
class HarnessError(Exception):
    """Base exception for all feedharness errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code (UPPER_SNAKE_CASE).
        details: Arbitrary dict with additional debugging context
            (paths, commands, environment variable names...).

    Example:
        >>> try:
        ...     locator.locate()
        ... except HarnessError as e:
        ...     print(f"[{e.error_code}] {e.message}")
    """

    def __init__(
        self,
        message: str,
        error_code: str = "HARNESS_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize this exception to a dictionary (for structured logs).

        Returns:
            Dictionary with error_type, message, error_code, and details.
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


# =============================================================================
# Configuration Error
# =============================================================================
# Raised at fixture setup when the harness cannot work out where the built
# packages live, or when a configuration value is inconsistent.
# =============================================================================
class ConfigurationError(HarnessError):
    """Raised when harness configuration or build metadata is invalid.

    Common Causes:
        - ``ArtifactsPath`` missing from the build metadata
        - ``ArtifactsPath`` pointing at a directory that does not exist
        - Malformed YAML config or metadata JSON
        - Opening a repository context with no feeds

    Example:
        >>> raise ConfigurationError(
        ...     message="Build metadata key 'ArtifactsPath' not found",
        ...     error_code="MISSING_METADATA",
        ...     details={"key": "ArtifactsPath"},
        ... )
    """

    def __init__(
        self,
        message: str,
        error_code: str = "CONFIG_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


# =============================================================================
# Artifact Discovery Errors
# =============================================================================
class NotFoundError(HarnessError):
    """Raised when no package files can be found under the artifacts root.

    Attributes:
        root: The directory that was searched.
    """

    def __init__(
        self,
        message: str,
        root: str = "",
        error_code: str = "ARTIFACTS_NOT_FOUND",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["root"] = root

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.root = root


class AmbiguousOrMissingArtifactError(HarnessError):
    """Raised when ``latest_by_name`` has no candidate for the requested name.

    Attributes:
        package_name: The package name that was requested.
        available: Names that *were* found, to make typos obvious.
    """

    def __init__(
        self,
        message: str,
        package_name: str,
        available: Optional[list[str]] = None,
        error_code: str = "ARTIFACT_NOT_RESOLVED",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["package_name"] = package_name
        enriched_details["available"] = available or []

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.package_name = package_name
        self.available = available or []


# =============================================================================
# Workspace / Repository Errors
# =============================================================================
class WorkspaceUnavailableError(HarnessError):
    """Raised when the workspace cannot be used.

    Common Causes:
        - The workspace directory was already deleted (context closed)
        - The directory is not writable by the test process
        - The temporary root configured for workspaces does not exist

    Attributes:
        workspace_path: Path of the unusable workspace.
    """

    def __init__(
        self,
        message: str,
        workspace_path: str = "",
        error_code: str = "WORKSPACE_UNAVAILABLE",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["workspace_path"] = workspace_path

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.workspace_path = workspace_path


class RepositoryLockError(HarnessError):
    """Raised when the process-wide environment lock cannot be acquired in time.

    Only the ``EnvironmentMode.PROCESS`` compatibility mode takes this lock.
    Hitting the timeout means another repository context in this process is
    still open, usually because two tests are running concurrently against
    the same ``os.environ``.
    """

    def __init__(
        self,
        message: str,
        timeout_seconds: float,
        error_code: str = "REPOSITORY_LOCK_TIMEOUT",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["timeout_seconds"] = timeout_seconds

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.timeout_seconds = timeout_seconds


# =============================================================================
# Process Errors
# =============================================================================
# A process that runs and exits non-zero is NOT an error at this layer; the
# caller asserts on ProcessResult.exit_code. These errors cover the cases
# where there is no meaningful result at all.
# =============================================================================
class ProcessLaunchError(HarnessError):
    """Raised when an executable cannot be resolved on the search path or spawned.

    Attributes:
        executable: The executable name that was requested.
    """

    def __init__(
        self,
        message: str,
        executable: str,
        error_code: str = "PROCESS_LAUNCH_FAILED",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["executable"] = executable

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.executable = executable


class ProcessTimeoutError(HarnessError):
    """Raised when a child process runs longer than its timeout and is killed."""

    def __init__(
        self,
        message: str,
        command: list[str],
        timeout_seconds: float,
        error_code: str = "PROCESS_TIMEOUT",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["command"] = command
        enriched_details["timeout_seconds"] = timeout_seconds

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.command = command
        self.timeout_seconds = timeout_seconds


class ProcessFailedError(HarnessError):
    """Raised by ``ProcessResult.check()`` when the process exited non-zero.

    Attributes:
        exit_code: The process exit code.
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    def __init__(
        self,
        message: str,
        command: list[str],
        exit_code: int,
        stdout: str = "",
        stderr: str = "",
        error_code: str = "PROCESS_FAILED",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["command"] = command
        enriched_details["exit_code"] = exit_code

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


# =============================================================================
# Scenario Error
# =============================================================================
class ScenarioStateError(HarnessError):
    """Raised when a scenario operation is called in the wrong state.

    Example:
        Calling ``run_tool()`` before ``install_tool()``, or using a scenario
        after its workspace has been deleted.
    """

    def __init__(
        self,
        message: str,
        current_state: str,
        error_code: str = "INVALID_SCENARIO_STATE",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["current_state"] = current_state

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.current_state = current_state


# =============================================================================
# Cleanup Warning
# =============================================================================
class CleanupWarning(UserWarning):
    """Emitted when best-effort teardown fails (e.g. a file is still locked).

    This is a ``warnings`` category, not an exception: the primary result of
    the test always takes precedence over teardown noise.
    """
