"""
feedharness.infrastructure.workspace - Isolated Test Workspace
================================================================

A Workspace is a scratch directory owned by exactly one test. It is the
install target for tools, the root of generated consumer projects, the home
of the generated package configuration, and the redirected package cache.

Lifecycle:
    ┌────────┐  __enter__   ┌──────┐  __exit__ (any path)   ┌─────────┐
    │ (none) │ ───────────→ │ OPEN │ ─────────────────────→ │ DELETED │
    └────────┘  mkdtemp     └──────┘  close bound contexts  └─────────┘
                                      then rmtree

    Deletion runs on normal return, on any exception, on KeyboardInterrupt
    and on asyncio cancellation. If it fails (a spawned process still holds
    a file open, typically on Windows) a CleanupWarning is emitted and the
    body's own result or exception wins.

Ordering Guarantee:
    Repository contexts register themselves with the workspace they write
    into. A workspace never deletes its directory while such a context is
    still open: any leftover context is closed first, restoring whatever
    environment it changed.

Usage:
    >>> with Workspace() as ws:
    ...     install_into(ws.bin_dir)
    >>> result = with_workspace(lambda path: build_in(path))
    >>> async with Workspace() as ws:
    ...     await runner.run("dotnet", ["--info"], cwd=ws.path)
"""

from __future__ import annotations

import os
import shutil
import stat
import tempfile
import warnings
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar

import structlog

from feedharness.core.exceptions import CleanupWarning, WorkspaceUnavailableError


logger = structlog.get_logger()

T = TypeVar("T")


class BoundResource(Protocol):
    """Anything that must be released before its workspace is deleted."""

    @property
    def is_open(self) -> bool: ...

    def close(self) -> None: ...


# =============================================================================
# Workspace
# =============================================================================
class Workspace:
    """A uniquely named temporary directory with guaranteed cleanup.

    Attributes:
        root: Parent directory for the workspace (None = system temp dir).
        prefix: Directory name prefix; a random suffix is added by mkdtemp.
        keep: When True the directory is left on disk after close
            (debugging aid, see ``HarnessConfig.keep_workspace``).

    Example:
        >>> with Workspace(prefix="botsay-") as ws:
        ...     (ws.path / "hello.txt").write_text("hi")
        >>> ws.path.exists()
        False
    """

    BIN_DIR_NAME = "tools"

    def __init__(
        self,
        root: Optional[Path] = None,
        prefix: str = "feedharness-",
        keep: bool = False,
    ) -> None:
        self.root = Path(root) if root is not None else None
        self.prefix = prefix
        self.keep = keep
        self._path: Optional[Path] = None
        self._closed = False
        self._bound: list[BoundResource] = []
        self._logger = logger.bind(component="workspace")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def path(self) -> Path:
        """The workspace directory.

        Raises:
            WorkspaceUnavailableError: Before open or after close.
        """
        if self._path is None or self._closed:
            raise WorkspaceUnavailableError(
                message="Workspace is not open",
                workspace_path=str(self._path or ""),
                error_code="WORKSPACE_NOT_OPEN",
            )
        return self._path

    @property
    def bin_dir(self) -> Path:
        """Where installed tools go; prepend it to the runner search path."""
        return self.path / self.BIN_DIR_NAME

    @property
    def is_open(self) -> bool:
        return self._path is not None and not self._closed

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def open(self) -> Path:
        """Create the directory. Idempotent while open.

        Raises:
            WorkspaceUnavailableError: If the workspace was already closed,
                or the parent directory is missing / not writable.
        """
        if self._closed:
            raise WorkspaceUnavailableError(
                message="Workspace has already been deleted and cannot be reopened",
                workspace_path=str(self._path or ""),
                error_code="WORKSPACE_CLOSED",
            )
        if self._path is not None:
            return self._path

        try:
            created = tempfile.mkdtemp(
                prefix=self.prefix,
                dir=str(self.root) if self.root is not None else None,
            )
        except OSError as e:
            raise WorkspaceUnavailableError(
                message=f"Could not create workspace under {str(self.root)!r}: {e}",
                workspace_path=str(self.root or tempfile.gettempdir()),
                details={"os_error": str(e)},
            ) from e

        # mkdtemp may hand back a symlinked temp dir (macOS /var → /private/var)
        self._path = Path(created).resolve()
        self._path.joinpath(self.BIN_DIR_NAME).mkdir()
        self._logger.info("workspace_created", path=str(self._path))
        return self._path

    def bind(self, resource: BoundResource) -> None:
        """Register a resource that must be closed before deletion."""
        if not self.is_open:
            raise WorkspaceUnavailableError(
                message="Cannot bind to a workspace that is not open",
                workspace_path=str(self._path or ""),
                error_code="WORKSPACE_NOT_OPEN",
            )
        self._bound.append(resource)

    def unbind(self, resource: BoundResource) -> None:
        if resource in self._bound:
            self._bound.remove(resource)

    def close(self) -> None:
        """Close bound resources, then delete the directory. Idempotent."""
        if self._closed or self._path is None:
            self._closed = True
            return

        # Innermost first
        for resource in reversed(list(self._bound)):
            if resource.is_open:
                self._logger.warning(
                    "workspace_closing_open_resource",
                    path=str(self._path),
                    resource=type(resource).__name__,
                )
                try:
                    resource.close()
                except Exception as e:
                    self._logger.error(
                        "workspace_resource_close_failed",
                        path=str(self._path),
                        resource=type(resource).__name__,
                        error=str(e),
                    )
                    warnings.warn(
                        f"Could not close {type(resource).__name__} bound to workspace "
                        f"{str(self._path)!r}: {e}",
                        CleanupWarning,
                        stacklevel=2,
                    )
        self._bound.clear()

        self._closed = True
        if self.keep:
            self._logger.info("workspace_kept", path=str(self._path))
            return
        _remove_tree(self._path, self._logger)

    # =========================================================================
    # Context Managers
    # =========================================================================

    def __enter__(self) -> Workspace:
        self.open()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    async def __aenter__(self) -> Workspace:
        self.open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Workspace(path={str(self._path)!r}, open={self.is_open})"


# =============================================================================
# Deletion
# =============================================================================
def _make_writable(path: Path) -> None:
    """Clear read-only bits below path (package caches extract read-only files)."""
    for dirpath, dirnames, filenames in os.walk(path):
        for name in dirnames + filenames:
            target = os.path.join(dirpath, name)
            try:
                os.chmod(target, stat.S_IWRITE | stat.S_IREAD | stat.S_IEXEC)
            except OSError:
                continue
    try:
        os.chmod(path, stat.S_IWRITE | stat.S_IREAD | stat.S_IEXEC)
    except OSError:
        pass


def _remove_tree(path: Path, log: Any) -> bool:
    """Delete path recursively; warn instead of raising on failure.

    Returns:
        True if the directory is gone afterwards.
    """
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError:
        _make_writable(path)
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            log.warning("workspace_cleanup_failed", path=str(path), error=str(e))
            warnings.warn(
                f"Could not delete workspace {str(path)!r}: {e}",
                CleanupWarning,
                stacklevel=3,
            )
            return False

    log.info("workspace_deleted", path=str(path))
    return True


# =============================================================================
# Scoped Helpers
# =============================================================================
def with_workspace(
    body: Callable[[Path], T],
    root: Optional[Path] = None,
    prefix: str = "feedharness-",
) -> T:
    """Run ``body(path)`` inside a fresh workspace and return its result.

    The workspace is deleted whether body returns or raises.
    """
    with Workspace(root=root, prefix=prefix) as ws:
        return body(ws.path)


async def with_workspace_async(
    body: Callable[[Path], Awaitable[T]],
    root: Optional[Path] = None,
    prefix: str = "feedharness-",
) -> T:
    """Async form of ``with_workspace``; also cleans up on cancellation."""
    async with Workspace(root=root, prefix=prefix) as ws:
        return await body(ws.path)
