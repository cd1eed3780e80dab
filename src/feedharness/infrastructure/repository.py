"""
feedharness.infrastructure.repository - Isolated Package Repository Context
=============================================================================

A RepositoryContext is the package-resolution environment of one test:
a generated source configuration that lists only the feeds under test,
plus a package cache that lives inside the workspace.

What ``open`` Does:
    1. Writes ``nuget.config`` into the workspace:

        <configuration>
          <config>
            <add key="globalPackagesFolder" value="{workspace}/.nuget/packages" />
          </config>
          <packageSources>
            <clear />                                   ← drop the user's feeds
            <add key="local0" value="file:///repo/artifacts/package" />
            <add key="nuget.org" value="https://api.nuget.org/v3/index.json" />
          </packageSources>
        </configuration>

       Sources keep the caller's order; the first one wins.

    2. Snapshots the cache environment variable (``NUGET_PACKAGES``): its
       value, or the fact that it was unset. That variable beats
       ``globalPackagesFolder``, so it must be redirected as well.

    3. Redirects it, according to the EnvironmentMode:

        EXPLICIT (default)
            os.environ is left alone. ``context.environment()`` returns the
            override and the ProcessRunner merges it into each child's
            environment. Contexts share no state and may overlap freely.

        PROCESS (compatibility)
            os.environ[NUGET_PACKAGES] is set for the lifetime of the
            context. This is process-global and not reentrant, so open/close
            is serialized by a process-wide lock held for the whole context,
            across awaits included. A second PROCESS-mode context in the same
            process waits, then fails with RepositoryLockError.

What ``close`` Does:
    Restores the variable exactly (value, or absent), releases the lock,
    detaches from the workspace. Idempotent.

Usage:
    >>> repository = PackageRepository(config)
    >>> with Workspace() as ws:
    ...     with repository.open(ws, feeds) as repo:
    ...         await runner.run("dotnet", [..., "--configfile", str(repo.config_path)],
    ...                          env=repo.environment())
"""

from __future__ import annotations

import asyncio
import os
import threading
import time
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import structlog

from feedharness.core.config import HarnessConfig
from feedharness.core.enums import EnvironmentMode
from feedharness.core.exceptions import (
    ConfigurationError,
    RepositoryLockError,
    WorkspaceUnavailableError,
)
from feedharness.core.models import FeedReference
from feedharness.infrastructure.workspace import Workspace


logger = structlog.get_logger()


# =============================================================================
# Process-Wide Environment Lock
# =============================================================================
# Guards os.environ mutation by PROCESS-mode contexts. A threading.Lock (not
# RLock) because async callers acquire it in one task and may release it
# after the event loop has run other tasks; ownership is by context, not by
# thread.
# =============================================================================
_ENVIRONMENT_LOCK = threading.Lock()
_LOCK_POLL_SECONDS = 0.05

CACHE_DIR_NAME = ".nuget"


# =============================================================================
# Environment Snapshot
# =============================================================================
class EnvironmentSnapshot:
    """The value of one environment variable at a point in time.

    ``value is None`` means the variable was absent, and restoring puts it
    back to absent rather than setting an empty string.
    """

    def __init__(self, name: str, value: Optional[str]) -> None:
        self.name = name
        self.value = value

    @classmethod
    def capture(cls, name: str) -> EnvironmentSnapshot:
        return cls(name, os.environ.get(name))

    @property
    def was_set(self) -> bool:
        return self.value is not None

    def restore(self) -> None:
        if self.value is None:
            os.environ.pop(self.name, None)
        else:
            os.environ[self.name] = self.value

    def __repr__(self) -> str:
        return f"EnvironmentSnapshot(name={self.name!r}, value={self.value!r})"


# =============================================================================
# Configuration Writers
# =============================================================================
class PackageSourceConfigWriter(ABC):
    """Writes the package manager's source configuration file.

    The schema belongs to the package manager; the harness only decides
    which sources go in and where the cache goes.
    """

    @abstractmethod
    def write(
        self,
        destination: Path,
        feeds: Sequence[FeedReference],
        cache_path: Path,
    ) -> Path:
        """Write the configuration file and return its path.

        Args:
            destination: Full path of the file to write.
            feeds: Package sources, highest precedence first.
            cache_path: Directory the package manager should use as cache.
        """
        ...


class NuGetConfigWriter(PackageSourceConfigWriter):
    """Writes a ``nuget.config`` that clears inherited sources."""

    def write(
        self,
        destination: Path,
        feeds: Sequence[FeedReference],
        cache_path: Path,
    ) -> Path:
        configuration = ET.Element("configuration")

        config_section = ET.SubElement(configuration, "config")
        ET.SubElement(
            config_section,
            "add",
            key="globalPackagesFolder",
            value=str(cache_path),
        )

        sources = ET.SubElement(configuration, "packageSources")
        ET.SubElement(sources, "clear")
        for feed in feeds:
            ET.SubElement(sources, "add", key=feed.key, value=feed.location)

        tree = ET.ElementTree(configuration)
        ET.indent(tree, space="  ")
        tree.write(destination, encoding="utf-8", xml_declaration=True)
        return destination


# =============================================================================
# Repository Context
# =============================================================================
class RepositoryContext:
    """An open, isolated package-resolution environment bound to a workspace.

    Created by ``PackageRepository.open``; usable as a ``with`` / ``async
    with`` block, or closed explicitly with ``close()``.

    Attributes:
        workspace_path: The workspace this context writes into.
        config_path: The generated source configuration file.
        feeds: Package sources, highest precedence first.
        cache_path: Package cache directory inside the workspace.
        mode: How the cache variable is redirected.
        snapshot: The cache variable as it was before ``open``.
    """

    def __init__(
        self,
        workspace_path: Path,
        config_path: Path,
        feeds: Sequence[FeedReference],
        cache_path: Path,
        mode: EnvironmentMode,
        snapshot: EnvironmentSnapshot,
        workspace: Optional[Workspace] = None,
        holds_lock: bool = False,
    ) -> None:
        self.workspace_path = workspace_path
        self.config_path = config_path
        self.feeds: tuple[FeedReference, ...] = tuple(feeds)
        self.cache_path = cache_path
        self.mode = mode
        self.snapshot = snapshot
        self._workspace = workspace
        self._holds_lock = holds_lock
        self._open = True
        self._logger = logger.bind(
            component="repository_context",
            workspace=str(workspace_path),
        )

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def cache_env_var(self) -> str:
        return self.snapshot.name

    def environment(self) -> dict[str, str]:
        """Environment overrides every package-manager child must receive."""
        return {self.snapshot.name: str(self.cache_path)}

    def close(self) -> None:
        """Restore the environment and release the lock. Safe to call twice."""
        if not self._open:
            return
        self._open = False
        try:
            if self.mode is EnvironmentMode.PROCESS:
                self.snapshot.restore()
        finally:
            if self._holds_lock:
                self._holds_lock = False
                _ENVIRONMENT_LOCK.release()
            if self._workspace is not None:
                self._workspace.unbind(self)
        self._logger.info(
            "repository_context_closed",
            restored=self.snapshot.name if self.mode is EnvironmentMode.PROCESS else None,
        )

    def __enter__(self) -> RepositoryContext:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    async def __aenter__(self) -> RepositoryContext:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"RepositoryContext(config_path={str(self.config_path)!r}, "
            f"feeds={len(self.feeds)}, mode={self.mode.value}, open={self._open})"
        )


# =============================================================================
# Package Repository (context factory)
# =============================================================================
class PackageRepository:
    """Opens and closes RepositoryContexts according to the harness config.

    Attributes:
        config: Harness configuration (cache variable name, config file
            name, default feeds, environment mode, lock timeout).
        writer: Writer for the package source configuration file.
    """

    def __init__(
        self,
        config: Optional[HarnessConfig] = None,
        writer: Optional[PackageSourceConfigWriter] = None,
    ) -> None:
        self.config = config or HarnessConfig()
        self.writer = writer or NuGetConfigWriter()
        self._logger = logger.bind(component="package_repository")

    # =========================================================================
    # Public API
    # =========================================================================

    def open(
        self,
        workspace: Union[Workspace, Path],
        feeds: Sequence[FeedReference],
        mode: Optional[EnvironmentMode] = None,
    ) -> RepositoryContext:
        """Open a context, blocking for the environment lock if needed.

        Args:
            workspace: Open Workspace (preferred, enables ordering checks) or
                a plain directory path.
            feeds: Package sources, highest precedence first.
            mode: Override for ``config.environment_mode``.

        Raises:
            ConfigurationError: If no feeds are given.
            WorkspaceUnavailableError: If the workspace is closed or not writable.
            RepositoryLockError: PROCESS mode only, if the lock times out.
        """
        mode = mode or self.config.environment_mode
        workspace_path, owner = self._check_workspace(workspace)
        all_feeds = self._merge_feeds(feeds)

        holds_lock = False
        if mode is EnvironmentMode.PROCESS:
            timeout = self.config.lock_timeout_seconds
            if not _ENVIRONMENT_LOCK.acquire(timeout=timeout):
                raise self._lock_timeout(timeout)
            holds_lock = True

        return self._open_with_lock(workspace_path, owner, all_feeds, mode, holds_lock)

    async def open_async(
        self,
        workspace: Union[Workspace, Path],
        feeds: Sequence[FeedReference],
        mode: Optional[EnvironmentMode] = None,
    ) -> RepositoryContext:
        """Like ``open``, but waits for the lock without blocking the event loop.

        The lock is polled rather than acquired in a worker thread, so a
        cancelled waiter never ends up owning the lock.
        """
        mode = mode or self.config.environment_mode
        workspace_path, owner = self._check_workspace(workspace)
        all_feeds = self._merge_feeds(feeds)

        holds_lock = False
        if mode is EnvironmentMode.PROCESS:
            timeout = self.config.lock_timeout_seconds
            deadline = time.monotonic() + timeout
            while not _ENVIRONMENT_LOCK.acquire(blocking=False):
                if time.monotonic() >= deadline:
                    raise self._lock_timeout(timeout)
                await asyncio.sleep(_LOCK_POLL_SECONDS)
            holds_lock = True

        return self._open_with_lock(workspace_path, owner, all_feeds, mode, holds_lock)

    def close(self, context: RepositoryContext) -> None:
        """Close a context (same as ``context.close()``)."""
        context.close()

    # =========================================================================
    # Internals
    # =========================================================================

    def _open_with_lock(
        self,
        workspace_path: Path,
        owner: Optional[Workspace],
        feeds: list[FeedReference],
        mode: EnvironmentMode,
        holds_lock: bool,
    ) -> RepositoryContext:
        cache_env_var = self.config.package_manager.cache_env_var
        snapshot = EnvironmentSnapshot.capture(cache_env_var)
        cache_path = workspace_path / CACHE_DIR_NAME / "packages"
        config_path = workspace_path / self.config.package_manager.config_file_name

        try:
            try:
                cache_path.mkdir(parents=True, exist_ok=True)
                self.writer.write(config_path, feeds, cache_path)
            except OSError as e:
                raise WorkspaceUnavailableError(
                    message=f"Cannot write package configuration into {str(workspace_path)!r}: {e}",
                    workspace_path=str(workspace_path),
                    error_code="WORKSPACE_NOT_WRITABLE",
                    details={"os_error": str(e)},
                ) from e

            if mode is EnvironmentMode.PROCESS:
                os.environ[cache_env_var] = str(cache_path)

            context = RepositoryContext(
                workspace_path=workspace_path,
                config_path=config_path,
                feeds=feeds,
                cache_path=cache_path,
                mode=mode,
                snapshot=snapshot,
                workspace=owner,
                holds_lock=holds_lock,
            )
            if owner is not None:
                owner.bind(context)
        except BaseException:
            if mode is EnvironmentMode.PROCESS:
                snapshot.restore()
            if holds_lock:
                _ENVIRONMENT_LOCK.release()
            raise

        self._logger.info(
            "repository_context_opened",
            config_path=str(config_path),
            feeds=[feed.location for feed in feeds],
            mode=mode.value,
            cache_env_var=cache_env_var,
            cache_env_var_was_set=snapshot.was_set,
        )
        return context

    def _check_workspace(
        self,
        workspace: Union[Workspace, Path],
    ) -> tuple[Path, Optional[Workspace]]:
        if isinstance(workspace, Workspace):
            if not workspace.is_open:
                raise WorkspaceUnavailableError(
                    message="Cannot open a repository context on a closed workspace",
                    workspace_path=repr(workspace),
                    error_code="WORKSPACE_NOT_OPEN",
                )
            return workspace.path, workspace

        path = Path(workspace)
        if not path.is_dir():
            raise WorkspaceUnavailableError(
                message=f"Workspace directory {str(path)!r} does not exist",
                workspace_path=str(path),
            )
        if not os.access(path, os.W_OK):
            raise WorkspaceUnavailableError(
                message=f"Workspace directory {str(path)!r} is not writable",
                workspace_path=str(path),
                error_code="WORKSPACE_NOT_WRITABLE",
            )
        return path, None

    def _merge_feeds(self, feeds: Sequence[FeedReference]) -> list[FeedReference]:
        """Caller's feeds first, then configured defaults; first location wins."""
        if not feeds:
            raise ConfigurationError(
                message="A repository context needs at least one package feed",
                error_code="NO_FEEDS",
            )

        candidates = list(feeds) + [
            FeedReference.from_url(url) for url in self.config.package_manager.default_feeds
        ]
        merged: list[FeedReference] = []
        seen_locations: set[str] = set()
        seen_keys: set[str] = set()
        for feed in candidates:
            if feed.location in seen_locations:
                continue
            if feed.key in seen_keys:
                raise ConfigurationError(
                    message=f"Duplicate package source key {feed.key!r}",
                    error_code="DUPLICATE_FEED_KEY",
                    details={"key": feed.key, "location": feed.location},
                )
            seen_locations.add(feed.location)
            seen_keys.add(feed.key)
            merged.append(feed)
        return merged

    def _lock_timeout(self, timeout: float) -> RepositoryLockError:
        self._logger.error("environment_lock_timeout", timeout_seconds=timeout)
        return RepositoryLockError(
            message=(
                f"Timed out after {timeout}s waiting for the environment lock; "
                "another process-mode repository context is still open"
            ),
            timeout_seconds=timeout,
        )
