"""
feedharness.core.models - Core Data Models
============================================

The value types that flow between the harness components:

    Artifact       → a built package file found on disk
    FeedReference  → a location the package manager may pull packages from
    ProcessResult  → what one external command did (exit code + output)

Data Flow:
    ArtifactLocator ──Artifact──→ FeedReference ──→ RepositoryContext
                                                         │
    ProcessRunner  ←──────── install / run / build ──────┘
          │
          └──ProcessResult──→ test assertions

All three are frozen Pydantic models: they are snapshots, and being
hashable lets the locator hand back a ``frozenset`` of artifacts.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from feedharness.core.exceptions import ProcessFailedError


# =============================================================================
# Artifact Model
# =============================================================================
class Artifact(BaseModel):
    """A package file located on disk.

    Attributes:
        name: Package identifier parsed from the filename
            (``Microsoft.Botsay`` in ``Microsoft.Botsay.1.0.0.nupkg``).
        version: Version parsed from the filename (``1.0.0``).
        path: Absolute path of the package file.
        directory: The directory containing the file; one feed is derived
            per distinct directory.
        modified_at: Last-modified timestamp (seconds since the epoch),
            used to pick the latest build of a package.

    Example:
        >>> artifact = parse_artifact(Path("out/Echo.1.2.0.nupkg"))
        >>> artifact.name, artifact.version
        ('Echo', '1.2.0')
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Package identifier parsed from the filename")
    version: str = Field(description="Semantic-version-like version string")
    path: Path = Field(description="Absolute path of the package file")
    directory: Path = Field(description="Directory containing the package file")
    modified_at: float = Field(description="Last-modified time (epoch seconds)")

    @property
    def file_name(self) -> str:
        return self.path.name


# =============================================================================
# Feed Reference Model
# =============================================================================
# Opaque to the harness: whatever the package manager accepts as a source.
# Local directories are written as file:// URIs, the same way the package
# manager documents local feeds.
# =============================================================================
class FeedReference(BaseModel):
    """A package source the package manager may resolve packages from.

    Attributes:
        location: File URI or remote URL of the feed.
        key: Source name written into the generated configuration. Keys
            must be unique within one configuration file.
    """

    model_config = ConfigDict(frozen=True)

    location: str = Field(description="File URI or URL of the package source")
    key: str = Field(description="Source name used in the generated configuration")

    @classmethod
    def from_directory(cls, directory: Path, key: Optional[str] = None) -> FeedReference:
        """Build a feed reference for a local directory of packages.

        Args:
            directory: Directory containing package files.
            key: Optional source name. Defaults to the directory name.

        Returns:
            A FeedReference whose location is the directory's file URI.
        """
        resolved = Path(directory).resolve()
        return cls(location=resolved.as_uri(), key=key or resolved.name)

    @classmethod
    def from_url(cls, url: str, key: Optional[str] = None) -> FeedReference:
        """Build a feed reference for a remote feed (e.g. nuget.org)."""
        return cls(location=url, key=key or url)


# =============================================================================
# Process Result Model
# =============================================================================
class ProcessResult(BaseModel):
    """The buffered outcome of one external process invocation.

    A non-zero ``exit_code`` is data, not an error. Tests assert on it
    directly, or call ``check()`` when any failure should abort.

    Attributes:
        command: The resolved command line that was executed.
        exit_code: Process exit status.
        stdout: Full standard output, decoded as UTF-8.
        stderr: Full standard error, decoded as UTF-8.
        duration_seconds: Wall-clock time from spawn to exit.
    """

    model_config = ConfigDict(frozen=True)

    command: tuple[str, ...] = Field(description="Executed command line")
    exit_code: int = Field(description="Process exit status")
    stdout: str = Field(default="", description="Captured standard output")
    stderr: str = Field(default="", description="Captured standard error")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Run time in seconds")

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    def check(self) -> ProcessResult:
        """Return self, or raise if the process exited non-zero.

        Raises:
            ProcessFailedError: If ``exit_code`` is not 0.
        """
        if self.exit_code != 0:
            raise ProcessFailedError(
                message=(
                    f"Command {' '.join(self.command)!r} exited with code {self.exit_code}"
                ),
                command=list(self.command),
                exit_code=self.exit_code,
                stdout=self.stdout,
                stderr=self.stderr,
            )
        return self
