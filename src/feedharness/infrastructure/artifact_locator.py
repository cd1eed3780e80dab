"""
feedharness.infrastructure.artifact_locator - Built Package Discovery
=======================================================================

Finds the package files a build produced and turns them into ``Artifact``
values and ``FeedReference`` sources.

Filename Convention:
    ``{name}.{version}{extension}``, e.g.

        Microsoft.Botsay.1.0.0.nupkg           → Microsoft.Botsay / 1.0.0
        Echo.1.2.0-preview.3.nupkg              → Echo / 1.2.0-preview.3
        sample-tool.1.0.0+sha.abc123.nupkg      → sample-tool / 1.0.0+sha.abc123

    Files that do not fit (``readme.nupkg``) and symbol packages
    (``Echo.1.0.0.symbols.nupkg``, ``Echo.1.0.0-beta.symbols.nupkg``) are
    skipped without error, so unrelated packages can share the tree.

Selecting the Latest Build:
    The artifacts directory usually holds several builds of the same
    package. ``latest_by_name`` picks the one with the newest modification
    time. Version strings are not compared: "10.0.0" sorts before "2.0.0"
    as text, and prerelease labels make numeric comparison ambiguous. When
    two files share an mtime the path breaks the tie, so the result never
    depends on directory listing order.

Usage:
    >>> locator = ArtifactLocator(Path("artifacts"))
    >>> feeds = locator.feed_references()
    >>> echo = locator.latest_by_name("Echo")
    >>> echo.version
    '1.2.0'
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

import structlog

from feedharness.core.exceptions import AmbiguousOrMissingArtifactError, NotFoundError
from feedharness.core.models import Artifact, FeedReference


logger = structlog.get_logger()


# MAJOR.MINOR[.PATCH[.REVISION]][-prerelease][+build]
_VERSION_PATTERN = r"\d+(?:\.\d+){1,3}(?:-[0-9A-Za-z][0-9A-Za-z.-]*)?(?:\+[0-9A-Za-z][0-9A-Za-z.-]*)?"

# Non-greedy name: the version starts at the first segment that makes the
# rest of the stem a complete version.
_STEM_PATTERN = re.compile(rf"^(?P<name>.+?)\.(?P<version>{_VERSION_PATTERN})$")
_VERSION_ONLY = re.compile(rf"^{_VERSION_PATTERN}$")

# Debug-symbol companions share the package name and version.
_SKIPPED_STEM_SUFFIXES = (".symbols",)


# =============================================================================
# Filename Parsing
# =============================================================================
def parse_artifact(
    path: Path,
    name: Optional[str] = None,
    extension: str = ".nupkg",
) -> Optional[Artifact]:
    """Parse a package file path into an Artifact.

    Args:
        path: Path of the package file. It must exist (its mtime is read).
        name: Known package name. When given, the version is everything
            between the ``{name}.`` prefix and the extension, and the file
            only matches if it starts with that prefix.
        extension: Package file extension, including the dot.

    Returns:
        The parsed Artifact, or None if the filename does not follow the
        ``{name}.{version}{extension}`` convention.
    """
    file_name = path.name
    if not file_name.lower().endswith(extension.lower()):
        return None
    stem = file_name[: -len(extension)]
    if stem.lower().endswith(_SKIPPED_STEM_SUFFIXES):
        return None

    if name is not None:
        prefix = f"{name}."
        if not stem.startswith(prefix):
            return None
        version = stem[len(prefix):]
        if not _VERSION_ONLY.match(version):
            return None
        package_name = name
    else:
        match = _STEM_PATTERN.match(stem)
        if match is None:
            return None
        package_name = match.group("name")
        version = match.group("version")

    resolved = path.resolve()
    return Artifact(
        name=package_name,
        version=version,
        path=resolved,
        directory=resolved.parent,
        modified_at=resolved.stat().st_mtime,
    )


# =============================================================================
# Artifact Locator
# =============================================================================
class ArtifactLocator:
    """Discovers built packages below a root directory.

    The filesystem is scanned on every call; the locator holds no cache, so
    a package written between two calls is picked up by the second one.

    Attributes:
        root: Directory searched recursively.
        extension: Package file extension (``.nupkg`` by default).
    """

    def __init__(self, root: Path, extension: str = ".nupkg") -> None:
        self.root = Path(root)
        self.extension = extension
        self._logger = logger.bind(component="artifact_locator", root=str(self.root))

    def locate(self) -> frozenset[Artifact]:
        """Find every package file under the root that parses as an artifact.

        Returns:
            The set of discovered artifacts.

        Raises:
            NotFoundError: If the root does not exist or no file under it
                follows the naming convention.
        """
        if not self.root.is_dir():
            raise NotFoundError(
                message=f"Artifacts root {str(self.root)!r} does not exist",
                root=str(self.root),
                error_code="ARTIFACTS_ROOT_MISSING",
            )

        artifacts: set[Artifact] = set()
        skipped = 0
        for candidate in sorted(self.root.rglob(f"*{self.extension}")):
            if not candidate.is_file():
                continue
            artifact = parse_artifact(candidate, extension=self.extension)
            if artifact is None:
                skipped += 1
                self._logger.debug("artifact_skipped", file=str(candidate))
                continue
            artifacts.add(artifact)

        if not artifacts:
            raise NotFoundError(
                message=(
                    f"No {self.extension} files matching '{{name}}.{{version}}"
                    f"{self.extension}' found under {str(self.root)!r}"
                ),
                root=str(self.root),
                details={"skipped": skipped},
            )

        self._logger.debug("artifacts_located", count=len(artifacts), skipped=skipped)
        return frozenset(artifacts)

    def all_directories_containing_artifacts(self) -> frozenset[Path]:
        """Distinct directories holding at least one artifact."""
        return frozenset(artifact.directory for artifact in self.locate())

    def feed_references(self) -> list[FeedReference]:
        """One local feed per artifact directory, ordered by path.

        Keys are ``local0``, ``local1``... so they stay unique even when two
        directories share a base name.
        """
        directories = sorted(self.all_directories_containing_artifacts())
        return [
            FeedReference.from_directory(directory, key=f"local{index}")
            for index, directory in enumerate(directories)
        ]

    def latest_by_name(self, name: str) -> Artifact:
        """Return the most recently modified artifact with exactly this name.

        Args:
            name: Package name; compared exactly (case-sensitive).

        Returns:
            The matching artifact with the greatest ``modified_at``.

        Raises:
            NotFoundError: If there are no artifacts at all.
            AmbiguousOrMissingArtifactError: If none has this name.
        """
        artifacts = self.locate()
        candidates = [artifact for artifact in artifacts if artifact.name == name]
        if not candidates:
            raise AmbiguousOrMissingArtifactError(
                message=f"No package named {name!r} under {str(self.root)!r}",
                package_name=name,
                available=sorted({artifact.name for artifact in artifacts}),
            )

        latest = max(candidates, key=lambda a: (a.modified_at, str(a.path)))
        self._logger.debug(
            "latest_artifact_selected",
            package=name,
            version=latest.version,
            candidates=len(candidates),
        )
        return latest
