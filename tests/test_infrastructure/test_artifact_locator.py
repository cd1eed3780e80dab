"""
Tests for feedharness.infrastructure.artifact_locator
=======================================================

What's Being Tested:
    - parse_artifact() filename convention (versions, prerelease, build
      metadata, dotted names, rejected files)
    - ArtifactLocator.locate() (recursive scan, skipped files, NotFoundError)
    - Feed derivation (one per directory, stable keys)
    - latest_by_name() (mtime wins over version text; deterministic ties)

Package files here are empty placeholders; only names and mtimes matter.
"""

import os
from pathlib import Path

import pytest

from feedharness.core.exceptions import AmbiguousOrMissingArtifactError, NotFoundError
from feedharness.infrastructure.artifact_locator import ArtifactLocator, parse_artifact


# =============================================================================
# Helpers
# =============================================================================
def _touch(path: Path, mtime: float = 1_700_000_000.0) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    os.utime(path, (mtime, mtime))
    return path


# =============================================================================
# Tests: Filename Parsing
# =============================================================================
class TestParseArtifact:
    """Tests for parse_artifact()."""

    @pytest.mark.parametrize(
        "file_name, name, version",
        [
            ("Microsoft.Botsay.1.0.0.nupkg", "Microsoft.Botsay", "1.0.0"),
            ("Echo.1.2.0-preview.3.nupkg", "Echo", "1.2.0-preview.3"),
            ("sample-tool.1.0.0+sha.abc123.nupkg", "sample-tool", "1.0.0+sha.abc123"),
            ("Legacy.Package.4.5.6.7.nupkg", "Legacy.Package", "4.5.6.7"),
            ("Two.Part.1.0.nupkg", "Two.Part", "1.0"),
        ],
    )
    def test_parses_name_and_version(
        self, tmp_path: Path, file_name: str, name: str, version: str
    ) -> None:
        artifact = parse_artifact(_touch(tmp_path / file_name))
        assert artifact is not None
        assert artifact.name == name
        assert artifact.version == version

    @pytest.mark.parametrize(
        "file_name",
        [
            "readme.nupkg",
            "Echo.1.0.0.symbols.nupkg",
            "Echo.1.0.0-beta.symbols.nupkg",
            "Echo.1.0.0-beta.snupkg",
            "Echo.nupkg",
            "Echo.1.0.0.zip",
        ],
    )
    def test_rejects_non_conforming_names(self, tmp_path: Path, file_name: str) -> None:
        assert parse_artifact(_touch(tmp_path / file_name)) is None

    def test_records_location_and_mtime(self, tmp_path: Path) -> None:
        path = _touch(tmp_path / "out" / "Echo.1.0.0.nupkg", mtime=1_650_000_000.0)
        artifact = parse_artifact(path)
        assert artifact is not None
        assert artifact.path == path.resolve()
        assert artifact.directory == (tmp_path / "out").resolve()
        assert artifact.modified_at == 1_650_000_000.0

    def test_known_name_splits_at_prefix(self, tmp_path: Path) -> None:
        artifact = parse_artifact(_touch(tmp_path / "Echo.2.0.0-beta.nupkg"), name="Echo")
        assert artifact is not None
        assert artifact.version == "2.0.0-beta"

    def test_known_name_must_match_prefix(self, tmp_path: Path) -> None:
        assert parse_artifact(_touch(tmp_path / "Echo.2.0.0.nupkg"), name="Other") is None

    def test_custom_extension(self, tmp_path: Path) -> None:
        artifact = parse_artifact(_touch(tmp_path / "left-pad.1.3.0.tgz"), extension=".tgz")
        assert artifact is not None
        assert artifact.name == "left-pad"


# =============================================================================
# Tests: locate()
# =============================================================================
class TestLocate:
    """Tests for ArtifactLocator.locate()."""

    def test_finds_packages_recursively(self, tmp_path: Path) -> None:
        _touch(tmp_path / "tool" / "release" / "Microsoft.Botsay.1.0.0.nupkg")
        _touch(tmp_path / "task" / "release" / "Echo.1.0.0.nupkg")

        artifacts = ArtifactLocator(tmp_path).locate()
        assert {a.name for a in artifacts} == {"Microsoft.Botsay", "Echo"}
        assert isinstance(artifacts, frozenset)

    def test_skips_non_conforming_files(self, tmp_path: Path) -> None:
        _touch(tmp_path / "Echo.1.0.0.nupkg")
        _touch(tmp_path / "Echo.1.0.0.symbols.nupkg")
        _touch(tmp_path / "readme.nupkg")
        _touch(tmp_path / "notes.txt")

        artifacts = ArtifactLocator(tmp_path).locate()
        assert [a.file_name for a in artifacts] == ["Echo.1.0.0.nupkg"]

    def test_missing_root_raises(self, tmp_path: Path) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            ArtifactLocator(tmp_path / "does-not-exist").locate()
        assert exc_info.value.error_code == "ARTIFACTS_ROOT_MISSING"

    def test_empty_root_raises(self, tmp_path: Path) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            ArtifactLocator(tmp_path).locate()
        assert exc_info.value.root == str(tmp_path)

    def test_only_unparseable_files_raises(self, tmp_path: Path) -> None:
        _touch(tmp_path / "readme.nupkg")
        with pytest.raises(NotFoundError) as exc_info:
            ArtifactLocator(tmp_path).locate()
        assert exc_info.value.details["skipped"] == 1

    def test_rescans_on_every_call(self, tmp_path: Path) -> None:
        locator = ArtifactLocator(tmp_path)
        _touch(tmp_path / "Echo.1.0.0.nupkg")
        assert len(locator.locate()) == 1
        _touch(tmp_path / "Echo.1.1.0.nupkg")
        assert len(locator.locate()) == 2


# =============================================================================
# Tests: Feeds
# =============================================================================
class TestFeeds:
    """Tests for directory and feed derivation."""

    def test_one_directory_per_location(self, tmp_path: Path) -> None:
        _touch(tmp_path / "a" / "Echo.1.0.0.nupkg")
        _touch(tmp_path / "a" / "Echo.1.1.0.nupkg")
        _touch(tmp_path / "b" / "Other.1.0.0.nupkg")

        directories = ArtifactLocator(tmp_path).all_directories_containing_artifacts()
        assert directories == {(tmp_path / "a").resolve(), (tmp_path / "b").resolve()}

    def test_feed_references_are_sorted_with_unique_keys(self, tmp_path: Path) -> None:
        _touch(tmp_path / "tool" / "release" / "Microsoft.Botsay.1.0.0.nupkg")
        _touch(tmp_path / "task" / "release" / "Echo.1.0.0.nupkg")

        feeds = ArtifactLocator(tmp_path).feed_references()
        assert [feed.key for feed in feeds] == ["local0", "local1"]
        assert feeds[0].location == (tmp_path / "task" / "release").resolve().as_uri()
        assert feeds[1].location == (tmp_path / "tool" / "release").resolve().as_uri()


# =============================================================================
# Tests: latest_by_name()
# =============================================================================
class TestLatestByName:
    """Tests for ArtifactLocator.latest_by_name()."""

    def test_newest_mtime_wins_over_version_text(self, tmp_path: Path) -> None:
        """A newer 2.0.0 beats an older 10.0.0: versions are not compared."""
        _touch(tmp_path / "Echo.10.0.0.nupkg", mtime=1_700_000_000.0)
        _touch(tmp_path / "Echo.2.0.0.nupkg", mtime=1_700_000_100.0)

        assert ArtifactLocator(tmp_path).latest_by_name("Echo").version == "2.0.0"

    def test_symbols_package_is_not_a_candidate(self, tmp_path: Path) -> None:
        _touch(tmp_path / "Echo.1.0.0-beta.nupkg", mtime=1_700_000_000.0)
        _touch(tmp_path / "Echo.1.0.0-beta.symbols.nupkg", mtime=1_700_000_100.0)

        assert ArtifactLocator(tmp_path).latest_by_name("Echo").version == "1.0.0-beta"

    def test_ignores_other_packages(self, tmp_path: Path) -> None:
        _touch(tmp_path / "Echo.1.0.0.nupkg", mtime=1_700_000_000.0)
        _touch(tmp_path / "Echo.Extras.9.0.0.nupkg", mtime=1_700_000_500.0)

        latest = ArtifactLocator(tmp_path).latest_by_name("Echo")
        assert latest.name == "Echo"
        assert latest.version == "1.0.0"

    def test_same_mtime_is_deterministic(self, tmp_path: Path) -> None:
        _touch(tmp_path / "a" / "Echo.1.0.0.nupkg")
        _touch(tmp_path / "b" / "Echo.1.0.0.nupkg")

        locator = ArtifactLocator(tmp_path)
        first = locator.latest_by_name("Echo")
        assert first.directory == (tmp_path / "b").resolve()
        assert all(locator.latest_by_name("Echo") == first for _ in range(3))

    def test_name_match_is_exact(self, tmp_path: Path) -> None:
        _touch(tmp_path / "Echo.1.0.0.nupkg")
        with pytest.raises(AmbiguousOrMissingArtifactError):
            ArtifactLocator(tmp_path).latest_by_name("echo")

    def test_missing_name_lists_available(self, tmp_path: Path) -> None:
        _touch(tmp_path / "Echo.1.0.0.nupkg")
        _touch(tmp_path / "Microsoft.Botsay.1.0.0.nupkg")

        with pytest.raises(AmbiguousOrMissingArtifactError) as exc_info:
            ArtifactLocator(tmp_path).latest_by_name("Ecko")
        assert exc_info.value.available == ["Echo", "Microsoft.Botsay"]

    def test_no_artifacts_at_all_raises_not_found(self, tmp_path: Path) -> None:
        with pytest.raises(NotFoundError):
            ArtifactLocator(tmp_path).latest_by_name("Echo")
