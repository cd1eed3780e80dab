"""
feedharness.infrastructure - Filesystem & Environment Layer
=============================================================

    ┌──────────────────── SCENARIO LAYER ─────────────────────┐
    │  PackageScenario                                         │
    └──────────────┬───────────────────────────┬──────────────┘
                   │                           │
    ┌──────────────▼──── INFRASTRUCTURE ───────▼──────────────┐
    │  ArtifactLocator   → Artifact, FeedReference             │
    │  Workspace         → temp dir, guaranteed cleanup        │
    │  PackageRepository → RepositoryContext (config + cache)  │
    │  metadata          → ArtifactsPath from the build        │
    └──────────────────────────────────────────────────────────┘

Usage:
    from feedharness.infrastructure import ArtifactLocator, Workspace, PackageRepository
"""

from feedharness.infrastructure.artifact_locator import ArtifactLocator, parse_artifact
from feedharness.infrastructure.metadata import load_build_metadata, resolve_artifacts_path
from feedharness.infrastructure.repository import (
    EnvironmentSnapshot,
    NuGetConfigWriter,
    PackageRepository,
    PackageSourceConfigWriter,
    RepositoryContext,
)
from feedharness.infrastructure.workspace import Workspace, with_workspace, with_workspace_async

__all__ = [
    "ArtifactLocator",
    "parse_artifact",
    "load_build_metadata",
    "resolve_artifacts_path",
    "EnvironmentSnapshot",
    "NuGetConfigWriter",
    "PackageRepository",
    "PackageSourceConfigWriter",
    "RepositoryContext",
    "Workspace",
    "with_workspace",
    "with_workspace_async",
]
