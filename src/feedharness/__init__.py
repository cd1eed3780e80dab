"""
feedharness - Integration Tests for Package Artifacts
=======================================================

feedharness gives each test an isolated package-resolution environment so
it can install a locally built package (a command-line tool or a build-task
plugin) and assert on what it does, without touching the user's global
package cache or feeds:

    ArtifactsPath ──→ ArtifactLocator ──→ feeds
                                           │
    Workspace ──→ RepositoryContext ───────┘  (nuget.config + private cache)
        │                 │
        └──→ ProcessRunner: install ──→ run / build ──→ assertions

Quick Start:
    >>> from feedharness import PackageScenario
    >>> async with PackageScenario(feeds) as scenario:
    ...     await scenario.install_tool("microsoft.botsay")
    ...     result = await scenario.run_tool("botsay", ["hello"])

Lower layers are importable directly:
    from feedharness.infrastructure import ArtifactLocator, Workspace, PackageRepository
    from feedharness.integrations import ProcessRunner, DotnetCli
"""

__version__ = "0.1.0"

from feedharness.scenario import PackageScenario

__all__ = ["PackageScenario", "__version__"]
