"""
feedharness.pytest_plugin - pytest Fixtures
=============================================

Registered through the ``pytest11`` entry point, so installing feedharness
makes these fixtures available to any test suite:

    harness_config      HarnessConfig loaded from feedharness.yaml + env
    build_metadata      Build metadata mapping (ArtifactsPath, ...)
    artifacts_path      Directory of built packages
    artifact_locator    ArtifactLocator over artifacts_path
    package_feeds       One FeedReference per artifact directory
    process_runner      Fresh ProcessRunner per test
    workspace           Open Workspace, deleted after the test
    package_repository  PackageRepository factory
    repository_context  Open RepositoryContext inside ``workspace``
    package_scenario    Open PackageScenario over ``package_feeds``

Every fixture is function-scoped so a suite can override
``harness_config`` (or any other fixture) in its own conftest.py.
"""

from __future__ import annotations

from pathlib import Path
from typing import AsyncIterator, Iterator

import pytest
import pytest_asyncio

from feedharness.core.config import HarnessConfig, load_config
from feedharness.core.logging_setup import configure_logging
from feedharness.core.models import FeedReference
from feedharness.infrastructure.artifact_locator import ArtifactLocator
from feedharness.infrastructure.metadata import load_build_metadata, resolve_artifacts_path
from feedharness.infrastructure.repository import PackageRepository, RepositoryContext
from feedharness.infrastructure.workspace import Workspace
from feedharness.integrations.process import ProcessRunner
from feedharness.scenario import PackageScenario


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers", "integration: end-to-end scenarios that spawn external processes"
    )
    config.addinivalue_line(
        "markers", "dotnet: requires the real dotnet SDK and built packages"
    )


@pytest.fixture
def harness_config() -> HarnessConfig:
    config = load_config()
    configure_logging(config.log_level)
    return config


@pytest.fixture
def build_metadata(harness_config: HarnessConfig) -> dict[str, str]:
    return load_build_metadata(harness_config)


@pytest.fixture
def artifacts_path(harness_config: HarnessConfig, build_metadata: dict[str, str]) -> Path:
    return resolve_artifacts_path(build_metadata, harness_config)


@pytest.fixture
def artifact_locator(harness_config: HarnessConfig, artifacts_path: Path) -> ArtifactLocator:
    return ArtifactLocator(artifacts_path, extension=harness_config.package_manager.package_extension)


@pytest.fixture
def package_feeds(artifact_locator: ArtifactLocator) -> list[FeedReference]:
    return artifact_locator.feed_references()


@pytest.fixture
def process_runner(harness_config: HarnessConfig) -> ProcessRunner:
    return ProcessRunner(harness_config)


@pytest.fixture
def workspace(harness_config: HarnessConfig) -> Iterator[Workspace]:
    with Workspace(
        root=harness_config.workspace_root,
        prefix=harness_config.workspace_prefix,
        keep=harness_config.keep_workspace,
    ) as ws:
        yield ws


@pytest.fixture
def package_repository(harness_config: HarnessConfig) -> PackageRepository:
    return PackageRepository(harness_config)


@pytest.fixture
def repository_context(
    package_repository: PackageRepository,
    workspace: Workspace,
    package_feeds: list[FeedReference],
) -> Iterator[RepositoryContext]:
    with package_repository.open(workspace, package_feeds) as context:
        yield context


@pytest_asyncio.fixture
async def package_scenario(
    harness_config: HarnessConfig,
    package_feeds: list[FeedReference],
    process_runner: ProcessRunner,
) -> AsyncIterator[PackageScenario]:
    async with PackageScenario(package_feeds, harness_config, runner=process_runner) as scenario:
        yield scenario
