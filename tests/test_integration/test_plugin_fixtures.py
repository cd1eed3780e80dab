"""
Tests for feedharness.pytest_plugin
=====================================

The plugin's fixtures are available because the package registers it
through the ``pytest11`` entry point. This module points ``harness_config``
at a temp artifacts directory and the scripted ``dotnet``, then uses the
plugin fixtures the way a downstream suite would.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from feedharness.core.config import HarnessConfig, PackageManagerConfig
from feedharness.core.enums import ScenarioState
from feedharness.infrastructure.repository import RepositoryContext
from feedharness.infrastructure.workspace import Workspace
from feedharness.scenario import PackageScenario


pytestmark = pytest.mark.integration


@pytest.fixture
def harness_config(
    harness_config: HarnessConfig,
    fake_dotnet: Path,
    feed_dir: Path,
    build_tool_package,
) -> HarnessConfig:
    build_tool_package(feed_dir, name="sample-tool", version="1.0.0")
    return harness_config.model_copy(
        update={
            "artifacts_path": feed_dir.parent.parent,
            "package_manager": PackageManagerConfig(executable=str(fake_dotnet)),
        }
    )


class TestPluginFixtures:
    """The fixture chain from config to scenario."""

    def test_artifacts_path_from_config(self, artifacts_path: Path, feed_dir: Path) -> None:
        assert artifacts_path == feed_dir.parent.parent.resolve()

    def test_package_feeds(self, package_feeds, feed_dir: Path) -> None:
        assert [feed.location for feed in package_feeds] == [feed_dir.resolve().as_uri()]

    def test_workspace_fixture(self, workspace: Workspace, harness_config: HarnessConfig) -> None:
        assert workspace.is_open
        assert workspace.path.parent == harness_config.workspace_root.resolve()

    def test_repository_context_fixture(
        self, repository_context: RepositoryContext, workspace: Workspace
    ) -> None:
        assert repository_context.is_open
        assert repository_context.config_path.parent == workspace.path
        assert "NUGET_PACKAGES" not in os.environ

    async def test_package_scenario_fixture(self, package_scenario: PackageScenario) -> None:
        assert package_scenario.state is ScenarioState.REPO_OPEN
        await package_scenario.install_tool("sample-tool")
        result = await package_scenario.run_tool("sample-tool", ["hello"])
        assert result.exit_code == 0
        assert result.stdout.splitlines()[0].strip() == "hello"
