"""
feedharness.scenario - Package Test Scenario
==============================================

PackageScenario is the single object a test drives. It composes the lower
layers in a fixed order and unwinds them in reverse, whatever happens in
between:

    ┌──────────────────────────── Workspace (outer) ─────────────────────┐
    │  ┌────────────────────── RepositoryContext (inner) ──────────────┐ │
    │  │  install_tool() ──→ run_tool()                                │ │
    │  │  create_consumer_project() ──→ build() ──→ build()            │ │
    │  └───────────────────────────────────────────────────────────────┘ │
    └────────────────────────────────────────────────────────────────────┘

State Machine:
    INIT → WORKSPACE_OPEN → REPO_OPEN → INSTALLED → EXERCISED
                                  └────────────────────┘  (build flow)
    on exit (always):       ... → REPO_CLOSED → WORKSPACE_CLOSED

Usage:
    >>> async with PackageScenario(feeds, config) as scenario:
    ...     await scenario.install_tool("microsoft.botsay")
    ...     result = await scenario.run_tool("botsay", ["hello"])
    ...     assert result.exit_code == 0
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Sequence

import structlog

from feedharness.core.config import HarnessConfig
from feedharness.core.enums import ScenarioState
from feedharness.core.exceptions import ScenarioStateError
from feedharness.core.models import FeedReference, ProcessResult
from feedharness.infrastructure.repository import PackageRepository, RepositoryContext
from feedharness.infrastructure.workspace import Workspace
from feedharness.integrations.dotnet import DotnetCli
from feedharness.integrations.process import ProcessRunner


logger = structlog.get_logger()


class PackageScenario:
    """Install-and-exercise flow for one package inside one isolated workspace.

    Attributes:
        feeds: Package sources for the repository context.
        config: Harness configuration.
        runner: Process runner; its search path gains the workspace tool
            directory after ``install_tool``.
        dotnet: .NET CLI adapter bound to ``runner``.
    """

    def __init__(
        self,
        feeds: Sequence[FeedReference],
        config: Optional[HarnessConfig] = None,
        *,
        runner: Optional[ProcessRunner] = None,
        repository: Optional[PackageRepository] = None,
    ) -> None:
        self.feeds = list(feeds)
        self.config = config or HarnessConfig()
        self.runner = runner or ProcessRunner(self.config)
        self.dotnet = DotnetCli(self.runner, self.config)
        self._repository = repository or PackageRepository(self.config)
        self._workspace = Workspace(
            root=self.config.workspace_root,
            prefix=self.config.workspace_prefix,
            keep=self.config.keep_workspace,
        )
        self._context: Optional[RepositoryContext] = None
        self._tool_dir: Optional[Path] = None
        self._state = ScenarioState.INIT
        self._logger = logger.bind(component="package_scenario")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> ScenarioState:
        return self._state

    @property
    def workspace(self) -> Workspace:
        return self._workspace

    @property
    def context(self) -> RepositoryContext:
        """The open repository context.

        Raises:
            ScenarioStateError: Outside REPO_OPEN / INSTALLED / EXERCISED.
        """
        self._require_active("context")
        if self._context is None:
            raise ScenarioStateError(
                message="No repository context is open",
                current_state=self._state.value,
                details={"operation": "context"},
            )
        return self._context

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self) -> PackageScenario:
        """Create the workspace, then the repository context inside it."""
        if self._state is not ScenarioState.INIT:
            raise ScenarioStateError(
                message="A scenario can only be opened once",
                current_state=self._state.value,
            )

        self._workspace.open()
        self._transition(ScenarioState.WORKSPACE_OPEN)
        try:
            self._context = await self._repository.open_async(self._workspace, self.feeds)
        except BaseException:
            self._workspace.close()
            self._transition(ScenarioState.WORKSPACE_CLOSED)
            raise
        self._transition(ScenarioState.REPO_OPEN)
        return self

    async def close(self) -> None:
        """Close the repository context, then delete the workspace. Idempotent."""
        if self._state in (ScenarioState.INIT, ScenarioState.WORKSPACE_CLOSED):
            self._state = ScenarioState.WORKSPACE_CLOSED
            return
        try:
            if self._context is not None and self._context.is_open:
                self._context.close()
                self._transition(ScenarioState.REPO_CLOSED)
        finally:
            # A shared runner must not keep resolving from a deleted workspace
            if self._tool_dir is not None:
                self.runner.remove_search_path(self._tool_dir)
                self._tool_dir = None
            self._workspace.close()
            self._transition(ScenarioState.WORKSPACE_CLOSED)

    async def __aenter__(self) -> PackageScenario:
        return await self.open()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # =========================================================================
    # Tool Packages
    # =========================================================================

    async def install_tool(
        self,
        package_id: str,
        version: Optional[str] = None,
        prerelease: bool = True,
        check: bool = True,
    ) -> ProcessResult:
        """Install a tool package into the workspace and put it on the search path.

        Args:
            package_id: Tool package identifier.
            version: Exact version, or None for the latest available.
            prerelease: Allow prerelease versions when no version is given.
            check: Raise ProcessFailedError if the install exits non-zero.
        """
        self._require_active("install_tool")
        context = self.context
        result = await self.dotnet.tool_install(
            package_id,
            tool_path=self._workspace.bin_dir,
            config_file=context.config_path,
            prerelease=prerelease,
            version=version,
            env=context.environment(),
            cwd=self._workspace.path,
        )
        if check:
            result.check()
        if result.succeeded:
            self._tool_dir = self._workspace.bin_dir
            self.runner.prepend_search_path(self._tool_dir)
            if self._state is ScenarioState.REPO_OPEN:
                self._transition(ScenarioState.INSTALLED)
        return result

    async def run_tool(self, command: str, args: Sequence[str] = ()) -> ProcessResult:
        """Run an installed tool from inside the workspace."""
        if self._state not in (ScenarioState.INSTALLED, ScenarioState.EXERCISED):
            raise ScenarioStateError(
                message="run_tool() requires a successful install_tool() first",
                current_state=self._state.value,
            )
        result = await self.runner.run(
            command,
            args,
            cwd=self._workspace.path,
            env=self.context.environment(),
        )
        self._transition(ScenarioState.EXERCISED)
        return result

    # =========================================================================
    # Build-Task Packages
    # =========================================================================

    def create_consumer_project(
        self,
        package_id: str,
        version: str,
        name: str = "Sample",
    ) -> Path:
        """Generate a project in the workspace that references the package."""
        self._require_active("create_consumer_project")
        return self.dotnet.create_consumer_project(self._workspace.path, package_id, version, name=name)

    async def build(self, project: Path, restore: bool = True) -> ProcessResult:
        """Build a consumer project; the result's stdout is the build log."""
        self._require_active("build")
        context = self.context
        result = await self.dotnet.build(
            project,
            config_file=context.config_path,
            restore=restore,
            env=context.environment(),
        )
        self._transition(ScenarioState.EXERCISED)
        return result

    # =========================================================================
    # Internals
    # =========================================================================

    def _require_active(self, operation: str) -> None:
        if not self._state.is_active:
            raise ScenarioStateError(
                message=f"{operation} needs an open repository context",
                current_state=self._state.value,
                details={"operation": operation},
            )

    def _transition(self, new_state: ScenarioState) -> None:
        if new_state is self._state:
            return
        self._logger.debug(
            "scenario_transition",
            from_state=self._state.value,
            to_state=new_state.value,
        )
        self._state = new_state
