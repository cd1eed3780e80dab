"""
feedharness.integrations.dotnet - .NET CLI Adapter
====================================================

The package manager and build tool are external black boxes. This adapter
only knows how to spell the three commands the scenarios need, and runs
them through the ProcessRunner:

    dotnet tool install <id> --tool-path <dir> --configfile <nuget.config>
                        [--prerelease] [--version <v>]
    dotnet build <project> -v:n -nodeReuse:false
                        [-p:RestoreConfigFile=<nuget.config> | --no-restore]

plus generating the minimal SDK-style consumer project that references a
build-task package.

Every call receives the RepositoryContext's environment overrides so that
restore writes into the workspace cache, never into ~/.nuget/packages.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Optional, Sequence
from xml.sax.saxutils import quoteattr

import structlog

from feedharness.core.config import HarnessConfig
from feedharness.core.models import ProcessResult
from feedharness.integrations.process import ProcessRunner


logger = structlog.get_logger()


# Keeps the CLI quiet and stops MSBuild worker nodes from outliving the
# build and holding files inside the workspace.
CLI_ENVIRONMENT: dict[str, str] = {
    "DOTNET_CLI_TELEMETRY_OPTOUT": "1",
    "DOTNET_NOLOGO": "1",
    "DOTNET_SKIP_FIRST_TIME_EXPERIENCE": "1",
    "MSBUILDDISABLENODEREUSE": "1",
}

DEFAULT_TARGET_FRAMEWORK = "netstandard2.0"

_INCREMENTAL_SKIP_TEMPLATE = (
    'Skipping target "{target}" because all output files are up-to-date '
    "with respect to the input files."
)


def incremental_skip_message(target: str) -> str:
    """The line MSBuild logs when an up-to-date target is skipped."""
    return _INCREMENTAL_SKIP_TEMPLATE.format(target=target)


def render_consumer_project(
    package_id: str,
    version: str,
    target_framework: str = DEFAULT_TARGET_FRAMEWORK,
) -> str:
    """SDK-style project text with a single PackageReference."""
    return (
        '<Project Sdk="Microsoft.NET.Sdk">\n'
        "  <PropertyGroup>\n"
        f"    <TargetFramework>{target_framework}</TargetFramework>\n"
        "  </PropertyGroup>\n"
        "  <ItemGroup>\n"
        f"    <PackageReference Include={quoteattr(package_id)} Version={quoteattr(version)} />\n"
        "  </ItemGroup>\n"
        "</Project>\n"
    )


class DotnetCli:
    """Thin command builder over ProcessRunner for the .NET SDK.

    Attributes:
        runner: Process runner used for every invocation.
        executable: The ``dotnet`` executable (from the package manager config).
    """

    def __init__(self, runner: ProcessRunner, config: Optional[HarnessConfig] = None) -> None:
        self.runner = runner
        self.config = config or runner.config
        self.executable = self.config.package_manager.executable
        self._logger = logger.bind(component="dotnet_cli")

    def _environment(self, env: Optional[Mapping[str, str]]) -> dict[str, str]:
        merged = dict(CLI_ENVIRONMENT)
        if env:
            merged.update(env)
        return merged

    async def tool_install(
        self,
        package_id: str,
        tool_path: Path,
        config_file: Path,
        prerelease: bool = True,
        version: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
    ) -> ProcessResult:
        """Install a tool package into ``tool_path`` using only ``config_file``'s feeds."""
        args = [
            "tool",
            "install",
            package_id,
            "--tool-path",
            str(tool_path),
            "--configfile",
            str(config_file),
        ]
        if prerelease and version is None:
            args.append("--prerelease")
        if version is not None:
            args.extend(["--version", version])

        self._logger.info("tool_install", package=package_id, version=version, tool_path=str(tool_path))
        return await self.runner.run(self.executable, args, cwd=cwd, env=self._environment(env))

    def create_consumer_project(
        self,
        directory: Path,
        package_id: str,
        version: str,
        name: str = "Sample",
        target_framework: str = DEFAULT_TARGET_FRAMEWORK,
    ) -> Path:
        """Write ``<directory>/<name>/<name>.csproj`` referencing the package."""
        project_dir = directory / name
        project_dir.mkdir(parents=True, exist_ok=True)
        project_path = project_dir / f"{name}.csproj"
        project_path.write_text(
            render_consumer_project(package_id, version, target_framework),
            encoding="utf-8",
        )
        self._logger.debug("consumer_project_created", path=str(project_path), package=package_id)
        return project_path

    async def build(
        self,
        project: Path,
        config_file: Optional[Path] = None,
        restore: bool = True,
        env: Optional[Mapping[str, str]] = None,
        extra_args: Sequence[str] = (),
    ) -> ProcessResult:
        """Build a project with normal verbosity so task messages reach stdout.

        Args:
            project: Project file to build.
            config_file: Source configuration used by restore.
            restore: False adds ``--no-restore`` (incremental rebuilds).
            env: Environment overrides (repository cache redirect).
            extra_args: Additional MSBuild arguments.
        """
        args = ["build", str(project), "-v:n", "-nodeReuse:false"]
        if not restore:
            args.append("--no-restore")
        elif config_file is not None:
            args.append(f"-p:RestoreConfigFile={config_file}")
        args.extend(extra_args)

        self._logger.info("build", project=str(project), restore=restore)
        return await self.runner.run(
            self.executable,
            args,
            cwd=project.parent,
            env=self._environment(env),
        )
