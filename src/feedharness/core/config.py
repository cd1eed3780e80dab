"""
feedharness.core.config - Configuration Management
====================================================

Configuration is loaded from several sources, highest priority first:

    1. Explicit constructor arguments
    2. Environment variables (prefixed with FEEDHARNESS_)
    3. YAML configuration file (feedharness.yaml)
    4. Default values defined in the models below

Architecture Context:
    One HarnessConfig is created per test session (see the pytest plugin)
    and handed to every component:

        HarnessConfig
            ├── PackageManagerConfig → PackageRepository, DotnetCli
            ├── workspace_*          → Workspace
            ├── process_timeout_*    → ProcessRunner
            └── artifacts_path       → ArtifactLocator (via build metadata)

Environment Variables:
    FEEDHARNESS_LOG_LEVEL=DEBUG
    FEEDHARNESS_ARTIFACTS_PATH=/repo/artifacts/package
    FEEDHARNESS_KEEP_WORKSPACE=true
    FEEDHARNESS_ENVIRONMENT_MODE=process
    FEEDHARNESS_PACKAGE_MANAGER__EXECUTABLE=/usr/share/dotnet/dotnet
"""

from __future__ import annotations

from contextvars import ContextVar
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from feedharness.core.enums import EnvironmentMode
from feedharness.core.exceptions import ConfigurationError


DEFAULT_CONFIG_FILE = "feedharness.yaml"

# Values read by load_config(), visible to the settings source below while
# the HarnessConfig is being built.
_yaml_values: ContextVar[dict[str, Any]] = ContextVar("feedharness_yaml_values", default={})


# =============================================================================
# YAML Settings Source
# =============================================================================
class YamlValuesSettingsSource(PydanticBaseSettingsSource):
    """Settings source for values parsed from feedharness.yaml.

    Ranked below environment variables, so FEEDHARNESS_* wins over the file.
    """

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return _yaml_values.get().get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return dict(_yaml_values.get())


# =============================================================================
# Package Manager Configuration
# =============================================================================
# Everything the harness needs to know about the external package manager.
# The defaults describe the .NET SDK / NuGet; nothing else in the harness
# hard-codes these names.
# =============================================================================
class PackageManagerConfig(BaseModel):
    """Configuration for the external package manager.

    Attributes:
        executable: Name or path of the package-manager CLI.
        cache_env_var: Environment variable the package manager reads to
            locate its global package cache. Snapshotted and overridden by
            every repository context.
        config_file_name: File name of the generated source configuration.
        package_extension: Extension of built package files.
        default_feeds: Extra remote feeds appended after the local ones
            (lowest precedence). Build-task packages usually need the public
            feed to restore their own build dependencies.
    """

    executable: str = Field(
        default="dotnet",
        description="Package manager CLI executable",
    )
    cache_env_var: str = Field(
        default="NUGET_PACKAGES",
        description="Environment variable naming the global package cache",
    )
    config_file_name: str = Field(
        default="nuget.config",
        description="File name of the generated package source configuration",
    )
    package_extension: str = Field(
        default=".nupkg",
        description="Extension of built package files",
    )
    default_feeds: list[str] = Field(
        default_factory=list,
        description="Remote feeds appended after local feeds",
    )


# =============================================================================
# Main Configuration
# =============================================================================
class HarnessConfig(BaseSettings):
    """Top-level configuration for feedharness.

    Attributes:
        environment: Where the tests run. ``ci`` keeps the same behavior as
            ``dev`` but is handy for conditional fixtures.
        log_level: Level for structlog output.
        artifacts_path: Root directory containing built packages. Overrides
            the ``ArtifactsPath`` build metadata key when set.
        metadata_file: JSON file holding build metadata (key → value).
        workspace_root: Parent directory for workspaces. ``None`` uses the
            system temp directory.
        workspace_prefix: Name prefix for workspace directories.
        keep_workspace: Skip deleting workspaces (for debugging failures).
        environment_mode: How repository contexts redirect the cache.
        process_timeout_seconds: Default timeout for each external process.
        lock_timeout_seconds: How long a PROCESS-mode repository context
            waits for the process-wide environment lock.
        package_manager: Package manager configuration.
    """

    environment: Literal["dev", "ci"] = Field(
        default="dev",
        description="Execution environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    artifacts_path: Optional[Path] = Field(
        default=None,
        description="Root directory of built packages (overrides build metadata)",
    )
    metadata_file: Optional[Path] = Field(
        default=None,
        description="JSON file with build metadata",
    )
    workspace_root: Optional[Path] = Field(
        default=None,
        description="Parent directory for workspaces (None = system temp)",
    )
    workspace_prefix: str = Field(
        default="feedharness-",
        min_length=1,
        description="Name prefix for workspace directories",
    )
    keep_workspace: bool = Field(
        default=False,
        description="Keep workspaces after tests for inspection",
    )
    environment_mode: EnvironmentMode = Field(
        default=EnvironmentMode.EXPLICIT,
        description="How repository contexts redirect the global package cache",
    )
    process_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Default timeout for external processes",
    )
    lock_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Wait limit for the process-wide environment lock",
    )

    package_manager: PackageManagerConfig = Field(
        default_factory=PackageManagerConfig,
        description="Package manager configuration",
    )

    model_config = {
        "env_prefix": "FEEDHARNESS_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
            YamlValuesSettingsSource(settings_cls),
        )


# =============================================================================
# Configuration Loader
# =============================================================================
def load_config(path: Optional[str] = None) -> HarnessConfig:
    """Load configuration from a YAML file and/or environment variables.

    Args:
        path: Path to a YAML configuration file. If None, looks for
            ``feedharness.yaml`` in the current directory and falls back to
            defaults + environment variables when it is absent.

    Returns:
        A validated HarnessConfig.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ConfigurationError: If the YAML file cannot be parsed or is not a mapping.
    """
    if path is None:
        default_path = Path(DEFAULT_CONFIG_FILE)
        if default_path.exists():
            path = str(default_path)

    yaml_data: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(config_path) as f:
            try:
                raw_data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    message=f"Invalid YAML in {path}: {e}",
                    error_code="INVALID_CONFIG_FILE",
                    details={"path": str(config_path)},
                ) from e

        if raw_data is None:
            raw_data = {}
        if not isinstance(raw_data, dict):
            raise ConfigurationError(
                message=f"Configuration file {path} must contain a mapping",
                error_code="INVALID_CONFIG_FILE",
                details={"path": str(config_path), "type": type(raw_data).__name__},
            )
        yaml_data = raw_data

    token = _yaml_values.set(yaml_data)
    try:
        return HarnessConfig()
    finally:
        _yaml_values.reset(token)


def get_default_config() -> HarnessConfig:
    """Create a HarnessConfig from defaults and environment variables."""
    return HarnessConfig()
