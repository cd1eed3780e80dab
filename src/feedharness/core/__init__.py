"""
feedharness.core - Foundation Layer
=====================================

The building blocks every other module depends on:

    - config:         HarnessConfig, PackageManagerConfig, load_config
    - enums:          EnvironmentMode, ScenarioState
    - models:         Artifact, FeedReference, ProcessResult
    - exceptions:     HarnessError hierarchy and CleanupWarning
    - logging_setup:  structlog configuration

Dependency Rule:
    core/ depends on nothing else in the feedharness package. No I/O
    happens at import time.
"""

from feedharness.core.config import HarnessConfig, PackageManagerConfig
from feedharness.core.enums import EnvironmentMode, ScenarioState
from feedharness.core.exceptions import (
    AmbiguousOrMissingArtifactError,
    CleanupWarning,
    ConfigurationError,
    HarnessError,
    NotFoundError,
    ProcessFailedError,
    ProcessLaunchError,
    ProcessTimeoutError,
    RepositoryLockError,
    ScenarioStateError,
    WorkspaceUnavailableError,
)
from feedharness.core.models import Artifact, FeedReference, ProcessResult

__all__ = [
    # Config
    "HarnessConfig",
    "PackageManagerConfig",
    # Enums
    "EnvironmentMode",
    "ScenarioState",
    # Models
    "Artifact",
    "FeedReference",
    "ProcessResult",
    # Exceptions
    "HarnessError",
    "ConfigurationError",
    "NotFoundError",
    "AmbiguousOrMissingArtifactError",
    "WorkspaceUnavailableError",
    "RepositoryLockError",
    "ProcessLaunchError",
    "ProcessTimeoutError",
    "ProcessFailedError",
    "ScenarioStateError",
    "CleanupWarning",
]
