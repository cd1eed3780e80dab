"""
feedharness.core.enums - Type-Safe Enumerations
=================================================

All enums inherit from both ``str`` and ``Enum`` so they serialize as plain
strings (Pydantic, YAML, environment variables) and compare equal to them:

    >>> EnvironmentMode.EXPLICIT == "explicit"
    True
"""

from enum import Enum


# =============================================================================
# Environment Mode
# =============================================================================
# How a RepositoryContext keeps the package manager away from the user's
# global cache:
#
#   EXPLICIT → cache override is handed to each child process; os.environ is
#              never touched, so contexts can be open concurrently.
#   PROCESS  → cache variable is overridden in os.environ for the lifetime of
#              the context and restored on close. Serialized by a process-wide
#              lock. Only for tools that cannot be given an explicit env.
# =============================================================================
class EnvironmentMode(str, Enum):
    """Strategy used to redirect the package manager's global cache."""

    EXPLICIT = "explicit"
    PROCESS = "process"


# =============================================================================
# Scenario State
# =============================================================================
# The lifecycle of a single PackageScenario. Transitions only move forward;
# on unwind the scenario always passes through REPO_CLOSED before
# WORKSPACE_CLOSED, even when an earlier step raised.
#
#   INIT → WORKSPACE_OPEN → REPO_OPEN → INSTALLED → EXERCISED
#                                 └──────────────────────┘ (build-only flow)
#   ... → REPO_CLOSED → WORKSPACE_CLOSED
# =============================================================================
class ScenarioState(str, Enum):
    """Lifecycle states of a PackageScenario."""

    INIT = "init"
    WORKSPACE_OPEN = "workspace_open"
    REPO_OPEN = "repo_open"
    INSTALLED = "installed"
    EXERCISED = "exercised"
    REPO_CLOSED = "repo_closed"
    WORKSPACE_CLOSED = "workspace_closed"

    @property
    def is_active(self) -> bool:
        """True while the repository context is open and usable."""
        return self in (
            ScenarioState.REPO_OPEN,
            ScenarioState.INSTALLED,
            ScenarioState.EXERCISED,
        )
