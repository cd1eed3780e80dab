"""
feedharness.infrastructure.metadata - Build Metadata
======================================================

The build that produces the packages also tells the tests where it put
them. That handoff is a flat string mapping (``ArtifactsPath`` →
``/repo/artifacts/package``) which can come from:

    1. A JSON file written by the build (``metadata_file`` in the config),
       e.g. ``{"ArtifactsPath": "/repo/artifacts/package"}``
    2. Environment variables ``FEEDHARNESS_METADATA_<KEY>``; the key is
       matched case-insensitively, so FEEDHARNESS_METADATA_ARTIFACTSPATH
       supplies ``ArtifactsPath``

Later sources override earlier ones. ``HarnessConfig.artifacts_path``
(``FEEDHARNESS_ARTIFACTS_PATH``) overrides all of them for the one key
that matters.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Mapping, Optional

import structlog

from feedharness.core.config import HarnessConfig
from feedharness.core.exceptions import ConfigurationError


logger = structlog.get_logger()

ARTIFACTS_PATH_KEY = "ArtifactsPath"
METADATA_ENV_PREFIX = "FEEDHARNESS_METADATA_"


def _read_metadata_file(path: Path) -> dict[str, str]:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(
            message=f"Build metadata file {str(path)!r} not found",
            error_code="METADATA_FILE_MISSING",
            details={"path": str(path)},
        ) from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            message=f"Build metadata file {str(path)!r} is not valid JSON: {e}",
            error_code="METADATA_FILE_INVALID",
            details={"path": str(path)},
        ) from e

    if not isinstance(raw, dict):
        raise ConfigurationError(
            message=f"Build metadata file {str(path)!r} must contain a JSON object",
            error_code="METADATA_FILE_INVALID",
            details={"path": str(path), "type": type(raw).__name__},
        )
    return {str(key): str(value) for key, value in raw.items() if value is not None}


def load_build_metadata(
    config: Optional[HarnessConfig] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """Collect build metadata from the metadata file and the environment.

    Args:
        config: Harness configuration (for ``metadata_file``).
        environ: Environment to read; defaults to ``os.environ``.

    Returns:
        Key → value mapping. Keys keep the casing from the file; keys that
        only come from the environment are as spelled after the prefix.

    Raises:
        ConfigurationError: If the configured metadata file is missing or invalid.
    """
    config = config or HarnessConfig()
    environ = os.environ if environ is None else environ

    metadata: dict[str, str] = {}
    if config.metadata_file is not None:
        metadata.update(_read_metadata_file(config.metadata_file))

    by_lower = {key.lower(): key for key in metadata}
    for name, value in environ.items():
        if not name.upper().startswith(METADATA_ENV_PREFIX):
            continue
        suffix = name[len(METADATA_ENV_PREFIX):]
        key = by_lower.get(suffix.lower(), suffix)
        metadata[key] = value

    logger.debug("build_metadata_loaded", keys=sorted(metadata))
    return metadata


def resolve_artifacts_path(
    metadata: Mapping[str, str],
    config: Optional[HarnessConfig] = None,
) -> Path:
    """Return the directory holding the built packages.

    Raises:
        ConfigurationError: If the key is missing or the directory does not exist.
    """
    if config is not None and config.artifacts_path is not None:
        candidate: Optional[str] = str(config.artifacts_path)
    else:
        lowered = {key.lower(): value for key, value in metadata.items()}
        candidate = lowered.get(ARTIFACTS_PATH_KEY.lower())

    if not candidate:
        raise ConfigurationError(
            message=f"Build metadata key {ARTIFACTS_PATH_KEY!r} not found",
            error_code="MISSING_METADATA",
            details={"key": ARTIFACTS_PATH_KEY, "available": sorted(metadata)},
        )

    path = Path(candidate)
    if not path.is_dir():
        raise ConfigurationError(
            message=f"{ARTIFACTS_PATH_KEY} {candidate!r} does not exist",
            error_code="ARTIFACTS_PATH_MISSING",
            details={"key": ARTIFACTS_PATH_KEY, "path": candidate},
        )
    return path.resolve()
