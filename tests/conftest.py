"""
Shared Test Fixtures for feedharness
======================================

Fixtures are organized by layer:

    1. Configuration (overrides the plugin's ``harness_config``)
    2. Package builders (fake .nupkg files in a local feed)
    3. Scripted ``dotnet`` stand-in for end-to-end scenarios

Every fixture writes under ``tmp_path``; nothing touches the real home
directory or package cache (HOME is redirected too, so a leak into the
"global cache" is observable).
"""

from __future__ import annotations

import json
import sys
import zipfile
from pathlib import Path
from typing import Callable

import pytest

from feedharness.core.config import HarnessConfig, PackageManagerConfig


FAKE_DOTNET_SOURCE = Path(__file__).parent / "fakes" / "fake_dotnet.py"

SAMPLE_TOOL_SOURCE = '''\
import sys

words = " ".join(sys.argv[1:])
print("        " + words)
print("        " + "_" * len(words))
print("                \\\\")
print("                 [sample-tool]")
'''

PackageBuilder = Callable[..., Path]


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HOME at a temp dir and start every test without NUGET_PACKAGES."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.delenv("NUGET_PACKAGES", raising=False)
    return home


@pytest.fixture
def harness_config(tmp_path: Path) -> HarnessConfig:
    """HarnessConfig with workspaces under tmp_path and short timeouts."""
    workspace_root = tmp_path / "workspaces"
    workspace_root.mkdir()
    return HarnessConfig(
        workspace_root=workspace_root,
        process_timeout_seconds=60,
        lock_timeout_seconds=1,
    )


# =============================================================================
# Package Builders
# =============================================================================

@pytest.fixture
def feed_dir(tmp_path: Path) -> Path:
    """A local feed directory, laid out like a build's artifacts folder."""
    directory = tmp_path / "artifacts" / "package" / "release"
    directory.mkdir(parents=True)
    return directory


def _write_package(path: Path, files: dict[str, str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return path


@pytest.fixture
def build_tool_package() -> PackageBuilder:
    """Factory: write a tool package ``{name}.{version}.nupkg``."""

    def build(
        directory: Path,
        name: str = "sample-tool",
        version: str = "1.0.0",
        command: str = "sample-tool",
        source: str = SAMPLE_TOOL_SOURCE,
    ) -> Path:
        return _write_package(
            directory / f"{name}.{version}.nupkg",
            {
                "tool.json": json.dumps({"command": command}),
                "tool.py": source,
            },
        )

    return build


@pytest.fixture
def build_task_package() -> PackageBuilder:
    """Factory: write a build-task package ``{name}.{version}.nupkg``."""

    def build(
        directory: Path,
        name: str = "sample-task",
        version: str = "1.0.0",
        target: str = "DoEcho",
        message: str = "Hello, world!",
    ) -> Path:
        return _write_package(
            directory / f"{name}.{version}.nupkg",
            {"build/task.json": json.dumps({"target": target, "message": message})},
        )

    return build


# =============================================================================
# Scripted dotnet
# =============================================================================

@pytest.fixture
def fake_dotnet(tmp_path: Path) -> Path:
    """An executable ``dotnet`` stand-in (POSIX only: relies on a shebang)."""
    if sys.platform == "win32":
        pytest.skip("scripted dotnet stand-in needs shebang execution")
    bin_dir = tmp_path / "fake-sdk"
    bin_dir.mkdir()
    executable = bin_dir / "dotnet"
    executable.write_text(f"#!{sys.executable}\n" + FAKE_DOTNET_SOURCE.read_text())
    executable.chmod(0o755)
    return executable


@pytest.fixture
def fake_config(harness_config: HarnessConfig, fake_dotnet: Path) -> HarnessConfig:
    """harness_config wired to the scripted dotnet."""
    return harness_config.model_copy(
        update={"package_manager": PackageManagerConfig(executable=str(fake_dotnet))}
    )
