"""
feedharness.integrations - External Process Layer
===================================================

    - process: ProcessRunner, the only component that spawns processes
    - dotnet:  DotnetCli, the .NET SDK commands built on top of it
"""

from feedharness.integrations.dotnet import DotnetCli, incremental_skip_message
from feedharness.integrations.process import ProcessRunner

__all__ = [
    "DotnetCli",
    "ProcessRunner",
    "incremental_skip_message",
]
