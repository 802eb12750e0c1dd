"""
Focused Command Modules
Contains command classes organized by domain
"""

from .project_commands import (
    RunProjectActionCommand,
    RunAllCommand,
    DeployAllCommand,
    RefreshStatusCommand,
    OpenMonitorCommand,
)
from .update_commands import CheckForUpdateCommand, InstallUpdateCommand

__all__ = [
    "RunProjectActionCommand",
    "RunAllCommand",
    "DeployAllCommand",
    "RefreshStatusCommand",
    "OpenMonitorCommand",
    "CheckForUpdateCommand",
    "InstallUpdateCommand",
]
