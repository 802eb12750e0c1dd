"""
Monitoring session configuration
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class MonitorKind(Enum):
    LOG = "log"
    PORT = "port"
    PROCESS = "process"
    COMPREHENSIVE = "comprehensive"
    DIRECTORY = "directory"
    NETWORK = "network"


@dataclass
class MonitorConfig:
    """What to watch for a project and how often to refresh"""

    project_id: str
    kind: MonitorKind
    target: str = ""
    refresh_interval: int = 1
    command: Optional[str] = None
    title: Optional[str] = None

    @property
    def target_int(self) -> Optional[int]:
        """Target parsed as a port or PID, None when not numeric"""
        try:
            return int(self.target.strip())
        except (AttributeError, ValueError):
            return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MonitorConfig":
        return cls(
            project_id=str(data["projectId"]),
            kind=MonitorKind(data["type"]),
            target=str(data.get("target", "")),
            refresh_interval=int(data.get("refreshInterval", 1)),
            command=data.get("command"),
            title=data.get("terminalTitle"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "projectId": self.project_id,
            "type": self.kind.value,
            "target": self.target,
            "refreshInterval": self.refresh_interval,
        }
        if self.command:
            data["command"] = self.command
        if self.title:
            data["terminalTitle"] = self.title
        return data
