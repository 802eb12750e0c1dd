"""
Data models for devdock projects
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

DEFAULT_LOG_PATH = "app.log"
CONTAINER_TYPES = ("docker",)


class ProjectStatus(Enum):
    """Last-known run state of a project"""

    RUNNING = "running"
    STOPPED = "stopped"

    @classmethod
    def parse(cls, value: Any) -> "ProjectStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.STOPPED


class ProjectAction:
    """Lifecycle action names understood by the orchestrator"""

    DEPLOY = "deploy"
    START = "start"
    STOP = "stop"
    INSTALL = "install"
    UPDATE = "update"

    ALL = (DEPLOY, START, STOP, INSTALL, UPDATE)


@dataclass
class Project:
    """Represents a managed project with its metadata and cached state"""

    id: str
    name: str
    type: str
    path: Optional[str] = None
    ports: Optional[List[int]] = None
    scripts: Optional[Dict[str, str]] = None
    script_urls: Optional[Dict[str, str]] = None
    needs_sudo: Optional[Dict[str, bool]] = None
    launcher_path: Optional[str] = None
    status: ProjectStatus = ProjectStatus.STOPPED
    pid: Optional[int] = None
    log_path: str = DEFAULT_LOG_PATH

    # JSON key for each attribute whose stored name differs
    _JSON_KEYS = {
        "script_urls": "scriptUrls",
        "needs_sudo": "needsSudo",
        "launcher_path": "launcherPath",
        "log_path": "logPath",
    }

    @property
    def normalized_type(self) -> str:
        return self.type.strip().lower()

    @property
    def is_container(self) -> bool:
        return self.normalized_type in CONTAINER_TYPES

    @property
    def is_running(self) -> bool:
        return self.status is ProjectStatus.RUNNING

    @property
    def primary_port(self) -> Optional[int]:
        return self.ports[0] if self.ports else None

    @property
    def captured_launcher(self) -> str:
        """Launcher path with surrounding whitespace removed, empty if unset"""
        return (self.launcher_path or "").strip()

    @property
    def log_file(self) -> Optional[Path]:
        """Absolute log file location, or None when no project path is set"""
        if not self.path or not self.path.strip():
            return None
        return Path(self.path) / self.log_path

    def script_url(self, action: str) -> Optional[str]:
        """Remote script URL configured for an action"""
        if not self.script_urls:
            return None
        url = self.script_urls.get(action)
        return url.strip() if url and url.strip() else None

    def needs_privileges(self, action: str) -> bool:
        """Whether the action must run with elevated privileges"""
        if not self.needs_sudo:
            return False
        return bool(self.needs_sudo.get(action, False))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON store format, omitting unset optionals"""
        data: Dict[str, Any] = {}
        for attr in (
            "id",
            "name",
            "type",
            "path",
            "ports",
            "scripts",
            "script_urls",
            "needs_sudo",
            "launcher_path",
            "status",
            "pid",
            "log_path",
        ):
            value = getattr(self, attr)
            if value is None:
                continue
            if isinstance(value, ProjectStatus):
                value = value.value
            elif isinstance(value, (list, dict)):
                value = type(value)(value)
            data[self._JSON_KEYS.get(attr, attr)] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        """Build a Project from a JSON store record, ignoring unknown keys"""
        for required in ("id", "name", "type"):
            if required not in data:
                raise ValueError(f"Project record is missing '{required}'")

        def read(attr: str, default: Any = None) -> Any:
            return data.get(cls._JSON_KEYS.get(attr, attr), default)

        ports = read("ports")
        pid = read("pid")
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            type=str(data["type"]),
            path=read("path"),
            ports=[int(port) for port in ports] if ports is not None else None,
            scripts=read("scripts"),
            script_urls=read("script_urls"),
            needs_sudo=read("needs_sudo"),
            launcher_path=read("launcher_path"),
            status=ProjectStatus.parse(read("status", ProjectStatus.STOPPED.value)),
            pid=int(pid) if pid is not None else None,
            log_path=read("log_path") or DEFAULT_LOG_PATH,
        )

    def __str__(self) -> str:
        return f"{self.name} ({self.id})"
