"""
Monitor Service - builds live-tail shell pipelines for a project and opens
them in a terminal window
"""

import os
import re
import stat
from pathlib import Path
from typing import Any, Dict, Optional

from devdock.config.config import get_config
from devdock.models.monitor_config import MonitorConfig, MonitorKind
from devdock.models.project import Project
from devdock.services.platform_service import PlatformService
from devdock.services.process_status_service import ProcessStatusService
from devdock.utils.async_base import (
    AsyncServiceInterface,
    ProcessError,
    ResourceError,
    ServiceResult,
    ValidationError,
)
from devdock.utils.async_utils import run_in_executor
from devdock.utils.shell_utils import shell_quote

# Go templates passed straight to docker, not Python format strings
DOCKER_STATS_FORMAT = "table {{.Name}}\\t{{.CPUPerc}}\\t{{.MemUsage}}"
DOCKER_STATS_FULL_FORMAT = (
    "table {{.Name}}\\t{{.CPUPerc}}\\t{{.MemUsage}}\\t{{.NetIO}}\\t{{.BlockIO}}"
)
DOCKER_STATE_FORMAT = (
    "Status: {{.State.Status}}  Running: {{.State.Running}}  "
    "StartedAt: {{.State.StartedAt}}"
)

_TITLES = {
    MonitorKind.LOG: "Log Monitoring",
    MonitorKind.PORT: "Port Monitoring",
    MonitorKind.PROCESS: "Process Monitoring",
    MonitorKind.COMPREHENSIVE: "Comprehensive Monitoring",
    MonitorKind.DIRECTORY: "Directory Monitoring",
    MonitorKind.NETWORK: "Network Monitoring",
}


def _loop(body: str, interval: int) -> str:
    return f"while true; do {body}; sleep {interval}; clear; done"


class MonitorService(AsyncServiceInterface):
    """Live monitoring sessions, one terminal window per session"""

    def __init__(
        self,
        probe: Optional[ProcessStatusService] = None,
        sessions_dir: Optional[str] = None,
    ):
        super().__init__("MonitorService")
        self.probe = probe or ProcessStatusService()
        self._sessions_dir = sessions_dir

    @property
    def sessions_dir(self) -> Path:
        return Path(self._sessions_dir or get_config().project.sessions_dir)

    async def health_check(self) -> ServiceResult[Dict[str, Any]]:
        return ServiceResult.success_result(
            {"status": "healthy", "sessions_dir": str(self.sessions_dir)}
        )

    # ---- command construction -------------------------------------------

    def title_for(self, config: MonitorConfig) -> str:
        return config.title or _TITLES[config.kind]

    def build_command(
        self,
        config: MonitorConfig,
        project: Project,
        container: Optional[str] = None,
    ) -> str:
        """
        Shell pipeline that live-tails what ``config`` asks for.

        Container projects with a resolved ``container`` get docker variants
        for log, port, process and comprehensive sessions.

        Raises:
            ValidationError: when a process session has no PID to watch
        """
        interval = max(1, int(config.refresh_interval))

        if config.command:
            return config.command

        kind = config.kind
        if kind is MonitorKind.LOG:
            return self._log_command(config, project, container)
        if kind is MonitorKind.PORT:
            port = config.target_int or project.primary_port or 0
            return self._port_command(port, interval, container)
        if kind is MonitorKind.PROCESS:
            return self._process_command(config, project, interval, container)
        if kind is MonitorKind.COMPREHENSIVE:
            return self._comprehensive_command(project, interval, container)
        if kind is MonitorKind.DIRECTORY:
            directory = config.target.strip() or "."
            return f"watch -n {interval} ls -la {shell_quote(directory)}"
        if kind is MonitorKind.NETWORK:
            return _loop('echo "Listening ports:"; netstat -an | grep LISTEN', interval)
        raise ValidationError(f"Unsupported monitor kind: {kind}", field="type")

    def _log_command(
        self, config: MonitorConfig, project: Project, container: Optional[str]
    ) -> str:
        tail = get_config().service.log_tail_lines
        if container:
            return f"docker logs -f --tail {tail} {shell_quote(container)}"
        log_path = config.target.strip() or project.log_path
        if project.path and not os.path.isabs(log_path):
            log_path = os.path.join(project.path, log_path)
        return f"tail -f {shell_quote(log_path)}"

    def _port_command(self, port: int, interval: int, container: Optional[str]) -> str:
        host_check = f'lsof -i :{port} 2>/dev/null || echo "Not listening"'
        if container:
            quoted = shell_quote(container)
            return _loop(
                f'docker port {quoted} 2>/dev/null || echo "Container not running or missing"; '
                f'echo; echo "Host lsof :{port}"; {host_check}',
                interval,
            )
        return _loop(host_check, interval)

    def _process_command(
        self,
        config: MonitorConfig,
        project: Project,
        interval: int,
        container: Optional[str],
    ) -> str:
        if container:
            quoted = shell_quote(container)
            return _loop(
                f"docker stats --no-stream --format {shell_quote(DOCKER_STATS_FORMAT)} "
                f'{quoted} 2>/dev/null || echo "Container not running or missing"; echo; '
                f"docker top {quoted} -eo pid,ppid,cmd 2>/dev/null || true",
                interval,
            )
        pid = config.target_int or project.pid
        if not pid:
            raise ValidationError(
                f"No PID to monitor for {project.name}", field="target"
            )
        return _loop(f"ps -p {pid} -o %cpu,%mem,command", interval)

    def _comprehensive_command(
        self, project: Project, interval: int, container: Optional[str]
    ) -> str:
        port = project.primary_port or 0
        host_check = f'lsof -i :{port} 2>/dev/null || echo "Not listening"'
        if container:
            quoted = shell_quote(container)
            return _loop(
                f'echo "[$(date +%H:%M:%S)] Container: {container}"; '
                f"docker inspect -f {shell_quote(DOCKER_STATE_FORMAT)} {quoted} 2>/dev/null "
                f'|| echo "Container does not exist"; echo; '
                f"docker stats --no-stream --format {shell_quote(DOCKER_STATS_FULL_FORMAT)} "
                f"{quoted} 2>/dev/null || true; echo; "
                f'echo "Ports:"; docker port {quoted} 2>/dev/null || true; echo; '
                f'echo "Host lsof :{port}"; {host_check}; echo; '
                f'echo "Top:"; docker top {quoted} -eo pid,ppid,cmd 2>/dev/null || true; echo; '
                f'echo "Logs (tail 50):"; docker logs --tail 50 {quoted} 2>/dev/null || true',
                interval,
            )

        log_file = project.log_file or Path(project.log_path)
        process_part = (
            f"ps -p {project.pid} -o %cpu,%mem,command"
            if project.pid
            else 'echo "Not running"'
        )
        return _loop(
            f'echo "[$(date +%H:%M:%S)] Process:"; {process_part}; echo; '
            f'echo "Port {port}:"; {host_check}; echo; '
            f'echo "Recent logs (last 5 lines):"; '
            f'tail -n 5 {shell_quote(str(log_file))} 2>/dev/null || echo "Log file not found"; echo',
            interval,
        )

    def build_session_script(self, config: MonitorConfig, project: Project, command: str) -> str:
        """Complete bash script a terminal window runs for one session"""
        header = f"=== {self.title_for(config)} - {project.name} ==="
        lines = ["#!/bin/bash"]
        if project.path:
            lines.append(f"cd {shell_quote(project.path)} || exit 1")
        lines.append(f"echo {shell_quote(header)}")
        lines.append(command)
        return "\n".join(lines) + "\n"

    # ---- sessions -------------------------------------------------------

    def _write_script(self, config: MonitorConfig, project: Project, script: str) -> Path:
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        safe_id = re.sub(r"[^A-Za-z0-9_.-]", "_", project.id)
        path = self.sessions_dir / f"{safe_id}-{config.kind.value}.command"
        path.write_text(script, encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    async def open_session(
        self, config: MonitorConfig, project: Project
    ) -> ServiceResult[Dict[str, str]]:
        """Write the session script and open it in a terminal window"""
        async with self.operation_context("open_session"):
            container = None
            if project.is_container:
                container = await self.probe.resolve_container(project)

            try:
                command = self.build_command(config, project, container)
            except ValidationError as e:
                return ServiceResult.error_result(e)

            script = self.build_session_script(config, project, command)
            try:
                path = await run_in_executor(self._write_script, config, project, script)
            except OSError as e:
                return ServiceResult.error_result(
                    ResourceError(f"Cannot write session script: {e}", str(self.sessions_dir))
                )

            # Terminal emulators can block until the window closes, so never wait
            cmd = PlatformService.build_argv(
                "TERMINAL_COMMANDS", "open_session", script_path=str(path)
            )
            success, output = PlatformService.spawn_detached(cmd)
            if not success:
                return ServiceResult.error_result(
                    ProcessError(f"Failed to open terminal: {output}")
                )

            self.logger.info(f"Opened {config.kind.value} session for {project}")
            return ServiceResult.success_result(
                {"script_path": str(path), "command": command},
                message=f"{self.title_for(config)} opened for {project.name}",
            )
