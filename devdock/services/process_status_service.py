"""
Process Status Service - decides whether a project is live by asking the
container runtime or the OS process table
"""

from collections import deque
from typing import Any, Dict, List, Optional

from devdock.config.config import get_config
from devdock.config.settings import (
    CONTAINER_NO_PROCESS_LIST,
    CONTAINER_NOT_RUNNING,
    LOG_FILE_NOT_FOUND,
    NO_CONTAINER_FOUND,
    NO_CONTAINER_LOGS,
    NO_PORT_CONFIGURED,
    NO_PROJECT_PATH,
)
from devdock.models.project import Project
from devdock.services.command_executor import CommandExecutor
from devdock.services.platform_service import PlatformService
from devdock.utils.async_base import AsyncServiceInterface, ProcessError, ServiceResult
from devdock.utils.async_utils import run_in_executor
from devdock.utils.matching import (
    container_name_candidates,
    process_keywords,
    resolve_container_name,
)
from devdock.utils.shell_utils import output_lines, shell_quote


def parse_pid(process_line: str) -> Optional[int]:
    """PID from the first column of a ``ps``/``docker top`` line"""
    fields = process_line.split()
    if not fields:
        return None
    try:
        pid = int(fields[0])
    except ValueError:
        return None
    return pid if pid > 0 else None


def _tail_file(path, lines: int) -> str:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return "\n".join(line.rstrip("\n") for line in deque(f, maxlen=lines))


class ProcessStatusService(AsyncServiceInterface):
    """Best-effort liveness probe for projects"""

    def __init__(self, executor: Optional[CommandExecutor] = None):
        super().__init__("ProcessStatusService")
        self.executor = executor or CommandExecutor()

    async def health_check(self) -> ServiceResult[Dict[str, Any]]:
        """Report whether the container runtime is reachable"""
        async with self.operation_context("health_check"):
            success, output = await PlatformService.run_command_with_result_async(
                "DOCKER_COMMANDS", subkey="version", timeout=5.0
            )
            if success:
                return ServiceResult.success_result(
                    {"status": "healthy", "docker_version": output}
                )
            error = ProcessError(
                f"Docker is not available: {output}. "
                f"{PlatformService.get_error_message('docker_not_found')}",
                error_code="DOCKER_NOT_AVAILABLE",
            )
            return ServiceResult.partial_result(
                {"status": "degraded", "docker_version": None}, error
            )

    async def _capture(self, command_key: str, subkey: str, **kwargs) -> List[str]:
        command = PlatformService.format_shell_command(command_key, subkey, **kwargs)
        result = await self.executor.execute(command)
        return output_lines(result.output)

    # ---- containers -----------------------------------------------------

    async def list_container_names(self) -> List[str]:
        """Names of all containers, empty when docker is not installed"""
        return await self._capture("DOCKER_COMMANDS", "list_names")

    async def resolve_container(self, project: Project) -> Optional[str]:
        """
        Find the container belonging to a project.

        Candidates are tried in priority order; when more than one live
        container matches, the highest-priority candidate wins and the
        ambiguity is logged.
        """
        candidates = container_name_candidates(project.id, project.name)
        names = await self.list_container_names()
        chosen, matches = resolve_container_name(candidates, names)
        if len(matches) > 1:
            self.logger.warning(
                f"Multiple containers match {project}: {', '.join(matches)}; "
                f"using '{chosen}'"
            )
        if chosen is None:
            self.logger.debug(f"No container for {project} among {candidates}")
        return chosen

    async def is_container_running(
        self, project: Project, container: Optional[str] = None
    ) -> bool:
        container = container or await self.resolve_container(project)
        if not container:
            return False
        lines = await self._capture(
            "DOCKER_COMMANDS", "inspect_running", container=shell_quote(container)
        )
        return bool(lines) and lines[0] == "true"

    async def _list_container_processes(self, project: Project) -> List[str]:
        container = await self.resolve_container(project)
        if not container:
            return [NO_CONTAINER_FOUND]
        lines = await self._capture(
            "DOCKER_COMMANDS", "top", container=shell_quote(container)
        )
        if not lines:
            return [CONTAINER_NOT_RUNNING]
        if len(lines) <= 1:
            # Only the column header came back
            return [CONTAINER_NO_PROCESS_LIST]
        return lines

    # ---- host processes -------------------------------------------------

    async def _list_host_processes(self, project: Project) -> List[str]:
        if project.pid and project.pid > 0:
            lines = await self._capture("PROCESS_COMMANDS", "by_pid", pid=project.pid)
            if lines:
                return lines
            self.logger.debug(f"Cached PID {project.pid} of {project} is gone")

        keywords = process_keywords(
            project.id,
            project.name,
            project.type,
            get_config().project.process_keywords,
        )
        for keyword in keywords:
            lines = await self._capture(
                "PROCESS_COMMANDS", "by_keyword", keyword=shell_quote(keyword)
            )
            if lines:
                self.logger.debug(f"Matched {project} by keyword '{keyword}'")
                return lines
        return []

    async def list_processes(self, project: Project) -> List[str]:
        """
        Process lines for a project.

        Container projects get placeholder lines instead of an empty list
        when the container is missing or idle.
        """
        if project.is_container:
            return await self._list_container_processes(project)
        return await self._list_host_processes(project)

    async def is_running(self, project: Project) -> bool:
        if project.is_container:
            return await self.is_container_running(project)
        return bool(await self._list_host_processes(project))

    # ---- ports and logs -------------------------------------------------

    async def port_in_use(self, port: int) -> bool:
        """Whether anything is bound to the port, per lsof's exit status"""
        success, _ = await PlatformService.run_command_with_result_async(
            "NETWORK_COMMANDS", subkey="port_in_use", port=int(port)
        )
        return success

    async def port_status_text(self, project: Project) -> str:
        port = project.primary_port
        if port is None:
            return NO_PORT_CONFIGURED

        host_state = (
            f"Host port {port} is in use"
            if await self.port_in_use(port)
            else f"Host port {port} is not listening"
        )
        if not project.is_container:
            return host_state

        container = await self.resolve_container(project)
        if not container:
            return NO_CONTAINER_FOUND
        mappings = await self._capture(
            "DOCKER_COMMANDS", "port", container=shell_quote(container)
        )
        mapping_text = "\n".join(mappings) if mappings else "Container not running or missing"
        return f"docker port:\n{mapping_text}\n\n{host_state}"

    async def recent_log_lines(self, project: Project, lines: Optional[int] = None) -> str:
        """
        Last lines of the project's log.

        Never raises; problems come back as a descriptive placeholder.
        """
        lines = lines or get_config().service.log_tail_lines

        if project.is_container:
            container = await self.resolve_container(project)
            if not container:
                return NO_CONTAINER_FOUND
            command = PlatformService.format_shell_command(
                "DOCKER_COMMANDS", "logs", tail=lines, container=shell_quote(container)
            )
            result = await self.executor.execute(command)
            text = result.output.strip()
            return text or NO_CONTAINER_LOGS

        log_file = project.log_file
        if log_file is None:
            return NO_PROJECT_PATH
        try:
            return await run_in_executor(_tail_file, log_file, lines)
        except (FileNotFoundError, IsADirectoryError, PermissionError):
            return LOG_FILE_NOT_FOUND
