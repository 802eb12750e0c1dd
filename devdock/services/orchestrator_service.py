"""
Project Orchestrator - runs lifecycle actions (deploy/start/stop/install/update)
for single projects and sequential batches
"""

import asyncio
import os
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from devdock.config.config import get_config
from devdock.models.project import Project, ProjectAction, ProjectStatus
from devdock.services.command_executor import (
    CommandExecutor,
    ExecutionResult,
    PrivilegedCommandExecutor,
)
from devdock.services.launcher_service import LauncherService
from devdock.services.platform_service import PlatformService
from devdock.services.process_status_service import ProcessStatusService, parse_pid
from devdock.services.project_repository import ProjectRepository
from devdock.utils.async_base import AsyncError, AsyncServiceInterface, ServiceResult
from devdock.utils.shell_utils import output_lines, shell_quote

LogCallback = Callable[[str], None]


def _ignore(_message: str):
    pass


@dataclass
class ActionResult:
    """Outcome of one project action"""

    project_id: str
    action: str
    success: bool
    return_code: Optional[int] = None
    skipped: bool = False
    message: str = ""


class ProjectOrchestrator(AsyncServiceInterface):
    """
    Central coordinator for project lifecycle actions.

    Cached status only changes when the underlying command exits with 0.
    Actions on the same project are serialized by a per-project lock, so an
    overlapping request waits for the running one instead of interleaving.
    """

    def __init__(
        self,
        repository: Optional[ProjectRepository] = None,
        executor: Optional[CommandExecutor] = None,
        privileged_executor: Optional[CommandExecutor] = None,
        probe: Optional[ProcessStatusService] = None,
        launcher_service: Optional[LauncherService] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        super().__init__("ProjectOrchestrator")
        self.repository = repository
        self.executor = executor or CommandExecutor()
        self.privileged_executor = privileged_executor or PrivilegedCommandExecutor()
        self.probe = probe or ProcessStatusService(self.executor)
        self.launcher_service = launcher_service or LauncherService(repository)
        self._sleep = sleep
        self._locks: Dict[str, asyncio.Lock] = {}

    async def health_check(self) -> ServiceResult[Dict[str, Any]]:
        return ServiceResult.success_result(
            {
                "status": "healthy",
                "projects": len(self.repository) if self.repository else 0,
                "busy": [pid for pid, lock in self._locks.items() if lock.locked()],
            }
        )

    # ---- helpers --------------------------------------------------------

    def _lock_for(self, project_id: str) -> asyncio.Lock:
        if project_id not in self._locks:
            self._locks[project_id] = asyncio.Lock()
        return self._locks[project_id]

    def _mark(self, project: Project, status: ProjectStatus, pid: Optional[int] = None):
        project.status = status
        if pid is not None or status is ProjectStatus.STOPPED:
            project.pid = pid
        if self.repository is not None:
            self.repository.update_status(project.id, status, pid)

    @staticmethod
    def _line_forwarder(on_log: LogCallback) -> Callable[[str], None]:
        def forward(chunk: str):
            for line in output_lines(chunk):
                on_log(line)

        return forward

    @staticmethod
    def _working_dir(project: Project) -> Optional[str]:
        if project.path and os.path.isdir(project.path):
            return project.path
        return None

    @staticmethod
    def remote_script_command(script_url: str) -> str:
        return PlatformService.format_shell_command(
            "SHELL_COMMANDS", "remote_script", script_url=shell_quote(script_url)
        )

    @staticmethod
    def wrap_with_package_manager(command: str) -> str:
        """Prefix a command with the install-on-demand package manager preamble"""
        return PlatformService.format_shell_command(
            "PACKAGE_MANAGER_COMMANDS",
            "wrap",
            installer_url=get_config().commands.package_manager_installer_url,
            command=command,
        )

    async def _execute(
        self,
        command: str,
        privileged: bool,
        on_log: LogCallback,
        cwd: Optional[str] = None,
    ) -> ExecutionResult:
        executor = self.privileged_executor if privileged else self.executor
        return await executor.execute(
            command, cwd=cwd, output_callback=self._line_forwarder(on_log)
        )

    # ---- public API -----------------------------------------------------

    async def run(
        self,
        project: Project,
        action: str,
        on_log: Optional[LogCallback] = None,
        ensure_prerequisites: bool = True,
    ) -> ActionResult:
        """
        Run one lifecycle action for a project.

        Failures are reported through ``on_log`` and the returned result,
        never raised.
        """
        on_log = on_log or _ignore
        lock = self._lock_for(project.id)
        if lock.locked():
            on_log(f"{project.name}: waiting for the previous action to finish")

        async with lock:
            async with self.operation_context(f"{action}:{project.id}"):
                try:
                    if action == ProjectAction.START:
                        return await self._start(project, on_log)
                    if action == ProjectAction.STOP:
                        return await self._stop(project, on_log)
                    if action == ProjectAction.DEPLOY:
                        return await self._deploy(project, on_log, ensure_prerequisites)
                    return await self._run_script(project, action, on_log)
                except AsyncError as e:
                    self.logger.error(f"{action} failed for {project}: {e.message}")
                    on_log(f"Error: {e.message}")
                    return ActionResult(project.id, action, False, message=e.message)

    async def deploy(self, project: Project, on_log: Optional[LogCallback] = None) -> ActionResult:
        return await self.run(project, ProjectAction.DEPLOY, on_log)

    async def start(self, project: Project, on_log: Optional[LogCallback] = None) -> ActionResult:
        return await self.run(project, ProjectAction.START, on_log)

    async def stop(self, project: Project, on_log: Optional[LogCallback] = None) -> ActionResult:
        return await self.run(project, ProjectAction.STOP, on_log)

    async def install(self, project: Project, on_log: Optional[LogCallback] = None) -> ActionResult:
        return await self.run(project, ProjectAction.INSTALL, on_log)

    async def update(self, project: Project, on_log: Optional[LogCallback] = None) -> ActionResult:
        return await self.run(project, ProjectAction.UPDATE, on_log)

    # ---- actions --------------------------------------------------------

    async def _start(self, project: Project, on_log: LogCallback) -> ActionResult:
        action = ProjectAction.START
        captured = project.captured_launcher
        found = await self.launcher_service.capture(
            project, on_log, log_not_found=not captured
        )
        launcher = found or captured
        if not launcher:
            message = "Launcher not found, starting via script URL is disabled"
            on_log(message)
            return ActionResult(project.id, action, False, message=message)

        if await self.launcher_service.open_launcher(launcher, on_log):
            self._mark(project, ProjectStatus.RUNNING)
            return ActionResult(project.id, action, True, return_code=0)

        # The captured path may be stale; look once more before giving up
        recaptured = await self.launcher_service.capture(project, on_log, log_not_found=True)
        if recaptured and await self.launcher_service.open_launcher(recaptured, on_log):
            self._mark(project, ProjectStatus.RUNNING)
            return ActionResult(project.id, action, True, return_code=0)

        return ActionResult(project.id, action, False, message="Launcher failed to open")

    async def _stop(self, project: Project, on_log: LogCallback) -> ActionResult:
        keyword = get_config().project.keyword_stop_types.get(project.normalized_type)
        if keyword and project.script_url(ProjectAction.STOP) is None:
            return await self.stop_by_keyword(project, keyword, on_log)
        return await self._run_script(project, ProjectAction.STOP, on_log)

    async def stop_by_keyword(
        self, project: Project, keyword: str, on_log: Optional[LogCallback] = None
    ) -> ActionResult:
        """Terminate processes matching a keyword, force-killing survivors"""
        on_log = on_log or _ignore
        action = ProjectAction.STOP
        keyword = keyword.strip()
        if not keyword:
            on_log("Stop failed: keyword is empty")
            return ActionResult(project.id, action, False, message="Empty keyword")

        command = PlatformService.format_shell_command(
            "PROCESS_COMMANDS",
            "kill_by_keyword",
            keyword=shell_quote(keyword),
            grace_seconds=get_config().service.stop_grace_seconds,
        )
        result = await self._execute(command, privileged=False, on_log=on_log)
        if result.succeeded:
            self._mark(project, ProjectStatus.STOPPED)
        return ActionResult(project.id, action, result.succeeded, result.return_code)

    async def _deploy(
        self, project: Project, on_log: LogCallback, ensure_prerequisites: bool
    ) -> ActionResult:
        action = ProjectAction.DEPLOY
        existing = project.captured_launcher
        if not (existing and os.path.exists(existing)):
            existing = await self.launcher_service.capture(project, on_log)
        if existing:
            message = f"Launcher already exists, skipping deploy: {os.path.basename(existing)}"
            on_log(message)
            return ActionResult(project.id, action, True, skipped=True, message=message)

        script_url = project.script_url(action)
        if script_url is None:
            message = f"Error: no script URL configured (action={action})"
            on_log(message)
            return ActionResult(project.id, action, False, message=message)

        script_command = self.remote_script_command(script_url)

        if project.needs_privileges(action):
            if ensure_prerequisites:
                on_log("Checking Homebrew before deploy...")
                if not await self.ensure_package_manager(on_log):
                    message = "Homebrew is not ready, deploy cancelled"
                    on_log(message)
                    return ActionResult(project.id, action, False, message=message)

            on_log("Deploying with administrator privileges...")
            result = await self._execute(script_command, privileged=True, on_log=on_log)
            on_log(f"Deploy finished, exit code: {result.return_code}")
            if result.succeeded:
                await self.launcher_service.capture(project, on_log)
            return ActionResult(project.id, action, result.succeeded, result.return_code)

        on_log(f"Running command: {script_command}")
        result = await self._execute(
            self.wrap_with_package_manager(script_command),
            privileged=False,
            on_log=on_log,
            cwd=self._working_dir(project),
        )
        on_log(f"Command finished, exit code: {result.return_code}")
        if result.succeeded:
            self._mark(project, ProjectStatus.RUNNING)
            await self.launcher_service.capture(project, on_log)
        return ActionResult(project.id, action, result.succeeded, result.return_code)

    async def _run_script(self, project: Project, action: str, on_log: LogCallback) -> ActionResult:
        script_url = project.script_url(action)
        if script_url is None:
            message = f"Error: no script URL configured (action={action})"
            on_log(message)
            return ActionResult(project.id, action, False, message=message)

        command = self.remote_script_command(script_url)
        privileged = project.needs_privileges(action)
        if privileged:
            on_log(f"Running administrator command: {command}")
        else:
            on_log(f"Running command: {command}")

        result = await self._execute(
            command, privileged, on_log, cwd=self._working_dir(project)
        )
        on_log(f"Command finished, exit code: {result.return_code}")

        if result.succeeded:
            target = (
                ProjectStatus.STOPPED
                if action == ProjectAction.STOP
                else ProjectStatus.RUNNING
            )
            self._mark(project, target)
        return ActionResult(project.id, action, result.succeeded, result.return_code)

    # ---- prerequisites --------------------------------------------------

    async def ensure_package_manager(self, on_log: Optional[LogCallback] = None) -> bool:
        """Install Homebrew if it is missing; True when it is usable"""
        command = PlatformService.format_shell_command(
            "PACKAGE_MANAGER_COMMANDS",
            "ensure",
            installer_url=get_config().commands.package_manager_installer_url,
        )
        result = await self._execute(command, privileged=False, on_log=on_log or _ignore)
        return result.succeeded

    # ---- status ---------------------------------------------------------

    async def check_status(self, project: Project) -> ProjectStatus:
        """Re-derive a project's status from live inspection and cache it"""
        pid = None
        if project.is_container:
            running = await self.probe.is_container_running(project)
        else:
            lines = await self.probe.list_processes(project)
            running = bool(lines)
            if lines:
                pid = parse_pid(lines[0])

        status = ProjectStatus.RUNNING if running else ProjectStatus.STOPPED
        stale_pid = status is ProjectStatus.STOPPED and project.pid is not None
        if (
            status is not project.status
            or stale_pid
            or (pid is not None and pid != project.pid)
        ):
            self._mark(project, status, pid)
        return status

    # ---- batches --------------------------------------------------------

    async def _run_batch(
        self,
        projects: Sequence[Project],
        action: str,
        on_log: LogCallback,
        ensure_prerequisites: bool = True,
    ) -> List[ActionResult]:
        settle_delay = get_config().service.settle_delay
        results: List[ActionResult] = []
        total = len(projects)

        for index, project in enumerate(projects, start=1):
            on_log(f"[{index}/{total}] {action}: {project.name}")
            results.append(
                await self.run(project, action, on_log, ensure_prerequisites)
            )
            if index < total and settle_delay > 0:
                await self._sleep(settle_delay)

        succeeded = sum(1 for result in results if result.success)
        on_log(f"Batch {action} finished: {succeeded}/{total} succeeded")
        return results

    async def run_all(
        self,
        projects: Sequence[Project],
        action: str,
        on_log: Optional[LogCallback] = None,
    ) -> List[ActionResult]:
        """Run an action for each project strictly one after another"""
        return await self._run_batch(projects, action, on_log or _ignore)

    async def deploy_all(
        self, projects: Sequence[Project], on_log: Optional[LogCallback] = None
    ) -> List[ActionResult]:
        """
        Deploy each project in sequence, ensuring the package manager once
        up front. Nothing is deployed if that step fails.
        """
        on_log = on_log or _ignore
        if not projects:
            on_log("No projects to deploy")
            return []

        on_log("Checking Homebrew before batch deploy...")
        if not await self.ensure_package_manager(on_log):
            on_log("Homebrew is not ready, batch deploy cancelled")
            return []

        return await self._run_batch(
            projects, ProjectAction.DEPLOY, on_log, ensure_prerequisites=False
        )
