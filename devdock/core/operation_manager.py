"""
Operation Manager for devdock

Builds the shared services, turns surface requests into async commands and
schedules them on the background event loop. Completion is reported into the
shared log buffer.
"""

import logging
from concurrent.futures import Future
from typing import Any, Dict, List, Optional

from devdock.commands import (
    CheckForUpdateCommand,
    DeployAllCommand,
    InstallUpdateCommand,
    OpenMonitorCommand,
    RefreshStatusCommand,
    RunAllCommand,
    RunProjectActionCommand,
)
from devdock.config.config import get_config
from devdock.models.log_buffer import LogBuffer
from devdock.models.monitor_config import MonitorConfig
from devdock.models.project import Project
from devdock.services.command_executor import CommandExecutor, PrivilegedCommandExecutor
from devdock.services.launcher_service import LauncherService
from devdock.services.monitor_service import MonitorService
from devdock.services.orchestrator_service import ProjectOrchestrator
from devdock.services.process_status_service import ProcessStatusService
from devdock.services.project_repository import ProjectRepository
from devdock.services.update_service import UpdateService
from devdock.utils.async_base import AsyncResult
from devdock.utils.async_utils import task_manager

logger = logging.getLogger(__name__)

# Services whose health_check feeds /api/health
HEALTH_SERVICES = (
    "probe",
    "launcher_service",
    "orchestrator",
    "monitor_service",
    "update_service",
)


def create_services(
    repository: Optional[ProjectRepository] = None,
    log_buffer: Optional[LogBuffer] = None,
) -> Dict[str, Any]:
    """Wire up every service around one repository and one log buffer"""
    repository = repository or ProjectRepository()
    executor = CommandExecutor()
    probe = ProcessStatusService(executor)
    launcher_service = LauncherService(repository)
    orchestrator = ProjectOrchestrator(
        repository=repository,
        executor=executor,
        privileged_executor=PrivilegedCommandExecutor(),
        probe=probe,
        launcher_service=launcher_service,
    )
    return {
        "repository": repository,
        "log_buffer": log_buffer or LogBuffer(get_config().service.log_buffer_size),
        "executor": executor,
        "probe": probe,
        "launcher_service": launcher_service,
        "orchestrator": orchestrator,
        "monitor_service": MonitorService(probe),
        "update_service": UpdateService(),
    }


class OperationManager:
    """
    Manages all async operation commands.

    Every public method schedules work and returns the concurrent Future;
    callers that need the result wait on it (the sync bridge), others just
    let the log buffer report progress.
    """

    def __init__(self, services: Dict[str, Any]):
        self.services = services

        # Extract individual services for easier access
        self.repository: ProjectRepository = services["repository"]
        self.log_buffer: LogBuffer = services["log_buffer"]
        self.orchestrator: ProjectOrchestrator = services["orchestrator"]
        self.monitor_service: MonitorService = services["monitor_service"]
        self.update_service: UpdateService = services["update_service"]

    # Status update methods
    def _update_status(self, message: str, level: str):
        """Standard progress callback for async operations"""
        if not message:
            return
        if level in ("error", "warning"):
            logger.warning(message)
        self.log_buffer.add_line(message)

    def _handle_completion(self, result: AsyncResult):
        if result.is_success:
            logger.info(result.message or "Operation completed")
        elif result.is_partial:
            logger.warning(f"Completed with issues: {result.message}")
        else:
            logger.error(f"Operation failed: {result.message}")

    def _schedule(self, command, task_name: str) -> Future:
        return task_manager.run_task(command.run_with_progress(), task_name=task_name)

    def _command_kwargs(self) -> Dict[str, Any]:
        return {
            "progress_callback": self._update_status,
            "completion_callback": self._handle_completion,
        }

    def _resolve_projects(self, project_ids: Optional[List[str]]) -> List[Project]:
        if not project_ids:
            return self.repository.all()
        return [self.repository.require(project_id) for project_id in project_ids]

    # Project operations
    def run_action(self, project_id: str, action: str) -> Future:
        """Run a lifecycle action for one project"""
        project = self.repository.require(project_id)
        command = RunProjectActionCommand(
            project=project,
            action=action,
            orchestrator=self.orchestrator,
            on_log=self.log_buffer.add_line,
            **self._command_kwargs(),
        )
        return self._schedule(command, f"{action}-{project.id}")

    def run_all(self, action: str, project_ids: Optional[List[str]] = None) -> Future:
        projects = self._resolve_projects(project_ids)
        command = RunAllCommand(
            projects=projects,
            action=action,
            orchestrator=self.orchestrator,
            on_log=self.log_buffer.add_line,
            **self._command_kwargs(),
        )
        return self._schedule(command, f"run-all-{action}")

    def deploy_all(self, project_ids: Optional[List[str]] = None) -> Future:
        projects = self._resolve_projects(project_ids)
        command = DeployAllCommand(
            projects=projects,
            orchestrator=self.orchestrator,
            on_log=self.log_buffer.add_line,
            **self._command_kwargs(),
        )
        return self._schedule(command, "deploy-all")

    def refresh_status(self, project_ids: Optional[List[str]] = None) -> Future:
        command = RefreshStatusCommand(
            projects=self._resolve_projects(project_ids),
            orchestrator=self.orchestrator,
        )
        return self._schedule(command, "refresh-status")

    def open_monitor(self, config: MonitorConfig) -> Future:
        project = self.repository.require(config.project_id)
        command = OpenMonitorCommand(
            config=config,
            project=project,
            monitor_service=self.monitor_service,
            **self._command_kwargs(),
        )
        return self._schedule(command, f"monitor-{project.id}")

    # Update operations
    def check_for_update(self) -> Future:
        command = CheckForUpdateCommand(
            update_service=self.update_service, **self._command_kwargs()
        )
        return self._schedule(command, "check-update")

    def install_update(self) -> Future:
        command = InstallUpdateCommand(
            update_service=self.update_service, **self._command_kwargs()
        )
        return self._schedule(command, "install-update")

    # Health
    async def _collect_health(self) -> Dict[str, Dict[str, Any]]:
        report = {}
        for name in HEALTH_SERVICES:
            service = self.services.get(name)
            if service is None:
                continue
            try:
                result = await service.health_check()
            except Exception as e:
                logger.error(f"Health check failed for {name}: {e}")
                report[name] = {"healthy": False, "message": str(e)}
                continue
            entry = {"healthy": result.is_success, "data": result.data}
            if result.error is not None:
                entry["message"] = result.error.message
            report[name] = entry
        return report

    def check_health(self) -> Future:
        """Run every service's health check; the future yields name -> entry"""
        return task_manager.run_task(self._collect_health(), task_name="health")
