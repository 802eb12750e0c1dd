"""
Project-specific command implementations
Wraps orchestrator and monitor calls so any surface can schedule them
"""

from typing import Any, Callable, Dict, List, Optional

from devdock.models.monitor_config import MonitorConfig
from devdock.models.project import Project, ProjectAction
from devdock.utils.async_base import AsyncCommand, AsyncResult, ProcessError

LogCallback = Callable[[str], None]


def _result_dict(result) -> Dict[str, Any]:
    return {
        "project_id": result.project_id,
        "action": result.action,
        "success": result.success,
        "return_code": result.return_code,
        "skipped": result.skipped,
        "message": result.message,
    }


class RunProjectActionCommand(AsyncCommand):
    """Run one lifecycle action for one project"""

    def __init__(
        self,
        project: Project,
        action: str,
        orchestrator,
        on_log: Optional[LogCallback] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.project = project
        self.action = action
        self.orchestrator = orchestrator
        self.on_log = on_log

    async def execute(self) -> AsyncResult[Dict[str, Any]]:
        self._update_progress(f"{self.action} {self.project.name}...", "info")

        result = await self.orchestrator.run(self.project, self.action, self.on_log)
        data = _result_dict(result)

        if result.success:
            message = result.message or f"{self.action} finished for {self.project.name}"
            self._update_progress(message, "success")
            return AsyncResult.success_result(data, message=message)

        message = result.message or (
            f"{self.action} failed for {self.project.name} "
            f"(exit code {result.return_code})"
        )
        self._update_progress(message, "error")
        return AsyncResult(
            success=False,
            data=data,
            error=ProcessError(message, return_code=result.return_code),
            message=message,
        )


class RunAllCommand(AsyncCommand):
    """Run one action across projects sequentially"""

    def __init__(
        self,
        projects: List[Project],
        action: str,
        orchestrator,
        on_log: Optional[LogCallback] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.projects = projects
        self.action = action
        self.orchestrator = orchestrator
        self.on_log = on_log

    async def _run_batch(self):
        return await self.orchestrator.run_all(self.projects, self.action, self.on_log)

    async def execute(self) -> AsyncResult[Dict[str, Any]]:
        self._update_progress(
            f"{self.action} for {len(self.projects)} projects...", "info"
        )
        results = await self._run_batch()
        data = {"results": [_result_dict(result) for result in results]}

        failed = [result for result in results if not result.success]
        if not results and self.projects:
            message = f"Batch {self.action} was cancelled"
            self._update_progress(message, "error")
            return AsyncResult(
                success=False, data=data, error=ProcessError(message), message=message
            )

        if failed:
            message = f"{len(failed)} of {len(results)} projects failed to {self.action}"
            self._update_progress(message, "warning")
            return AsyncResult.partial_result(
                data, ProcessError(message, error_code="BATCH_PARTIAL"), message=message
            )

        message = f"Batch {self.action} completed for {len(results)} projects"
        self._update_progress(message, "success")
        return AsyncResult.success_result(data, message=message)


class DeployAllCommand(RunAllCommand):
    """Deploy every project, ensuring the package manager once up front"""

    def __init__(self, projects: List[Project], orchestrator, **kwargs):
        super().__init__(projects, ProjectAction.DEPLOY, orchestrator, **kwargs)

    async def _run_batch(self):
        return await self.orchestrator.deploy_all(self.projects, self.on_log)


class RefreshStatusCommand(AsyncCommand):
    """Re-probe projects and cache their live status"""

    def __init__(self, projects: List[Project], orchestrator, **kwargs):
        super().__init__(**kwargs)
        self.projects = projects
        self.orchestrator = orchestrator

    async def execute(self) -> AsyncResult[Dict[str, str]]:
        statuses = {}
        for project in self.projects:
            status = await self.orchestrator.check_status(project)
            statuses[project.id] = status.value
        return AsyncResult.success_result(statuses, message="Statuses refreshed")


class OpenMonitorCommand(AsyncCommand):
    """Open a live monitoring session for a project"""

    def __init__(self, config: MonitorConfig, project: Project, monitor_service, **kwargs):
        super().__init__(**kwargs)
        self.config = config
        self.project = project
        self.monitor_service = monitor_service

    async def execute(self) -> AsyncResult[Dict[str, str]]:
        self._update_progress(
            f"Opening {self.config.kind.value} monitor for {self.project.name}...", "info"
        )
        result = await self.monitor_service.open_session(self.config, self.project)
        if result.is_error:
            self._update_progress(result.message, "error")
        else:
            self._update_progress(result.message, "success")
        return result
