"""
Test suite for the command classes scheduled by the operation manager
"""

from unittest.mock import AsyncMock, Mock

import pytest

from devdock.commands import (
    CheckForUpdateCommand,
    DeployAllCommand,
    InstallUpdateCommand,
    OpenMonitorCommand,
    RefreshStatusCommand,
    RunAllCommand,
    RunProjectActionCommand,
)
from devdock.models.monitor_config import MonitorConfig, MonitorKind
from devdock.models.project import ProjectAction, ProjectStatus
from devdock.models.version import VersionDescriptor
from devdock.services.orchestrator_service import ActionResult
from devdock.services.update_service import UpdateCheckKind, UpdateCheckResult
from devdock.utils.async_base import AsyncResult, ResourceError


@pytest.fixture
def progress():
    """Collects (message, level) pairs"""
    return Mock()


class TestRunProjectActionCommand:
    """Test cases for single project actions"""

    @pytest.mark.asyncio
    async def test_success(self, sample_project, progress):
        orchestrator = AsyncMock()
        orchestrator.run.return_value = ActionResult("node-a", "start", True, return_code=0)
        completion = Mock()

        command = RunProjectActionCommand(
            sample_project,
            ProjectAction.START,
            orchestrator,
            progress_callback=progress,
            completion_callback=completion,
        )
        result = await command.run_with_progress()

        assert result.is_success
        assert result.data["return_code"] == 0
        assert result.message == "start finished for Node A"
        orchestrator.run.assert_awaited_once_with(sample_project, "start", None)
        progress.assert_any_call("start Node A...", "info")
        completion.assert_called_once_with(result)

    @pytest.mark.asyncio
    async def test_failure_carries_exit_code(self, sample_project, progress):
        orchestrator = AsyncMock()
        orchestrator.run.return_value = ActionResult("node-a", "stop", False, return_code=3)

        result = await RunProjectActionCommand(
            sample_project, ProjectAction.STOP, orchestrator, progress_callback=progress
        ).run_with_progress()

        assert result.is_error
        assert result.error.return_code == 3
        assert result.message == "stop failed for Node A (exit code 3)"
        progress.assert_called_with(result.message, "error")

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_command_error(self, sample_project):
        orchestrator = AsyncMock()
        orchestrator.run.side_effect = RuntimeError("boom")
        completion = Mock()

        result = await RunProjectActionCommand(
            sample_project, ProjectAction.START, orchestrator, completion_callback=completion
        ).run_with_progress()

        assert result.is_error
        assert result.error.error_code == "COMMAND_ERROR"
        assert "boom" in result.message
        completion.assert_called_once_with(result)


class TestBatchCommands:
    """Test cases for run-all and deploy-all"""

    @pytest.mark.asyncio
    async def test_all_succeed(self, repository):
        orchestrator = AsyncMock()
        orchestrator.run_all.return_value = [
            ActionResult("node-a", "start", True, 0),
            ActionResult("web", "start", True, 0),
        ]

        result = await RunAllCommand(
            repository.all(), ProjectAction.START, orchestrator
        ).run_with_progress()

        assert result.is_success
        assert [r["project_id"] for r in result.data["results"]] == ["node-a", "web"]
        assert result.message == "Batch start completed for 2 projects"

    @pytest.mark.asyncio
    async def test_some_fail_is_partial(self, repository, progress):
        orchestrator = AsyncMock()
        orchestrator.run_all.return_value = [
            ActionResult("node-a", "stop", False, 1),
            ActionResult("web", "stop", True, 0),
        ]

        result = await RunAllCommand(
            repository.all(), ProjectAction.STOP, orchestrator, progress_callback=progress
        ).run_with_progress()

        assert result.is_partial
        assert result.error.error_code == "BATCH_PARTIAL"
        assert result.message == "1 of 2 projects failed to stop"
        progress.assert_called_with(result.message, "warning")

    @pytest.mark.asyncio
    async def test_cancelled_batch(self, repository):
        orchestrator = AsyncMock()
        orchestrator.run_all.return_value = []

        result = await RunAllCommand(
            repository.all(), ProjectAction.DEPLOY, orchestrator
        ).run_with_progress()

        assert result.is_error
        assert result.message == "Batch deploy was cancelled"

    @pytest.mark.asyncio
    async def test_empty_project_list_succeeds(self):
        orchestrator = AsyncMock()
        orchestrator.run_all.return_value = []

        result = await RunAllCommand([], ProjectAction.START, orchestrator).run_with_progress()

        assert result.is_success

    @pytest.mark.asyncio
    async def test_deploy_all_uses_deploy_batch(self, repository):
        orchestrator = AsyncMock()
        orchestrator.deploy_all.return_value = [ActionResult("node-a", "deploy", True, 0)]
        on_log = Mock()

        result = await DeployAllCommand(
            repository.all(), orchestrator, on_log=on_log
        ).run_with_progress()

        assert result.is_success
        orchestrator.deploy_all.assert_awaited_once_with(repository.all(), on_log)
        orchestrator.run_all.assert_not_called()


class TestStatusAndMonitorCommands:
    @pytest.mark.asyncio
    async def test_refresh_status(self, repository):
        orchestrator = AsyncMock()
        orchestrator.check_status.side_effect = [ProjectStatus.RUNNING, ProjectStatus.STOPPED]

        result = await RefreshStatusCommand(repository.all(), orchestrator).run_with_progress()

        assert result.data == {"node-a": "running", "web": "stopped"}

    @pytest.mark.asyncio
    async def test_open_monitor_passes_through(self, sample_project, progress):
        monitor_service = AsyncMock()
        monitor_service.open_session.return_value = AsyncResult.error_result(
            ResourceError("no terminal")
        )
        config = MonitorConfig(project_id="node-a", kind=MonitorKind.PORT)

        result = await OpenMonitorCommand(
            config, sample_project, monitor_service, progress_callback=progress
        ).run_with_progress()

        assert result.is_error
        progress.assert_any_call("Opening port monitor for Node A...", "info")
        progress.assert_called_with("no terminal", "error")


class TestUpdateCommands:
    """Test cases for the self-update commands"""

    @pytest.mark.asyncio
    async def test_check_reports_available(self):
        remote = VersionDescriptor("2.0.0", "https://example.com/devdock.zip")
        update_service = AsyncMock()
        update_service.check_for_update.return_value = UpdateCheckResult(
            UpdateCheckKind.UPDATE_AVAILABLE,
            current="1.0.0",
            remote=remote,
            message="Version 2.0.0 is available",
        )

        result = await CheckForUpdateCommand(update_service).run_with_progress()

        assert result.is_success
        assert result.data["kind"] == "update_available"
        assert result.data["remote"]["version"] == "2.0.0"

    @pytest.mark.asyncio
    async def test_check_failure(self):
        update_service = AsyncMock()
        update_service.check_for_update.return_value = UpdateCheckResult(
            UpdateCheckKind.FAILURE, current="1.0.0", message="No data received"
        )

        result = await CheckForUpdateCommand(update_service).run_with_progress()

        assert result.is_error
        assert result.error.error_code == "NETWORK_ERROR"
        assert result.data["kind"] == "failure"

    @pytest.mark.asyncio
    async def test_install_without_update(self):
        update_service = AsyncMock()
        update_service.check_for_update.return_value = UpdateCheckResult(
            UpdateCheckKind.NO_UPDATE, current="1.0.0", message="1.0.0 is up to date"
        )

        result = await InstallUpdateCommand(update_service).run_with_progress()

        assert result.is_error
        assert result.error.error_code == "VALIDATION_ERROR"
        update_service.download_and_install.assert_not_called()

    @pytest.mark.asyncio
    async def test_install_checks_then_installs(self, progress):
        remote = VersionDescriptor("2.0.0", "https://example.com/devdock.zip")
        update_service = AsyncMock()
        update_service.check_for_update.return_value = UpdateCheckResult(
            UpdateCheckKind.UPDATE_AVAILABLE, current="1.0.0", remote=remote
        )
        update_service.download_and_install.return_value = AsyncResult.success_result(
            {"version": "2.0.0"}, message="Update staged, the application will restart"
        )

        result = await InstallUpdateCommand(
            update_service, progress_callback=progress
        ).run_with_progress()

        assert result.is_success
        assert update_service.download_and_install.await_args[0][0] is remote
        progress.assert_any_call("Installing 2.0.0...", "info")
        progress.assert_called_with("Update staged, the application will restart", "success")

    @pytest.mark.asyncio
    async def test_install_explicit_descriptor_skips_check(self):
        remote = VersionDescriptor("2.0.0", "https://example.com/devdock.zip")
        update_service = AsyncMock()
        update_service.download_and_install.return_value = AsyncResult.success_result({})

        await InstallUpdateCommand(update_service, remote=remote).run_with_progress()

        update_service.check_for_update.assert_not_called()
