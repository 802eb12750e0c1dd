"""
Tests for the Flask JSON API.
Requests go through the Flask test client; scheduling is mocked at the
operation manager so the tests check what each endpoint asks for.
"""

import threading
from concurrent.futures import Future
from unittest.mock import AsyncMock, Mock

import pytest

from devdock.models.log_buffer import LogBuffer
from devdock.models.monitor_config import MonitorKind
from devdock.services.web_integration_service import WebIntegration, create_web_integration
from devdock.utils.async_base import AsyncResult, ValidationError
from devdock.utils.async_utils import task_manager


def done_future(result):
    future = Future()
    future.set_result(result)
    return future


@pytest.fixture
def operations(repository):
    manager = Mock()
    manager.repository = repository
    manager.log_buffer = LogBuffer()
    manager.services = {"probe": AsyncMock()}
    return manager


@pytest.fixture
def client(operations):
    web = create_web_integration(operations)
    web.app.config["TESTING"] = True
    return web.app.test_client()


def teardown_module():
    task_manager.cancel_all_tasks()


class TestProjectEndpoints:
    """Test cases for reading projects"""

    def test_health(self, client, operations):
        operations.check_health.return_value = done_future(
            {
                "probe": {"healthy": True, "data": {"status": "healthy"}},
                "launcher_service": {
                    "healthy": False,
                    "data": {"missing": ["/nope"]},
                    "message": "No launcher directory is available",
                },
            }
        )

        data = client.get("/api/health").get_json()

        assert data["success"] is True
        assert data["healthy"] is False
        assert data["services"]["launcher_service"]["message"] == (
            "No launcher directory is available"
        )
        assert data["projects"] == 2
        assert data["polling"] is False

    def test_health_all_services_healthy(self, client, operations):
        operations.check_health.return_value = done_future(
            {"probe": {"healthy": True, "data": {}}}
        )

        assert client.get("/api/health").get_json()["healthy"] is True

    def test_list_projects(self, client):
        data = client.get("/api/projects").get_json()

        assert [p["id"] for p in data["projects"]] == ["node-a", "web"]
        assert data["projects"][1]["status"] == "stopped"

    def test_single_project(self, client):
        response = client.get("/api/projects/web")

        assert response.status_code == 200
        assert response.get_json()["project"]["name"] == "My App"

    def test_unknown_project(self, client):
        response = client.get("/api/projects/ghost")

        assert response.status_code == 404
        assert response.get_json()["success"] is False

    def test_project_logs(self, client, operations, container_project):
        operations.services["probe"].recent_log_lines.return_value = "line 1\nline 2\n"

        data = client.get("/api/projects/web/logs?lines=20").get_json()

        assert data == {"success": True, "logs": "line 1\nline 2\n"}
        operations.services["probe"].recent_log_lines.assert_awaited_once_with(
            container_project, 20
        )


class TestActionEndpoints:
    """Test cases for scheduling work"""

    def test_action_is_scheduled(self, client, operations):
        data = client.post("/api/projects/node-a/start").get_json()

        assert data == {"success": True, "message": "start initiated for node-a"}
        operations.run_action.assert_called_once_with("node-a", "start")

    def test_unknown_action(self, client, operations):
        response = client.post("/api/projects/node-a/restart")

        assert response.status_code == 400
        operations.run_action.assert_not_called()

    def test_action_for_unknown_project(self, client, operations):
        operations.run_action.side_effect = ValidationError("Unknown project: ghost")

        response = client.post("/api/projects/ghost/stop")

        assert response.status_code == 404
        assert response.get_json()["message"] == "Unknown project: ghost"

    def test_run_all_defaults_to_start(self, client, operations):
        data = client.post("/api/run-all").get_json()

        assert data["message"] == "Batch start initiated"
        operations.run_all.assert_called_once_with("start", None)

    def test_run_all_with_selection(self, client, operations):
        client.post("/api/run-all", json={"action": "stop", "project_ids": ["web"]})

        operations.run_all.assert_called_once_with("stop", ["web"])

    def test_run_all_rejects_unknown_action(self, client):
        assert client.post("/api/run-all", json={"action": "reboot"}).status_code == 400

    def test_deploy_all(self, client, operations):
        data = client.post("/api/deploy-all", json={"project_ids": ["node-a"]}).get_json()

        assert data["success"] is True
        operations.deploy_all.assert_called_once_with(["node-a"])

    def test_monitor_request(self, client, operations):
        response = client.post(
            "/api/monitor",
            json={"projectId": "node-a", "type": "port", "refreshInterval": 5},
        )

        assert response.get_json()["success"] is True
        config = operations.open_monitor.call_args[0][0]
        assert config.kind is MonitorKind.PORT
        assert config.refresh_interval == 5

    @pytest.mark.parametrize(
        "body", [{}, {"projectId": "node-a", "type": "cpu"}, {"type": "log"}]
    )
    def test_invalid_monitor_request(self, client, operations, body):
        response = client.post("/api/monitor", json=body)

        assert response.status_code == 400
        operations.open_monitor.assert_not_called()


class TestLogAndUpdateEndpoints:
    def test_read_and_clear_logs(self, client, operations):
        operations.log_buffer.append("hello\n")

        assert client.get("/api/logs").get_json()["logs"] == "hello\n"
        client.delete("/api/logs")
        assert client.get("/api/logs").get_json()["logs"] == ""

    def test_update_check_waits_for_result(self, client, operations):
        operations.check_for_update.return_value = done_future(
            AsyncResult.success_result({"kind": "no_update"}, message="1.0.0 is up to date")
        )

        data = client.get("/api/update/check").get_json()

        assert data == {
            "success": True,
            "partial": False,
            "message": "1.0.0 is up to date",
            "data": {"kind": "no_update"},
        }

    def test_update_check_failure_includes_error(self, client, operations):
        operations.check_for_update.return_value = done_future(
            AsyncResult.error_result(ValidationError("bad"))
        )

        data = client.get("/api/update/check").get_json()

        assert data["success"] is False
        assert data["error"]["error_code"] == "VALIDATION_ERROR"

    def test_update_install(self, client, operations):
        data = client.post("/api/update/install").get_json()

        assert data["message"] == "Update install initiated, devdock exits once it is staged"
        operations.install_update.assert_called_once_with()


class TestServerLifecycle:
    def test_start_is_idempotent(self, operations):
        release = threading.Event()
        web = WebIntegration(operations)
        web.setup_flask_app()
        web.app.run = Mock(side_effect=lambda **kwargs: release.wait(5))

        web.start_web_server("127.0.0.1", 5999)
        web.start_web_server("127.0.0.1", 5999)
        release.set()
        web.web_thread.join(timeout=5)

        web.app.run.assert_called_once_with(
            host="127.0.0.1", port=5999, debug=False, use_reloader=False, threaded=True
        )
        assert web.is_running is False
