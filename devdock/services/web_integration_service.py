"""
Web Integration Module for devdock
Exposes the operation manager over a small JSON API served by Flask
"""

import logging
import threading
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from devdock.config.config import get_config
from devdock.models.monitor_config import MonitorConfig
from devdock.models.project import ProjectAction
from devdock.utils.async_base import AsyncError
from devdock.utils.async_utils import task_manager

logger = logging.getLogger(__name__)

# Suppress Flask's default info level logging
log = logging.getLogger("werkzeug")
log.setLevel(logging.ERROR)


class WebIntegration:
    """JSON API over the same operations the CLI drives"""

    def __init__(self, operation_manager, poller=None):
        self.operations = operation_manager
        self.repository = operation_manager.repository
        self.log_buffer = operation_manager.log_buffer
        self.probe = operation_manager.services.get("probe")
        self.poller = poller
        self.app = None
        self.web_thread = None
        self.is_running = False

    def setup_flask_app(self):
        """Set up Flask application with routes"""
        self.app = Flask(__name__)
        self._setup_routes()
        return self.app

    @staticmethod
    def _result_payload(result) -> Dict[str, Any]:
        payload = {
            "success": result.success,
            "partial": result.is_partial,
            "message": result.message,
            "data": result.data,
        }
        if result.error is not None:
            payload["error"] = result.error.to_dict()
        return payload

    def _setup_routes(self):
        """Set up all Flask routes"""

        @self.app.route("/api/health")
        def api_health():
            try:
                services = self.operations.check_health().result(
                    timeout=get_config().service.default_timeout
                )
            except Exception as e:
                logger.error(f"Error collecting health: {e}")
                return jsonify({"success": False, "message": str(e)})
            return jsonify(
                {
                    "success": True,
                    "healthy": all(entry["healthy"] for entry in services.values()),
                    "services": services,
                    "projects": len(self.repository),
                    "active_tasks": task_manager.get_task_count(),
                    "polling": bool(self.poller and self.poller.is_running),
                }
            )

        @self.app.route("/api/projects")
        def api_projects():
            """API endpoint to list every project with its cached status"""
            try:
                projects = [project.to_dict() for project in self.repository.all()]
                return jsonify({"success": True, "projects": projects})
            except Exception as e:
                logger.error(f"Error listing projects: {e}")
                return jsonify({"success": False, "message": str(e)})

        @self.app.route("/api/projects/<project_id>")
        def api_project(project_id):
            project = self.repository.get(project_id)
            if project is None:
                return (
                    jsonify({"success": False, "message": "Project not found"}),
                    404,
                )
            return jsonify({"success": True, "project": project.to_dict()})

        @self.app.route("/api/projects/<project_id>/logs")
        def api_project_logs(project_id):
            """Tail of the project's log file or container logs"""
            project = self.repository.get(project_id)
            if project is None:
                return (
                    jsonify({"success": False, "message": "Project not found"}),
                    404,
                )
            lines = request.args.get("lines", type=int)
            try:
                output = task_manager.run_sync(
                    self.probe.recent_log_lines(project, lines),
                    timeout=get_config().service.default_timeout,
                )
                return jsonify({"success": True, "logs": output})
            except Exception as e:
                logger.error(f"Error reading logs for {project_id}: {e}")
                return jsonify({"success": False, "message": str(e)})

        @self.app.route("/api/projects/<project_id>/<action>", methods=["POST"])
        def api_project_action(project_id, action):
            """Schedule a lifecycle action; progress lands in the log buffer"""
            if action not in ProjectAction.ALL:
                return (
                    jsonify({"success": False, "message": f"Unknown action: {action}"}),
                    400,
                )
            try:
                self.operations.run_action(project_id, action)
                return jsonify(
                    {"success": True, "message": f"{action} initiated for {project_id}"}
                )
            except AsyncError as e:
                return jsonify({"success": False, "message": e.message}), 404
            except Exception as e:
                logger.error(f"Error starting {action} for {project_id}: {e}")
                return jsonify({"success": False, "message": str(e)})

        @self.app.route("/api/run-all", methods=["POST"])
        def api_run_all():
            data = request.get_json(silent=True) or {}
            action = data.get("action", ProjectAction.START)
            if action not in ProjectAction.ALL:
                return (
                    jsonify({"success": False, "message": f"Unknown action: {action}"}),
                    400,
                )
            try:
                self.operations.run_all(action, data.get("project_ids"))
                return jsonify(
                    {"success": True, "message": f"Batch {action} initiated"}
                )
            except AsyncError as e:
                return jsonify({"success": False, "message": e.message}), 404
            except Exception as e:
                logger.error(f"Error in run all: {e}")
                return jsonify({"success": False, "message": str(e)})

        @self.app.route("/api/deploy-all", methods=["POST"])
        def api_deploy_all():
            data = request.get_json(silent=True) or {}
            try:
                self.operations.deploy_all(data.get("project_ids"))
                return jsonify({"success": True, "message": "Batch deploy initiated"})
            except AsyncError as e:
                return jsonify({"success": False, "message": e.message}), 404
            except Exception as e:
                logger.error(f"Error in deploy all: {e}")
                return jsonify({"success": False, "message": str(e)})

        @self.app.route("/api/monitor", methods=["POST"])
        def api_monitor():
            """Open a live monitoring session in a terminal"""
            data = request.get_json(silent=True) or {}
            try:
                config = MonitorConfig.from_dict(data)
            except (KeyError, ValueError) as e:
                return (
                    jsonify({"success": False, "message": f"Invalid monitor request: {e}"}),
                    400,
                )
            try:
                self.operations.open_monitor(config)
                return jsonify({"success": True, "message": "Monitor session requested"})
            except AsyncError as e:
                return jsonify({"success": False, "message": e.message}), 404
            except Exception as e:
                logger.error(f"Error opening monitor: {e}")
                return jsonify({"success": False, "message": str(e)})

        @self.app.route("/api/logs", methods=["GET", "DELETE"])
        def api_logs():
            if request.method == "DELETE":
                self.log_buffer.clear()
                return jsonify({"success": True, "message": "Logs cleared"})
            return jsonify({"success": True, "logs": self.log_buffer.get()})

        @self.app.route("/api/update/check")
        def api_update_check():
            try:
                future = self.operations.check_for_update()
                result = future.result(timeout=get_config().service.http_timeout * 2)
                return jsonify(self._result_payload(result))
            except Exception as e:
                logger.error(f"Error checking for update: {e}")
                return jsonify({"success": False, "message": str(e)})

        @self.app.route("/api/update/install", methods=["POST"])
        def api_update_install():
            try:
                self.operations.install_update()
                return jsonify(
                    {
                        "success": True,
                        "message": "Update install initiated, devdock exits once it is staged",
                    }
                )
            except Exception as e:
                logger.error(f"Error starting update install: {e}")
                return jsonify({"success": False, "message": str(e)})

    def start_web_server(self, host: Optional[str] = None, port: Optional[int] = None):
        """Start the Flask web server in a separate thread"""
        if self.is_running:
            logger.info("Web server is already running")
            return

        web_config = get_config().web
        host = host or web_config.host
        port = port or web_config.port

        if not self.app:
            self.setup_flask_app()

        def run_server():
            try:
                logger.info(f"Starting web server on http://{host}:{port}")
                self.app.run(
                    host=host, port=port, debug=False, use_reloader=False, threaded=True
                )
            except Exception as e:
                logger.error(f"Web server error: {e}")
            finally:
                self.is_running = False

        self.web_thread = threading.Thread(target=run_server, daemon=True)
        self.web_thread.start()
        self.is_running = True
        logger.info(f"Web server thread started on http://{host}:{port}")

    def stop_web_server(self):
        """Stop the web server (note: Flask doesn't have a clean shutdown method)"""
        if self.is_running:
            self.is_running = False
            logger.info("Web server marked for shutdown")


def create_web_integration(operation_manager, poller=None) -> WebIntegration:
    """Create and configure web integration"""
    web_integration = WebIntegration(operation_manager, poller)
    web_integration.setup_flask_app()
    return web_integration
