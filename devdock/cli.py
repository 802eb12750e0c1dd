"""
devdock command line entry point
"""

import argparse
import logging
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional

from devdock.config.config import get_config, initialize_config
from devdock.core import OperationManager, StatusPoller, create_services
from devdock.models.monitor_config import MonitorConfig, MonitorKind
from devdock.models.project import ProjectAction
from devdock.services.project_repository import ProjectRepository
from devdock.services.update_service import UpdateState
from devdock.services.web_integration_service import create_web_integration
from devdock.utils.async_base import AsyncError
from devdock.utils.async_utils import shutdown_all, task_manager

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devdock", description="Deploy, run and monitor local projects"
    )
    parser.add_argument("--config-dir", help="Directory holding user_settings.json")
    parser.add_argument("--projects-file", help="Project store to use")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    subparsers.add_parser("list", help="List configured projects")

    p_status = subparsers.add_parser("status", help="Probe and show live status")
    p_status.add_argument("project_ids", nargs="*", help="Projects to probe")

    p_run = subparsers.add_parser("run", help="Run one action for one project")
    p_run.add_argument("project_id")
    p_run.add_argument("action", choices=ProjectAction.ALL)

    p_run_all = subparsers.add_parser("run-all", help="Run an action across projects")
    p_run_all.add_argument("action", choices=ProjectAction.ALL)
    p_run_all.add_argument("project_ids", nargs="*", help="Defaults to every project")

    p_deploy_all = subparsers.add_parser("deploy-all", help="Deploy every project")
    p_deploy_all.add_argument("project_ids", nargs="*", help="Defaults to every project")

    p_logs = subparsers.add_parser("logs", help="Show recent project logs")
    p_logs.add_argument("project_id")
    p_logs.add_argument("--lines", "-n", type=int, help="Number of lines to show")

    p_monitor = subparsers.add_parser("monitor", help="Open a live monitor terminal")
    p_monitor.add_argument("project_id")
    p_monitor.add_argument(
        "--type",
        dest="kind",
        choices=[kind.value for kind in MonitorKind],
        default=MonitorKind.LOG.value,
    )
    p_monitor.add_argument("--target", default="", help="Port, PID, path or log file")
    p_monitor.add_argument("--interval", type=int, default=1, help="Refresh seconds")
    p_monitor.add_argument("--command", help="Custom command to watch instead")
    p_monitor.add_argument("--title", help="Terminal title")

    subparsers.add_parser("check-update", help="Check for a newer devdock release")
    subparsers.add_parser("install-update", help="Download and install an update")

    p_serve = subparsers.add_parser("serve", help="Serve the JSON API")
    p_serve.add_argument("--host")
    p_serve.add_argument("--port", type=int)
    p_serve.add_argument(
        "--no-poll", action="store_true", help="Disable background status polling"
    )

    return parser


def _print_result(result) -> int:
    # Progress messages already reached stdout through the log buffer
    if result.is_error and result.error is not None:
        if result.error.error_code == "COMMAND_ERROR":
            print(f"Error: {result.error.message}", file=sys.stderr)
    return 0 if result.is_success else 1


def cmd_list(operations: OperationManager, args) -> int:
    projects = operations.repository.all()
    if not projects:
        print("No projects configured")
        return 0
    for project in projects:
        print(f"{project.id:<20} {project.status.value:<8} {project.type:<10} {project.name}")
    return 0


def cmd_status(operations: OperationManager, args) -> int:
    result = operations.refresh_status(args.project_ids).result()
    if result.is_error:
        return _print_result(result)
    for project_id, status in result.data.items():
        print(f"{project_id:<20} {status}")
    return 0


def cmd_run(operations: OperationManager, args) -> int:
    return _print_result(operations.run_action(args.project_id, args.action).result())


def cmd_run_all(operations: OperationManager, args) -> int:
    return _print_result(operations.run_all(args.action, args.project_ids).result())


def cmd_deploy_all(operations: OperationManager, args) -> int:
    return _print_result(operations.deploy_all(args.project_ids).result())


def cmd_logs(operations: OperationManager, args) -> int:
    project = operations.repository.require(args.project_id)
    probe = operations.services["probe"]
    print(task_manager.run_sync(probe.recent_log_lines(project, args.lines)))
    return 0


def cmd_monitor(operations: OperationManager, args) -> int:
    config = MonitorConfig(
        project_id=args.project_id,
        kind=MonitorKind(args.kind),
        target=args.target,
        refresh_interval=args.interval,
        command=args.command,
        title=args.title,
    )
    return _print_result(operations.open_monitor(config).result())


def cmd_check_update(operations: OperationManager, args) -> int:
    return _print_result(operations.check_for_update().result())


def cmd_install_update(operations: OperationManager, args) -> int:
    return _print_result(operations.install_update().result())


def cmd_serve(operations: OperationManager, args) -> int:
    poller = None
    if not args.no_poll:
        poller = StatusPoller(operations.repository, operations.orchestrator)
        poller.start()

    # The replacement script waits for this process to exit
    restart_requested = threading.Event()

    def on_update_state(state: UpdateState):
        if state is UpdateState.INSTALLED_PENDING_RESTART:
            restart_requested.set()

    operations.update_service.add_state_listener(on_update_state)

    web_integration = create_web_integration(operations, poller)
    web_integration.start_web_server(args.host, args.port)
    try:
        while web_integration.web_thread.is_alive():
            if restart_requested.is_set():
                logger.info("Update installed, exiting so it can be applied")
                print("Update installed, devdock is exiting to finish the update")
                break
            time.sleep(0.5)
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        if poller is not None:
            poller.stop()
        web_integration.stop_web_server()
    return 0


COMMANDS = {
    "list": cmd_list,
    "status": cmd_status,
    "run": cmd_run,
    "run-all": cmd_run_all,
    "deploy-all": cmd_deploy_all,
    "logs": cmd_logs,
    "monitor": cmd_monitor,
    "check-update": cmd_check_update,
    "install-update": cmd_install_update,
    "serve": cmd_serve,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main function to run devdock"""
    args = build_parser().parse_args(argv)

    initialize_config(Path(args.config_dir) if args.config_dir else None)
    config = get_config()

    level = logging.DEBUG if args.verbose or config.debug else config.log_level
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    try:
        services = create_services(ProjectRepository(args.projects_file))
    except AsyncError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    operations = OperationManager(services)
    # Foreground commands echo script output as it arrives
    if args.command != "serve":
        operations.log_buffer.add_listener(
            lambda text: print(text, end="", flush=True)
        )

    try:
        return COMMANDS[args.command](operations, args)
    except AsyncError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    finally:
        shutdown_all()


if __name__ == "__main__":
    sys.exit(main())
