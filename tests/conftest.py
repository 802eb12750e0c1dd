"""
Pytest configuration and fixtures for devdock tests
"""

import os
import sys
from pathlib import Path

import pytest

# Add parent directory to path to import modules
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if parent_dir not in sys.path:
    sys.path.insert(0, parent_dir)

from devdock.config.config import initialize_config
from devdock.models.project import Project
from devdock.services.command_executor import ExecutionResult
from devdock.services.project_repository import ProjectRepository

ENV_OVERRIDES = (
    "DEVDOCK_ENV",
    "DEBUG",
    "LOG_LEVEL",
    "DEVDOCK_PROJECTS_FILE",
    "DEVDOCK_LAUNCHER_DIRS",
    "DEVDOCK_SETTLE_DELAY",
    "DEVDOCK_VERSION_FILE",
    "DEVDOCK_APP_BUNDLE",
)


class FakeExecutor:
    """
    Stands in for CommandExecutor.

    Commands are answered by the first (substring, result) pair whose
    substring occurs in the command, else by ``default``. Output is fed to
    the callback the way the real executor streams it.
    """

    def __init__(self, responses=None, default=None):
        self.responses = list(responses or [])
        self.default = default or ExecutionResult(0, "")
        self.calls = []

    async def execute(self, command, cwd=None, output_callback=None):
        self.calls.append({"command": command, "cwd": cwd})
        result = self.default
        for needle, candidate in self.responses:
            if needle in command:
                result = candidate
                break
        if output_callback and result.output:
            output_callback(result.output)
        return result

    @property
    def commands(self):
        return [call["command"] for call in self.calls]


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Fresh configuration rooted in a temporary directory for every test"""
    for variable in ENV_OVERRIDES:
        monkeypatch.delenv(variable, raising=False)

    launcher_dir = tmp_path / "launchers"
    launcher_dir.mkdir()

    manager = initialize_config(tmp_path / "config")
    config = manager.get_config()
    config.project.projects_file = str(tmp_path / "projects.json")
    config.project.launcher_dirs = [str(launcher_dir)]
    config.project.sessions_dir = str(tmp_path / "sessions")
    config.update.version_file = str(tmp_path / "version.json")
    config.update.cache_dir = str(tmp_path / "updates")
    config.service.settle_delay = 0
    return config


@pytest.fixture
def launcher_dir(isolated_config):
    return Path(isolated_config.project.launcher_dirs[0])


@pytest.fixture
def make_executor():
    """Factory for FakeExecutor instances"""
    return FakeExecutor


@pytest.fixture
def sample_project(tmp_path):
    """A script-driven host project with remote scripts for every action"""
    project_dir = tmp_path / "node-a"
    project_dir.mkdir()
    return Project(
        id="node-a",
        name="Node A",
        type="node",
        path=str(project_dir),
        ports=[8080],
        script_urls={
            "deploy": "https://example.com/deploy.sh",
            "start": "https://example.com/start.sh",
            "stop": "https://example.com/stop.sh",
            "install": "https://example.com/install.sh",
            "update": "https://example.com/update.sh",
        },
    )


@pytest.fixture
def container_project():
    return Project(id="web", name="My App", type="docker", ports=[3000])


@pytest.fixture
def repository(isolated_config, sample_project, container_project):
    """Repository backed by a temporary store holding two projects"""
    repo = ProjectRepository(isolated_config.project.projects_file)
    repo.add(sample_project)
    repo.add(container_project)
    return repo
