"""
Tests for LauncherService - launcher discovery, capture and opening
"""

import os
from unittest.mock import AsyncMock, patch

import pytest

from devdock.services.launcher_service import LauncherService
from devdock.services.platform_service import PlatformService
from devdock.services.project_repository import ProjectRepository


def touch(path, mtime):
    path.write_text("#!/bin/bash\n")
    os.utime(path, (mtime, mtime))
    return path


class TestDiscovery:
    """Test cases for finding launchers"""

    def test_most_recent_match_wins(self, launcher_dir, sample_project):
        touch(launcher_dir / "node-a-old.command", 1000)
        newest = touch(launcher_dir / "Node A.command", 2000)
        touch(launcher_dir / "unrelated.command", 3000)

        found = LauncherService().find_launchers(sample_project)

        assert found[0] == str(newest)
        assert len(found) == 2

    def test_directories_are_searched_in_order(self, tmp_path, sample_project):
        first = tmp_path / "first"
        second = tmp_path / "second"
        first.mkdir()
        second.mkdir()
        touch(second / "node.command", 500)

        service = LauncherService(launcher_dirs=[str(first), str(second), str(tmp_path / "x")])

        assert service.find_launchers(sample_project) == [str(second / "node.command")]

    @pytest.mark.asyncio
    async def test_discover_none(self, sample_project):
        assert await LauncherService().discover(sample_project) is None


class TestCapture:
    """Test cases for persisting discovered launchers"""

    @pytest.mark.asyncio
    async def test_capture_persists_new_launcher(self, launcher_dir, repository, sample_project):
        launcher = touch(launcher_dir / "node-a.command", 1000)
        logs = []

        found = await LauncherService(repository).capture(sample_project, logs.append)

        assert found == str(launcher)
        assert sample_project.launcher_path == str(launcher)
        stored = ProjectRepository(str(repository.store_path)).get("node-a")
        assert stored.launcher_path == str(launcher)
        assert logs == ["Captured launcher: node-a.command"]

    @pytest.mark.asyncio
    async def test_capture_unchanged_is_quiet(self, launcher_dir, repository, sample_project):
        launcher = touch(launcher_dir / "node-a.command", 1000)
        sample_project.launcher_path = str(launcher)
        logs = []

        await LauncherService(repository).capture(sample_project, logs.append)

        assert logs == []

    @pytest.mark.asyncio
    async def test_capture_not_found(self, sample_project):
        logs = []

        found = await LauncherService().capture(
            sample_project, logs.append, log_not_found=True
        )

        assert found is None
        assert logs[0].startswith("No launcher found for Node A")


class TestOpenLauncher:
    """Test cases for opening launchers"""

    @pytest.mark.asyncio
    async def test_missing_launcher(self, tmp_path):
        logs = []

        assert await LauncherService().open_launcher(str(tmp_path / "gone.app"), logs.append) is False
        assert logs[0].startswith("Launcher does not exist")

    @pytest.mark.asyncio
    async def test_open_success(self, launcher_dir):
        launcher = touch(launcher_dir / "node-a.command", 1000)
        logs = []
        with patch.object(
            PlatformService, "open_path_async", AsyncMock(return_value=(True, ""))
        ) as mock_open:
            assert await LauncherService().open_launcher(str(launcher), logs.append) is True

        mock_open.assert_awaited_once_with(str(launcher))
        assert logs == ["Started via launcher: node-a.command"]

    @pytest.mark.asyncio
    async def test_open_failure(self, launcher_dir):
        launcher = touch(launcher_dir / "node-a.command", 1000)
        logs = []
        with patch.object(
            PlatformService,
            "open_path_async",
            AsyncMock(return_value=(False, "no application")),
        ):
            assert await LauncherService().open_launcher(str(launcher), logs.append) is False

        assert logs == ["no application", "Failed to start launcher: node-a.command"]


class TestHealth:
    @pytest.mark.asyncio
    async def test_all_directories_missing(self, tmp_path):
        result = await LauncherService(launcher_dirs=[str(tmp_path / "nope")]).health_check()

        assert result.is_partial
