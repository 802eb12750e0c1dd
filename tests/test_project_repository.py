"""
Tests for ProjectRepository - JSON store persistence and mutations
"""

import json
import os
from unittest.mock import patch

import pytest

from devdock.models.project import Project, ProjectStatus
from devdock.services.project_repository import ProjectRepository
from devdock.utils.async_base import DecodeError, ResourceError, ValidationError


class TestLoading:
    """Test cases for reading the store"""

    def test_missing_store_is_empty(self, tmp_path):
        repo = ProjectRepository(str(tmp_path / "absent.json"))

        assert repo.all() == []
        assert len(repo) == 0

    def test_default_path_comes_from_config(self, isolated_config):
        repo = ProjectRepository(autoload=False)

        assert str(repo.store_path) == isolated_config.project.projects_file

    def test_load_keeps_file_order(self, tmp_path):
        store = tmp_path / "projects.json"
        store.write_text(
            json.dumps(
                [
                    {"id": "b", "name": "B", "type": "node"},
                    {"id": "a", "name": "A", "type": "docker", "extra": "ignored"},
                ]
            )
        )

        repo = ProjectRepository(str(store))

        assert [project.id for project in repo] == ["b", "a"]

    @pytest.mark.parametrize(
        "content", ["{broken", json.dumps({"id": "a"}), json.dumps([{"id": "a"}])]
    )
    def test_malformed_store(self, tmp_path, content):
        store = tmp_path / "projects.json"
        store.write_text(content)

        with pytest.raises(DecodeError):
            ProjectRepository(str(store))


class TestSaving:
    """Test cases for writing the store"""

    def test_round_trip(self, repository, sample_project, container_project):
        reloaded = ProjectRepository(str(repository.store_path))

        assert reloaded.all() == [sample_project, container_project]

    def test_store_is_pretty_printed_array(self, repository):
        text = repository.store_path.read_text()

        assert text.startswith("[\n  {")
        assert text.endswith("}\n]\n")
        assert isinstance(json.loads(text), list)

    def test_no_temporary_files_left(self, repository):
        leftovers = [
            name
            for name in os.listdir(repository.store_path.parent)
            if name.endswith(".tmp")
        ]
        assert leftovers == []

    def test_failed_write_keeps_previous_store(self, repository):
        before = repository.store_path.read_text()

        with patch(
            "devdock.services.project_repository.os.replace",
            side_effect=OSError("disk full"),
        ):
            with pytest.raises(ResourceError):
                repository.update_status("node-a", ProjectStatus.RUNNING)

        assert repository.store_path.read_text() == before
        assert not [
            name
            for name in os.listdir(repository.store_path.parent)
            if name.endswith(".tmp")
        ]


class TestMutations:
    """Test cases for repository changes"""

    def test_add_rejects_duplicate_id(self, repository):
        with pytest.raises(ValidationError):
            repository.add(Project(id="web", name="Other", type="node"))

    def test_require_unknown(self, repository):
        with pytest.raises(ValidationError, match="Unknown project"):
            repository.require("ghost")

    def test_remove(self, repository):
        assert repository.remove("web") is True
        assert repository.remove("web") is False
        assert [p.id for p in ProjectRepository(str(repository.store_path))] == ["node-a"]

    def test_replace_keeps_position(self, repository):
        edited = Project(id="node-a", name="Renamed", type="node")
        repository.replace(edited)

        assert [p.name for p in repository.all()] == ["Renamed", "My App"]
        with pytest.raises(ValidationError):
            repository.replace(Project(id="ghost", name="G", type="node"))

    def test_update_status_persists(self, repository):
        repository.update_status("node-a", ProjectStatus.RUNNING, pid=99)

        stored = ProjectRepository(str(repository.store_path)).get("node-a")
        assert stored.status is ProjectStatus.RUNNING
        assert stored.pid == 99

    def test_stopping_clears_pid(self, repository):
        repository.update_status("node-a", ProjectStatus.RUNNING, pid=99)
        repository.update_status("node-a", ProjectStatus.STOPPED)

        assert repository.get("node-a").pid is None

    def test_running_without_pid_keeps_pid(self, repository):
        repository.update_status("node-a", ProjectStatus.RUNNING, pid=99)
        repository.update_status("node-a", ProjectStatus.RUNNING)

        assert repository.get("node-a").pid == 99

    def test_update_unknown_project_is_ignored(self, repository):
        assert repository.update_launcher_path("ghost", "/x") is None

    def test_update_launcher_path(self, repository):
        repository.update_launcher_path("web", "/Desktop/web.command")

        stored = ProjectRepository(str(repository.store_path)).get("web")
        assert stored.launcher_path == "/Desktop/web.command"
