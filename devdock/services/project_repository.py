"""
Project repository: owns the in-memory project list and its JSON store
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from devdock.config.config import get_config
from devdock.models.project import Project, ProjectStatus
from devdock.utils.async_base import DecodeError, ResourceError, ValidationError

logger = logging.getLogger(__name__)


class ProjectRepository:
    """
    Loads projects from a JSON array file, keeps them in insertion order and
    writes the whole collection back on every change.

    Read-modify-write sequences are serialized with a re-entrant lock, and
    writes land in a temporary sibling file that replaces the store
    atomically.
    """

    def __init__(self, store_path: Optional[str] = None, autoload: bool = True):
        self.store_path = Path(store_path or get_config().project.projects_file)
        self._projects: List[Project] = []
        self._lock = threading.RLock()
        if autoload:
            self.load()

    def __iter__(self) -> Iterator[Project]:
        return iter(self.all())

    def __len__(self) -> int:
        with self._lock:
            return len(self._projects)

    # ---- persistence ----------------------------------------------------

    def load(self) -> List[Project]:
        """
        Replace the in-memory list with the store contents.

        A missing store is an empty collection.

        Raises:
            DecodeError: if the file is not a JSON array of project records
        """
        with self._lock:
            if not self.store_path.exists():
                logger.info(f"No project store at {self.store_path}, starting empty")
                self._projects = []
                return self.all()

            try:
                with open(self.store_path, "r", encoding="utf-8") as f:
                    raw = json.load(f)
            except json.JSONDecodeError as e:
                raise DecodeError(
                    f"Project store is not valid JSON: {e}", source=str(self.store_path)
                ) from e

            if not isinstance(raw, list):
                raise DecodeError(
                    "Project store must contain a JSON array",
                    source=str(self.store_path),
                )

            try:
                self._projects = [Project.from_dict(record) for record in raw]
            except (TypeError, ValueError) as e:
                raise DecodeError(
                    f"Invalid project record: {e}", source=str(self.store_path)
                ) from e

            logger.debug(f"Loaded {len(self._projects)} projects from {self.store_path}")
            return self.all()

    def save(self):
        """Overwrite the store with the full collection"""
        with self._lock:
            payload = [project.to_dict() for project in self._projects]
            directory = self.store_path.parent
            try:
                directory.mkdir(parents=True, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(
                    prefix=f".{self.store_path.name}.", suffix=".tmp", dir=directory
                )
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        json.dump(payload, f, indent=2, ensure_ascii=False)
                        f.write("\n")
                    os.replace(tmp_path, self.store_path)
                except BaseException:
                    if os.path.exists(tmp_path):
                        os.unlink(tmp_path)
                    raise
            except OSError as e:
                raise ResourceError(
                    f"Failed to write project store: {e}", str(self.store_path)
                ) from e

    # ---- queries --------------------------------------------------------

    def all(self) -> List[Project]:
        with self._lock:
            return list(self._projects)

    def get(self, project_id: str) -> Optional[Project]:
        with self._lock:
            return next((p for p in self._projects if p.id == project_id), None)

    def require(self, project_id: str) -> Project:
        project = self.get(project_id)
        if project is None:
            raise ValidationError(f"Unknown project: {project_id}", field="id")
        return project

    # ---- mutations ------------------------------------------------------

    def add(self, project: Project) -> Project:
        with self._lock:
            if self.get(project.id) is not None:
                raise ValidationError(
                    f"Project id already exists: {project.id}", field="id"
                )
            self._projects.append(project)
            self.save()
            return project

    def remove(self, project_id: str) -> bool:
        with self._lock:
            before = len(self._projects)
            self._projects = [p for p in self._projects if p.id != project_id]
            if len(self._projects) == before:
                return False
            self.save()
            return True

    def replace(self, project: Project) -> Project:
        """Swap in an edited record with the same id, keeping its position"""
        with self._lock:
            for index, existing in enumerate(self._projects):
                if existing.id == project.id:
                    self._projects[index] = project
                    self.save()
                    return project
            raise ValidationError(f"Unknown project: {project.id}", field="id")

    def modify(self, project_id: str, change: Callable[[Project], None]) -> Optional[Project]:
        """Apply ``change`` to the stored record and persist; None if unknown"""
        with self._lock:
            project = self.get(project_id)
            if project is None:
                logger.warning(f"Ignoring update for unknown project {project_id}")
                return None
            change(project)
            self.save()
            return project

    def update_status(
        self, project_id: str, status: ProjectStatus, pid: Optional[int] = None
    ) -> Optional[Project]:
        def apply(project: Project):
            project.status = status
            if pid is not None or status is ProjectStatus.STOPPED:
                project.pid = pid

        return self.modify(project_id, apply)

    def update_launcher_path(self, project_id: str, launcher_path: str) -> Optional[Project]:
        def apply(project: Project):
            project.launcher_path = launcher_path

        return self.modify(project_id, apply)
