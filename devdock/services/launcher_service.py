"""
Launcher Service - finds the launcher artifact a deploy script leaves behind
and opens it to start a project
"""

import os
from typing import Any, Callable, Dict, List, Optional

from devdock.config.config import get_config
from devdock.models.project import Project
from devdock.services.platform_service import PlatformService
from devdock.services.project_repository import ProjectRepository
from devdock.utils.async_base import AsyncServiceInterface, DiscoveryError, ServiceResult
from devdock.utils.async_utils import run_in_executor
from devdock.utils.matching import launcher_keywords, rank_launchers, scan_launcher_dir

LogCallback = Callable[[str], None]


class LauncherService(AsyncServiceInterface):
    """Heuristic launcher discovery over the configured launcher directories"""

    def __init__(
        self,
        repository: Optional[ProjectRepository] = None,
        launcher_dirs: Optional[List[str]] = None,
    ):
        super().__init__("LauncherService")
        self.repository = repository
        self._launcher_dirs = launcher_dirs

    @property
    def launcher_dirs(self) -> List[str]:
        if self._launcher_dirs is not None:
            return self._launcher_dirs
        return get_config().project.launcher_dirs

    async def health_check(self) -> ServiceResult[Dict[str, Any]]:
        missing = [d for d in self.launcher_dirs if not os.path.isdir(d)]
        data = {"launcher_dirs": self.launcher_dirs, "missing": missing}
        if missing and len(missing) == len(self.launcher_dirs):
            return ServiceResult.partial_result(
                data, DiscoveryError("No launcher directory is available")
            )
        return ServiceResult.success_result(data)

    def find_launchers(self, project: Project) -> List[str]:
        """All matching launcher paths, most recently modified first"""
        keywords = launcher_keywords(project.id, project.name, project.type)
        entries = []
        for directory in self.launcher_dirs:
            try:
                entries.extend(scan_launcher_dir(directory))
            except OSError as e:
                self.logger.warning(f"Cannot read launcher directory {directory}: {e}")
        return [candidate.path for candidate in rank_launchers(entries, keywords)]

    async def discover(self, project: Project) -> Optional[str]:
        matches = await run_in_executor(self.find_launchers, project)
        return matches[0] if matches else None

    async def capture(
        self,
        project: Project,
        on_log: Optional[LogCallback] = None,
        log_not_found: bool = False,
    ) -> Optional[str]:
        """
        Discover the project's launcher and persist it when it changed.

        Returns the launcher path, or None when nothing matched.
        """
        found = await self.discover(project)
        if found is None:
            if log_not_found and on_log:
                dirs = ", ".join(self.launcher_dirs)
                on_log(f"No launcher found for {project.name} in {dirs}")
            return None

        if project.captured_launcher != found:
            project.launcher_path = found
            if self.repository is not None:
                self.repository.update_launcher_path(project.id, found)
            if on_log:
                on_log(f"Captured launcher: {os.path.basename(found)}")
        return found

    async def open_launcher(self, path: str, on_log: Optional[LogCallback] = None) -> bool:
        """Open a launcher with the platform opener; True on exit code 0"""
        name = os.path.basename(path.rstrip(os.sep))
        if not os.path.exists(path):
            if on_log:
                on_log(f"Launcher does not exist: {path}")
            return False

        success, output = await PlatformService.open_path_async(path)
        if output and on_log:
            on_log(output)
        if on_log:
            on_log(
                f"Started via launcher: {name}"
                if success
                else f"Failed to start launcher: {name}"
            )
        return success
