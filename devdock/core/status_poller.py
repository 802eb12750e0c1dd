"""
Periodic background re-probe of every known project's live status
"""

import asyncio
import logging
from concurrent.futures import Future
from typing import Callable, Dict, List, Optional

from devdock.config.config import get_config
from devdock.models.project import ProjectStatus
from devdock.utils.async_base import AsyncError
from devdock.utils.async_utils import task_manager

logger = logging.getLogger(__name__)

StatusListener = Callable[[str, ProjectStatus], None]


class StatusPoller:
    """
    Runs on the background event loop and never blocks the caller.

    Listeners are called with ``(project_id, status)`` whenever a probe
    changes a project's cached status.
    """

    def __init__(self, repository, orchestrator, interval: Optional[float] = None):
        self.repository = repository
        self.orchestrator = orchestrator
        self.interval = interval or get_config().service.status_poll_interval
        self._listeners: List[StatusListener] = []
        self._future: Optional[Future] = None

    def add_listener(self, listener: StatusListener):
        self._listeners.append(listener)

    @property
    def is_running(self) -> bool:
        return self._future is not None and not self._future.done()

    async def poll_once(self) -> Dict[str, ProjectStatus]:
        """Probe every project once; returns the statuses that changed"""
        changed = {}
        for project in self.repository.all():
            previous = project.status
            try:
                status = await self.orchestrator.check_status(project)
            except AsyncError as e:
                logger.warning(f"Status probe failed for {project}: {e.message}")
                continue
            if status is not previous:
                changed[project.id] = status
                for listener in list(self._listeners):
                    listener(project.id, status)
        return changed

    async def _poll_forever(self):
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval)

    def start(self):
        if self.is_running:
            return
        logger.info(f"Status polling every {self.interval:.1f}s")
        self._future = task_manager.run_task(self._poll_forever(), task_name="status-poller")

    def stop(self):
        if self._future is not None:
            self._future.cancel()
            self._future = None
