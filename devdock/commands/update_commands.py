"""
Self-update command implementations
"""

from typing import Any, Dict, Optional

from devdock.models.version import VersionDescriptor
from devdock.services.update_service import UpdateCheckKind
from devdock.utils.async_base import AsyncCommand, AsyncResult, NetworkError, ValidationError


class CheckForUpdateCommand(AsyncCommand):
    """Ask the update service whether a newer version exists"""

    def __init__(self, update_service, **kwargs):
        super().__init__(**kwargs)
        self.update_service = update_service

    async def execute(self) -> AsyncResult[Dict[str, Any]]:
        self._update_progress("Checking for updates...", "info")
        check = await self.update_service.check_for_update()

        if check.kind is UpdateCheckKind.FAILURE:
            self._update_progress(f"Update check failed: {check.message}", "error")
            return AsyncResult(
                success=False,
                data=check.to_dict(),
                error=NetworkError(check.message or "Update check failed"),
                message=check.message,
            )

        level = "success" if check.update_available else "info"
        self._update_progress(check.message or "", level)
        return AsyncResult.success_result(check.to_dict(), message=check.message)


class InstallUpdateCommand(AsyncCommand):
    """
    Download and stage an update.

    Without an explicit descriptor the command checks first and installs only
    when the remote version is newer.
    """

    def __init__(
        self, update_service, remote: Optional[VersionDescriptor] = None, **kwargs
    ):
        super().__init__(**kwargs)
        self.update_service = update_service
        self.remote = remote

    async def execute(self) -> AsyncResult[Dict[str, Any]]:
        remote = self.remote
        if remote is None:
            check = await self.update_service.check_for_update()
            if not check.update_available:
                message = check.message or "No update available"
                self._update_progress(message, "info")
                if check.kind is UpdateCheckKind.FAILURE:
                    return AsyncResult.error_result(NetworkError(message))
                return AsyncResult.error_result(
                    ValidationError(f"Nothing to install: {message}")
                )
            remote = check.remote

        self._update_progress(f"Installing {remote.version}...", "info")
        result = await self.update_service.download_and_install(
            remote, progress=lambda message: self._update_progress(message, "info")
        )
        self._update_progress(
            result.message or "", "success" if result.is_success else "error"
        )
        return result
