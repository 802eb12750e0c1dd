"""
Update Service - checks the remote version manifest, downloads and verifies
the update artifact, stages the new application bundle and hands the final
swap to a detached replacement script
"""

import hashlib
import json
import os
import shutil
import stat
import tempfile
import zipfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlsplit, urlunsplit

import requests

from devdock.config.config import get_config
from devdock.config.settings import (
    APP_BUNDLE_SUFFIX,
    ARCHIVE_EXTENSIONS,
    BUNDLE_BACKUP_SUFFIX,
    DISK_IMAGE_EXTENSIONS,
    NO_CACHE_HEADERS,
    PARTIAL_DOWNLOAD_SUFFIX,
    QUARANTINE_ATTRIBUTE,
)
from devdock.models.version import VersionDescriptor
from devdock.services.platform_service import PlatformService
from devdock.utils.async_base import (
    AsyncError,
    AsyncServiceInterface,
    DecodeError,
    IntegrityError,
    NetworkError,
    ProcessError,
    ResourceError,
    ServiceResult,
)
from devdock.utils.async_utils import run_in_executor, run_subprocess_async
from devdock.utils.shell_utils import shell_quote
from devdock.utils.version_utils import compare_versions

ProgressCallback = Callable[[str], None]


class UpdateState(Enum):
    IDLE = "idle"
    CHECKING = "checking"
    NO_UPDATE = "no_update"
    UPDATE_AVAILABLE = "update_available"
    CHECK_FAILED = "check_failed"
    INSTALLING = "installing"
    INSTALLED_PENDING_RESTART = "installed_pending_restart"
    INSTALL_FAILED = "install_failed"


class UpdateCheckKind(Enum):
    NO_UPDATE = "no_update"
    UPDATE_AVAILABLE = "update_available"
    FAILURE = "failure"


@dataclass
class UpdateCheckResult:
    kind: UpdateCheckKind
    current: Optional[str] = None
    remote: Optional[VersionDescriptor] = None
    message: Optional[str] = None

    @property
    def update_available(self) -> bool:
        return self.kind is UpdateCheckKind.UPDATE_AVAILABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "current": self.current,
            "remote": self.remote.to_dict() if self.remote else None,
            "message": self.message,
        }


def make_metadata_url(artifact_url: str) -> str:
    """
    Manifest URL for an artifact URL.

    A ``.dmg`` artifact's manifest is the sibling ``.json`` file; any other
    URL is assumed to be the manifest itself.
    """
    parts = urlsplit(artifact_url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"Invalid update URL: {artifact_url}")
    path = parts.path
    if path.lower().endswith(".dmg"):
        path = path[: -len(".dmg")] + ".json"
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


def sha256_file(path: Path, chunk_size: int = 65536) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_artifact(path: Path, remote: VersionDescriptor):
    """
    Check a downloaded artifact against the declared checksum and size.

    Raises:
        IntegrityError: on any mismatch
    """
    if remote.checksum:
        actual = sha256_file(path)
        if actual.lower() != remote.checksum.strip().lower():
            raise IntegrityError(
                "Checksum mismatch for downloaded update",
                expected=remote.checksum,
                actual=actual,
            )
    if remote.size is not None:
        actual_size = path.stat().st_size
        if actual_size != remote.size:
            raise IntegrityError(
                "Size mismatch for downloaded update",
                expected=str(remote.size),
                actual=str(actual_size),
            )


def _extract_zip(archive: Path, destination: Path):
    """Extract keeping the unix permission bits zipfile drops"""
    with zipfile.ZipFile(archive) as zf:
        for info in zf.infolist():
            extracted = Path(zf.extract(info, destination))
            mode = (info.external_attr >> 16) & 0o7777
            if mode and not info.is_dir():
                extracted.chmod(mode)


def _find_bundle(root: Path) -> Optional[Path]:
    """First ``*.app`` at the top of root or one level down"""
    for candidate in sorted(root.iterdir()):
        if candidate.name.endswith(APP_BUNDLE_SUFFIX):
            return candidate
    for child in sorted(p for p in root.iterdir() if p.is_dir()):
        for candidate in sorted(child.iterdir()):
            if candidate.name.endswith(APP_BUNDLE_SUFFIX):
                return candidate
    # Archives for other platforms ship a single top-level directory
    visible = [p for p in root.iterdir() if not p.name.startswith((".", "__MACOSX"))]
    if len(visible) == 1 and visible[0].is_dir():
        return visible[0]
    return None


class UpdateService(AsyncServiceInterface):
    """Self-update for the installed application"""

    def __init__(self, session: Optional[requests.Session] = None):
        super().__init__("UpdateService")
        self.session = session or requests.Session()
        self.state = UpdateState.IDLE
        self._listeners: List[Callable[[UpdateState], None]] = []

    async def health_check(self) -> ServiceResult[Dict[str, Any]]:
        config = get_config().update
        return ServiceResult.success_result(
            {
                "state": self.state.value,
                "version_file": config.version_file,
                "app_bundle_path": config.app_bundle_path,
            }
        )

    def add_state_listener(self, listener: Callable[[UpdateState], None]):
        self._listeners.append(listener)

    def _set_state(self, state: UpdateState):
        self.logger.debug(f"Update state: {self.state.value} -> {state.value}")
        self.state = state
        for listener in list(self._listeners):
            listener(state)

    # ---- checking -------------------------------------------------------

    def load_local_version(self) -> VersionDescriptor:
        """
        Read the bundled version descriptor.

        Raises:
            ResourceError: if the file is missing
            DecodeError: if it is not a valid descriptor
        """
        path = Path(get_config().update.version_file)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ResourceError("Local version information is missing", str(path)) from e
        except json.JSONDecodeError as e:
            raise DecodeError(f"Local version file is not valid JSON: {e}", str(path)) from e
        try:
            return VersionDescriptor.from_dict(data)
        except ValueError as e:
            raise DecodeError(str(e), str(path)) from e

    def current_version(self, local: Optional[VersionDescriptor] = None) -> str:
        configured = get_config().update.current_version
        if configured:
            return configured
        if local is not None:
            return local.version
        return "0.0.0"

    def _get(self, url: str, **kwargs) -> requests.Response:
        try:
            response = self.session.get(url, **kwargs)
        except requests.Timeout as e:
            raise NetworkError(f"Request timed out: {url}", url=url) from e
        except requests.RequestException as e:
            raise NetworkError(f"Request failed: {e}", url=url) from e
        if not 200 <= response.status_code < 300:
            response.close()
            raise NetworkError(
                f"Unexpected HTTP status {response.status_code}",
                url=url,
                status_code=response.status_code,
            )
        return response

    async def fetch_manifest(self, url: str) -> VersionDescriptor:
        """
        Download and decode the remote version manifest.

        Raises:
            NetworkError: on timeout, non-2xx status or an empty body
            DecodeError: on malformed JSON or a record without version/url
        """
        timeout = get_config().service.http_timeout

        def fetch() -> bytes:
            response = self._get(url, timeout=timeout, headers=NO_CACHE_HEADERS)
            return response.content

        body = await run_in_executor(fetch)
        if not body:
            raise NetworkError("No data received", url=url)
        try:
            data = json.loads(body)
        except ValueError as e:
            raise DecodeError(f"Update manifest is not valid JSON: {e}", url) from e
        try:
            return VersionDescriptor.from_dict(data, PlatformService.get_platform())
        except ValueError as e:
            raise DecodeError(str(e), url) from e

    async def check_for_update(self) -> UpdateCheckResult:
        """Compare the running version with the remote manifest"""
        self._set_state(UpdateState.CHECKING)
        async with self.operation_context("check_for_update"):
            current = self.current_version()
            try:
                local = self.load_local_version()
                current = self.current_version(local)
                try:
                    manifest_url = make_metadata_url(local.url)
                except ValueError as e:
                    raise DecodeError(str(e), local.url) from e
                remote = await self.fetch_manifest(manifest_url)
            except AsyncError as e:
                self.logger.warning(f"Update check failed: {e.message}")
                self._set_state(UpdateState.CHECK_FAILED)
                return UpdateCheckResult(
                    UpdateCheckKind.FAILURE, current=current, message=e.message
                )

            if compare_versions(current, remote.version) < 0:
                self._set_state(UpdateState.UPDATE_AVAILABLE)
                return UpdateCheckResult(
                    UpdateCheckKind.UPDATE_AVAILABLE,
                    current=current,
                    remote=remote,
                    message=f"Version {remote.version} is available",
                )

            self._set_state(UpdateState.NO_UPDATE)
            return UpdateCheckResult(
                UpdateCheckKind.NO_UPDATE,
                current=current,
                remote=remote,
                message=f"{current} is up to date",
            )

    # ---- downloading ----------------------------------------------------

    def _artifact_path(self, remote: VersionDescriptor) -> Path:
        name = os.path.basename(urlsplit(remote.url).path) or f"update-{remote.version}"
        return Path(get_config().update.cache_dir) / name

    def _download(self, remote: VersionDescriptor, progress: ProgressCallback) -> Path:
        config = get_config()
        target = self._artifact_path(remote)
        partial = target.with_name(target.name + PARTIAL_DOWNLOAD_SUFFIX)
        target.parent.mkdir(parents=True, exist_ok=True)

        try:
            response = self._get(
                remote.url,
                stream=True,
                timeout=(config.service.http_timeout, config.service.download_timeout),
            )
            total = remote.size or int(response.headers.get("Content-Length") or 0)
            received = 0
            last_percent = -1
            with response, open(partial, "wb") as f:
                for chunk in response.iter_content(chunk_size=config.update.chunk_size):
                    if not chunk:
                        continue
                    f.write(chunk)
                    received += len(chunk)
                    if total:
                        percent = min(100, received * 100 // total)
                        if percent // 10 != last_percent // 10:
                            progress(f"Downloaded {percent}%")
                            last_percent = percent

            if received == 0:
                raise NetworkError("No data received", url=remote.url)

            verify_artifact(partial, remote)
            os.replace(partial, target)
            return target
        except requests.RequestException as e:
            self._discard(partial, target)
            raise NetworkError(f"Download failed: {e}", url=remote.url) from e
        except (AsyncError, OSError):
            self._discard(partial, target)
            raise

    @staticmethod
    def _discard(*paths: Path):
        for leftover in paths:
            if leftover.exists():
                leftover.unlink()

    # ---- staging --------------------------------------------------------

    async def _stage_disk_image(self, artifact: Path, staging_dir: Path) -> Path:
        mount_point = Path(tempfile.mkdtemp(prefix="devdock-mount-"))
        timeout = get_config().service.download_timeout
        success, output = await PlatformService.run_command_with_result_async(
            "DISK_IMAGE_COMMANDS",
            subkey="attach",
            image_path=str(artifact),
            mount_point=str(mount_point),
            timeout=timeout,
        )
        if not success:
            mount_point.rmdir()
            raise ProcessError(f"Failed to mount disk image: {output}")

        try:
            bundle = await run_in_executor(_find_bundle, mount_point)
            if bundle is None:
                raise ResourceError("No application bundle in disk image", str(artifact))
            staged = staging_dir / bundle.name
            await run_in_executor(shutil.copytree, bundle, staged, symlinks=True)
            return staged
        finally:
            detached, detach_output = await PlatformService.run_command_with_result_async(
                "DISK_IMAGE_COMMANDS",
                subkey="detach",
                mount_point=str(mount_point),
                timeout=get_config().service.default_timeout,
            )
            if not detached:
                self.logger.warning(f"Failed to detach {mount_point}: {detach_output}")
            elif mount_point.exists():
                mount_point.rmdir()

    async def _stage_with_helper(self, helper: str, artifact: Path, staging_dir: Path) -> Path:
        result = await run_subprocess_async([helper, str(artifact), str(staging_dir)])
        if result.returncode != 0:
            raise ProcessError(
                "Update helper failed",
                return_code=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        bundle = await run_in_executor(_find_bundle, staging_dir)
        if bundle is None:
            raise ResourceError("Update helper produced no application bundle", str(staging_dir))
        return bundle

    async def stage_artifact(self, artifact: Path, staging_dir: Path) -> Path:
        """
        Unpack the verified artifact into ``staging_dir``.

        Returns the staged bundle path. The installed bundle is not touched.
        """
        if staging_dir.exists():
            await run_in_executor(shutil.rmtree, staging_dir)
        staging_dir.mkdir(parents=True)

        helper = get_config().update.helper_path
        name = artifact.name.lower()
        if helper:
            return await self._stage_with_helper(helper, artifact, staging_dir)
        if name.endswith(DISK_IMAGE_EXTENSIONS):
            return await self._stage_disk_image(artifact, staging_dir)
        if name.endswith(ARCHIVE_EXTENSIONS):
            try:
                await run_in_executor(_extract_zip, artifact, staging_dir)
            except zipfile.BadZipFile as e:
                raise ResourceError(f"Corrupt update archive: {e}", str(artifact)) from e
            bundle = await run_in_executor(_find_bundle, staging_dir)
            if bundle is None:
                raise ResourceError("No application bundle in archive", str(artifact))
            return bundle
        raise ResourceError(f"Unsupported update artifact: {artifact.name}", str(artifact))

    # ---- replacement ----------------------------------------------------

    def build_replacement_script(self, staged: Path, target: Path, pid: int) -> str:
        """Bash script that swaps the bundle once process ``pid`` has exited"""
        relaunch = " ".join(
            shell_quote(part)
            for part in PlatformService.build_argv("FILE_OPEN_COMMANDS", file_path=str(target))
        )
        lines = [
            "#!/bin/bash",
            f"PID={int(pid)}",
            f"TARGET={shell_quote(str(target))}",
            f"STAGED={shell_quote(str(staged))}",
            f'BACKUP="$TARGET{BUNDLE_BACKUP_SUFFIX}"',
            'while kill -0 "$PID" 2>/dev/null; do sleep 0.5; done',
            'rm -rf "$BACKUP"',
            'if [ -e "$TARGET" ]; then mv "$TARGET" "$BACKUP" || exit 1; fi',
            'if mv "$STAGED" "$TARGET"; then',
        ]
        if PlatformService.is_macos():
            lines.append(f'  xattr -dr {QUARANTINE_ATTRIBUTE} "$TARGET" 2>/dev/null || true')
        lines += [
            f"  if {relaunch}; then",
            '    rm -rf "$BACKUP"',
            "    exit 0",
            "  fi",
            "fi",
            "# Swap or relaunch failed, put the previous bundle back",
            'if [ -e "$BACKUP" ]; then',
            '  rm -rf "$TARGET"',
            '  mv "$BACKUP" "$TARGET"',
            f"  {relaunch}",
            "fi",
            "exit 1",
        ]
        return "\n".join(lines) + "\n"

    def _write_replacement_script(self, script: str, version: str) -> Path:
        path = Path(get_config().update.cache_dir) / f"replace-{version}.sh"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(script, encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR)
        return path

    async def schedule_replacement(self, staged: Path, target: Path, version: str) -> int:
        """Spawn the detached replacement script; returns its PID"""
        script = self.build_replacement_script(staged, target, os.getpid())
        script_path = await run_in_executor(self._write_replacement_script, script, version)
        cmd = PlatformService.build_argv("SHELL_COMMANDS", "bash_script", script_path=str(script_path))
        success, output = PlatformService.spawn_detached(cmd)
        if not success:
            raise ProcessError(f"Failed to start replacement script: {output}")
        return int(output)

    async def download_and_install(
        self, remote: VersionDescriptor, progress: Optional[ProgressCallback] = None
    ) -> ServiceResult[Dict[str, Any]]:
        """
        Download, verify and stage ``remote``, then schedule the bundle swap.

        Any failure before the swap is scheduled leaves the installed bundle
        untouched and removes the downloaded artifact.
        """
        progress = progress or (lambda _message: None)
        self._set_state(UpdateState.INSTALLING)

        async with self.operation_context("download_and_install"):
            config = get_config().update
            artifact: Optional[Path] = None
            try:
                if not config.app_bundle_path:
                    raise ResourceError("No installed application bundle is configured")
                target = Path(config.app_bundle_path)

                progress(f"Downloading {remote.version}...")
                artifact = await run_in_executor(self._download, remote, progress)
                progress("Download verified")

                staging_dir = Path(config.cache_dir) / "staging" / remote.version
                staged = await self.stage_artifact(artifact, staging_dir)
                progress(f"Staged {staged.name}")

                helper_pid = await self.schedule_replacement(staged, target, remote.version)
            except AsyncError as e:
                self.logger.error(f"Update install failed: {e.message}")
                if artifact is not None and artifact.exists():
                    artifact.unlink()
                self._set_state(UpdateState.INSTALL_FAILED)
                progress(f"Update failed: {e.message}")
                return ServiceResult.error_result(e)
            except OSError as e:
                if artifact is not None and artifact.exists():
                    artifact.unlink()
                self._set_state(UpdateState.INSTALL_FAILED)
                error = ResourceError(f"Update failed: {e}")
                progress(error.message)
                return ServiceResult.error_result(error)

            self._set_state(UpdateState.INSTALLED_PENDING_RESTART)
            progress("Update installed, restart to finish")
            return ServiceResult.success_result(
                {
                    "version": remote.version,
                    "staged_bundle": str(staged),
                    "replacement_pid": helper_pid,
                },
                message="Update staged, the application will restart",
            )
