"""
Command executors: run shell pipelines, with or without elevated privileges
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from devdock.services.platform_service import PlatformService
from devdock.utils.async_utils import run_subprocess_streaming_async, task_manager
from devdock.utils.shell_utils import prepare_elevated_script, shell_quote

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str], None]


@dataclass
class ExecutionResult:
    """Exit code plus the merged stdout/stderr of one command"""

    return_code: int
    output: str = ""

    @property
    def succeeded(self) -> bool:
        return self.return_code == 0


class CommandExecutor:
    """
    Runs an opaque shell command string under bash.

    Output chunks are streamed to ``output_callback`` as they arrive. Spawn
    failures are reported as return code 1 with the error text in the output.
    No timeout is enforced.
    """

    def build_command(self, command: str) -> List[str]:
        return PlatformService.build_argv("SHELL_COMMANDS", "bash_execute", command=command)

    async def execute(
        self,
        command: str,
        cwd: Optional[str] = None,
        output_callback: Optional[OutputCallback] = None,
    ) -> ExecutionResult:
        argv = self.build_command(command)
        logger.debug(f"Executing: {argv!r} (cwd={cwd})")
        return_code, output = await run_subprocess_streaming_async(
            argv, cwd=cwd or None, output_callback=output_callback
        )
        if return_code != 0:
            logger.debug(f"Command exited with {return_code}")
        return ExecutionResult(return_code=return_code, output=output)

    def execute_sync(
        self,
        command: str,
        cwd: Optional[str] = None,
        output_callback: Optional[OutputCallback] = None,
        timeout: Optional[float] = None,
    ) -> ExecutionResult:
        """Block the calling thread until the command finishes on the worker loop"""
        return task_manager.run_sync(
            self.execute(command, cwd=cwd, output_callback=output_callback),
            timeout=timeout,
        )


class PrivilegedCommandExecutor(CommandExecutor):
    """
    Same contract as CommandExecutor, but the command runs behind the
    platform's administrator consent prompt.

    On macOS the command is embedded in an AppleScript string literal, so it
    is first flattened onto one line and its backslashes and double quotes
    are escaped. The elevation tool is invoked as an argv list, so no further
    shell quoting layer is involved.
    """

    def build_command(self, command: str) -> List[str]:
        if PlatformService.is_macos():
            command = prepare_elevated_script(command)
        return PlatformService.build_argv("PRIVILEGE_COMMANDS", "elevate", command=command)

    async def execute(
        self,
        command: str,
        cwd: Optional[str] = None,
        output_callback: Optional[OutputCallback] = None,
    ) -> ExecutionResult:
        if cwd:
            # The elevated shell does not inherit our working directory
            command = f"cd {shell_quote(cwd)} && {command}"
        result = await super().execute(command, cwd=cwd, output_callback=output_callback)
        if result.return_code != 0:
            note = PlatformService.get_error_message("elevation_failed")
            logger.warning(f"Privileged command failed ({result.return_code}). {note}")
        return result
