"""
Platform-specific operations service
"""

import platform
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from devdock.config.config import get_config
from devdock.utils.async_utils import run_subprocess_async

# Keyword arguments forwarded to subprocess rather than the command template
_SUBPROCESS_KWARGS = ("capture_output", "text", "encoding", "errors", "cwd", "timeout")


def _commands() -> Dict[str, Any]:
    return get_config().commands.commands


class PlatformService:
    """Service for handling platform-specific operations"""

    @staticmethod
    def get_platform() -> str:
        """Get the current platform (darwin, linux)"""
        return platform.system().lower()

    @staticmethod
    def is_macos() -> bool:
        """Check if running on macOS"""
        return PlatformService.get_platform() == "darwin"

    @staticmethod
    def get_error_message(error_type: str) -> str:
        """Get platform-specific error message"""
        error_messages = get_config().commands.error_messages
        current_platform = PlatformService.get_platform()
        messages = error_messages.get(current_platform, error_messages["linux"])
        return messages.get(error_type, "")

    @staticmethod
    def _prepare_command(
        command_key: str, subkey: Optional[str] = None, **kwargs
    ) -> Tuple[Union[List[str], str], bool]:
        """
        Prepare command from COMMANDS dictionary with formatting
        Returns (command, use_shell)
        """
        commands = _commands()

        # Get command template from COMMANDS dictionary
        if command_key not in commands:
            raise ValueError(f"Unknown command key: {command_key}")

        cmd_template = commands[command_key]

        # Handle subkey access
        if subkey is not None:
            if not isinstance(cmd_template, dict):
                raise ValueError(f"Command key {command_key} does not support subkeys")
            if subkey not in cmd_template:
                raise ValueError(
                    f"Unknown subkey '{subkey}' for command key '{command_key}'"
                )
            cmd_template = cmd_template[subkey]

        current_platform = PlatformService.get_platform()

        # Handle platform-specific commands
        if isinstance(cmd_template, dict):
            if current_platform in cmd_template:
                cmd_template = cmd_template[current_platform]
            else:
                # Default to linux for unknown platforms
                cmd_template = cmd_template.get("linux")

        template_kwargs = {
            k: v for k, v in kwargs.items() if k not in _SUBPROCESS_KWARGS
        }

        # Format command template with kwargs
        if isinstance(cmd_template, str):
            # String commands are shell snippets, run through bash by the executor
            return (cmd_template.format(**template_kwargs), True)
        elif isinstance(cmd_template, list):
            # List commands - format each part
            cmd = [
                (
                    part.format(**template_kwargs)
                    if isinstance(part, str)
                    and any(f"{{{key}}}" in part for key in template_kwargs)
                    else part
                )
                for part in cmd_template
            ]
            return (cmd, False)
        else:
            raise ValueError(f"Invalid command template type: {type(cmd_template)}")

    @staticmethod
    def format_shell_command(command_key: str, subkey: Optional[str] = None, **kwargs) -> str:
        """Render a shell-snippet template; argv templates are joined with spaces"""
        cmd, _ = PlatformService._prepare_command(command_key, subkey, **kwargs)
        if isinstance(cmd, list):
            return " ".join(cmd)
        return cmd

    @staticmethod
    def build_argv(command_key: str, subkey: Optional[str] = None, **kwargs) -> List[str]:
        """Render an argv template"""
        cmd, use_shell = PlatformService._prepare_command(command_key, subkey, **kwargs)
        if use_shell:
            raise ValueError(f"Command {command_key}.{subkey} is a shell snippet")
        return cmd

    @staticmethod
    async def run_command_with_result_async(
        command_key: str, subkey: Optional[str] = None, **kwargs
    ) -> Tuple[bool, str]:
        """
        Run an argv command template and capture its output

        Args:
            command_key: Key to look up command template in COMMANDS dict
            subkey: Optional subkey within the command group
            **kwargs: Template variables to format into the command and subprocess args

        Returns:
            (success, output_or_error_message) tuple
        """
        try:
            cmd = PlatformService.build_argv(command_key, subkey, **kwargs)

            subprocess_kwargs = {
                k: v for k, v in kwargs.items() if k in _SUBPROCESS_KWARGS
            }

            result = await run_subprocess_async(cmd, **subprocess_kwargs)

            if result.returncode == 0:
                return True, result.stdout.strip() if result.stdout else ""
            else:
                return (
                    False,
                    (result.stderr or result.stdout or "").strip()
                    or f"Command failed with code {result.returncode}",
                )

        except subprocess.TimeoutExpired:
            return False, f"Command timed out: {command_key}.{subkey}"
        except (OSError, subprocess.SubprocessError) as e:
            return False, f"Error: {str(e)}"

    @staticmethod
    async def open_path_async(file_path: str, timeout: float = 10.0) -> Tuple[bool, str]:
        """
        Open a file, directory or application bundle with the platform opener
        """
        if not file_path:
            return False, "No file path provided"

        if not Path(file_path).exists():
            return False, f"Path does not exist: {file_path}"

        try:
            cmd = PlatformService.build_argv("FILE_OPEN_COMMANDS", file_path=file_path)
            result = await run_subprocess_async(cmd, timeout=timeout, check=False)
        except subprocess.TimeoutExpired:
            return False, "Open command timed out"
        except OSError as e:
            return False, f"Error opening {file_path}: {str(e)}"

        if result.returncode == 0:
            return True, (result.stdout or "").strip()
        error_msg = (
            result.stderr.strip()
            if result.stderr
            else f"Command failed with exit code {result.returncode}"
        )
        return False, error_msg

    @staticmethod
    def spawn_detached(cmd: List[str], cwd: Optional[str] = None) -> Tuple[bool, str]:
        """
        Start a process in its own session without waiting for it.

        The child outlives this process and has no pipes back to it.
        """
        try:
            process = subprocess.Popen(
                cmd,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
                close_fds=True,
            )
        except OSError as e:
            return False, f"Error: {str(e)}"
        return True, str(process.pid)
