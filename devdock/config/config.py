"""
Unified Configuration Management System
Centralizes all application settings with validation, type checking, and environment support
"""

import os
import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from enum import Enum


class Environment(Enum):
    """Application environments"""

    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""

    pass


def _default_data_dir() -> str:
    return os.path.join(os.path.expanduser("~"), ".devdock")


@dataclass
class ProjectConfig:
    """Project-related configuration"""

    # JSON project store
    projects_file: str = field(
        default_factory=lambda: os.path.join(_default_data_dir(), "projects.json")
    )

    # Directories scanned for launcher artifacts, in priority order
    launcher_dirs: List[str] = field(
        default_factory=lambda: [os.path.join(os.path.expanduser("~"), "Desktop")]
    )

    # Extra process-search keywords per project type
    process_keywords: Dict[str, List[str]] = field(
        default_factory=lambda: {
            "nexus": [
                "nexus-network",
                ".nexus/bin/nexus-network",
                "nexus-network start",
                "nexus.command",
                "nexus.sh",
            ],
        }
    )

    # Types stopped by keyword kill when no stop script is configured
    keyword_stop_types: Dict[str, str] = field(
        default_factory=lambda: {"nexus": "nexus"}
    )

    # Generated monitoring session scripts
    sessions_dir: str = field(
        default_factory=lambda: os.path.join(_default_data_dir(), "sessions")
    )


@dataclass
class CommandConfig:
    """System commands configuration"""

    # Platform-specific commands organized by category
    commands: Dict[str, Dict] = field(
        default_factory=lambda: {
            # File operations
            "FILE_OPEN_COMMANDS": {
                "darwin": ["/usr/bin/open", "{file_path}"],
                "linux": ["xdg-open", "{file_path}"],
            },
            # Shell commands
            "SHELL_COMMANDS": {
                "bash": "bash",
                "bash_execute": ["bash", "-c", "{command}"],
                "bash_script": ["bash", "{script_path}"],
                "remote_script": "bash <(curl -fsSL {script_url})",
            },
            # Privilege elevation
            "PRIVILEGE_COMMANDS": {
                "elevate": {
                    "darwin": [
                        "osascript",
                        "-e",
                        'do shell script "{command}" with administrator privileges',
                    ],
                    "linux": ["pkexec", "bash", "-c", "{command}"],
                },
            },
            # Container runtime commands
            "DOCKER_COMMANDS": {
                "version": ["docker", "--version"],
                "list_names": "command -v docker >/dev/null 2>&1 || exit 0; "
                "docker ps -a --format '{{{{.Names}}}}'",
                "inspect_running": "docker inspect -f '{{{{.State.Running}}}}' "
                "{container} 2>/dev/null",
                "top": "docker top {container} -eo pid,ppid,cmd 2>/dev/null",
                "logs": "docker logs --tail {tail} {container} 2>&1",
                "port": "docker port {container} 2>/dev/null",
            },
            # Process table commands
            "PROCESS_COMMANDS": {
                "by_pid": "ps -p {pid} -o pid,ppid,command 2>/dev/null | sed '1d'",
                "by_keyword": (
                    "key={keyword};\n"
                    "if command -v pgrep >/dev/null 2>&1; then\n"
                    '  pids=$(pgrep -if "$key" || true);\n'
                    "else\n"
                    '  pids="";\n'
                    "fi;\n"
                    'if [ -n "$pids" ]; then\n'
                    "  ps -p $pids -o pid,ppid,command 2>/dev/null | sed '1d'\n"
                    "else\n"
                    '  ps -axo pid,ppid,command 2>/dev/null | grep -i "$key" '
                    "| grep -v grep || true\n"
                    "fi"
                ),
                "kill_by_keyword": (
                    "key={keyword};\n"
                    'pids=$(pgrep -if "$key" || true);\n'
                    'if [ -z "$pids" ]; then\n'
                    '  echo "No process matching $key";\n'
                    "  exit 0;\n"
                    "fi;\n"
                    'echo "Terminating processes: $pids";\n'
                    "kill $pids || true;\n"
                    "sleep {grace_seconds};\n"
                    'remain=$(pgrep -if "$key" || true);\n'
                    'if [ -n "$remain" ]; then\n'
                    '  echo "Some processes did not exit, force killing: $remain";\n'
                    "  kill -9 $remain || true;\n"
                    "fi;"
                ),
            },
            # Network inspection
            "NETWORK_COMMANDS": {
                "port_in_use": ["lsof", "-i", ":{port}"],
            },
            # Package manager prerequisite
            "PACKAGE_MANAGER_COMMANDS": {
                "ensure": (
                    'export PATH="/opt/homebrew/bin:/usr/local/bin:$PATH";\n'
                    "if command -v brew >/dev/null 2>&1; then\n"
                    "  brew --version | head -n 1\n"
                    "  exit 0\n"
                    "fi;\n"
                    'echo "Homebrew not found, installing...";\n'
                    '/bin/bash -c "$(curl -fsSL {installer_url})";\n'
                    'export PATH="/opt/homebrew/bin:/usr/local/bin:$PATH";\n'
                    'if [ -x /opt/homebrew/bin/brew ]; then eval "$(/opt/homebrew/bin/brew shellenv)"; fi;\n'
                    'if [ -x /usr/local/bin/brew ]; then eval "$(/usr/local/bin/brew shellenv)"; fi;\n'
                    'command -v brew >/dev/null 2>&1 || {{ echo "Homebrew install failed or incomplete"; exit 1; }};\n'
                    "brew --version | head -n 1"
                ),
                "wrap": (
                    'export PATH="/opt/homebrew/bin:/usr/local/bin:$PATH";\n'
                    "if ! command -v brew >/dev/null 2>&1; then\n"
                    '  echo "Homebrew not found, installing...";\n'
                    '  /bin/bash -c "$(curl -fsSL {installer_url})";\n'
                    '  export PATH="/opt/homebrew/bin:/usr/local/bin:$PATH";\n'
                    '  if [ -x /opt/homebrew/bin/brew ]; then eval "$(/opt/homebrew/bin/brew shellenv)"; fi;\n'
                    '  if [ -x /usr/local/bin/brew ]; then eval "$(/usr/local/bin/brew shellenv)"; fi;\n'
                    "fi;\n"
                    'command -v brew >/dev/null 2>&1 || {{ echo "Homebrew is not ready, finish installing it and retry"; exit 1; }};\n'
                    "{command}"
                ),
            },
            # Terminal launcher for monitoring sessions
            "TERMINAL_COMMANDS": {
                "open_session": {
                    "darwin": ["open", "-a", "Terminal", "{script_path}"],
                    "linux": ["x-terminal-emulator", "-e", "bash", "{script_path}"],
                },
            },
            # Disk image handling for updates
            "DISK_IMAGE_COMMANDS": {
                "attach": [
                    "hdiutil",
                    "attach",
                    "{image_path}",
                    "-nobrowse",
                    "-readonly",
                    "-mountpoint",
                    "{mount_point}",
                ],
                "detach": ["hdiutil", "detach", "{mount_point}", "-quiet"],
            },
        }
    )

    package_manager_installer_url: str = (
        "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"
    )

    # Error messages by platform
    error_messages: Dict[str, Dict[str, str]] = field(
        default_factory=lambda: {
            "linux": {
                "elevation_failed": "NOTE: pkexec failed or the request was dismissed.",
                "docker_not_found": "NOTE: Make sure docker is installed.",
            },
            "darwin": {
                "elevation_failed": "NOTE: The administrator prompt was cancelled or failed.",
                "docker_not_found": "NOTE: Make sure Docker Desktop is running.",
            },
        }
    )


@dataclass
class ServiceConfig:
    """Service-specific configuration"""

    # Timeout settings
    default_timeout: float = 30.0
    http_timeout: float = 10.0
    download_timeout: float = 300.0

    # Batch and polling settings
    settle_delay: float = 1.0
    status_poll_interval: float = 2.0
    stop_grace_seconds: int = 2
    log_tail_lines: int = 200

    # Log buffer settings
    log_buffer_size: int = 50000


@dataclass
class UpdateConfig:
    """Self-update configuration"""

    version_file: str = field(
        default_factory=lambda: os.path.join(_default_data_dir(), "version.json")
    )
    current_version: Optional[str] = None
    cache_dir: str = field(
        default_factory=lambda: os.path.join(_default_data_dir(), "updates")
    )
    app_bundle_path: Optional[str] = None
    helper_path: Optional[str] = None
    chunk_size: int = 65536


@dataclass
class WebConfig:
    """Embedded web API configuration"""

    host: str = "127.0.0.1"
    port: int = 5000


@dataclass
class UnifiedConfig:
    """Main configuration container"""

    # Sub-configurations
    project: ProjectConfig = field(default_factory=ProjectConfig)
    commands: CommandConfig = field(default_factory=CommandConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)
    update: UpdateConfig = field(default_factory=UpdateConfig)
    web: WebConfig = field(default_factory=WebConfig)

    # Environment settings
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    log_level: str = "INFO"

    # Application metadata
    version: str = "1.0.0"
    config_version: str = "1.0"


class ConfigManager:
    """Manages configuration loading, validation, and access"""

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = config_dir or Path(_default_data_dir())
        self.config: Optional[UnifiedConfig] = None
        self.logger = logging.getLogger("ConfigManager")

        # Load configuration
        self._load_config()

    def _load_config(self):
        """Load configuration from files and environment"""
        # Start with default configuration
        self.config = UnifiedConfig()

        # Apply user overrides
        self._apply_user_overrides()

        # Apply environment overrides
        self._apply_environment_overrides()

        # Validate configuration
        self._validate_config()

    def _apply_user_overrides(self):
        """Apply user settings from user_settings.json"""
        user_settings_file = self.config_dir / "user_settings.json"

        if not user_settings_file.exists():
            return

        try:
            with open(user_settings_file, "r", encoding="utf-8") as f:
                user_settings = json.load(f)

            self._apply_settings_dict(user_settings)
            self.logger.info("Applied user settings overrides")

        except (json.JSONDecodeError, FileNotFoundError) as e:
            self.logger.warning(f"Could not load user settings: {e}")

    def _apply_environment_overrides(self):
        """Apply environment-specific overrides"""
        env_name = os.getenv("DEVDOCK_ENV", "development").lower()
        try:
            self.config.environment = Environment(env_name)
        except ValueError:
            self.logger.warning(f"Unknown environment '{env_name}', using development")
            self.config.environment = Environment.DEVELOPMENT

        # Debug mode
        if os.getenv("DEBUG") is not None:
            self.config.debug = os.getenv("DEBUG").lower() in ("true", "1", "yes", "on")

        # Log level
        if os.getenv("LOG_LEVEL"):
            self.config.log_level = os.getenv("LOG_LEVEL").upper()

        if os.getenv("DEVDOCK_PROJECTS_FILE"):
            self.config.project.projects_file = os.getenv("DEVDOCK_PROJECTS_FILE")

        if os.getenv("DEVDOCK_LAUNCHER_DIRS"):
            self.config.project.launcher_dirs = [
                part
                for part in os.getenv("DEVDOCK_LAUNCHER_DIRS").split(os.pathsep)
                if part
            ]

        if os.getenv("DEVDOCK_SETTLE_DELAY"):
            try:
                self.config.service.settle_delay = float(
                    os.getenv("DEVDOCK_SETTLE_DELAY")
                )
            except ValueError:
                self.logger.warning("Ignoring non-numeric DEVDOCK_SETTLE_DELAY")

        if os.getenv("DEVDOCK_VERSION_FILE"):
            self.config.update.version_file = os.getenv("DEVDOCK_VERSION_FILE")

        if os.getenv("DEVDOCK_APP_BUNDLE"):
            self.config.update.app_bundle_path = os.getenv("DEVDOCK_APP_BUNDLE")

    def _apply_settings_dict(self, settings: Dict[str, Any]):
        """Apply settings from a dictionary using dot notation"""
        for key, value in settings.items():
            self._set_nested_value(self.config, key, value)

    def _set_nested_value(self, obj: Any, key_path: str, value: Any):
        """Set a nested value using dot notation (e.g., 'service.settle_delay')"""
        keys = key_path.split(".")
        current = obj

        # Navigate to the parent object
        for index, key in enumerate(keys[:-1]):
            if isinstance(current, dict):
                if key in current:
                    current = current[key]
                else:
                    self.logger.warning(
                        f"Unknown config path: {'.'.join(keys[:index + 1])}"
                    )
                    return
            elif hasattr(current, key):
                current = getattr(current, key)
            else:
                self.logger.warning(
                    f"Unknown config path: {'.'.join(keys[:index + 1])}"
                )
                return

        # Set the final value
        final_key = keys[-1]

        if isinstance(current, dict):
            if final_key in current:
                if isinstance(current[final_key], dict) and isinstance(value, dict):
                    # Merge dictionaries
                    current[final_key].update(value)
                else:
                    current[final_key] = value
            else:
                self.logger.warning(f"Unknown config key: {key_path}")
        elif hasattr(current, final_key):
            existing = getattr(current, final_key)
            if isinstance(existing, dict) and isinstance(value, dict):
                # Merge dictionaries
                existing.update(value)
            else:
                setattr(current, final_key, value)
        else:
            self.logger.warning(f"Unknown config key: {key_path}")

    def _validate_config(self):
        """Validate the loaded configuration"""
        try:
            if self.config.service.default_timeout <= 0:
                raise ConfigValidationError("Default timeout must be positive")

            if self.config.service.settle_delay < 0:
                raise ConfigValidationError("Settle delay cannot be negative")

            if self.config.service.status_poll_interval <= 0:
                raise ConfigValidationError("Status poll interval must be positive")

            for directory in self.config.project.launcher_dirs:
                if not Path(directory).exists():
                    self.logger.warning(f"Launcher directory does not exist: {directory}")

            self.logger.debug("Configuration validation completed")

        except ConfigValidationError as e:
            self.logger.error(f"Configuration validation failed: {e}")
            raise

    def get_config(self) -> UnifiedConfig:
        """Get the current configuration"""
        if self.config is None:
            raise RuntimeError("Configuration not loaded")
        return self.config

    def reload_config(self):
        """Reload configuration from files"""
        self._load_config()

    def save_user_settings(self, settings: Dict[str, Any]):
        """Save user settings to user_settings.json"""
        user_settings_file = self.config_dir / "user_settings.json"

        try:
            user_settings_file.parent.mkdir(parents=True, exist_ok=True)
            with open(user_settings_file, "w", encoding="utf-8") as f:
                json.dump(settings, f, indent=2)

            # Reload configuration
            self.reload_config()
            self.logger.info("User settings saved and configuration reloaded")

        except OSError as e:
            self.logger.error(f"Failed to save user settings: {e}")
            raise


# Global configuration manager instance
_config_manager: Optional[ConfigManager] = None


def initialize_config(config_dir: Optional[Path] = None) -> ConfigManager:
    """Initialize the global configuration manager"""
    global _config_manager
    _config_manager = ConfigManager(config_dir)
    return _config_manager


def get_config() -> UnifiedConfig:
    """Get the current configuration"""
    if _config_manager is None:
        # Auto-initialize with default settings
        initialize_config()
    return _config_manager.get_config()


def reload_config():
    """Reload configuration from files"""
    if _config_manager is not None:
        _config_manager.reload_config()
