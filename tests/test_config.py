"""
Tests for the configuration layer - defaults, user settings and environment overrides
"""

import json

import pytest

from devdock.config.config import (
    ConfigManager,
    ConfigValidationError,
    Environment,
    get_config,
    initialize_config,
    reload_config,
)


class TestConfigManager:
    """Test cases for ConfigManager"""

    def test_defaults(self, tmp_path):
        config = ConfigManager(tmp_path).get_config()

        assert config.service.settle_delay == 1.0
        assert config.service.status_poll_interval == 2.0
        assert config.environment is Environment.DEVELOPMENT
        assert config.project.projects_file.endswith("projects.json")
        assert "bash_execute" in config.commands.commands["SHELL_COMMANDS"]

    def test_user_settings_use_dotted_keys(self, tmp_path):
        (tmp_path / "user_settings.json").write_text(
            json.dumps(
                {
                    "service.settle_delay": 0.25,
                    "web.port": 8123,
                    "project.keyword_stop_types": {"miner": "xmrig"},
                }
            )
        )

        config = ConfigManager(tmp_path).get_config()

        assert config.service.settle_delay == 0.25
        assert config.web.port == 8123
        # Dictionaries are merged, not replaced
        assert config.project.keyword_stop_types == {"nexus": "nexus", "miner": "xmrig"}

    def test_unknown_keys_are_ignored(self, tmp_path):
        (tmp_path / "user_settings.json").write_text(
            json.dumps({"service.nope": 1, "missing.section": 2})
        )

        config = ConfigManager(tmp_path).get_config()

        assert not hasattr(config.service, "nope")

    def test_malformed_user_settings_fall_back_to_defaults(self, tmp_path):
        (tmp_path / "user_settings.json").write_text("{not json")

        config = ConfigManager(tmp_path).get_config()

        assert config.service.settle_delay == 1.0

    def test_environment_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DEVDOCK_ENV", "testing")
        monkeypatch.setenv("DEBUG", "yes")
        monkeypatch.setenv("LOG_LEVEL", "warning")
        monkeypatch.setenv("DEVDOCK_PROJECTS_FILE", "/tmp/custom.json")
        monkeypatch.setenv("DEVDOCK_SETTLE_DELAY", "3.5")
        monkeypatch.setenv("DEVDOCK_APP_BUNDLE", "/Applications/devdock.app")

        config = ConfigManager(tmp_path).get_config()

        assert config.environment is Environment.TESTING
        assert config.debug is True
        assert config.log_level == "WARNING"
        assert config.project.projects_file == "/tmp/custom.json"
        assert config.service.settle_delay == 3.5
        assert config.update.app_bundle_path == "/Applications/devdock.app"

    def test_environment_beats_user_settings(self, tmp_path, monkeypatch):
        (tmp_path / "user_settings.json").write_text(
            json.dumps({"service.settle_delay": 0.25})
        )
        monkeypatch.setenv("DEVDOCK_SETTLE_DELAY", "2")

        assert ConfigManager(tmp_path).get_config().service.settle_delay == 2.0

    def test_non_numeric_settle_delay_is_ignored(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DEVDOCK_SETTLE_DELAY", "soon")

        assert ConfigManager(tmp_path).get_config().service.settle_delay == 1.0

    def test_launcher_dirs_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DEVDOCK_LAUNCHER_DIRS", "/a:/b:")

        config = ConfigManager(tmp_path).get_config()

        assert config.project.launcher_dirs == ["/a", "/b"]

    def test_negative_settle_delay_fails_validation(self, tmp_path):
        (tmp_path / "user_settings.json").write_text(
            json.dumps({"service.settle_delay": -1})
        )

        with pytest.raises(ConfigValidationError):
            ConfigManager(tmp_path)

    def test_save_user_settings_reloads(self, tmp_path):
        manager = ConfigManager(tmp_path)
        manager.save_user_settings({"service.log_tail_lines": 50})

        assert manager.get_config().service.log_tail_lines == 50
        assert json.loads((tmp_path / "user_settings.json").read_text()) == {
            "service.log_tail_lines": 50
        }


class TestGlobalAccessors:
    """Test cases for the module-level accessors"""

    def test_initialize_and_reload(self, tmp_path):
        manager = initialize_config(tmp_path)
        assert get_config() is manager.get_config()

        (tmp_path / "user_settings.json").write_text(json.dumps({"web.port": 9000}))
        reload_config()

        assert get_config().web.port == 9000
