"""Tests for settings.py — pueue.yml discovery, paths and the callback setting."""

import os

import pytest
import yaml

from pueue_bridge.errors import ConfigError
from pueue_bridge.settings import (
    PueueSettings,
    config_path_override,
    config_required,
    env_flag,
    find_config_file,
)


@pytest.fixture
def linux(monkeypatch, tmp_path):
    """Pretend to be on Linux with HOME and XDG dirs inside tmp_path."""
    monkeypatch.setattr("pueue_bridge.settings.sys.platform", "linux")
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for name in ("XDG_CONFIG_HOME", "XDG_DATA_HOME", "XDG_RUNTIME_DIR"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path / "home"


class TestEnvHelpers:
    def test_flag_default(self, monkeypatch):
        monkeypatch.delenv("PUEUE_CLI_FALLBACK", raising=False)
        assert env_flag("PUEUE_CLI_FALLBACK") is True
        assert env_flag("PUEUE_CLI_FALLBACK", default=False) is False

    def test_flag_zero_disables(self, monkeypatch):
        monkeypatch.setenv("PUEUE_CLI_FALLBACK", "0")
        assert env_flag("PUEUE_CLI_FALLBACK") is False

    def test_flag_anything_else_enables(self, monkeypatch):
        monkeypatch.setenv("PUEUE_CLI_FALLBACK", "false")
        assert env_flag("PUEUE_CLI_FALLBACK") is True

    def test_config_required(self, monkeypatch):
        monkeypatch.delenv("PUEUE_REQUIRE_CONFIG", raising=False)
        assert config_required() is True
        monkeypatch.setenv("PUEUE_REQUIRE_CONFIG", "0")
        assert config_required() is False

    def test_blank_override_ignored(self, monkeypatch):
        monkeypatch.setenv("PUEUE_CONFIG", "")
        assert config_path_override() is None


class TestRead:
    def test_explicit_path(self, tmp_path):
        path = tmp_path / "pueue.yml"
        path.write_text(yaml.safe_dump({"shared": {"host": "10.0.0.2", "port": 7000}}))
        settings = PueueSettings.read(str(path))
        assert settings.found is True
        assert settings.config_path == str(path)
        conn = settings.connection_settings()
        assert conn.host == "10.0.0.2"
        assert conn.port == "7000"

    def test_missing_explicit_path(self, tmp_path):
        settings = PueueSettings.read(str(tmp_path / "nope.yml"))
        assert settings.found is False
        assert settings.config_path == str(tmp_path / "nope.yml")
        assert settings.callback is None

    def test_empty_file(self, tmp_path):
        path = tmp_path / "pueue.yml"
        path.write_text("")
        settings = PueueSettings.read(str(path))
        assert settings.found is True
        assert settings.document == {}

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "pueue.yml"
        path.write_text("shared: [oops\n")
        with pytest.raises(ConfigError, match="Couldn't read pueue config"):
            PueueSettings.read(str(path))

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "pueue.yml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError, match="not a mapping"):
            PueueSettings.read(str(path))

    def test_discovers_xdg_config(self, linux, monkeypatch, tmp_path):
        xdg = tmp_path / "xdg"
        (xdg / "pueue").mkdir(parents=True)
        (xdg / "pueue" / "pueue.yml").write_text("daemon: {}\n")
        monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
        assert find_config_file() == str(xdg / "pueue" / "pueue.yml")
        assert PueueSettings.read().found is True

    def test_discovers_home_config(self, linux):
        (linux / ".config" / "pueue").mkdir(parents=True)
        (linux / ".config" / "pueue" / "pueue.yml").write_text("daemon: {}\n")
        assert find_config_file() == str(linux / ".config" / "pueue" / "pueue.yml")

    def test_nothing_found(self, linux):
        assert find_config_file() is None
        assert PueueSettings.read().found is False


class TestPaths:
    def test_defaults_on_linux(self, linux, monkeypatch):
        monkeypatch.setenv("LOGNAME", "alice")
        settings = PueueSettings()
        pueue_dir = str(linux / ".local" / "share" / "pueue")
        assert settings.pueue_directory == pueue_dir
        assert settings.shared_secret_path == os.path.join(pueue_dir, "shared_secret")
        assert settings.daemon_cert == os.path.join(pueue_dir, "certs", "daemon.cert")
        assert settings.use_unix_socket is True
        assert settings.unix_socket_path == os.path.join(pueue_dir, "pueue_alice.socket")

    def test_runtime_dir_from_xdg(self, linux, monkeypatch):
        monkeypatch.setenv("XDG_RUNTIME_DIR", "/run/user/1000")
        monkeypatch.setenv("LOGNAME", "alice")
        assert PueueSettings().unix_socket_path == "/run/user/1000/pueue_alice.socket"

    def test_document_values_expand_home(self, linux):
        settings = PueueSettings({"shared": {"pueue_directory": "~/pueue-data"}})
        assert settings.pueue_directory == str(linux / "pueue-data")

    def test_tcp_settings(self):
        settings = PueueSettings({"shared": {"use_unix_socket": False, "pueue_directory": "/p"}})
        conn = settings.connection_settings()
        assert conn.use_unix_socket is False
        assert conn.host == "127.0.0.1"
        assert conn.port == "6924"
        assert conn.daemon_cert == "/p/certs/daemon.cert"

    def test_env_overrides(self, linux, monkeypatch):
        monkeypatch.setenv("PUEUE_DIRECTORY", "/data/pueue")
        monkeypatch.setenv("PUEUE_RUNTIME_DIRECTORY", "/run/pueue")
        monkeypatch.setenv("PUEUE_SOCKET_PATH", "/run/pueue/custom.socket")
        settings = PueueSettings({"shared": {"use_unix_socket": False, "pueue_directory": "/ignored"}})
        settings.apply_env_overrides()
        assert settings.pueue_directory == "/data/pueue"
        assert settings.runtime_directory == "/run/pueue"
        assert settings.use_unix_socket is True
        assert settings.unix_socket_path == "/run/pueue/custom.socket"
        assert settings.shared_secret_path == "/data/pueue/shared_secret"

    def test_socket_override_ignored_on_windows(self, monkeypatch):
        monkeypatch.setattr("pueue_bridge.settings.sys.platform", "win32")
        monkeypatch.setenv("PUEUE_SOCKET_PATH", "/run/pueue/custom.socket")
        settings = PueueSettings({"shared": {"pueue_directory": "C:/pueue"}})
        settings.apply_env_overrides()
        assert settings.use_unix_socket is False


class TestCallback:
    def test_defaults(self):
        settings = PueueSettings()
        assert settings.callback is None
        assert settings.callback_log_lines == 10

    def test_reads_daemon_section(self):
        settings = PueueSettings({"daemon": {"callback": "notify", "callback_log_lines": 3}})
        assert settings.callback == "notify"
        assert settings.callback_log_lines == 3

    def test_ignores_bad_types(self):
        settings = PueueSettings({"daemon": {"callback": 5, "callback_log_lines": "ten"}})
        assert settings.callback is None
        assert settings.callback_log_lines == 10

    def test_setters_create_section(self):
        settings = PueueSettings({"daemon": None})
        settings.callback = "echo done"
        settings.callback_log_lines = 4
        assert settings.document["daemon"] == {"callback": "echo done", "callback_log_lines": 4}

    def test_save_roundtrip(self, tmp_path):
        path = tmp_path / "nested" / "pueue.yml"
        settings = PueueSettings({"shared": {"port": "7000"}, "daemon": {"callback": None}})
        settings.callback = "echo {{ id }}"
        assert settings.save(str(path)) == str(path)
        assert settings.found is True
        assert settings.config_path == str(path)
        reread = PueueSettings.read(str(path))
        assert reread.callback == "echo {{ id }}"
        assert reread.document["shared"] == {"port": "7000"}
        assert list(reread.document) == ["shared", "daemon"]

    def test_save_failure(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(ConfigError, match="Couldn't write pueue config"):
            PueueSettings().save(str(blocker / "pueue.yml"))
