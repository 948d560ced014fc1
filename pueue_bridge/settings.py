"""
Pueue configuration handling.

Reads the daemon's ``pueue.yml`` to find out how to reach it (unix socket or
TLS over TCP, shared secret location) and exposes the daemon's callback
setting for the config endpoints. Only the keys the bridge needs are
interpreted; everything else in the document is kept untouched so that
``save()`` never drops settings written by pueue itself.
"""

from __future__ import annotations

import getpass
import logging
import os
import sys
from dataclasses import dataclass
from typing import Any

import yaml

from .constants import (
    CONFIG_FILE_NAME,
    DEFAULT_CALLBACK_LOG_LINES,
    DEFAULT_DAEMON_HOST,
    DEFAULT_DAEMON_PORT,
    ENV_CONFIG,
    ENV_DIRECTORY,
    ENV_REQUIRE_CONFIG,
    ENV_RUNTIME_DIRECTORY,
    ENV_SOCKET_PATH,
)
from .errors import ConfigError

logger = logging.getLogger(__name__)


# ── Environment helpers ──────────────────────────────────────────────────────


def env_flag(name: str, default: bool = True) -> bool:
    """Boolean env toggle: unset means ``default``, ``"0"`` means off."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value != "0"


def config_path_override() -> str | None:
    return os.environ.get(ENV_CONFIG) or None


def config_required() -> bool:
    return env_flag(ENV_REQUIRE_CONFIG, default=True)


# ── Platform directories ─────────────────────────────────────────────────────


def _home() -> str:
    return os.path.expanduser("~")


def config_directories() -> list[str]:
    """Directories searched for ``pueue.yml``, most specific first."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA") or os.path.join(_home(), "AppData", "Roaming")
        return [os.path.join(appdata, "pueue")]
    dirs = []
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        dirs.append(os.path.join(xdg, "pueue"))
    dirs.append(os.path.join(_home(), ".config", "pueue"))
    if sys.platform == "darwin":
        dirs.append(os.path.join(_home(), "Library", "Application Support", "pueue"))
    return dirs


def default_config_path() -> str:
    return os.path.join(config_directories()[0], CONFIG_FILE_NAME)


def default_pueue_directory() -> str:
    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA") or os.path.join(_home(), "AppData", "Local")
    elif sys.platform == "darwin":
        base = os.path.join(_home(), "Library", "Application Support")
    else:
        base = os.environ.get("XDG_DATA_HOME") or os.path.join(_home(), ".local", "share")
    return os.path.join(base, "pueue")


def find_config_file() -> str | None:
    for directory in config_directories():
        candidate = os.path.join(directory, CONFIG_FILE_NAME)
        if os.path.isfile(candidate):
            return candidate
    return None


def _expand(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path))


# ── Settings ─────────────────────────────────────────────────────────────────


@dataclass
class ConnectionSettings:
    """Everything needed to open one connection to the daemon."""

    use_unix_socket: bool
    unix_socket_path: str
    host: str
    port: str
    daemon_cert: str
    shared_secret_path: str


class PueueSettings:
    """A parsed ``pueue.yml`` plus bridge-side path overrides."""

    def __init__(self, document: dict[str, Any] | None = None, config_path: str | None = None, found: bool = False):
        self.document: dict[str, Any] = document or {}
        self.config_path = config_path
        self.found = found
        self.overrides: dict[str, Any] = {}

    @classmethod
    def read(cls, config_path: str | None = None) -> PueueSettings:
        """Load settings from ``config_path`` or the default location.

        A path that does not exist is not an error: defaults are used and
        ``found`` is False so callers can decide whether that is fatal.
        """
        path = _expand(config_path) if config_path else find_config_file()
        if not path or not os.path.exists(path):
            logger.debug("No pueue config found (looked for %s)", path or "default locations")
            return cls(config_path=path, found=False)
        try:
            with open(path, encoding="utf-8") as f:
                document = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Couldn't read pueue config {path}: {e}") from e
        if not isinstance(document, dict):
            raise ConfigError(f"Pueue config {path} is not a mapping")
        logger.debug("Loaded pueue config from %s", path)
        return cls(document, config_path=path, found=True)

    # ── Sections ──

    def _section(self, name: str) -> dict[str, Any]:
        section = self.document.get(name)
        return section if isinstance(section, dict) else {}

    def _writable_section(self, name: str) -> dict[str, Any]:
        section = self.document.get(name)
        if not isinstance(section, dict):
            section = self.document[name] = {}
        return section

    def _shared(self, key: str) -> Any:
        if key in self.overrides:
            return self.overrides[key]
        return self._section("shared").get(key)

    # ── Shared paths ──

    @property
    def pueue_directory(self) -> str:
        value = self._shared("pueue_directory")
        return _expand(value) if value else default_pueue_directory()

    @property
    def runtime_directory(self) -> str:
        value = self._shared("runtime_directory")
        if value:
            return _expand(value)
        return os.environ.get("XDG_RUNTIME_DIR") or self.pueue_directory

    @property
    def use_unix_socket(self) -> bool:
        value = self._shared("use_unix_socket")
        if value is None:
            return sys.platform != "win32"
        return bool(value)

    @property
    def unix_socket_path(self) -> str:
        value = self._shared("unix_socket_path")
        if value:
            return _expand(value)
        return os.path.join(self.runtime_directory, f"pueue_{getpass.getuser()}.socket")

    @property
    def shared_secret_path(self) -> str:
        value = self._shared("shared_secret_path")
        return _expand(value) if value else os.path.join(self.pueue_directory, "shared_secret")

    @property
    def daemon_cert(self) -> str:
        value = self._shared("daemon_cert")
        return _expand(value) if value else os.path.join(self.pueue_directory, "certs", "daemon.cert")

    def apply_env_overrides(self) -> None:
        """Honour PUEUE_DIRECTORY, PUEUE_RUNTIME_DIRECTORY and PUEUE_SOCKET_PATH."""
        directory = os.environ.get(ENV_DIRECTORY)
        if directory:
            self.overrides["pueue_directory"] = directory
        runtime = os.environ.get(ENV_RUNTIME_DIRECTORY)
        if runtime:
            self.overrides["runtime_directory"] = runtime
        socket_path = os.environ.get(ENV_SOCKET_PATH)
        if socket_path and sys.platform != "win32":
            self.overrides["use_unix_socket"] = True
            self.overrides["unix_socket_path"] = socket_path

    def connection_settings(self) -> ConnectionSettings:
        return ConnectionSettings(
            use_unix_socket=self.use_unix_socket,
            unix_socket_path=self.unix_socket_path,
            host=str(self._shared("host") or DEFAULT_DAEMON_HOST),
            port=str(self._shared("port") or DEFAULT_DAEMON_PORT),
            daemon_cert=self.daemon_cert,
            shared_secret_path=self.shared_secret_path,
        )

    # ── Daemon callback ──

    @property
    def callback(self) -> str | None:
        value = self._section("daemon").get("callback")
        return value if isinstance(value, str) and value else None

    @callback.setter
    def callback(self, value: str | None) -> None:
        self._writable_section("daemon")["callback"] = value or None

    @property
    def callback_log_lines(self) -> int:
        value = self._section("daemon").get("callback_log_lines")
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return DEFAULT_CALLBACK_LOG_LINES

    @callback_log_lines.setter
    def callback_log_lines(self, value: int) -> None:
        self._writable_section("daemon")["callback_log_lines"] = value

    def save(self, config_path: str | None = None) -> str:
        """Write the document back to disk and return the path written."""
        path = _expand(config_path) if config_path else (self.config_path or default_config_path())
        try:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                yaml.safe_dump(self.document, f, default_flow_style=False, sort_keys=False)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Couldn't write pueue config {path}: {e}") from e
        self.config_path = path
        self.found = True
        logger.info("Saved pueue config to %s", path)
        return path
