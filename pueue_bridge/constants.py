"""
Centralised constants for the Pueue bridge.

All environment variable names, defaults, timeouts and protocol tokens live
here so they are easy to find, tune, and test.
"""

from __future__ import annotations

# ── Network & server ──────────────────────────────────────────────────────────

DEFAULT_BIND = "127.0.0.1:9093"
"""Default ``HOST:PORT`` the bridge listens on."""

DEFAULT_DAEMON_HOST = "127.0.0.1"
DEFAULT_DAEMON_PORT = "6924"
"""Where the pueue daemon listens when TCP is used instead of a unix socket."""

DAEMON_TLS_SERVER_NAME = "pueue.local"
"""Name the daemon's self-signed certificate is issued for."""

# ── Environment variables ─────────────────────────────────────────────────────

ENV_CONFIG = "PUEUE_CONFIG"
ENV_REQUIRE_CONFIG = "PUEUE_REQUIRE_CONFIG"
ENV_DIRECTORY = "PUEUE_DIRECTORY"
ENV_RUNTIME_DIRECTORY = "PUEUE_RUNTIME_DIRECTORY"
ENV_SOCKET_PATH = "PUEUE_SOCKET_PATH"
ENV_CLI_FALLBACK = "PUEUE_CLI_FALLBACK"
ENV_PUEUE_BIN = "PUEUE_BIN"
ENV_DEFAULT_TASK_PATH = "PUEUE_DEFAULT_TASK_PATH"
ENV_BIND = "PUEUE_WEBUI_HOST"

DEFAULT_PUEUE_BIN = "pueue"
CONFIG_FILE_NAME = "pueue.yml"

# ── Daemon settings defaults ─────────────────────────────────────────────────

DEFAULT_CALLBACK_LOG_LINES = 10
"""Daemon default for ``daemon.callback_log_lines``."""

DEFAULT_GROUP = "default"
"""Group every pueue daemon has; it can never be removed."""

# ── Cache & timeouts (seconds) ───────────────────────────────────────────────

STATUS_CACHE_TTL = 0.5
"""How long a status snapshot is served from cache."""

CACHE_LOCK_TIMEOUT = 5
"""Max wait for the status cache lock before the request fails."""

DAEMON_CONNECT_TIMEOUT = 10
"""Socket timeout for a single daemon exchange."""

HEALTH_POLL_INTERVAL = 0.2
HEALTH_REQUEST_TIMEOUT = 0.3
DEFAULT_HEALTH_WAIT = 5
"""Polling cadence and budget of ``pueue-bridge health``."""

# ── Protocol ─────────────────────────────────────────────────────────────────

HEADER_SIZE = 8
"""Every protocol frame starts with its payload length as a big-endian u64."""

PACKET_SIZE = 1280
"""Chunk size used when writing a frame to the socket."""

TASK_ACTIONS: frozenset[str] = frozenset(
    {"start", "resume", "pause", "kill", "remove", "restart"}
)
"""Lifecycle actions accepted by POST /task/{id}."""

GROUP_ACTIONS: frozenset[str] = frozenset({"add", "remove", "list"})

DIGEST_SEED = 5381
"""Initial value of the status digest rolling hash."""

MAX_TASK_ID = 2**64 - 1
"""Task ids are u64 on the daemon side."""
