"""
Backend that talks to the pueue daemon over its socket protocol.

Every call opens a fresh connection, performs one request/response exchange
and closes it again; request volume is driven by a UI, so there is no pool.
When the socket path fails with a transport or protocol error, or a restart
target is missing from the daemon state, and the CLI fallback is enabled
(``PUEUE_CLI_FALLBACK`` != "0"), the same operation is retried once through
the ``pueue`` command-line client. Input validation errors never fall back.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from typing import Any, TypeVar

import snappy

from .backend import Backend, validate_action, validate_add_task, validate_group_action
from .cli_fallback import PROCESS_FALLBACK_NOTICE, FallbackNotice, PueueCli
from .constants import ENV_CLI_FALLBACK, ENV_DEFAULT_TASK_PATH
from .errors import ConfigError, ProtocolError, TaskNotFound, TransportError
from .models import AddTaskRequest, GroupActionRequest
from .protocol import DaemonConnection, jsonable, split_response
from .settings import (
    ConnectionSettings,
    PueueSettings,
    config_path_override,
    config_required,
    env_flag,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Connector = Callable[[ConnectionSettings], DaemonConnection]


# ── Request builders ─────────────────────────────────────────────────────────


def _task_ids(task_id: int) -> dict[str, Any]:
    return {"TaskIds": [task_id]}


def action_request(task_id: int, action: str) -> dict[str, Any]:
    """Protocol message for every action except restart."""
    if action in ("start", "resume"):
        return {"Start": {"tasks": _task_ids(task_id)}}
    if action == "pause":
        return {"Pause": {"tasks": _task_ids(task_id), "wait": False}}
    if action == "kill":
        return {"Kill": {"tasks": _task_ids(task_id), "signal": None}}
    if action == "remove":
        return {"Remove": [task_id]}
    raise ValueError(f"No direct protocol mapping for {action!r}")


def restart_request(task_id: int, state: dict[str, Any]) -> dict[str, Any]:
    """Restart message; needs the task's original command from ``state``."""
    tasks = state.get("tasks") if isinstance(state, dict) else None
    task = tasks.get(str(task_id)) if isinstance(tasks, dict) else None
    if not isinstance(task, dict):
        raise TaskNotFound(f"Task {task_id} not found")

    command = task.get("original_command") or task.get("command")
    if isinstance(command, list):
        command = " ".join(str(part) for part in command)
    return {
        "Restart": {
            "tasks": [
                {
                    "task_id": task_id,
                    "original_command": command,
                    "path": task.get("path"),
                    "label": task.get("label"),
                    "priority": task.get("priority"),
                }
            ],
            "start_immediately": True,
            "stashed": False,
        }
    }


def _working_directory(requested: str | None) -> str:
    if requested:
        return requested
    default = os.environ.get(ENV_DEFAULT_TASK_PATH)
    if default:
        return default
    try:
        return os.getcwd()
    except OSError:
        return "."


def add_request(request: AddTaskRequest) -> dict[str, Any]:
    return {
        "Add": {
            "command": request.command,
            "path": _working_directory(request.path),
            "envs": {},
            "start_immediately": request.effective_start_immediately,
            "stashed": request.effective_stashed,
            "group": request.effective_group,
            "enqueue_at": None,
            "dependencies": [],
            "priority": request.priority,
            "label": request.label,
        }
    }


def group_request(request: GroupActionRequest) -> Any:
    if request.action == "add":
        return {"Group": {"Add": {"name": request.name, "parallel_tasks": request.parallel_tasks}}}
    if request.action == "remove":
        return {"Group": {"Remove": request.name}}
    return {"Group": "List"}


# ── Response helpers ─────────────────────────────────────────────────────────


def _log_bytes(raw: Any) -> bytes | None:
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw)
    if isinstance(raw, list):
        try:
            return bytes(raw)
        except (TypeError, ValueError):
            return None
    return None


def _unsnappy(data: bytes) -> bytes | None:
    """Decode a complete snappy frame stream, or None if ``data`` is not one."""
    try:
        decompressor = snappy.StreamDecompressor()
        decoded = decompressor.decompress(data)
        decoded += decompressor.flush()
    except Exception as e:
        logger.debug("Log output is not snappy-framed, using raw bytes: %s", e)
        return None
    # The decompressor buffers input it cannot frame instead of raising.
    leftover = getattr(decompressor, "remains", None)
    if leftover:
        logger.debug("Log output has %d unframed trailing bytes, using raw bytes", len(leftover))
        return None
    return decoded


def decode_log_output(raw: Any) -> str:
    """Decompress snappy-framed log bytes; fall back to the raw bytes as text."""
    if isinstance(raw, str):
        return raw
    data = _log_bytes(raw)
    if data is None:
        logger.debug("Log output of type %s is not a byte string", type(raw).__name__)
        return str(raw)
    decoded = _unsnappy(data)
    if decoded is None:
        decoded = data
    return decoded.decode("utf-8", errors="replace")


def _log_entry(log_map: Any, task_id: int) -> dict[str, Any]:
    if not isinstance(log_map, dict):
        raise ProtocolError(f"Unexpected log payload: {log_map!r}")
    entry = log_map.get(task_id, log_map.get(str(task_id)))
    if not isinstance(entry, dict):
        return {}
    output = entry.get("output")
    return {
        "task": jsonable(entry.get("task")),
        "output": decode_log_output(output) if output is not None else None,
        "output_complete": entry.get("output_complete"),
    }


def format_groups(groups: dict[str, Any]) -> str:
    lines = []
    for name in sorted(groups):
        group = groups[name] if isinstance(groups[name], dict) else {}
        status = str(group.get("status", "unknown")).lower()
        lines.append(f'Group "{name}" ({group.get("parallel_tasks")} parallel): {status}')
    return "\n".join(lines)


def _unexpected(variant: str, payload: Any) -> ProtocolError:
    return ProtocolError(f"Unexpected response: {variant} {payload!r}")


# ── Backend ──────────────────────────────────────────────────────────────────


class PueueClientBackend(Backend):
    """Primary backend: pueue socket protocol with CLI fallback."""

    def __init__(
        self,
        settings: PueueSettings | None = None,
        *,
        require_config: bool | None = None,
        cli: PueueCli | None = None,
        fallback_enabled: bool | None = None,
        notice: FallbackNotice | None = None,
        connect: Connector = DaemonConnection.open,
    ):
        if settings is None:
            settings = PueueSettings.read(config_path_override())
            settings.apply_env_overrides()
        if require_config is None:
            require_config = config_required()
        if require_config and not settings.found:
            raise ConfigError("Couldn't find a configuration file. Did you start the daemon yet?")

        self.settings = settings
        self.cli = cli or PueueCli()
        if fallback_enabled is None:
            fallback_enabled = env_flag(ENV_CLI_FALLBACK, default=True)
        self.fallback_enabled = fallback_enabled
        self.notice = notice or PROCESS_FALLBACK_NOTICE
        self._connect = connect

    # ── Plumbing ──

    def _request(self, message: Any) -> tuple[str, Any]:
        with self._connect(self.settings.connection_settings()) as connection:
            response = connection.exchange(message)
        variant, payload = split_response(response)
        if variant == "Failure":
            raise ProtocolError(str(payload))
        return variant, payload

    def _expect_success(self, message: Any) -> dict[str, Any]:
        variant, payload = self._request(message)
        if variant != "Success":
            raise _unexpected(variant, payload)
        return {"message": payload}

    def _with_fallback(self, operation: str, primary: Callable[[], T], fallback: Callable[[], T]) -> T:
        try:
            return primary()
        except (TransportError, ProtocolError, TaskNotFound) as error:
            if not self.fallback_enabled:
                raise
            if self.notice.mark_used():
                logger.warning("CLI fallback used (%s): %s", operation, error)
            else:
                logger.debug("CLI fallback (%s): %s", operation, error)
            return fallback()

    # ── Operations ──

    def get_state(self) -> dict[str, Any]:
        """Fetch the daemon state over the socket, without fallback."""
        variant, payload = self._request("Status")
        if variant != "Status" or not isinstance(payload, dict):
            raise _unexpected(variant, payload)
        return jsonable(payload)

    def status(self) -> dict[str, Any]:
        return self._with_fallback("status", self.get_state, self.cli.status)

    def logs(self, task_id: int, lines: int | None = None) -> dict[str, Any]:
        message = {"Log": {"tasks": _task_ids(task_id), "send_logs": True, "lines": lines}}

        def primary() -> dict[str, Any]:
            variant, payload = self._request(message)
            if variant != "Log":
                raise _unexpected(variant, payload)
            return _log_entry(payload, task_id)

        return self._with_fallback("logs", primary, lambda: self.cli.logs(task_id, lines))

    def action(self, task_id: int, action: str) -> dict[str, Any]:
        validate_action(action)
        if action == "restart":
            # Read-before-write: a failing state fetch is surfaced as is.
            state = self.get_state()

            def primary() -> dict[str, Any]:
                return self._expect_success(restart_request(task_id, state))

        else:
            message = action_request(task_id, action)

            def primary() -> dict[str, Any]:
                return self._expect_success(message)

        return self._with_fallback("action", primary, lambda: self.cli.action(task_id, action))

    def add_task(self, request: AddTaskRequest) -> dict[str, Any]:
        validate_add_task(request)
        message = add_request(request)

        def primary() -> dict[str, Any]:
            variant, payload = self._request(message)
            if variant == "AddedTask":
                return jsonable(payload)
            if variant == "Success":
                return {"message": payload}
            raise _unexpected(variant, payload)

        return self._with_fallback("add", primary, lambda: self.cli.add_task(request))

    def group_action(self, request: GroupActionRequest) -> dict[str, Any]:
        request = validate_group_action(request)
        message = group_request(request)

        def primary() -> dict[str, Any]:
            variant, payload = self._request(message)
            if variant == "Success":
                return {"message": payload}
            if variant == "Group" and isinstance(payload, dict):
                groups = jsonable(payload.get("groups") or {})
                return {"message": format_groups(groups), "groups": groups}
            raise _unexpected(variant, payload)

        return self._with_fallback("group", primary, lambda: self.cli.group_action(request))
