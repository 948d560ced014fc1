"""
Degraded mode: drive the local ``pueue`` command-line client.

Used when the socket path to the daemon fails. Each operation builds an
argument vector, runs the client and turns its output back into the same JSON
shapes the socket path produces.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import threading
from typing import Any

from .constants import DEFAULT_PUEUE_BIN, ENV_PUEUE_BIN
from .errors import FallbackError, UnsupportedAction
from .models import AddTaskRequest, GroupActionRequest

logger = logging.getLogger(__name__)


class FallbackNotice:
    """Remembers whether the CLI fallback was ever used in this process.

    Only the first caller of ``mark_used`` gets True; the flag is never reset.
    """

    def __init__(self):
        self._used = False
        self._lock = threading.Lock()

    @property
    def used(self) -> bool:
        return self._used

    def mark_used(self) -> bool:
        with self._lock:
            if self._used:
                return False
            self._used = True
            return True


PROCESS_FALLBACK_NOTICE = FallbackNotice()
"""Shared by every backend that is not handed its own notice."""


def pueue_bin() -> str:
    return os.environ.get(ENV_PUEUE_BIN) or DEFAULT_PUEUE_BIN


# ── Argument vectors ─────────────────────────────────────────────────────────


def log_args(task_id: int, lines: int | None = None) -> list[str]:
    args = ["log", "--json"]
    if lines is not None:
        args += ["--lines", str(lines)]
    args.append(str(task_id))
    return args


def action_args(task_id: int, action: str) -> list[str]:
    # The CLI has no "resume" subcommand; "start" resumes paused tasks.
    command = "start" if action == "resume" else action
    return [command, str(task_id)]


def add_args(request: AddTaskRequest) -> list[str]:
    args = ["add", request.command]
    if request.group is not None:
        args += ["--group", request.group]
    if request.label is not None:
        args += ["--label", request.label]
    if request.priority is not None:
        args += ["--priority", str(request.priority)]
    if request.path is not None:
        args += ["--working-directory", request.path]
    if request.stashed:
        args.append("--stashed")
    if request.start_immediately is False:
        args += ["--start-immediately", "false"]
    return args


def group_args(request: GroupActionRequest) -> list[str]:
    if request.action == "add":
        args = ["group", "add", request.name]
        if request.parallel_tasks is not None:
            args += ["--parallel", str(request.parallel_tasks)]
        return args
    if request.action == "remove":
        return ["group", "remove", request.name]
    if request.action == "list":
        return ["group", "list"]
    raise UnsupportedAction(f"Unsupported group action: {request.action}")


# ── Runner ───────────────────────────────────────────────────────────────────


class PueueCli:
    """Runs the ``pueue`` client binary (``PUEUE_BIN``, default ``pueue``)."""

    def __init__(self, executable: str | None = None):
        self.executable = executable or pueue_bin()

    def run(self, args: list[str]) -> str:
        """Run the client and return its trimmed stdout."""
        cmd = [self.executable, *args]
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as e:
            raise FallbackError(f"Couldn't run {self.executable}: {e}") from e
        if result.returncode != 0:
            message = (result.stderr or "").strip()
            raise FallbackError(message or f"{self.executable} exited with status {result.returncode}")
        return (result.stdout or "").strip()

    def run_json(self, args: list[str]) -> Any:
        stdout = self.run(args)
        try:
            return json.loads(stdout)
        except json.JSONDecodeError as e:
            raise FallbackError(f"Invalid JSON from {self.executable} {args[0]}: {e}") from e

    # ── Operations ──

    def status(self) -> dict[str, Any]:
        return self.run_json(["status", "--json"])

    def logs(self, task_id: int, lines: int | None = None) -> dict[str, Any]:
        data = self.run_json(log_args(task_id, lines))
        entry = data.get(str(task_id)) if isinstance(data, dict) else None
        if not isinstance(entry, dict):
            return data
        return {
            "task": entry.get("task"),
            "output": entry.get("output"),
            "output_complete": entry.get("output_complete", lines is None),
        }

    def action(self, task_id: int, action: str) -> dict[str, Any]:
        return {"message": self.run(action_args(task_id, action))}

    def add_task(self, request: AddTaskRequest) -> dict[str, Any]:
        return {"message": self.run(add_args(request))}

    def group_action(self, request: GroupActionRequest) -> dict[str, Any]:
        return {"message": self.run(group_args(request))}
