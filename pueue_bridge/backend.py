"""
Backend contract the HTTP layer depends on.

Request handlers only ever talk to a ``Backend``. The production
implementation is ``PueueClientBackend``; tests plug in a fake. The
``validate_*`` helpers hold the preconditions every implementation must check
before doing any I/O.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from .constants import DEFAULT_GROUP, GROUP_ACTIONS, TASK_ACTIONS
from .errors import UnsupportedAction, ValidationError
from .models import AddTaskRequest, GroupActionRequest


class Backend(ABC):
    """Capabilities exposed by a pueue daemon.

    Implementations are shared by all request workers and must not keep
    unsynchronized mutable state.
    """

    @abstractmethod
    def status(self) -> dict[str, Any]:
        """Full daemon state (tasks and groups)."""

    @abstractmethod
    def logs(self, task_id: int, lines: int | None = None) -> dict[str, Any]:
        """Log of one task; ``lines`` limits output to the last N lines."""

    @abstractmethod
    def action(self, task_id: int, action: str) -> dict[str, Any]:
        """Run a lifecycle action (start, resume, pause, kill, remove, restart)."""

    @abstractmethod
    def add_task(self, request: AddTaskRequest) -> dict[str, Any]:
        """Enqueue a new task."""

    @abstractmethod
    def group_action(self, request: GroupActionRequest) -> dict[str, Any]:
        """Add, remove or list groups."""


def validate_action(action: str) -> str:
    if action not in TASK_ACTIONS:
        raise UnsupportedAction(f"Unsupported action: {action}")
    return action


def validate_add_task(request: AddTaskRequest) -> AddTaskRequest:
    if not request.command or not request.command.strip():
        raise ValidationError("Missing command")
    return request


def validate_group_action(request: GroupActionRequest) -> GroupActionRequest:
    """Check a group request and return it with a trimmed name."""
    name = (request.name or "").strip()
    if not name:
        raise ValidationError("Group name is required")
    if request.action not in GROUP_ACTIONS:
        raise UnsupportedAction(f"Unsupported group action: {request.action}")
    if request.action == "remove" and name == DEFAULT_GROUP:
        raise ValidationError("Default group cannot be removed")
    return GroupActionRequest(
        action=request.action, name=name, parallel_tasks=request.parallel_tasks
    )
