"""Typed data models for the Pueue bridge."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .constants import DEFAULT_GROUP


@dataclass
class AddTaskRequest:
    """A task to enqueue on the daemon."""

    command: str
    group: str | None = None
    start_immediately: bool | None = None
    stashed: bool | None = None
    priority: int | None = None
    label: str | None = None
    path: str | None = None

    @property
    def effective_group(self) -> str:
        return self.group or DEFAULT_GROUP

    @property
    def effective_stashed(self) -> bool:
        return bool(self.stashed)

    @property
    def effective_start_immediately(self) -> bool:
        """Explicit value if given, otherwise start unless stashed."""
        if self.start_immediately is None:
            return not self.effective_stashed
        return self.start_immediately


@dataclass
class GroupActionRequest:
    """Add, remove or list daemon groups."""

    action: str
    name: str
    parallel_tasks: int | None = None


@dataclass
class TaskView:
    """The handful of task fields the stats aggregator looks at."""

    task_id: str
    group: str = DEFAULT_GROUP
    command: str | list[str] | None = None
    label: str | None = None
    path: str | None = None
    priority: Any = None
    status_tag: str | None = None
    status_detail: dict[str, Any] = field(default_factory=dict)


@dataclass
class GroupStats:
    """Running totals for one group while walking a snapshot."""

    total: int = 0
    running: int = 0
    queued: int = 0
    paused: int = 0
    done: int = 0
    success: int = 0
    failed: int = 0
    failed_ids: list[str] = field(default_factory=list)
    durations: list[float] = field(default_factory=list)


@dataclass(frozen=True)
class StatusCacheEntry:
    """One cached status fetch; replaced wholesale, never mutated."""

    captured_at: float
    payload: dict[str, Any]
    stats: dict[str, Any]
    digest: str
