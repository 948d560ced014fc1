"""
Per-group statistics and change digest for a pueue status snapshot.

The snapshot is an untyped JSON document, so every task goes through a
tolerant parse into a ``TaskView`` first; missing or oddly typed fields fall
back to safe defaults instead of failing the whole computation.
"""

from __future__ import annotations

import json
import re
import statistics
from datetime import UTC, datetime, timedelta
from typing import Any

from .constants import DEFAULT_GROUP
from .digest import DigestHasher
from .models import GroupStats, TaskView

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MS = timedelta(milliseconds=1)

# Python only understands microseconds; the daemon emits up to nanoseconds.
_EXTRA_FRACTION = re.compile(r"(\.\d{6})\d+")

# Status detail fields that make up a task's status fingerprint.
_STATUS_DETAIL_FIELDS = ("start", "end", "enqueued_at")


def _parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC 3339 timestamp, returning None if it is not one."""
    if not isinstance(value, str):
        return None
    text = _EXTRA_FRACTION.sub(r"\1", value.replace("Z", "+00:00"))
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def _epoch_millis(dt: datetime) -> int:
    return (dt - _EPOCH) // _ONE_MS


def _split_status(status: Any) -> tuple[str | None, dict[str, Any]]:
    """Split ``{"Done": {...}}`` or ``"Running"`` into (tag, detail)."""
    if isinstance(status, str):
        return status, {}
    if isinstance(status, dict) and status:
        tag, detail = next(iter(status.items()))
        return str(tag), detail if isinstance(detail, dict) else {}
    return None, {}


def _result_tag(result: Any) -> str | None:
    if isinstance(result, str):
        return result
    if isinstance(result, dict) and result:
        return str(next(iter(result)))
    return None


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def task_view(task_id: str, record: Any) -> TaskView:
    """Build a ``TaskView`` from a raw task record."""
    if not isinstance(record, dict):
        return TaskView(task_id=task_id)

    command = record.get("command")
    if isinstance(command, list):
        command = [item for item in command if isinstance(item, str)]
    elif not isinstance(command, str):
        command = None

    tag, detail = _split_status(record.get("status"))
    return TaskView(
        task_id=task_id,
        group=_optional_str(record.get("group")) or DEFAULT_GROUP,
        command=command,
        label=_optional_str(record.get("label")),
        path=_optional_str(record.get("path")),
        priority=record.get("priority"),
        status_tag=tag,
        status_detail=detail,
    )


def _hash_task(hasher: DigestHasher, view: TaskView) -> None:
    hasher.update(view.task_id)
    if isinstance(view.command, str):
        hasher.update(view.command)
    elif view.command is not None:
        # Each element is terminated so ["a b"] and ["a", "b"] differ.
        for item in view.command:
            hasher.update(item)
            hasher.update("|")
    if view.label is not None:
        hasher.update(view.label)
    if view.path is not None:
        hasher.update(view.path)
    if view.priority is not None:
        hasher.update(json.dumps(view.priority))
    hasher.update(view.group)

    if view.status_tag is None:
        return
    hasher.update(view.status_tag)
    for name in _STATUS_DETAIL_FIELDS:
        value = view.status_detail.get(name)
        if isinstance(value, str):
            hasher.update(value)
    result = _result_tag(view.status_detail.get("result"))
    if result is not None:
        hasher.update(result)


def _count_status(entry: GroupStats, view: TaskView) -> None:
    tag = view.status_tag
    if tag == "Running":
        entry.running += 1
    elif tag == "Queued":
        entry.queued += 1
    elif tag == "Paused":
        entry.paused += 1
    elif tag == "Done":
        entry.done += 1
        if _result_tag(view.status_detail.get("result")) == "Success":
            entry.success += 1
        else:
            entry.failed += 1
            entry.failed_ids.append(view.task_id)

        start = _parse_timestamp(view.status_detail.get("start"))
        end = _parse_timestamp(view.status_detail.get("end"))
        if start is not None and end is not None:
            entry.durations.append(float(_epoch_millis(end) - _epoch_millis(start)))


def _parallel(group_record: Any) -> int | None:
    if not isinstance(group_record, dict):
        return None
    value = group_record.get("parallel_tasks")
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _finalize(entry: GroupStats, parallel: int | None) -> dict[str, Any]:
    samples = entry.durations
    avg = statistics.fmean(samples) if samples else None
    stddev = statistics.stdev(samples) if len(samples) > 1 else None
    return {
        "total": entry.total,
        "running": entry.running,
        "queued": entry.queued,
        "paused": entry.paused,
        "done": entry.done,
        "success": entry.success,
        "failed": entry.failed,
        "failed_ids": list(entry.failed_ids),
        "avg_ms": avg,
        "stddev_ms": stddev,
        "parallel": parallel,
    }


def compute_group_stats(snapshot: Any) -> tuple[dict[str, Any], str]:
    """Return ``({"groups": {...}}, digest)`` for a status snapshot."""
    snapshot = snapshot if isinstance(snapshot, dict) else {}
    groups = snapshot.get("groups")
    groups = groups if isinstance(groups, dict) else {}
    tasks = snapshot.get("tasks")
    tasks = tasks if isinstance(tasks, dict) else {}

    per_group: dict[str, GroupStats] = {str(name): GroupStats() for name in groups}
    hasher = DigestHasher()
    task_count = 0

    # String order, not numeric, so "10" sorts before "2".
    for task_id in sorted(str(key) for key in tasks):
        record = tasks.get(task_id)
        if record is None and task_id.isdigit():
            record = tasks.get(int(task_id))
        view = task_view(task_id, record)
        task_count += 1

        entry = per_group.setdefault(view.group, GroupStats())
        entry.total += 1
        _hash_task(hasher, view)
        _count_status(entry, view)

    for name in sorted(str(key) for key in groups):
        group = groups.get(name)
        if not isinstance(group, dict):
            continue
        hasher.update(name)
        if "parallel_tasks" in group:
            hasher.update(json.dumps(group["parallel_tasks"]))
        state = group.get("status")
        if isinstance(state, str):
            hasher.update(state)

    stats = {
        name: _finalize(per_group[name], _parallel(groups.get(name)))
        for name in sorted(per_group)
    }
    return {"groups": stats}, hasher.digest(task_count)
