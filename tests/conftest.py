"""Shared pytest fixtures for the test suite."""

from typing import Any

import pytest
import yaml
from fastapi.testclient import TestClient

from pueue_bridge.backend import (
    Backend,
    validate_action,
    validate_add_task,
    validate_group_action,
)
from pueue_bridge.bridge_api import create_app
from pueue_bridge.models import AddTaskRequest, GroupActionRequest
from pueue_bridge.status_cache import StatusCache


class FakeClock:
    """Manually advanced stand-in for ``time.monotonic``."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_snapshot() -> dict[str, Any]:
    """A small but realistic status document."""
    return {
        "tasks": {
            "0": {
                "command": "sleep 1",
                "group": "default",
                "path": "/tmp",
                "priority": 0,
                "status": {
                    "Done": {
                        "enqueued_at": "2024-05-01T10:00:00Z",
                        "start": "2024-05-01T10:00:00Z",
                        "end": "2024-05-01T10:00:01Z",
                        "result": "Success",
                    }
                },
            },
            "1": {
                "command": "make build",
                "group": "build",
                "label": "nightly",
                "status": {"Running": {"enqueued_at": "2024-05-01T10:01:00Z", "start": "2024-05-01T10:01:00Z"}},
            },
        },
        "groups": {
            "default": {"status": "Running", "parallel_tasks": 1},
            "build": {"status": "Running", "parallel_tasks": 2},
        },
    }


class FakeBackend(Backend):
    """In-memory backend that records calls instead of talking to a daemon."""

    def __init__(self, snapshot: dict[str, Any] | None = None):
        self.snapshot = snapshot if snapshot is not None else make_snapshot()
        self.status_calls = 0
        self.status_error: Exception | None = None
        self.last_logs: tuple[int, int | None] | None = None
        self.last_action: tuple[int, str] | None = None
        self.last_add: AddTaskRequest | None = None
        self.last_group: GroupActionRequest | None = None

    def status(self) -> dict[str, Any]:
        self.status_calls += 1
        if self.status_error is not None:
            raise self.status_error
        return self.snapshot

    def logs(self, task_id: int, lines: int | None = None) -> dict[str, Any]:
        self.last_logs = (task_id, lines)
        return {"task": {"id": task_id}, "output": "hello\n", "output_complete": lines is None}

    def action(self, task_id: int, action: str) -> dict[str, Any]:
        validate_action(action)
        self.last_action = (task_id, action)
        return {"message": "ok"}

    def add_task(self, request: AddTaskRequest) -> dict[str, Any]:
        validate_add_task(request)
        self.last_add = request
        return {"message": "added"}

    def group_action(self, request: GroupActionRequest) -> dict[str, Any]:
        self.last_group = validate_group_action(request)
        return {"message": "group"}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def client(backend, clock):
    app = create_app(backend=backend, status_cache=StatusCache(clock=clock))
    return TestClient(app)


@pytest.fixture
def pueue_config(tmp_path, monkeypatch):
    """Write a pueue.yml and point PUEUE_CONFIG at it."""

    def _make(document: dict[str, Any] | None = None) -> str:
        path = tmp_path / "pueue.yml"
        path.write_text(yaml.safe_dump(document or {"daemon": {"callback_log_lines": 10}}))
        monkeypatch.setenv("PUEUE_CONFIG", str(path))
        return str(path)

    return _make
