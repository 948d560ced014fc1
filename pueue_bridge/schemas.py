"""
Pydantic request and response models for the bridge API.

These define the JSON shapes for all API endpoints and give us
automatic OpenAPI schema generation + Swagger UI.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from .models import AddTaskRequest, GroupActionRequest

# ── Request bodies ───────────────────────────────────────────────────────────


class TaskActionBody(BaseModel):
    """Body of POST /task/{id}."""

    action: str


class AddTaskBody(BaseModel):
    """Body of POST /tasks."""

    command: str
    group: str | None = None
    start_immediately: bool | None = None
    stashed: bool | None = None
    priority: int | None = None
    label: str | None = None
    path: str | None = None

    def to_request(self) -> AddTaskRequest:
        return AddTaskRequest(**self.model_dump())


class GroupActionBody(BaseModel):
    """Body of POST /groups."""

    action: str
    name: str
    parallel_tasks: int | None = None

    def to_request(self) -> GroupActionRequest:
        return GroupActionRequest(**self.model_dump())


class CallbackConfigBody(BaseModel):
    """Body of POST /config/callback; omitted fields are left unchanged."""

    callback: str | None = None
    callback_log_lines: int | None = None


# ── Responses ────────────────────────────────────────────────────────────────


class StatusResponse(BaseModel):
    """GET /status. ``cached`` is only present when served from cache."""

    ok: bool
    status: dict[str, Any]
    stats: dict[str, Any]
    digest: str
    cached: bool | None = None


class LogResponse(BaseModel):
    ok: bool
    log: dict[str, Any]


class ResultResponse(BaseModel):
    """Generic success response for POST actions."""

    ok: bool
    result: dict[str, Any]


class CallbackConfig(BaseModel):
    callback: str | None = None
    callback_log_lines: int
    found: bool
    config_path: str | None = None


class CallbackConfigResponse(BaseModel):
    ok: bool
    config: CallbackConfig


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str
