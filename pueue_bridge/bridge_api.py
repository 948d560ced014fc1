"""
Pueue bridge — FastAPI web application.

Exposes the control surface of a pueue daemon as a JSON API for the web UI:
  - Cached status snapshot with per-group stats and a change digest
  - Task logs
  - Task lifecycle actions (start, resume, pause, kill, remove, restart)
  - Task creation and group management
  - The daemon's callback setting
  - Auto-generated OpenAPI docs at /docs

Every response carries an ``ok`` flag; failures are ``{"ok": false, "error": ...}``.
"""

import logging

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from .__version__ import __version__
from .backend import Backend
from .client_backend import PueueClientBackend
from .constants import MAX_TASK_ID
from .errors import BackendError, UnsupportedAction, ValidationError
from .schemas import (
    AddTaskBody,
    CallbackConfigBody,
    CallbackConfigResponse,
    ErrorResponse,
    GroupActionBody,
    LogResponse,
    ResultResponse,
    StatusResponse,
    TaskActionBody,
)
from .settings import PueueSettings, config_path_override
from .stats import compute_group_stats
from .status_cache import StatusCache

logger = logging.getLogger(__name__)

router = APIRouter(responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})


# ── Helpers ──────────────────────────────────────────────────────────────────


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"ok": False, "error": message}, status_code=status_code)


def status_code_for(error: BackendError) -> int:
    """Caller mistakes are 4xx, everything else is a server-side failure."""
    if isinstance(error, (ValidationError, UnsupportedAction)):
        return 400
    return 500


def parse_task_id(raw: str) -> int | None:
    """Task ids are unsigned 64-bit integers; anything else is rejected."""
    if not (raw.isascii() and raw.isdigit()):
        return None
    value = int(raw)
    return value if value <= MAX_TASK_ID else None


def parse_lines(raw: str | None) -> int | None:
    """``?lines=N``; an unparseable value means all lines."""
    if raw is None:
        return None
    return parse_task_id(raw)


def _backend(request: Request) -> Backend:
    return request.app.state.backend


def _callback_config(settings: PueueSettings) -> dict:
    return {
        "callback": settings.callback,
        "callback_log_lines": settings.callback_log_lines,
        "found": settings.found,
        "config_path": settings.config_path,
    }


# ── API Routes ───────────────────────────────────────────────────────────────


@router.get("/health", include_in_schema=False)
def health():
    """Liveness check; always an empty 200."""
    return Response(status_code=200)


@router.get("/status", response_model=StatusResponse, response_model_exclude_unset=True)
def api_status(request: Request):
    """Daemon state plus per-group stats, served from a 500 ms cache."""
    cache: StatusCache = request.app.state.status_cache
    entry = cache.get()
    if entry is not None:
        return {
            "ok": True,
            "status": entry.payload,
            "stats": entry.stats,
            "digest": entry.digest,
            "cached": True,
        }

    snapshot = _backend(request).status()
    stats, digest = compute_group_stats(snapshot)
    cache.store(snapshot, stats, digest)
    return {"ok": True, "status": snapshot, "stats": stats, "digest": digest}


@router.get("/logs/{task_id}", response_model=LogResponse)
def api_logs(task_id: str, request: Request, lines: str | None = None):
    """Log output of one task, optionally only the last ``lines`` lines."""
    parsed_id = parse_task_id(task_id)
    if parsed_id is None:
        return error_response("Invalid task id", 400)
    log = _backend(request).logs(parsed_id, parse_lines(lines))
    return {"ok": True, "log": log}


@router.post("/task/{task_id}", response_model=ResultResponse)
def api_task_action(task_id: str, body: TaskActionBody, request: Request):
    """Run a lifecycle action on one task."""
    parsed_id = parse_task_id(task_id)
    if parsed_id is None:
        return error_response("Invalid task id", 400)
    result = _backend(request).action(parsed_id, body.action)
    return {"ok": True, "result": result}


@router.post("/tasks", response_model=ResultResponse)
def api_add_task(body: AddTaskBody, request: Request):
    """Enqueue a new task."""
    if not body.command.strip():
        return error_response("Missing command", 400)
    result = _backend(request).add_task(body.to_request())
    return {"ok": True, "result": result}


@router.post("/groups", response_model=ResultResponse)
def api_groups(body: GroupActionBody, request: Request):
    """Add, remove or list groups."""
    try:
        result = _backend(request).group_action(body.to_request())
    except (ValidationError, UnsupportedAction) as e:
        # Group requests report every backend-side rejection as a server error.
        logger.warning("Group request rejected: %s", e)
        return error_response(str(e), 500)
    return {"ok": True, "result": result}


@router.get("/config/callback", response_model=CallbackConfigResponse)
def api_get_callback():
    """The daemon's callback command and how many log lines it receives."""
    settings = PueueSettings.read(config_path_override())
    return {"ok": True, "config": _callback_config(settings)}


@router.post("/config/callback", response_model=CallbackConfigResponse)
def api_update_callback(body: CallbackConfigBody):
    """Update the callback settings in pueue.yml; a blank callback clears it."""
    settings = PueueSettings.read(config_path_override())
    if body.callback is not None:
        settings.callback = body.callback.strip() or None
    if body.callback_log_lines is not None:
        if body.callback_log_lines < 0:
            return error_response("callback_log_lines must not be negative", 400)
        settings.callback_log_lines = body.callback_log_lines
    settings.save()
    return {"ok": True, "config": _callback_config(settings)}


# ── Error handlers ───────────────────────────────────────────────────────────


async def _backend_error_handler(_request: Request, exc: BackendError) -> JSONResponse:
    code = status_code_for(exc)
    if code >= 500:
        logger.warning("Request failed: %s", exc)
    return error_response(str(exc), code)


async def _invalid_body_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.debug("Rejected request body: %s", exc.errors())
    return error_response("Invalid JSON body", 400)


async def _unexpected_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error while serving request")
    return error_response(str(exc) or exc.__class__.__name__, 500)


# ── App setup ────────────────────────────────────────────────────────────────


def create_app(backend: Backend | None = None, status_cache: StatusCache | None = None) -> FastAPI:
    """Build the app around ``backend`` (the real daemon client by default).

    The backend and the status cache are owned by the app instance, so every
    test can build an isolated app.
    """
    app = FastAPI(
        title="Pueue Bridge",
        version=__version__,
        description="JSON API over a pueue daemon for the pueue web UI.",
    )
    app.state.backend = backend if backend is not None else PueueClientBackend()
    app.state.status_cache = status_cache if status_cache is not None else StatusCache()
    app.add_exception_handler(BackendError, _backend_error_handler)
    app.add_exception_handler(RequestValidationError, _invalid_body_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
    app.include_router(router)
    return app
