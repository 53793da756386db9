"""`/tasks` routes.

Every handler returns the `Envelope`. Domain errors (validation, not found,
invalid operation) come back as HTTP 200 with an error envelope unless strict
status codes are enabled; storage failures and unexpected exceptions are
logged and return 500 with a generic message.
"""

import logging
from typing import Any, Callable, Dict, Optional, Sequence, Type, TypeVar

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError as PydanticValidationError

from dailytasks.api.dependencies import get_settings, get_task_service
from dailytasks.api.envelope import Envelope, failure, success
from dailytasks.config import Settings
from dailytasks.errors import StorageError, TaskError, ValidationError
from dailytasks.models.task import TaskCreateRequest, TaskUpdateRequest
from dailytasks.services.task_service import TaskService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["Tasks"])

M = TypeVar("M", bound=BaseModel)

STRICT_STATUS_CODES = {
    "validation": 400,
    "not_found": 404,
    "invalid_operation": 409,
}


def _json(status_code: int, envelope: Envelope) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=envelope.model_dump())


def _respond(action: str, operation: Callable[[], Any], settings: Settings) -> JSONResponse:
    """Run a service call and translate its outcome into an envelope response."""
    try:
        payload = operation()
    except StorageError as e:
        logger.error(f"Storage failure in {action}: {e.message}", exc_info=True)
        return _json(500, failure("Storage failure", e.kind))
    except TaskError as e:
        logger.info(f"{action} rejected ({e.kind}): {e.message}")
        status_code = STRICT_STATUS_CODES.get(e.kind, 200) if settings.strict_status_codes else 200
        return _json(status_code, failure(e.message, e.kind))
    except Exception:
        logger.exception(f"Error in {action}")
        return _json(500, failure("Internal server error", "internal"))
    return _json(200, success(payload))


def _describe_errors(errors: Sequence[Dict[str, Any]]) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in errors
    )


def _parse(model: Type[M], payload: Optional[Dict[str, Any]]) -> M:
    """Validate a request body, reporting problems as a `ValidationError`."""
    try:
        return model.model_validate(payload or {})
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid request body: {_describe_errors(e.errors())}")


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Envelope for bodies FastAPI rejects before a handler runs (malformed JSON, non-object body)."""
    resolve_settings = request.app.dependency_overrides.get(get_settings, get_settings)
    settings = resolve_settings()
    message = f"Invalid request body: {_describe_errors(exc.errors())}"
    logger.info(f"{request.method} {request.url.path} rejected (validation): {message}")
    status_code = STRICT_STATUS_CODES["validation"] if settings.strict_status_codes else 200
    return _json(status_code, failure(message, ValidationError.kind))


@router.get("/calendar", response_model=Envelope)
def get_task_counts_by_date(
    service: TaskService = Depends(get_task_service),
    settings: Settings = Depends(get_settings),
):
    """Task counts per stored day for the calendar view."""
    return _respond(
        "getTaskCountsByDate",
        lambda: {day: counts.model_dump() for day, counts in service.get_task_counts_by_date().items()},
        settings,
    )


@router.get("/incomplete", response_model=Envelope)
def get_incomplete_tasks(
    service: TaskService = Depends(get_task_service),
    settings: Settings = Depends(get_settings),
):
    """Unfinished tasks from previous days."""
    return _respond(
        "getIncompleteTasks",
        lambda: [task.to_wire() for task in service.get_incomplete_tasks()],
        settings,
    )


@router.post("/migrate", response_model=Envelope)
def migrate_tasks(
    service: TaskService = Depends(get_task_service),
    settings: Settings = Depends(get_settings),
):
    """Manual migration trigger (no-op unless migration is enabled)."""
    return _respond("migrateTasks", service.migrate_unfinished_tasks, settings)


@router.get("", response_model=Envelope)
@router.get("/", response_model=Envelope, include_in_schema=False)
def get_tasks(
    date: Optional[str] = Query(None, description="Day key YYYY-MM-DD (defaults to today)"),
    service: TaskService = Depends(get_task_service),
    settings: Settings = Depends(get_settings),
):
    """List a day's tasks, pending first."""
    return _respond(
        "getTasks",
        lambda: [task.to_wire() for task in service.get_tasks_for_date(date)],
        settings,
    )


@router.post("", response_model=Envelope)
@router.post("/", response_model=Envelope, include_in_schema=False)
def create_task(
    payload: Optional[Dict[str, Any]] = Body(None),
    date: Optional[str] = Query(None, description="Day key YYYY-MM-DD (defaults to today)"),
    service: TaskService = Depends(get_task_service),
    settings: Settings = Depends(get_settings),
):
    """Create a task: body `{text}`."""
    def _create():
        request = _parse(TaskCreateRequest, payload)
        return service.create_task(request.text, date).to_wire()

    return _respond("createTask", _create, settings)


@router.put("/{task_id}", response_model=Envelope)
def update_task(
    task_id: str,
    payload: Optional[Dict[str, Any]] = Body(None),
    date: Optional[str] = Query(None, description="Day key YYYY-MM-DD (defaults to today)"),
    service: TaskService = Depends(get_task_service),
    settings: Settings = Depends(get_settings),
):
    """Update a task: body `{text?, completed?}`."""
    def _update():
        request = _parse(TaskUpdateRequest, payload)
        return service.update_task(task_id, request, date).to_wire()

    return _respond("updateTask", _update, settings)


@router.delete("/{task_id}", response_model=Envelope)
def delete_task(
    task_id: str,
    date: Optional[str] = Query(None, description="Day key YYYY-MM-DD (defaults to today)"),
    service: TaskService = Depends(get_task_service),
    settings: Settings = Depends(get_settings),
):
    """Delete a task and return it."""
    return _respond(
        "deleteTask",
        lambda: service.delete_task(task_id, date).to_wire(),
        settings,
    )
