"""Task data models for dailytasks.

Field names are snake_case in Python and camelCase on the wire
(``createdAt``, ``updatedAt``, ``originalDate``, ``lastMigration``), which is
the shape the browser extension and existing ``tasks.json`` files use.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator

from dailytasks.models.constants import SCHEMA_VERSION


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps (SQLite drops tzinfo on round-trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Task(BaseModel):
    """A single to-do item owned by one day partition."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Opaque unique id (base-36 timestamp + random hex, upper-cased)")
    text: str = Field(..., description="Task text, 1-140 characters after trimming")
    completed: bool = Field(False, description="Whether the task is done")
    created_at: datetime = Field(..., alias="createdAt", description="Creation timestamp")
    updated_at: datetime = Field(..., alias="updatedAt", description="Last mutation timestamp")

    @field_validator("created_at", "updated_at")
    @classmethod
    def _validate_timestamps(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def to_wire(self) -> dict:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class IncompleteTask(Task):
    """Read-only projection of an unfinished task from a past day."""

    original_date: str = Field(..., alias="originalDate", description="Day partition the task lives in")


class TaskCounts(BaseModel):
    """Per-day task totals for the calendar view."""

    total: int = 0
    completed: int = 0
    incomplete: int = 0


class TasksData(BaseModel):
    """Aggregate root persisted by the file-backed store."""

    model_config = ConfigDict(populate_by_name=True)

    version: int = SCHEMA_VERSION
    last_migration: datetime = Field(..., alias="lastMigration")
    days: Dict[str, List[Task]] = Field(default_factory=dict)

    @field_validator("last_migration")
    @classmethod
    def _validate_last_migration(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class TaskCreateRequest(BaseModel):
    """Body of ``POST /tasks``."""

    text: Optional[StrictStr] = None


class TaskUpdateRequest(BaseModel):
    """Body of ``PUT /tasks/{id}``; omitted fields are left unchanged."""

    text: Optional[StrictStr] = None
    completed: Optional[StrictBool] = None
