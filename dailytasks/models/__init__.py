"""Data models for dailytasks."""

from dailytasks.models.task import (
    Task,
    IncompleteTask,
    TaskCounts,
    TasksData,
    TaskCreateRequest,
    TaskUpdateRequest,
)

__all__ = [
    "Task",
    "IncompleteTask",
    "TaskCounts",
    "TasksData",
    "TaskCreateRequest",
    "TaskUpdateRequest",
]
