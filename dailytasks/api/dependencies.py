"""FastAPI dependencies wiring settings, storage and the task service."""

from functools import lru_cache
from typing import Iterator

from fastapi import Depends

from dailytasks.config import Settings, STORAGE_SQL, load_settings
from dailytasks.database.database import SessionLocal
from dailytasks.database.file_store import FileTaskStore
from dailytasks.database.repository import FileTaskRepository, TaskRepository
from dailytasks.database.sql_repository import SQLTaskRepository
from dailytasks.services.task_service import TaskService


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings (read once from the environment)."""
    return load_settings()


@lru_cache()
def get_file_store(settings: Settings) -> FileTaskStore:
    """One store (and one lock object) per tasks file."""
    return FileTaskStore(
        settings.tasks_file,
        backup_dir=settings.resolved_backup_dir,
        max_backups=settings.max_backups,
        lock_retries=settings.lock_retries,
        lock_retry_delay_sec=settings.lock_retry_delay_sec,
    )


def get_task_repository(settings: Settings = Depends(get_settings)) -> Iterator[TaskRepository]:
    """Repository for the configured backend; SQL sessions are closed after the request."""
    if settings.storage == STORAGE_SQL:
        db = SessionLocal()
        try:
            yield SQLTaskRepository(db)
        finally:
            db.close()
    else:
        yield FileTaskRepository(get_file_store(settings))


def get_task_service(
    repository: TaskRepository = Depends(get_task_repository),
    settings: Settings = Depends(get_settings),
) -> TaskService:
    return TaskService(
        repository,
        migration_enabled=settings.migration_enabled,
        retention_days=settings.retention_days,
    )
