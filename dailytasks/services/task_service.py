"""Task service: business rules for the daily task list.

This is the only component the HTTP layer depends on. It validates input,
raises the error kinds from `dailytasks.errors`, and delegates persistence to
a `TaskRepository`.
"""

import logging
import threading
from datetime import date as date_cls, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from dailytasks.database.repository import TaskRepository
from dailytasks.errors import InvalidOperationError, NotFoundError, ValidationError
from dailytasks.models.constants import DATE_KEY_PATTERN, DEFAULT_RETENTION_DAYS, MAX_TASK_TEXT_LENGTH
from dailytasks.models.task import IncompleteTask, Task, TaskCounts, TaskUpdateRequest, ensure_utc
from dailytasks.models.task_factory import create_task_base, generate_id

logger = logging.getLogger(__name__)

MIGRATION_DISABLED_MESSAGE = "Migration disabled - tasks remain in their original dates"
MIGRATION_ALREADY_DONE_MESSAGE = "Migration already completed today"

# Shared by every service instance in the process (the SQL backend builds one per request).
_migration_lock = threading.Lock()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_task_text(text) -> str:
    """Validate task text and return it trimmed.

    Raises:
        ValidationError: If text is missing, not a string, blank, or longer than 140 characters
    """
    if not text or not isinstance(text, str):
        raise ValidationError("Task text is required")

    trimmed = text.strip()
    if len(trimmed) == 0:
        raise ValidationError("Task text cannot be empty")

    if len(trimmed) > MAX_TASK_TEXT_LENGTH:
        raise ValidationError(f"Task text must be {MAX_TASK_TEXT_LENGTH} characters or less")

    return trimmed


def validate_date(value: str) -> str:
    """Validate a `YYYY-MM-DD` day key."""
    if not isinstance(value, str) or not DATE_KEY_PATTERN.match(value):
        raise ValidationError("Invalid date format. Use YYYY-MM-DD")
    try:
        date_cls.fromisoformat(value)
    except ValueError:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD")
    return value


def sort_tasks(tasks: List[Task]) -> List[Task]:
    """Display order: pending before completed, newest created first within each group.

    Returns a new list; the input is not modified.
    """
    newest_first = sorted(tasks, key=lambda t: t.created_at, reverse=True)
    return sorted(newest_first, key=lambda t: t.completed)


def _find_index(tasks: List[Task], task_id: str) -> int:
    for index, task in enumerate(tasks):
        if task.id == task_id:
            return index
    raise NotFoundError("Task not found")


class TaskService:
    """Business operations over day partitions."""

    def __init__(
        self,
        repository: TaskRepository,
        clock: Optional[Callable[[], datetime]] = None,
        migration_enabled: bool = False,
        retention_days: int = DEFAULT_RETENTION_DAYS,
    ):
        self.repository = repository
        self._clock = clock or _utcnow
        self.migration_enabled = migration_enabled
        self.retention_days = retention_days

    # ---- time ----

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    def _local_date(self, moment: datetime) -> date_cls:
        return ensure_utc(moment).astimezone().date()

    def get_today_string(self) -> str:
        """Today's day key in local time."""
        return self._local_date(self._now()).isoformat()

    def _resolve_date(self, value: Optional[str]) -> str:
        if not value:
            return self.get_today_string()
        return validate_date(value)

    def generate_id(self) -> str:
        return generate_id(self._now())

    # ---- day operations ----

    def get_tasks_for_date(self, date: Optional[str] = None) -> List[Task]:
        """Tasks of a day (default today), sorted for display."""
        target_date = self._resolve_date(date)
        return sort_tasks(self.repository.get_tasks_for_date(target_date))

    def create_task(self, text, date: Optional[str] = None) -> Task:
        """Create a pending task for today or a future day."""
        trimmed = validate_task_text(text)
        target_date = self._resolve_date(date)

        if target_date < self.get_today_string():
            raise InvalidOperationError("Cannot create tasks for past dates")

        task = create_task_base(trimmed, now=self._now())

        def _append(tasks: List[Task]) -> Task:
            tasks.append(task)
            return task

        created = self.repository.modify_tasks_for_date(target_date, _append)
        logger.info(f"Created task {created.id} for {target_date}")
        return created

    def update_task(self, task_id: str, request: TaskUpdateRequest, date: Optional[str] = None) -> Task:
        """Apply a partial update (text and/or completed) to one task."""
        target_date = self._resolve_date(date)
        new_text = validate_task_text(request.text) if request.text is not None else None
        if request.completed is not None and not isinstance(request.completed, bool):
            raise ValidationError("Task completed flag must be a boolean")

        now = self._now()

        def _apply(tasks: List[Task]) -> Task:
            index = _find_index(tasks, task_id)
            changes = {"updated_at": now}
            if new_text is not None:
                changes["text"] = new_text
            if request.completed is not None:
                changes["completed"] = request.completed
            tasks[index] = tasks[index].model_copy(update=changes)
            return tasks[index]

        updated = self.repository.modify_tasks_for_date(target_date, _apply)
        logger.info(f"Updated task {task_id} on {target_date}")
        return updated

    def delete_task(self, task_id: str, date: Optional[str] = None) -> Task:
        """Remove one task and return it."""
        target_date = self._resolve_date(date)

        def _remove(tasks: List[Task]) -> Task:
            return tasks.pop(_find_index(tasks, task_id))

        deleted = self.repository.modify_tasks_for_date(target_date, _remove)
        logger.info(f"Deleted task {task_id} from {target_date}")
        return deleted

    # ---- cross-day views ----

    def get_task_counts_by_date(self) -> Dict[str, TaskCounts]:
        """Total/completed/incomplete counts for every stored day."""
        counts: Dict[str, TaskCounts] = {}
        for day, tasks in self.repository.get_all_days().items():
            completed = sum(1 for task in tasks if task.completed)
            counts[day] = TaskCounts(
                total=len(tasks),
                completed=completed,
                incomplete=len(tasks) - completed,
            )
        return counts

    def get_incomplete_tasks(self) -> List[IncompleteTask]:
        """Unfinished tasks from days before today, newest day first.

        Read-only: tasks stay in their original partitions.
        """
        today = self.get_today_string()
        incomplete: List[IncompleteTask] = []
        for day, tasks in self.repository.get_all_days().items():
            if day >= today:
                continue
            for task in tasks:
                if not task.completed:
                    incomplete.append(IncompleteTask(**task.model_dump(), original_date=day))

        incomplete.sort(key=lambda t: t.created_at, reverse=True)
        incomplete.sort(key=lambda t: t.original_date, reverse=True)
        return incomplete

    # ---- legacy migration ----

    def migrate_unfinished_tasks(self) -> str:
        """Move yesterday's unfinished tasks into today, at most once per day.

        A no-op unless `migration_enabled` is set; unfinished tasks are then
        surfaced through `get_incomplete_tasks` instead.
        """
        if not self.migration_enabled:
            return MIGRATION_DISABLED_MESSAGE

        with _migration_lock, self.repository.exclusive():
            today = self.get_today_string()
            last_migration = self.repository.get_last_migration()
            if self._local_date(last_migration).isoformat() == today:
                return MIGRATION_ALREADY_DONE_MESSAGE

            yesterday = (date_cls.fromisoformat(today) - timedelta(days=1)).isoformat()
            now = self._now()
            unfinished = [
                task.model_copy(update={"updated_at": now})
                for task in self.repository.get_tasks_for_date(yesterday)
                if not task.completed
            ]
            moved_ids = {task.id for task in unfinished}

            def _prepend(tasks: List[Task]) -> int:
                present = {task.id for task in tasks}
                fresh = [task for task in unfinished if task.id not in present]
                tasks[:0] = fresh
                return len(fresh)

            migrated_count = self.repository.modify_tasks_for_date(today, _prepend)

            # Copy first, then lift out of the source day, so a failure in between never loses a task.
            if moved_ids:
                def _lift(tasks: List[Task]) -> None:
                    tasks[:] = [task for task in tasks if task.id not in moved_ids]

                self.repository.modify_tasks_for_date(yesterday, _lift)

            cutoff = (date_cls.fromisoformat(today) - timedelta(days=self.retention_days)).isoformat()
            swept = self.repository.delete_days_before(cutoff)

            self.repository.set_last_migration(self._now())
            logger.info(f"Migrated {migrated_count} unfinished tasks to {today}; swept {swept} days before {cutoff}")
            return f"Migrated {migrated_count} unfinished tasks to today"
