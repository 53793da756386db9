"""Repository layer: date-oriented access to day partitions.

No business validation happens here. Callers fetch a day's full list, mutate
it in memory, and save the full list back; `modify_tasks_for_date` does that
inside one critical section.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional, TypeVar

from dailytasks.database.file_store import FileTaskStore
from dailytasks.models.task import Task
from dailytasks.models.task_factory import dedupe_latest

logger = logging.getLogger(__name__)

R = TypeVar("R")

DayMutator = Callable[[List[Task]], R]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskRepository(ABC):
    """Storage contract shared by the file and SQL backends."""

    @abstractmethod
    def get_tasks_for_date(self, date: str) -> List[Task]:
        """Tasks of one day partition (empty list if the day does not exist)."""

    @abstractmethod
    def save_tasks_for_date(self, date: str, tasks: List[Task]) -> None:
        """Replace a day's task list and refresh `lastMigration`."""

    @abstractmethod
    def modify_tasks_for_date(self, date: str, mutate: DayMutator) -> R:
        """Load a day's list, apply `mutate` in place and save it atomically.

        If `mutate` raises, nothing is written and the exception propagates.
        """

    @abstractmethod
    def get_all_days(self) -> Dict[str, List[Task]]:
        """All day partitions."""

    @abstractmethod
    def delete_days_before(self, cutoff: str) -> int:
        """Delete partitions whose key sorts before `cutoff`; return how many."""

    @abstractmethod
    def get_last_migration(self) -> datetime:
        """Timestamp of the last migration run."""

    @abstractmethod
    def set_last_migration(self, timestamp: datetime) -> None:
        """Record the last migration run."""

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        """Hold the backend's cross-process lock across a multi-step operation.

        Backends without one only rely on their per-call transactions.
        """
        yield


class FileTaskRepository(TaskRepository):
    """Repository over the single-document `FileTaskStore`."""

    def __init__(self, store: FileTaskStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self._clock = clock or _utcnow

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        with self.store.transaction():
            yield

    def get_tasks_for_date(self, date: str) -> List[Task]:
        data = self.store.read()
        return list(data.days.get(date, []))

    def save_tasks_for_date(self, date: str, tasks: List[Task]) -> None:
        with self.store.transaction():
            data = self.store.read()
            data.days[date] = dedupe_latest(tasks)
            data.last_migration = self._clock()
            self.store.write(data)
        logger.debug(f"Saved {len(tasks)} tasks for {date}")

    def modify_tasks_for_date(self, date: str, mutate: DayMutator) -> R:
        with self.store.transaction():
            data = self.store.read()
            tasks = list(data.days.get(date, []))
            result = mutate(tasks)
            data.days[date] = dedupe_latest(tasks)
            data.last_migration = self._clock()
            self.store.write(data)
        logger.debug(f"Modified tasks for {date} ({len(tasks)} tasks)")
        return result

    def get_all_days(self) -> Dict[str, List[Task]]:
        data = self.store.read()
        return {day: list(tasks) for day, tasks in data.days.items()}

    def delete_days_before(self, cutoff: str) -> int:
        with self.store.transaction():
            data = self.store.read()
            stale = [day for day in data.days if day < cutoff]
            for day in stale:
                del data.days[day]
            if stale:
                self.store.write(data)
        logger.debug(f"Deleted {len(stale)} days before {cutoff}")
        return len(stale)

    def get_last_migration(self) -> datetime:
        return self.store.read().last_migration

    def set_last_migration(self, timestamp: datetime) -> None:
        with self.store.transaction():
            data = self.store.read()
            data.last_migration = timestamp
            self.store.write(data)
