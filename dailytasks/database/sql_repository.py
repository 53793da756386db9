"""Repository over the embedded SQL store (`tasks`, `task_days` and `task_metadata` tables)."""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dailytasks.database.models import TaskDB, TaskDayDB, TaskMetadataDB, LAST_MIGRATION_KEY, VERSION_KEY
from dailytasks.database.repository import TaskRepository, DayMutator, R
from dailytasks.errors import StorageError
from dailytasks.models.constants import SCHEMA_VERSION
from dailytasks.models.task import Task, ensure_utc
from dailytasks.models.task_factory import dedupe_latest

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SQLTaskRepository(TaskRepository):
    """Day partitions stored as rows tagged with their day key.

    Saving a day deletes its rows and reinserts the new list in one transaction.
    """

    def __init__(self, db: Session, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self._clock = clock or _utcnow

    # ---- helpers ----

    def _load_day(self, date: str) -> List[Task]:
        rows = (
            self.db.query(TaskDB)
            .filter(TaskDB.day == date)
            .order_by(TaskDB.position, TaskDB.created_at)
            .all()
        )
        return [row.to_pydantic() for row in rows]

    def _replace_day(self, date: str, tasks: List[Task]) -> None:
        # Default synchronization evicts the loaded rows so reinserting the same keys does not conflict.
        self.db.query(TaskDB).filter(TaskDB.day == date).delete()
        for position, task in enumerate(dedupe_latest(tasks)):
            self.db.add(TaskDB.from_pydantic(task, day=date, position=position))
        # An emptied day stays listed, matching the file store.
        if self.db.get(TaskDayDB, date) is None:
            self.db.add(TaskDayDB(day=date))

    def _set_meta(self, key: str, value: str) -> None:
        row = self.db.get(TaskMetadataDB, key)
        if row is None:
            self.db.add(TaskMetadataDB(key=key, value=value))
        else:
            row.value = value

    def _fail(self, action: str, e: Exception) -> StorageError:
        self.db.rollback()
        logger.error(f"Failed to {action}: {type(e).__name__}: {str(e)}")
        return StorageError(f"Failed to {action}: {type(e).__name__}: {e}")

    # ---- contract ----

    def get_tasks_for_date(self, date: str) -> List[Task]:
        try:
            return self._load_day(date)
        except SQLAlchemyError as e:
            raise self._fail(f"read tasks for {date}", e) from e

    def save_tasks_for_date(self, date: str, tasks: List[Task]) -> None:
        try:
            self._replace_day(date, tasks)
            self._set_meta(LAST_MIGRATION_KEY, self._clock().isoformat())
            self.db.commit()
            logger.debug(f"Saved {len(tasks)} tasks for {date}")
        except SQLAlchemyError as e:
            raise self._fail(f"save tasks for {date}", e) from e

    def modify_tasks_for_date(self, date: str, mutate: DayMutator) -> R:
        try:
            tasks = self._load_day(date)
        except SQLAlchemyError as e:
            raise self._fail(f"read tasks for {date}", e) from e

        try:
            result = mutate(tasks)
        except Exception:
            self.db.rollback()
            raise

        try:
            self._replace_day(date, tasks)
            self._set_meta(LAST_MIGRATION_KEY, self._clock().isoformat())
            self.db.commit()
            logger.debug(f"Modified tasks for {date} ({len(tasks)} tasks)")
            return result
        except SQLAlchemyError as e:
            raise self._fail(f"save tasks for {date}", e) from e

    def get_all_days(self) -> Dict[str, List[Task]]:
        try:
            known_days = [row.day for row in self.db.query(TaskDayDB).order_by(TaskDayDB.day).all()]
            rows = self.db.query(TaskDB).order_by(TaskDB.day, TaskDB.position).all()
        except SQLAlchemyError as e:
            raise self._fail("read all days", e) from e

        days: Dict[str, List[Task]] = {day: [] for day in known_days}
        for row in rows:
            days.setdefault(row.day, []).append(row.to_pydantic())
        return days

    def delete_days_before(self, cutoff: str) -> int:
        try:
            day_count = self.db.query(func.count(TaskDayDB.day)).filter(TaskDayDB.day < cutoff).scalar()
            self.db.query(TaskDB).filter(TaskDB.day < cutoff).delete(synchronize_session=False)
            self.db.query(TaskDayDB).filter(TaskDayDB.day < cutoff).delete()
            self.db.commit()
            logger.debug(f"Deleted {day_count} days before {cutoff}")
            return int(day_count or 0)
        except SQLAlchemyError as e:
            raise self._fail(f"delete days before {cutoff}", e) from e

    def get_last_migration(self) -> datetime:
        try:
            row = self.db.get(TaskMetadataDB, LAST_MIGRATION_KEY)
            if row is not None:
                return ensure_utc(datetime.fromisoformat(row.value))

            # First access: initialize metadata the way the file store initializes its document.
            now = self._clock()
            self._set_meta(LAST_MIGRATION_KEY, now.isoformat())
            self._set_meta(VERSION_KEY, str(SCHEMA_VERSION))
            self.db.commit()
            return now
        except SQLAlchemyError as e:
            raise self._fail("read last migration", e) from e

    def set_last_migration(self, timestamp: datetime) -> None:
        try:
            self._set_meta(LAST_MIGRATION_KEY, timestamp.isoformat())
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail("write last migration", e) from e
