"""File-backed durable store for the tasks aggregate.

The whole aggregate (`TasksData`) lives in one JSON document. Every access
holds an exclusive cross-process lock on ``<file>.lock``; writes back up the
previous document, then go to ``<file>.tmp`` and are renamed over the real
file so a partially written document is never visible.
"""

import json
import logging
import os
import shutil
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

from filelock import FileLock, Timeout

from dailytasks.errors import StorageError
from dailytasks.models.task import TasksData
from dailytasks.models.constants import (
    BACKUP_PREFIX,
    BACKUP_SUFFIX,
    DEFAULT_LOCK_RETRIES,
    DEFAULT_LOCK_RETRY_DELAY_SEC,
    DEFAULT_MAX_BACKUPS,
    SCHEMA_VERSION,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def backup_timestamp(now: datetime) -> str:
    """Filesystem-safe ISO timestamp, e.g. ``2024-01-01T10-00-00-123Z``."""
    now = now.astimezone(timezone.utc)
    iso = now.strftime("%Y-%m-%dT%H:%M:%S") + f".{now.microsecond // 1000:03d}Z"
    return iso.replace(":", "-").replace(".", "-")


class FileTaskStore:
    """Crash-safe, lock-protected JSON store for `TasksData`."""

    def __init__(
        self,
        file_path: Union[str, Path],
        backup_dir: Optional[Union[str, Path]] = None,
        max_backups: int = DEFAULT_MAX_BACKUPS,
        lock_retries: int = DEFAULT_LOCK_RETRIES,
        lock_retry_delay_sec: float = DEFAULT_LOCK_RETRY_DELAY_SEC,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.file_path = Path(file_path)
        self.lock_path = self.file_path.with_name(self.file_path.name + ".lock")
        self.tmp_path = self.file_path.with_name(self.file_path.name + ".tmp")
        self.backup_dir = Path(backup_dir) if backup_dir else self.file_path.parent / "backups"
        self.max_backups = max_backups
        self.lock_retries = max(1, lock_retries)
        self.lock_retry_delay_sec = lock_retry_delay_sec
        self._clock = clock or _utcnow
        self._lock = FileLock(str(self.lock_path))

        self._ensure_directories()

    def _ensure_directories(self) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self.backup_dir.mkdir(parents=True, exist_ok=True)

    # ---- locking ----

    def _acquire(self, action: str) -> None:
        for attempt in range(1, self.lock_retries + 1):
            try:
                self._lock.acquire(timeout=self.lock_retry_delay_sec)
                return
            except Timeout:
                logger.debug(f"Lock busy on {self.lock_path} (attempt {attempt}/{self.lock_retries})")
        raise StorageError(
            f"Failed to {action} tasks file: could not acquire lock {self.lock_path} "
            f"after {self.lock_retries} attempts"
        )

    @contextmanager
    def _locked(self, action: str) -> Iterator[None]:
        self._acquire(action)
        try:
            yield
        finally:
            self._lock.release()

    @contextmanager
    def transaction(self) -> Iterator["FileTaskStore"]:
        """Hold the lock across a read-modify-write cycle.

        `read()` and `write()` called inside the block re-enter the held lock.
        """
        with self._locked("write"):
            yield self

    # ---- backups ----

    def _backup_files(self) -> List[Path]:
        return [
            p for p in self.backup_dir.iterdir()
            if p.is_file() and p.name.startswith(BACKUP_PREFIX) and p.name.endswith(BACKUP_SUFFIX)
        ]

    def list_backups(self) -> List[Path]:
        """Backups sorted newest first."""
        files = self._backup_files()
        return sorted(files, key=lambda p: (p.stat().st_mtime, p.name), reverse=True)

    def _next_backup_path(self, stamp: str) -> Path:
        """First free backup path for `stamp`; same-millisecond backups get a counter suffix."""
        candidate = self.backup_dir / f"{BACKUP_PREFIX}{stamp}{BACKUP_SUFFIX}"
        counter = 1
        while candidate.exists():
            candidate = self.backup_dir / f"{BACKUP_PREFIX}{stamp}-{counter}{BACKUP_SUFFIX}"
            counter += 1
        return candidate

    def _create_backup(self) -> Optional[Path]:
        if not self.file_path.exists():
            return None

        backup_path = self._next_backup_path(backup_timestamp(self._clock()))
        try:
            shutil.copy2(self.file_path, backup_path)
            # copy2 keeps the source mtime; retention is ordered by backup time.
            os.utime(backup_path)
            self._cleanup_old_backups()
            return backup_path
        except OSError as e:
            logger.warning(f"Failed to create backup {backup_path}: {type(e).__name__}: {str(e)}")
            return None

    def _cleanup_old_backups(self) -> None:
        try:
            for stale in self.list_backups()[self.max_backups:]:
                stale.unlink()
                logger.debug(f"Pruned backup {stale.name}")
        except OSError as e:
            logger.warning(f"Failed to cleanup old backups: {type(e).__name__}: {str(e)}")

    # ---- aggregate access ----

    def _default_data(self) -> TasksData:
        return TasksData(version=SCHEMA_VERSION, last_migration=self._clock(), days={})

    def _atomic_write(self, data: TasksData) -> None:
        json_str = json.dumps(data.to_wire(), ensure_ascii=False, indent=2)
        self.tmp_path.write_text(json_str, "utf-8")
        os.replace(self.tmp_path, self.file_path)

    def read(self) -> TasksData:
        """Return the current aggregate, initializing the file on first use."""
        with self._locked("read"):
            try:
                if not self.file_path.exists():
                    data = self._default_data()
                    self._atomic_write(data)
                    logger.info(f"Initialized tasks file {self.file_path}")
                    return data

                raw = self.file_path.read_text("utf-8")
                return TasksData.model_validate(json.loads(raw))
            except (OSError, ValueError) as e:
                # json.JSONDecodeError and pydantic's ValidationError are both ValueErrors.
                raise StorageError(f"Failed to read tasks file: {type(e).__name__}: {e}") from e

    def write(self, data: TasksData) -> None:
        """Back up the current document, then atomically replace it with `data`."""
        with self._locked("write"):
            try:
                self._create_backup()
                self._atomic_write(data)
                logger.debug(f"Wrote tasks file {self.file_path} ({len(data.days)} days)")
            except OSError as e:
                raise StorageError(f"Failed to write tasks file: {type(e).__name__}: {e}") from e
