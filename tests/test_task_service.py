"""Tests for TaskService business rules (run against both storage backends)."""

import pytest
from datetime import datetime, timedelta, timezone

from dailytasks.errors import InvalidOperationError, NotFoundError, ValidationError
from dailytasks.models.task import Task, TaskUpdateRequest
from dailytasks.services.task_service import (
    MIGRATION_ALREADY_DONE_MESSAGE,
    MIGRATION_DISABLED_MESSAGE,
    sort_tasks,
    validate_date,
    validate_task_text,
)


def _at(day: str, hour: int = 12) -> datetime:
    return datetime.fromisoformat(day).replace(hour=hour, tzinfo=timezone.utc)


def _task(task_id: str, completed: bool = False, created_at: datetime = None, text: str = "Task") -> Task:
    created_at = created_at or _at("2024-01-01")
    return Task(id=task_id, text=text, completed=completed, created_at=created_at, updated_at=created_at)


class TestValidation:
    """Text and date validation."""

    @pytest.mark.parametrize("text", ["a", "Buy milk", "x" * 140, "  padded  ", " " + "y" * 140 + " "])
    def test_valid_text_is_trimmed(self, text):
        assert validate_task_text(text) == text.strip()

    @pytest.mark.parametrize("text, message", [
        (None, "Task text is required"),
        ("", "Task text is required"),
        (42, "Task text is required"),
        ("   ", "Task text cannot be empty"),
        ("x" * 141, "Task text must be 140 characters or less"),
    ])
    def test_invalid_text(self, text, message):
        with pytest.raises(ValidationError, match=message):
            validate_task_text(text)

    @pytest.mark.parametrize("value", ["2024-1-1", "01-01-2024", "2024/01/01", "tomorrow", "2024-02-30", "2024-13-01"])
    def test_invalid_date(self, value):
        with pytest.raises(ValidationError, match="Invalid date format. Use YYYY-MM-DD"):
            validate_date(value)

    def test_valid_date(self):
        assert validate_date("2024-02-29") == "2024-02-29"


class TestSortTasks:
    """Display ordering."""

    def test_pending_first_regardless_of_creation_order(self):
        done = _task("DONE", completed=True, created_at=_at("2024-01-01", 14))
        pending = _task("PENDING", created_at=_at("2024-01-01", 9))

        assert [t.id for t in sort_tasks([done, pending])] == ["PENDING", "DONE"]
        assert [t.id for t in sort_tasks([pending, done])] == ["PENDING", "DONE"]

    def test_newest_first_within_group(self):
        tasks = [
            _task("P-OLD", created_at=_at("2024-01-01", 8)),
            _task("C-OLD", completed=True, created_at=_at("2024-01-01", 7)),
            _task("P-NEW", created_at=_at("2024-01-01", 10)),
            _task("C-NEW", completed=True, created_at=_at("2024-01-01", 11)),
        ]

        assert [t.id for t in sort_tasks(tasks)] == ["P-NEW", "P-OLD", "C-NEW", "C-OLD"]

    def test_sort_is_idempotent(self):
        same_time = _at("2024-01-01", 9)
        tasks = [
            _task("A", created_at=same_time),
            _task("B", completed=True, created_at=same_time),
            _task("C", created_at=same_time),
            _task("D", created_at=_at("2024-01-01", 10)),
        ]

        once = sort_tasks(tasks)

        assert [t.id for t in sort_tasks(once)] == [t.id for t in once]

    def test_sort_does_not_modify_input(self):
        tasks = [_task("DONE", completed=True), _task("PENDING")]

        sort_tasks(tasks)

        assert [t.id for t in tasks] == ["DONE", "PENDING"]


class TestTaskLifecycle:
    """Create / update / delete."""

    def test_buy_milk_lifecycle(self, task_service):
        created = task_service.create_task("Buy milk", "2024-01-01")

        tasks = task_service.get_tasks_for_date("2024-01-01")
        assert len(tasks) == 1
        assert tasks[0].text == "Buy milk"
        assert tasks[0].completed is False

        task_service.update_task(created.id, TaskUpdateRequest(completed=True), "2024-01-01")
        tasks = task_service.get_tasks_for_date("2024-01-01")
        assert tasks[0].completed is True
        assert tasks[0].updated_at > tasks[0].created_at

        task_service.delete_task(created.id, "2024-01-01")
        assert task_service.get_tasks_for_date("2024-01-01") == []

    def test_create_defaults_to_today(self, task_service):
        created = task_service.create_task("Today's task")

        assert [t.id for t in task_service.get_tasks_for_date()] == [created.id]
        assert [t.id for t in task_service.get_tasks_for_date("2024-01-01")] == [created.id]

    def test_create_trims_text_and_starts_pending(self, task_service):
        created = task_service.create_task("  Water plants  ", "2024-01-01")

        assert created.text == "Water plants"
        assert created.completed is False
        assert created.created_at == created.updated_at

    def test_created_ids_are_unique_within_day(self, task_service):
        ids = [task_service.create_task(f"Task {i}", "2024-01-01").id for i in range(10)]

        assert len(set(ids)) == 10
        assert {t.id for t in task_service.get_tasks_for_date("2024-01-01")} == set(ids)

    def test_create_for_future_date(self, task_service):
        created = task_service.create_task("Plan trip", "2024-02-15")

        assert [t.id for t in task_service.get_tasks_for_date("2024-02-15")] == [created.id]

    def test_create_for_past_date_is_rejected(self, task_service, repository):
        with pytest.raises(InvalidOperationError, match="Cannot create tasks for past dates"):
            task_service.create_task("Too late", "2023-12-31")

        assert repository.get_all_days() == {}

    @pytest.mark.parametrize("text", ["", "   ", "x" * 141, None])
    def test_create_with_invalid_text_persists_nothing(self, task_service, repository, text):
        with pytest.raises(ValidationError):
            task_service.create_task(text, "2024-01-01")

        assert repository.get_tasks_for_date("2024-01-01") == []

    def test_create_with_malformed_date(self, task_service):
        with pytest.raises(ValidationError):
            task_service.create_task("Task", "01/01/2024")

    def test_get_with_malformed_date(self, task_service):
        with pytest.raises(ValidationError, match="Invalid date format"):
            task_service.get_tasks_for_date("2024-1-01")

    def test_update_text(self, task_service):
        created = task_service.create_task("Draft", "2024-01-01")

        updated = task_service.update_task(created.id, TaskUpdateRequest(text="  Final  "), "2024-01-01")

        assert updated.text == "Final"
        assert updated.completed is False
        assert updated.id == created.id
        assert updated.created_at == created.created_at

    def test_update_with_invalid_text_changes_nothing(self, task_service):
        created = task_service.create_task("Keep me", "2024-01-01")

        with pytest.raises(ValidationError):
            task_service.update_task(created.id, TaskUpdateRequest(text="x" * 141), "2024-01-01")

        assert task_service.get_tasks_for_date("2024-01-01")[0].text == "Keep me"

    def test_complete_then_reopen(self, task_service):
        created = task_service.create_task("Toggle", "2024-01-01")

        done = task_service.update_task(created.id, TaskUpdateRequest(completed=True), "2024-01-01")
        reopened = task_service.update_task(created.id, TaskUpdateRequest(completed=False), "2024-01-01")

        assert done.completed is True
        assert reopened.completed is False
        assert reopened.updated_at > done.updated_at

    def test_update_missing_task_leaves_day_unchanged(self, task_service):
        created = task_service.create_task("Existing", "2024-01-01")
        before = [t.to_wire() for t in task_service.get_tasks_for_date("2024-01-01")]

        with pytest.raises(NotFoundError, match="Task not found"):
            task_service.update_task("NOPE", TaskUpdateRequest(completed=True), "2024-01-01")

        after = [t.to_wire() for t in task_service.get_tasks_for_date("2024-01-01")]
        assert after == before
        assert after[0]["id"] == created.id

    def test_delete_returns_removed_task_and_second_delete_fails(self, task_service):
        keep = task_service.create_task("Keep", "2024-01-01")
        drop = task_service.create_task("Drop", "2024-01-01")

        removed = task_service.delete_task(drop.id, "2024-01-01")

        assert removed.to_wire() == drop.to_wire()
        assert [t.id for t in task_service.get_tasks_for_date("2024-01-01")] == [keep.id]
        with pytest.raises(NotFoundError):
            task_service.delete_task(drop.id, "2024-01-01")

    def test_generate_id_format(self, task_service):
        task_id = task_service.generate_id()

        assert task_id == task_id.upper()
        assert len(task_id) > 16
        int(task_id[-16:], 16)


class TestCrossDayViews:
    """Calendar counts and incomplete-task aggregation."""

    def test_task_counts_by_date(self, task_service, repository):
        repository.save_tasks_for_date("2024-01-01", [_task("A", completed=True), _task("B"), _task("C")])
        repository.save_tasks_for_date("2024-01-02", [_task("D", completed=True)])

        counts = task_service.get_task_counts_by_date()

        assert counts["2024-01-01"].model_dump() == {"total": 3, "completed": 1, "incomplete": 2}
        assert counts["2024-01-02"].model_dump() == {"total": 1, "completed": 1, "incomplete": 0}

    def test_task_counts_keep_day_after_last_task_deleted(self, task_service):
        created = task_service.create_task("Short-lived", "2024-01-01")
        task_service.delete_task(created.id, "2024-01-01")

        counts = task_service.get_task_counts_by_date()

        assert counts["2024-01-01"].model_dump() == {"total": 0, "completed": 0, "incomplete": 0}

    def test_task_counts_empty(self, task_service):
        assert task_service.get_task_counts_by_date() == {}

    def test_incomplete_tasks_seen_from_later_day(self, task_service, repository, clock):
        repository.save_tasks_for_date("2024-01-01", [
            _task("DONE-1", completed=True),
            _task("DONE-2", completed=True),
        ])
        repository.save_tasks_for_date("2024-01-02", [
            _task("OPEN", created_at=_at("2024-01-02", 9)),
            _task("DONE-3", completed=True, created_at=_at("2024-01-02", 10)),
        ])
        repository.save_tasks_for_date("2024-01-03", [_task("TODAY", created_at=_at("2024-01-03", 8))])
        clock.set(_at("2024-01-03"))

        incomplete = task_service.get_incomplete_tasks()

        assert [t.id for t in incomplete] == ["OPEN"]
        assert incomplete[0].original_date == "2024-01-02"
        assert incomplete[0].to_wire()["originalDate"] == "2024-01-02"

    def test_incomplete_tasks_order_and_read_only(self, task_service, repository, clock):
        repository.save_tasks_for_date("2024-01-01", [
            _task("OLD-DAY-LATE", created_at=_at("2024-01-01", 15)),
            _task("OLD-DAY-EARLY", created_at=_at("2024-01-01", 9)),
        ])
        repository.save_tasks_for_date("2024-01-04", [
            _task("NEW-DAY-EARLY", created_at=_at("2024-01-04", 8)),
            _task("NEW-DAY-LATE", created_at=_at("2024-01-04", 20)),
        ])
        clock.set(_at("2024-01-05"))
        before = repository.get_all_days()

        incomplete = task_service.get_incomplete_tasks()

        assert [t.id for t in incomplete] == ["NEW-DAY-LATE", "NEW-DAY-EARLY", "OLD-DAY-LATE", "OLD-DAY-EARLY"]
        assert all(t.original_date in ("2024-01-01", "2024-01-04") for t in incomplete)
        after = repository.get_all_days()
        assert {d: [t.to_wire() for t in ts] for d, ts in after.items()} == \
            {d: [t.to_wire() for t in ts] for d, ts in before.items()}

    def test_incomplete_tasks_exclude_future_days(self, task_service, repository):
        repository.save_tasks_for_date("2024-01-05", [_task("FUTURE")])

        assert task_service.get_incomplete_tasks() == []


class TestMigration:
    """Legacy cross-day migration."""

    def test_disabled_migration_is_a_no_op(self, task_service, repository, clock):
        repository.save_tasks_for_date("2023-12-31", [_task("OPEN", created_at=_at("2023-12-31"))])
        repository.set_last_migration(_at("2023-12-30"))

        message = task_service.migrate_unfinished_tasks()

        assert message == MIGRATION_DISABLED_MESSAGE
        assert [t.id for t in repository.get_tasks_for_date("2023-12-31")] == ["OPEN"]
        assert repository.get_tasks_for_date("2024-01-01") == []
        assert repository.get_last_migration() == _at("2023-12-30")

    def test_enabled_migration_moves_unfinished_tasks(self, migrating_service, repository):
        repository.save_tasks_for_date("2023-12-31", [
            _task("OPEN", created_at=_at("2023-12-31", 9)),
            _task("DONE", completed=True, created_at=_at("2023-12-31", 10)),
        ])
        repository.save_tasks_for_date("2024-01-01", [_task("TODAY")])
        repository.set_last_migration(_at("2023-12-31"))

        message = migrating_service.migrate_unfinished_tasks()

        assert message == "Migrated 1 unfinished tasks to today"
        today = repository.get_tasks_for_date("2024-01-01")
        assert [t.id for t in today] == ["OPEN", "TODAY"]
        assert today[0].updated_at > today[0].created_at
        assert [t.id for t in repository.get_tasks_for_date("2023-12-31")] == ["DONE"]

    def test_enabled_migration_runs_once_per_day(self, migrating_service, repository):
        repository.save_tasks_for_date("2023-12-31", [_task("OPEN", created_at=_at("2023-12-31"))])
        repository.set_last_migration(_at("2023-12-31"))

        migrating_service.migrate_unfinished_tasks()
        second = migrating_service.migrate_unfinished_tasks()

        assert second == MIGRATION_ALREADY_DONE_MESSAGE
        assert [t.id for t in repository.get_tasks_for_date("2024-01-01")] == ["OPEN"]

    def test_enabled_migration_sweeps_old_days(self, migrating_service, repository):
        repository.save_tasks_for_date("2023-11-15", [_task("ANCIENT", created_at=_at("2023-11-15"))])
        repository.save_tasks_for_date("2023-12-10", [_task("RECENT", created_at=_at("2023-12-10"))])
        repository.set_last_migration(_at("2023-12-31"))

        message = migrating_service.migrate_unfinished_tasks()

        assert message == "Migrated 0 unfinished tasks to today"
        days = repository.get_all_days()
        assert "2023-11-15" not in days
        assert "2023-12-10" in days

    def test_enabled_migration_skips_ids_already_in_today(self, migrating_service, repository):
        repository.save_tasks_for_date("2023-12-31", [_task("SAME", created_at=_at("2023-12-31"))])
        repository.save_tasks_for_date("2024-01-01", [_task("SAME")])
        repository.set_last_migration(_at("2023-12-31"))

        message = migrating_service.migrate_unfinished_tasks()

        assert message == "Migrated 0 unfinished tasks to today"
        assert [t.id for t in repository.get_tasks_for_date("2024-01-01")] == ["SAME"]

    def test_migration_gate_uses_last_migration(self, migrating_service, repository, clock):
        repository.save_tasks_for_date("2023-12-31", [_task("OPEN", created_at=_at("2023-12-31"))])
        repository.set_last_migration(clock.now - timedelta(minutes=30))

        assert migrating_service.migrate_unfinished_tasks() == MIGRATION_ALREADY_DONE_MESSAGE
        assert [t.id for t in repository.get_tasks_for_date("2023-12-31")] == ["OPEN"]

    def test_file_backend_holds_lock_across_whole_migration(self, file_repository, file_store, clock, monkeypatch):
        from filelock import FileLock, Timeout
        from dailytasks.services.task_service import TaskService

        file_repository.save_tasks_for_date("2023-12-31", [_task("OPEN", created_at=_at("2023-12-31"))])
        file_repository.set_last_migration(_at("2023-12-31"))
        service = TaskService(file_repository, clock=clock, migration_enabled=True)
        lock_checks = []

        def _assert_locked():
            with pytest.raises(Timeout):
                FileLock(str(file_store.lock_path)).acquire(timeout=0)
            lock_checks.append(True)

        original_get = file_repository.get_last_migration
        original_set = file_repository.set_last_migration

        def _get_last_migration():
            _assert_locked()
            return original_get()

        def _set_last_migration(timestamp):
            _assert_locked()
            original_set(timestamp)

        monkeypatch.setattr(file_repository, "get_last_migration", _get_last_migration)
        monkeypatch.setattr(file_repository, "set_last_migration", _set_last_migration)

        assert service.migrate_unfinished_tasks() == "Migrated 1 unfinished tasks to today"
        assert len(lock_checks) == 2
        other = FileLock(str(file_store.lock_path))
        other.acquire(timeout=0)
        other.release()
