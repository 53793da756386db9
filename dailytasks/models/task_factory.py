"""Task creation factory for dailytasks.

This module centralizes task creation logic so every code path produces
tasks with the same id format and timestamp defaults.
"""

import secrets
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from dailytasks.models.task import Task
from dailytasks.models.constants import ID_RANDOM_BYTES

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(value: int) -> str:
    """Encode a non-negative integer in base 36 (lowercase digits)."""
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_DIGITS[rem])
    return "".join(reversed(digits))


def generate_id(now: Optional[datetime] = None) -> str:
    """Generate a time-prefixed, ULID-like task id.

    The id is the millisecond timestamp in base 36 followed by
    ``ID_RANDOM_BYTES`` random bytes hex-encoded, upper-cased.

    Args:
        now: Timestamp to encode (defaults to current UTC time)

    Returns:
        Upper-case id string
    """
    now = now or datetime.now(timezone.utc)
    millis = int(now.timestamp() * 1000)
    return f"{to_base36(millis)}{secrets.token_hex(ID_RANDOM_BYTES)}".upper()


def create_task_base(text: str, now: Optional[datetime] = None) -> Task:
    """Create a new pending task with fresh id and timestamps.

    Args:
        text: Already validated task text (stored trimmed)
        now: Creation timestamp (defaults to current UTC time)

    Returns:
        Task with ``completed=False`` and ``created_at == updated_at``
    """
    now = now or datetime.now(timezone.utc)
    return Task(
        id=generate_id(now),
        text=text.strip(),
        completed=False,
        created_at=now,
        updated_at=now,
    )


def dedupe_latest(tasks: Iterable[Task]) -> List[Task]:
    """Collapse tasks sharing an id to the copy with the latest ``updated_at``.

    First-seen order is preserved.
    """
    by_id = {}
    order: List[str] = []
    for task in tasks:
        current = by_id.get(task.id)
        if current is None:
            order.append(task.id)
            by_id[task.id] = task
        elif task.updated_at > current.updated_at:
            by_id[task.id] = task
    return [by_id[task_id] for task_id in order]
