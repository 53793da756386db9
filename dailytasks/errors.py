"""Error kinds raised by the task service and repositories."""


class TaskError(Exception):
    """Base class for all dailytasks errors."""

    kind = "internal"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TaskError):
    """Malformed date or invalid task text."""

    kind = "validation"


class NotFoundError(TaskError):
    """Task id not present in the target day."""

    kind = "not_found"


class InvalidOperationError(TaskError):
    """Operation not allowed, e.g. creating a task for a past date."""

    kind = "invalid_operation"


class StorageError(TaskError):
    """Lock timeout, I/O failure or corrupt persisted data."""

    kind = "storage"
