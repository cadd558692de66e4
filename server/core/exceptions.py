"""Taskboard exception hierarchy."""


class TaskboardError(Exception):
    """Base exception for all taskboard errors."""


class NotFoundError(TaskboardError):
    """Referenced record does not exist."""

    def __init__(self, resource: str, record_id: str):
        self.resource = resource
        self.record_id = record_id
        super().__init__(f"{resource} not found")


class StoreError(TaskboardError):
    """Durable store failed to execute a statement."""


class StoreFatalError(StoreError):
    """Store could not be opened or configured."""


class StoreTransientError(StoreError):
    """Lock contention outlasted the busy timeout and every retry."""

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(f"Store busy during {operation} after {attempts} attempts")


class StoreConflictError(StoreError):
    """A write violated a uniqueness constraint."""

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} conflicts with an existing record: {detail}")
