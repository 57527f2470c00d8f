"""Errors raised by the todo repository.

Storage errors are not wrapped: anything SQLAlchemy raises reaches the
caller as-is. ``StorageFailure`` names that family for callers that want
to catch it.
"""
from sqlalchemy.exc import SQLAlchemyError as StorageFailure


class TodoError(Exception):
    """Base class for repository errors."""


class NotFound(TodoError):
    """The todo id does not exist or has been soft-deleted."""

    def __init__(self, todo_id):
        super().__init__(f"todo {todo_id} not found")
        self.todo_id = todo_id


class ValidationFailure(TodoError):
    pass


class ConsistencyRisk(TodoError):
    """A reorder request would break the dense 1..n position sequence."""


__all__ = ["TodoError", "NotFound", "ValidationFailure", "ConsistencyRisk", "StorageFailure"]
