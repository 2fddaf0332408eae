"""Error kinds raised by the persistence layer.

Lookups never raise for a missing row; they return ``None`` and leave the
translation to an HTTP status to the caller. Exceptions are reserved for
operations that cannot proceed: staging an update for an entity the current
context cannot see, and failures reported by the database at save time.
"""

from __future__ import annotations

import uuid

__all__ = [
    "ConfigurationError",
    "ConstraintViolationError",
    "EntityNotFoundError",
    "PersistenceError",
    "StorageError",
]


class PersistenceError(Exception):
    """Base class for persistence failures."""


class EntityNotFoundError(PersistenceError):
    """The requested entity does not exist or is not visible to the caller."""

    def __init__(self, entity_name: str, entity_id: uuid.UUID | None) -> None:
        super().__init__(f"{entity_name} with ID {entity_id} not found")
        self.entity_name = entity_name
        self.entity_id = entity_id


class StorageError(PersistenceError):
    """The database rejected or failed to apply a unit of work."""


class ConstraintViolationError(StorageError):
    """A unique, foreign-key or not-null constraint was violated."""


class ConfigurationError(RuntimeError):
    """Required configuration (for example ``DATABASE_URL``) is missing."""
