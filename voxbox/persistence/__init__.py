"""Tenant-aware persistence: unit of work, repositories and listing helpers."""

from __future__ import annotations

from voxbox.models import Tenant, User

from .context import ALL_TENANTS, INCLUDE_DELETED, PersistenceContext
from .errors import (
    ConfigurationError,
    ConstraintViolationError,
    EntityNotFoundError,
    PersistenceError,
    StorageError,
)
from .query_builder import (
    FieldKind,
    PagedRequest,
    PagedResponse,
    SortDirection,
    apply_filters,
    apply_sorting,
    paginate,
    query_fields,
    register_model_fields,
    register_query_fields,
)
from .repository import Repository

register_model_fields(Tenant)
register_model_fields(User)

__all__ = [
    "ALL_TENANTS",
    "ConfigurationError",
    "ConstraintViolationError",
    "EntityNotFoundError",
    "FieldKind",
    "INCLUDE_DELETED",
    "PagedRequest",
    "PagedResponse",
    "PersistenceContext",
    "PersistenceError",
    "Repository",
    "SortDirection",
    "StorageError",
    "apply_filters",
    "apply_sorting",
    "paginate",
    "query_fields",
    "register_model_fields",
    "register_query_fields",
]
