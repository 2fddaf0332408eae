"""SQLAlchemy declarative base and the persisted entities.

This package exposes the single declarative ``Base`` used across the backend
together with the audit/tenancy mixins every entity is built from. Individual
models live in dedicated modules within this package.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


# Re-export the models so callers can write ``from voxbox.models import User``.
from .base import AuditedEntity, TenantScoped, UTCDateTime, utcnow  # noqa: E402
from .tenant import HOST_TENANCY_NAME, Tenant, User, VoteWeightMode  # noqa: E402


__all__ = [
    "AuditedEntity",
    "Base",
    "HOST_TENANCY_NAME",
    "Tenant",
    "TenantScoped",
    "UTCDateTime",
    "User",
    "VoteWeightMode",
    "utcnow",
]
