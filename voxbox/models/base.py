"""Common envelope shared by every persisted entity.

``AuditedEntity`` carries the identifier, ownership, audit and soft-delete
columns. ``TenantScoped`` is a column-less marker: entities that inherit it are
subject to the standing soft-delete and tenant filters installed by
:class:`voxbox.persistence.context.PersistenceContext`. The ``Tenant`` entity is
audited but not tenant scoped.
"""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Any

from sqlalchemy import Boolean, DateTime, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from voxbox.core.ids import new_id


def utcnow() -> dt.datetime:
    """Return the current UTC timestamp with timezone awareness."""

    return dt.datetime.now(dt.timezone.utc)


class UTCDateTime(TypeDecorator[dt.datetime]):
    """Timezone-aware ``DateTime`` that always round-trips as UTC.

    SQLite drops the offset on storage, so naive values read back are tagged
    as UTC and aware values are normalised before they are written.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: dt.datetime | None, dialect: Any) -> dt.datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.timezone.utc)
        return value.astimezone(dt.timezone.utc)

    def process_result_value(self, value: dt.datetime | None, dialect: Any) -> dt.datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.timezone.utc)
        return value.astimezone(dt.timezone.utc)


class AuditedEntity:
    """Identifier, ownership, audit and soft-delete columns.

    Attributes:
        id: Time-ordered UUID assigned when the object is constructed.
        tenant_id: Owning tenant, ``None`` for global rows.
        created_at: Insertion time, stamped at save.
        created_by: Acting user at insertion, when known.
        updated_at: Time of the last modification.
        modified_by: Acting user of the last modification.
        is_deleted: Soft-delete flag; rows are never physically removed.
        deleted_at: Soft-delete time.
        deleted_by: Acting user of the soft delete.
    """

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=new_id,
    )
    tenant_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow,
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    updated_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    modified_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(
        Boolean(),
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    deleted_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    deleted_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("id", new_id())
        kwargs.setdefault("is_deleted", False)
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(id={self.id}, tenant_id={self.tenant_id})>"


class TenantScoped:
    """Marker for entities filtered by tenant and soft-delete state on every read.

    The filters are attached to each mapped subclass, which must also inherit
    :class:`AuditedEntity`.
    """
