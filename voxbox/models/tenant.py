"""Tenant and user models.

``Tenant`` rows are global: they are looked up by the tenant resolver before
any tenant is known, so they carry no owner and are exempt from the standing
filters. ``User`` rows belong to exactly one tenant.
"""

from __future__ import annotations

import decimal
import enum

from sqlalchemy import Boolean, Index, Integer, Numeric, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, validates
from sqlalchemy.types import TypeDecorator

from . import Base
from .base import AuditedEntity, TenantScoped

HOST_TENANCY_NAME = "host"


class VoteWeightMode(enum.IntEnum):
    """How the votes of a tenant's users are weighted."""

    EQUAL = 0
    WEIGHTED = 1


class _IntEnumType(TypeDecorator[VoteWeightMode]):
    """Persist :class:`VoteWeightMode` as its integer value."""

    impl = Integer
    cache_ok = True

    def process_bind_param(self, value, dialect):  # type: ignore[no-untyped-def]
        if value is None:
            return None
        return int(value)

    def process_result_value(self, value, dialect):  # type: ignore[no-untyped-def]
        if value is None:
            return None
        return VoteWeightMode(value)


class Tenant(AuditedEntity, Base):
    """An isolated customer organisation.

    Attributes:
        name: Display name of the tenant.
        tenancy_name: Unique name matched against the request host name.
        is_private: Whether the tenant's content is private.
        vote_weight_mode: Weighting scheme applied to user votes.
        admin_identifiers: Identifiers of the tenant administrators.
        is_active: Whether the tenant may be served.
    """

    __tablename__ = "tenants"
    __table_args__ = (
        Index("ix_tenants_tenancy_name_unique", "tenancy_name", unique=True),
        Index("ix_tenants_is_active", "is_active"),
    )

    name: Mapped[str] = mapped_column(String(length=128), nullable=False)
    tenancy_name: Mapped[str] = mapped_column(String(length=64), nullable=False)
    is_private: Mapped[bool] = mapped_column(
        Boolean(),
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    vote_weight_mode: Mapped[VoteWeightMode] = mapped_column(
        _IntEnumType(),
        nullable=False,
        default=VoteWeightMode.EQUAL,
        server_default=text("0"),
    )
    admin_identifiers: Mapped[str] = mapped_column(String(length=50), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean(),
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    @property
    def is_host(self) -> bool:
        """``True`` for the distinguished tenant that may see every tenant's rows."""

        return (self.tenancy_name or "").lower() == HOST_TENANCY_NAME


class User(TenantScoped, AuditedEntity, Base):
    """A user belonging to a tenant.

    ``user_name`` is unique within a tenant and always stored lower-cased.
    """

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("tenant_id", "user_name", name="uq_users_tenant_user_name"),
        Index("ix_users_tenant_id", "tenant_id"),
    )

    user_name: Mapped[str] = mapped_column(String(length=128), nullable=False)
    name: Mapped[str | None] = mapped_column(String(length=128))
    surname: Mapped[str | None] = mapped_column(String(length=128))
    email_address: Mapped[str | None] = mapped_column(String(length=256))
    phone_number: Mapped[str | None] = mapped_column(String(length=50))
    identifier: Mapped[str | None] = mapped_column(String(length=128))
    vote_weight: Mapped[decimal.Decimal | None] = mapped_column(
        Numeric(precision=18, scale=4, asdecimal=True)
    )
    identyum_uuid: Mapped[str | None] = mapped_column(String(length=128))
    previous_name: Mapped[str | None] = mapped_column(String(length=128))
    previous_surname: Mapped[str | None] = mapped_column(String(length=128))
    is_active: Mapped[bool] = mapped_column(
        Boolean(),
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    @validates("user_name")
    def _normalize_user_name(self, _key: str, value: str) -> str:
        return value.lower() if value is not None else value


__all__ = ["HOST_TENANCY_NAME", "Tenant", "User", "VoteWeightMode"]
