"""Request-scoped tenant state.

Each request owns exactly one :class:`TenantContext`. The
``TenantContextMiddleware`` creates it, fills it in once the tenant has been
resolved from the host name and clears it when the response has been sent.
The instance is handed explicitly to the persistence layer; the helpers below
additionally publish it through a :class:`contextvars.ContextVar` so that code
without access to the request (for example log formatting) can discover which
tenant is being served.
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar, Token

__all__ = [
    "TenantContext",
    "bind_tenant_context",
    "get_current_tenant_context",
    "get_current_tenant_id",
    "reset_tenant_context",
]


class TenantContext:
    """Mutable holder for the tenant serving the current request."""

    __slots__ = ("_tenant_id", "_is_host", "_tenancy_name")

    def __init__(self) -> None:
        self._tenant_id: uuid.UUID | None = None
        self._is_host = False
        self._tenancy_name: str | None = None

    @property
    def tenant_id(self) -> uuid.UUID | None:
        return self._tenant_id

    @property
    def is_host(self) -> bool:
        return self._is_host

    @property
    def tenancy_name(self) -> str | None:
        return self._tenancy_name

    @property
    def is_resolved(self) -> bool:
        return self._tenant_id is not None

    def set(
        self, tenant_id: uuid.UUID | None, is_host: bool, tenancy_name: str | None
    ) -> None:
        self._tenant_id = tenant_id
        self._is_host = is_host
        self._tenancy_name = tenancy_name

    def clear(self) -> None:
        self._tenant_id = None
        self._is_host = False
        self._tenancy_name = None

    def __repr__(self) -> str:
        return (
            f"TenantContext(tenant_id={self._tenant_id!r}, is_host={self._is_host!r}, "
            f"tenancy_name={self._tenancy_name!r})"
        )


_tenant_context: ContextVar[TenantContext | None] = ContextVar(
    "tenant_context", default=None
)


def bind_tenant_context(context: TenantContext) -> Token[TenantContext | None]:
    """Publish ``context`` for the current execution context.

    Returns:
        ``Token`` that must be passed to :func:`reset_tenant_context` once the
        request has completed.
    """

    return _tenant_context.set(context)


def reset_tenant_context(token: Token[TenantContext | None]) -> None:
    """Restore the value bound before :func:`bind_tenant_context`."""

    _tenant_context.reset(token)


def get_current_tenant_context() -> TenantContext | None:
    return _tenant_context.get()


def get_current_tenant_id() -> uuid.UUID | None:
    """Return the tenant identifier for the current execution context.

    ``None`` is returned when no request is being served or when the tenant
    could not be resolved for it.
    """

    context = _tenant_context.get()
    if context is None:
        return None
    return context.tenant_id
