"""Middleware resolving the tenant of each request from its host name."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from fastapi import Request
from sqlalchemy import false, func, select
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from voxbox.models import HOST_TENANCY_NAME, Tenant

from .tenant_context import TenantContext, bind_tenant_context, reset_tenant_context

__all__ = ["TenantContextMiddleware", "TenantResolver", "extract_tenancy_name"]

logger = logging.getLogger(__name__)

_LOOPBACK_MARKERS = ("localhost", "127.0.0.1")


def extract_tenancy_name(host: str | None) -> str | None:
    """Derive the tenancy name from a ``Host`` header value.

    Loopback hosts map to the host tenant. Otherwise every label in front of
    the registrable domain and TLD is used, so ``acme.example.com`` yields
    ``acme`` and ``eu.acme.example.com`` yields ``eu.acme``. Hosts with fewer
    than three labels do not name a tenant.
    """

    if not host:
        return None
    if any(marker in host for marker in _LOOPBACK_MARKERS):
        return HOST_TENANCY_NAME

    hostname = host.rsplit(":", 1)[0] if ":" in host else host
    labels = hostname.split(".")
    if len(labels) < 3:
        return None
    return ".".join(labels[:-2])


class TenantResolver:
    """Look tenants up by tenancy name and populate a :class:`TenantContext`.

    The lookup runs on its own short-lived session and bypasses the standing
    tenant filter, since no tenant is known yet. Soft-deleted tenants are never
    resolved.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def find_tenant(self, tenancy_name: str) -> Tenant | None:
        stmt = select(Tenant).where(
            func.lower(Tenant.tenancy_name) == tenancy_name.lower(),
            Tenant.is_deleted == false(),
        )
        with self._session_factory() as session:
            return session.scalars(stmt).first()

    def resolve(self, host: str | None, context: TenantContext) -> Tenant | None:
        """Populate ``context`` for ``host``; return the tenant or ``None``."""

        tenancy_name = extract_tenancy_name(host)
        if tenancy_name is None:
            logger.debug("No tenancy name found in request host: %s", host)
            return None

        logger.debug("Extracted tenancy name: %s", tenancy_name)
        tenant = self.find_tenant(tenancy_name)
        if tenant is None:
            logger.warning("No tenant found for tenancy name: %s", tenancy_name)
            return None

        context.set(tenant.id, tenant.is_host, tenant.tenancy_name)
        logger.debug("Tenant identified: %s, is_host: %s", tenant.id, tenant.is_host)
        return tenant


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Resolve the tenant from the ``Host`` header for every request.

    The resolved :class:`TenantContext` is exposed on
    ``request.state.tenant_context`` and through
    :func:`~voxbox.core.tenant_context.get_current_tenant_context`. Requests
    whose tenant cannot be resolved proceed with an empty context. The context
    is cleared once the downstream handler has finished, whether it succeeded
    or not.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        session_factory: sessionmaker[Session] | None = None,
        resolver: TenantResolver | None = None,
    ) -> None:
        super().__init__(app)
        if resolver is None and session_factory is not None:
            resolver = TenantResolver(session_factory)
        self._resolver = resolver

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        context = TenantContext()
        request.state.tenant_context = context

        if self._resolver is not None:
            await run_in_threadpool(
                self._resolver.resolve, request.headers.get("host"), context
            )
        request.state.tenancy_name = context.tenancy_name

        token = bind_tenant_context(context)
        try:
            return await call_next(request)
        finally:
            context.clear()
            reset_tenant_context(token)
