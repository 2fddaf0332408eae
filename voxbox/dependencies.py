"""FastAPI dependencies handing request-scoped persistence to route handlers."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session, sessionmaker

from voxbox.core.tenant_context import TenantContext
from voxbox.persistence import PersistenceContext


def get_session_factory(request: Request) -> sessionmaker[Session]:
    return request.app.state.session_factory


def get_tenant_context(request: Request) -> TenantContext:
    """Return the context resolved by ``TenantContextMiddleware``.

    Applications mounted without the middleware get an empty context, which
    leaves every read unscoped.
    """

    context = getattr(request.state, "tenant_context", None)
    if context is None:
        context = TenantContext()
        request.state.tenant_context = context
    return context


def get_actor_id(request: Request) -> uuid.UUID | None:
    """Return the authenticated user id placed on ``request.state`` by an auth layer."""

    return getattr(request.state, "actor_id", None)


def get_persistence_context(
    session_factory: Annotated[sessionmaker[Session], Depends(get_session_factory)],
    tenant_context: Annotated[TenantContext, Depends(get_tenant_context)],
    actor_id: Annotated[uuid.UUID | None, Depends(get_actor_id)],
) -> Iterator[PersistenceContext]:
    """Yield a :class:`PersistenceContext` owning a fresh session for the request."""

    context = PersistenceContext(session_factory(), tenant_context, actor_id=actor_id)
    try:
        yield context
    finally:
        context.close()


PersistenceDep = Annotated[PersistenceContext, Depends(get_persistence_context)]
TenantContextDep = Annotated[TenantContext, Depends(get_tenant_context)]

__all__ = [
    "PersistenceDep",
    "TenantContextDep",
    "get_actor_id",
    "get_persistence_context",
    "get_session_factory",
    "get_tenant_context",
]
