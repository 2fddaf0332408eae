"""Tenant-aware unit of work over a SQLAlchemy session.

A :class:`PersistenceContext` wraps one :class:`~sqlalchemy.orm.Session` for
the lifetime of a request and installs two kinds of session hooks:

- a ``do_orm_execute`` listener adding the standing filters to every ORM
  SELECT: soft-deleted rows are hidden and, when a non-host tenant is active,
  rows of other tenants are hidden too. Both filters only apply to
  :class:`~voxbox.models.TenantScoped` entities and may be bypassed per
  statement with the ``include_deleted`` and ``all_tenants`` execution
  options;
- a ``before_flush`` listener stamping audit columns on new and modified
  entities and turning pending deletes into soft deletes.

Repositories stage changes on the session; nothing reaches the database until
:meth:`PersistenceContext.save` commits them in a single transaction.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, TypeVar

from sqlalchemy import Select, event, false, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import ORMExecuteState, Session, UOWTransaction, with_loader_criteria

from voxbox.core.tenant_context import TenantContext
from voxbox.models import AuditedEntity, Base, Tenant, TenantScoped, User, utcnow

from .errors import ConstraintViolationError, StorageError
from .repository import Repository

__all__ = [
    "ALL_TENANTS",
    "INCLUDE_DELETED",
    "PersistenceContext",
]

logger = logging.getLogger(__name__)

INCLUDE_DELETED = "include_deleted"
ALL_TENANTS = "all_tenants"

EntityT = TypeVar("EntityT", bound=AuditedEntity)


def _tenant_scoped_models() -> list[type[Any]]:
    """Return the mapped classes that carry the ``TenantScoped`` marker."""

    return [
        mapper.class_
        for mapper in Base.registry.mappers
        if issubclass(mapper.class_, TenantScoped)
    ]


class PersistenceContext:
    """Entity access, standing filters and audit stamping for one request.

    Args:
        session: Session owned by this context. It must not be shared with
            another context or used concurrently.
        tenant_context: Tenant of the request being served.
        actor_id: Identifier of the authenticated user, stamped into
            ``created_by``/``modified_by``/``deleted_by``. ``None`` when no
            authentication layer supplies one.
    """

    def __init__(
        self,
        session: Session,
        tenant_context: TenantContext,
        *,
        actor_id: uuid.UUID | None = None,
    ) -> None:
        self._session = session
        self._tenant_context = tenant_context
        self._actor_id = actor_id
        self._repositories: dict[type[Any], Repository[Any]] = {}
        self._closed = False

        event.listen(session, "do_orm_execute", self._apply_standing_filters)
        event.listen(session, "before_flush", self._stamp_audit_fields)

    # Properties ---------------------------------------------------------------
    @property
    def session(self) -> Session:
        return self._session

    @property
    def tenant_context(self) -> TenantContext:
        return self._tenant_context

    @property
    def actor_id(self) -> uuid.UUID | None:
        return self._actor_id

    @property
    def tenants(self) -> Repository[Tenant]:
        return self.repository(Tenant)

    @property
    def users(self) -> Repository[User]:
        return self.repository(User)

    # Entity access --------------------------------------------------------------
    def repository(self, model: type[EntityT]) -> Repository[EntityT]:
        """Return the repository for ``model``, creating it on first use."""

        repo = self._repositories.get(model)
        if repo is None:
            repo = Repository(self, model)
            self._repositories[model] = repo
        return repo

    def select(
        self,
        model: type[EntityT],
        *,
        include_deleted: bool = False,
        all_tenants: bool = False,
    ) -> Select[tuple[EntityT]]:
        """Return a SELECT over ``model`` with the requested filter bypasses."""

        stmt = select(model)
        options: dict[str, bool] = {}
        if include_deleted:
            options[INCLUDE_DELETED] = True
        if all_tenants:
            options[ALL_TENANTS] = True
        if options:
            stmt = stmt.execution_options(**options)
        return stmt

    # Unit of work ---------------------------------------------------------------
    def save(self) -> None:
        """Flush and commit every staged change in one transaction.

        Raises:
            ConstraintViolationError: the database rejected a row.
            StorageError: any other database failure. Nothing staged is
                applied when an error is raised.
        """

        try:
            self._session.commit()
        except IntegrityError as exc:
            self._session.rollback()
            logger.warning("Constraint violation while saving changes: %s", exc.orig)
            raise ConstraintViolationError(str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.exception("Failed to save changes.")
            raise StorageError(str(exc)) from exc

    def rollback(self) -> None:
        self._session.rollback()

    def close(self) -> None:
        """Detach the session hooks and close the session. Safe to call twice."""

        if self._closed:
            return
        self._closed = True
        event.remove(self._session, "do_orm_execute", self._apply_standing_filters)
        event.remove(self._session, "before_flush", self._stamp_audit_fields)
        self._repositories.clear()
        self._session.close()

    def __enter__(self) -> PersistenceContext:
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        if exc_type is not None:
            self._session.rollback()
        self.close()

    # Session hooks --------------------------------------------------------------
    def _apply_standing_filters(self, state: ORMExecuteState) -> None:
        if not state.is_select or state.is_column_load or state.is_relationship_load:
            return

        options = state.execution_options
        models = _tenant_scoped_models()
        if not options.get(INCLUDE_DELETED, False):
            state.statement = state.statement.options(
                *(
                    with_loader_criteria(
                        model,
                        lambda cls: cls.is_deleted == false(),
                        include_aliases=True,
                    )
                    for model in models
                )
            )

        tenant_id = self._tenant_context.tenant_id
        if (
            tenant_id is None
            or self._tenant_context.is_host
            or options.get(ALL_TENANTS, False)
        ):
            return
        state.statement = state.statement.options(
            *(
                with_loader_criteria(
                    model,
                    lambda cls: cls.tenant_id == tenant_id,
                    include_aliases=True,
                )
                for model in models
            )
        )

    def _stamp_audit_fields(
        self, session: Session, _flush_context: UOWTransaction, _instances: object
    ) -> None:
        now = utcnow()
        soft_deleted: set[int] = set()

        for entity in list(session.deleted):
            if not isinstance(entity, AuditedEntity):
                continue
            # re-adding reverts the pending DELETE; the row is updated instead
            session.add(entity)
            entity.is_deleted = True
            entity.deleted_at = now
            entity.deleted_by = self._actor_id
            soft_deleted.add(id(entity))
            logger.debug("Soft-deleting %s %s", type(entity).__name__, entity.id)

        for entity in session.new:
            if not isinstance(entity, AuditedEntity):
                continue
            entity.created_at = now
            entity.created_by = self._actor_id
            if isinstance(entity, TenantScoped):
                entity.tenant_id = self._tenant_context.tenant_id

        for entity in session.dirty:
            if not isinstance(entity, AuditedEntity) or id(entity) in soft_deleted:
                continue
            if not session.is_modified(entity):
                continue
            entity.updated_at = now
            entity.modified_by = self._actor_id
