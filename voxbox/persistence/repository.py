"""Generic CRUD repository bound to a :class:`PersistenceContext`."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Generic, TypeVar

from sqlalchemy import inspect

from voxbox.models import AuditedEntity, TenantScoped, utcnow

from .errors import EntityNotFoundError

if TYPE_CHECKING:
    from .context import PersistenceContext

__all__ = ["Repository"]

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", bound=AuditedEntity)


class Repository(Generic[EntityT]):
    """CRUD operations for one entity type.

    Reads go through the owning context's standing filters. Writes are only
    staged on the session; call :meth:`PersistenceContext.save` to commit.
    Obtain instances through :meth:`PersistenceContext.repository` rather than
    constructing them directly.
    """

    def __init__(self, context: PersistenceContext, model: type[EntityT]) -> None:
        self._context = context
        self._model = model

    @property
    def model(self) -> type[EntityT]:
        return self._model

    # Reads ----------------------------------------------------------------------
    def get_by_id(
        self,
        entity_id: uuid.UUID,
        include_deleted: bool = False,
        *,
        all_tenants: bool = False,
    ) -> EntityT | None:
        """Return the visible entity with ``entity_id`` or ``None``."""

        stmt = self._context.select(
            self._model, include_deleted=include_deleted, all_tenants=all_tenants
        ).where(self._model.id == entity_id)
        entity = self._context.session.scalars(stmt).one_or_none()
        if entity is None:
            logger.debug("%s %s not found", self._model.__name__, entity_id)
        return entity

    def get_all(
        self, include_deleted: bool = False, *, all_tenants: bool = False
    ) -> list[EntityT]:
        """Return every visible entity, oldest first."""

        stmt = self._context.select(
            self._model, include_deleted=include_deleted, all_tenants=all_tenants
        ).order_by(self._model.id)
        return list(self._context.session.scalars(stmt))

    # Writes ---------------------------------------------------------------------
    def add(self, entity: EntityT) -> EntityT:
        """Stage ``entity`` for insertion and return it."""

        entity.created_at = utcnow()
        if isinstance(entity, TenantScoped):
            entity.tenant_id = self._context.tenant_context.tenant_id
        self._context.session.add(entity)
        return entity

    def update(self, entity: EntityT) -> None:
        """Stage the changes made to ``entity``.

        Entities loaded by another session are merged into this context.
        Entities added earlier in this unit of work are already staged.

        Raises:
            EntityNotFoundError: ``entity`` has never been persisted or is not
                visible to the current tenant.
        """

        state = inspect(entity)
        session = self._context.session
        own_session = state.session_id == session.hash_key
        if own_session and state.pending:
            # staged by add() in this unit of work; stamped as a creation
            return

        with session.no_autoflush:
            visible = state.key is not None and self.get_by_id(entity.id) is not None
        if not visible:
            raise EntityNotFoundError(self._model.__name__, entity.id)
        if not own_session:
            entity = session.merge(entity)

        entity.updated_at = utcnow()
        entity.modified_by = self._context.actor_id

    def delete(self, entity_id: uuid.UUID) -> None:
        """Soft-delete the visible entity with ``entity_id``.

        Entities that are missing, hidden by the standing filters or already
        deleted are left untouched.
        """

        entity = self.get_by_id(entity_id)
        if entity is None or entity.is_deleted:
            return
        self._context.session.delete(entity)
