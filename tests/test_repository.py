"""Repository CRUD semantics."""

from __future__ import annotations

import uuid

import pytest

from voxbox.core.ids import new_id
from voxbox.models import User
from voxbox.persistence import EntityNotFoundError


def _add_user(world, tenancy_name: str, user_name: str) -> User:
    with world.context(tenancy_name) as context:
        user = context.users.add(User(user_name=user_name))
        context.save()
        return user


def test_add_assigns_time_ordered_id(world):
    context = world.context("tenant1")
    first = context.users.add(User(user_name="first"))
    second = context.users.add(User(user_name="second"))
    context.save()

    assert first.id.version == 7
    assert first.id != second.id
    assert {user.user_name for user in context.users.get_all()} == {"first", "second"}


def test_get_by_id_returns_none_for_unknown_id(world):
    assert world.context("tenant1").users.get_by_id(new_id()) is None


def test_get_all_is_empty_without_rows(world):
    assert world.context("tenant1").users.get_all() == []


def test_update_of_never_saved_entity_raises(world):
    context = world.context("tenant1")

    with pytest.raises(EntityNotFoundError) as excinfo:
        context.users.update(User(user_name="ghost"))

    assert "User with ID" in str(excinfo.value)
    assert "not found" in str(excinfo.value)


def test_update_of_other_tenants_entity_raises(world):
    carol = _add_user(world, "tenant2", "carol")

    context = world.context("tenant1")
    carol.name = "Carol"

    with pytest.raises(EntityNotFoundError):
        context.users.update(carol)


def test_update_of_detached_entity_is_merged(world):
    dave = _add_user(world, "tenant1", "dave")
    dave.name = "Dave"

    with world.context("tenant1") as context:
        context.users.update(dave)
        context.save()

    stored = world.context("tenant1").users.get_by_id(dave.id)
    assert stored.name == "Dave"
    assert stored.updated_at is not None


def test_update_of_entity_loaded_by_another_context_is_saved(world):
    zed = _add_user(world, "tenant1", "zed")
    loaded = world.context("tenant1").users.get_by_id(zed.id)
    loaded.name = "Zed"
    actor = uuid.uuid4()

    with world.context("tenant1", actor_id=actor) as writer:
        writer.users.update(loaded)
        writer.save()

    stored = world.context("tenant1").users.get_by_id(zed.id)
    assert stored.name == "Zed"
    assert stored.updated_at is not None
    assert stored.modified_by == actor


def test_update_of_entity_added_in_same_unit_of_work(world):
    with world.context("tenant1") as context:
        user = context.users.add(User(user_name="yara"))
        user.name = "Yara"
        context.users.update(user)
        context.save()

    stored = world.context("tenant1").users.get_by_id(user.id)
    assert stored.name == "Yara"
    assert stored.tenant_id == world.tenant_ids["tenant1"]


def test_update_of_soft_deleted_entity_raises(world):
    erin = _add_user(world, "tenant1", "erin")
    with world.context("tenant1") as context:
        context.users.delete(erin.id)
        context.save()

    context = world.context("tenant1")
    deleted = context.users.get_by_id(erin.id, include_deleted=True)
    deleted.name = "Erin"

    with pytest.raises(EntityNotFoundError):
        context.users.update(deleted)


def test_delete_is_idempotent(world):
    frank = _add_user(world, "tenant1", "frank")

    with world.context("tenant1") as context:
        context.users.delete(frank.id)
        context.save()
    first = world.context("tenant1").users.get_by_id(frank.id, include_deleted=True)

    with world.context("tenant1", actor_id=uuid.uuid4()) as context:
        context.users.delete(frank.id)
        context.save()
    second = world.context("tenant1").users.get_by_id(frank.id, include_deleted=True)

    assert second.is_deleted is True
    assert second.deleted_at == first.deleted_at
    assert second.deleted_by is None


def test_delete_of_missing_entity_is_a_no_op(world):
    with world.context("tenant1") as context:
        context.users.delete(new_id())
        context.save()


def test_delete_cannot_reach_other_tenants_rows(world):
    carol = _add_user(world, "tenant2", "carol")

    with world.context("tenant1") as context:
        context.users.delete(carol.id)
        context.save()

    assert world.context("tenant2").users.get_by_id(carol.id) is not None


def test_host_may_delete_any_tenants_rows(world):
    carol = _add_user(world, "tenant2", "carol")

    with world.context("host") as context:
        context.users.delete(carol.id)
        context.save()

    assert world.context("tenant2").users.get_by_id(carol.id) is None
