"""Field-name driven filtering, sorting and paging."""

from __future__ import annotations

import datetime as dt
import decimal
from dataclasses import dataclass

import pytest
from pydantic import ValidationError

from voxbox.models import User
from voxbox.persistence import (
    FieldKind,
    PagedRequest,
    SortDirection,
    apply_filters,
    apply_sorting,
    paginate,
    query_fields,
    register_query_fields,
)


@dataclass
class Ballot:
    name: str
    is_active: bool
    votes: int
    quorum: decimal.Decimal | None = None
    closes_at: dt.datetime | None = None


register_query_fields(
    Ballot,
    name=FieldKind.STRING,
    is_active=FieldKind.BOOLEAN,
    votes=FieldKind.INTEGER,
    quorum=FieldKind.DECIMAL,
    closes_at=FieldKind.DATETIME,
)


@pytest.fixture
def ballots() -> list[Ballot]:
    return [
        Ballot("Acme budget", True, 3, decimal.Decimal("0.5")),
        Ballot("Board election", False, 10, None),
        Ballot("ACME merger", False, 7, decimal.Decimal("0.75")),
        Ballot("Acme picnic", True, 1, decimal.Decimal("0.25"),
               dt.datetime(2024, 5, 1, 12, tzinfo=dt.timezone.utc)),
    ]


def _names(items) -> list[str]:
    return [item.name for item in items]


def test_filter_combines_clauses(ballots):
    result = apply_filters(ballots, "IsActive:true;Name:acme")

    assert _names(result) == ["Acme budget", "Acme picnic"]


def test_string_filter_is_case_insensitive_containment(ballots):
    assert _names(apply_filters(ballots, "name:MERGER")) == ["ACME merger"]


@pytest.mark.parametrize("field_name", ["IsActive", "isactive", "is_active", "ISACTIVE"])
def test_field_names_are_normalised(ballots, field_name):
    assert len(apply_filters(ballots, f"{field_name}:false")) == 2


def test_typed_filters(ballots):
    assert _names(apply_filters(ballots, "votes:10")) == ["Board election"]
    assert _names(apply_filters(ballots, "quorum:0.75")) == ["ACME merger"]
    assert _names(apply_filters(ballots, "closesat:2024-05-01T12:00:00+00:00")) == [
        "Acme picnic"
    ]


def test_none_values_never_match(ballots):
    assert "Board election" not in _names(apply_filters(ballots, "quorum:0"))


@pytest.mark.parametrize(
    "expression",
    [
        "",
        "   ",
        "unknown:1",
        "IsActive",
        "IsActive:maybe",
        "votes:many",
        "quorum:NaN",
        ";;",
    ],
)
def test_unusable_clauses_are_ignored(ballots, expression):
    assert apply_filters(ballots, expression) == ballots


def test_bad_clause_does_not_block_good_one(ballots):
    result = apply_filters(ballots, "votes:x;IsActive:true")

    assert _names(result) == ["Acme budget", "Acme picnic"]


def test_filter_on_empty_sequence():
    assert apply_filters([], "name:acme") == []


def test_sorting_ascending_and_descending(ballots):
    assert _names(apply_sorting(ballots, "Votes")) == [
        "Acme picnic",
        "Acme budget",
        "ACME merger",
        "Board election",
    ]
    assert _names(apply_sorting(ballots, "votes", SortDirection.DESCENDING)) == [
        "Board election",
        "ACME merger",
        "Acme budget",
        "Acme picnic",
    ]


def test_sorting_puts_none_first_ascending(ballots):
    ordered = apply_sorting(ballots, "quorum")

    assert ordered[0].name == "Board election"
    assert _names(apply_sorting(ballots, "quorum", SortDirection.DESCENDING))[-1] == (
        "Board election"
    )


def test_string_sorting_ignores_case(ballots):
    assert _names(apply_sorting(ballots, "name")) == [
        "Acme budget",
        "ACME merger",
        "Acme picnic",
        "Board election",
    ]


def test_sorting_is_stable(ballots):
    ordered = apply_sorting(ballots, "is_active")

    assert _names(ordered) == ["Board election", "ACME merger", "Acme budget", "Acme picnic"]


@pytest.mark.parametrize("sort_by", [None, "", "nonexistent"])
def test_unknown_sort_field_leaves_order_unchanged(ballots, sort_by):
    assert apply_sorting(ballots, sort_by) == ballots


def test_paginate(ballots):
    request = PagedRequest(
        page_number=2,
        page_size=1,
        sort_by="votes",
        sort_direction=SortDirection.DESCENDING,
        filter="name:acme",
    )

    page = paginate(ballots, request)

    assert page.total_count == 3
    assert page.total_pages == 3
    assert page.page_number == 2
    assert _names(page.items) == ["Acme budget"]
    assert page.model_dump()["total_pages"] == 3


def test_page_beyond_end_is_empty(ballots):
    page = paginate(ballots, PagedRequest(page_number=5, page_size=10))

    assert page.items == []
    assert page.total_count == 4
    assert page.total_pages == 1


def test_paged_request_defaults_and_bounds():
    request = PagedRequest()

    assert request.page_number == 1
    assert request.page_size == 10
    assert request.skip == 0
    assert request.take == 10
    assert PagedRequest(page_number=3, page_size=20).skip == 40

    with pytest.raises(ValidationError):
        PagedRequest(page_number=0)
    with pytest.raises(ValidationError):
        PagedRequest(page_size=101)


def test_mapped_models_register_their_columns():
    fields = query_fields(User)

    assert fields is not None
    assert fields.resolve("UserName").kind is FieldKind.STRING
    assert fields.resolve("IsDeleted").kind is FieldKind.BOOLEAN
    assert fields.resolve("vote_weight").kind is FieldKind.DECIMAL
    assert fields.resolve("TenantId").kind is FieldKind.UUID
    assert fields.resolve("created_at").kind is FieldKind.DATETIME


def test_filters_apply_to_users():
    users = [
        User(user_name="alice", is_active=True, vote_weight=decimal.Decimal("1.5")),
        User(user_name="bob", is_active=False, vote_weight=decimal.Decimal("2")),
    ]

    assert _usernames(apply_filters(users, "IsActive:false")) == ["bob"]
    assert _usernames(apply_sorting(users, "VoteWeight", SortDirection.DESCENDING)) == [
        "bob",
        "alice",
    ]


def _usernames(users) -> list[str]:
    return [user.user_name for user in users]
