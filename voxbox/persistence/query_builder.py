"""Field-name driven filtering, sorting and paging for listing endpoints.

Listing endpoints receive a sort field and a filter expression as plain
strings. Instead of reflecting over arbitrary attributes, each entity type
registers the fields that may be used for this, together with their kind:

    register_query_fields(Ballot, title=FieldKind.STRING, closed=FieldKind.BOOLEAN)

Mapped models can derive the registration from their columns with
:func:`register_model_fields`.

Field names are matched case-insensitively and without underscores, so
``IsActive``, ``isactive`` and ``is_active`` all name the same field.

Lookup failures never raise. An unknown sort field leaves the sequence as it
was; filter clauses naming an unknown field, carrying a value that cannot be
parsed for the field's kind, or lacking the ``:`` separator are skipped.
"""

from __future__ import annotations

import datetime as dt
import decimal
import enum
import logging
import math
import operator
import uuid
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field, computed_field
from sqlalchemy import inspect as sa_inspect

__all__ = [
    "FieldKind",
    "PagedRequest",
    "PagedResponse",
    "QueryField",
    "QueryFields",
    "SortDirection",
    "apply_filters",
    "apply_sorting",
    "paginate",
    "query_fields",
    "register_model_fields",
    "register_query_fields",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FieldKind(str, enum.Enum):
    STRING = "string"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    DECIMAL = "decimal"
    UUID = "uuid"
    DATETIME = "datetime"


class SortDirection(str, enum.Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


def _normalize_name(name: str) -> str:
    return name.strip().replace("_", "").lower()


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value == "true":
        return True
    if value == "false":
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _parse_decimal(raw: str) -> decimal.Decimal:
    try:
        value = decimal.Decimal(raw.strip())
    except decimal.InvalidOperation as exc:
        raise ValueError(f"not a decimal: {raw!r}") from exc
    if not value.is_finite():
        raise ValueError(f"not a finite decimal: {raw!r}")
    return value


def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def _parse_datetime(raw: str) -> dt.datetime:
    return _as_utc(dt.datetime.fromisoformat(raw.strip()))


_PARSERS: dict[FieldKind, Callable[[str], Any]] = {
    FieldKind.BOOLEAN: _parse_bool,
    FieldKind.INTEGER: lambda raw: int(raw.strip()),
    FieldKind.DECIMAL: _parse_decimal,
    FieldKind.UUID: lambda raw: uuid.UUID(raw.strip()),
    FieldKind.DATETIME: _parse_datetime,
}


@dataclass(frozen=True)
class QueryField:
    """A field that may be named in sort and filter expressions."""

    name: str
    kind: FieldKind
    getter: Callable[[Any], Any]

    def parse(self, raw: str) -> Any:
        """Convert ``raw`` to a comparable value, raising ``ValueError`` if it cannot."""

        if self.kind is FieldKind.STRING:
            return raw.lower()
        return _PARSERS[self.kind](raw)

    def matches(self, item: Any, expected: Any) -> bool:
        value = self.getter(item)
        if value is None:
            return False
        if self.kind is FieldKind.STRING:
            return expected in str(value).lower()
        if self.kind is FieldKind.DATETIME:
            return _as_utc(value) == expected
        if self.kind is FieldKind.DECIMAL:
            return decimal.Decimal(value) == expected
        return value == expected


@dataclass
class QueryFields:
    """Registered fields of one type, keyed by normalised name."""

    fields: dict[str, QueryField] = field(default_factory=dict)

    def add(self, name: str, kind: FieldKind, getter: Callable[[Any], Any] | None = None) -> None:
        self.fields[_normalize_name(name)] = QueryField(
            name=name,
            kind=kind,
            getter=getter or operator.attrgetter(name),
        )

    def resolve(self, name: str | None) -> QueryField | None:
        if not name:
            return None
        return self.fields.get(_normalize_name(name))


_REGISTRY: dict[type, QueryFields] = {}


def register_query_fields(cls: type, **kinds: FieldKind) -> QueryFields:
    """Register attribute names of ``cls`` with their kinds.

    Repeated calls extend the existing registration.
    """

    registered = _REGISTRY.setdefault(cls, QueryFields())
    for name, kind in kinds.items():
        registered.add(name, kind)
    return registered


_PYTHON_KINDS: tuple[tuple[type, FieldKind], ...] = (
    (bool, FieldKind.BOOLEAN),
    (int, FieldKind.INTEGER),
    (decimal.Decimal, FieldKind.DECIMAL),
    (float, FieldKind.DECIMAL),
    (uuid.UUID, FieldKind.UUID),
    (dt.datetime, FieldKind.DATETIME),
    (str, FieldKind.STRING),
)


def _kind_for(python_type: type) -> FieldKind | None:
    # bool is checked before int; IntEnum columns map to INTEGER
    for candidate, kind in _PYTHON_KINDS:
        if issubclass(python_type, candidate):
            return kind
    return None


def register_model_fields(model: type) -> QueryFields:
    """Register every column of the mapped ``model`` with a supported type."""

    kinds: dict[str, FieldKind] = {}
    for attr in sa_inspect(model).column_attrs:
        column = attr.columns[0]
        try:
            python_type = column.type.python_type
        except NotImplementedError:
            python_type = getattr(getattr(column.type, "impl", None), "python_type", None)
        if python_type is None:
            continue
        kind = _kind_for(python_type)
        if kind is not None:
            kinds[attr.key] = kind
    return register_query_fields(model, **kinds)


def query_fields(cls: type) -> QueryFields | None:
    """Return the fields registered for ``cls`` or its nearest registered base."""

    for klass in cls.__mro__:
        registered = _REGISTRY.get(klass)
        if registered is not None:
            return registered
    return None


def _resolve(
    items: Sequence[Any], name: str | None, model: type | None
) -> QueryField | None:
    if not name:
        return None
    if model is None:
        if not items:
            return None
        model = type(items[0])
    registered = query_fields(model)
    if registered is None:
        return None
    return registered.resolve(name)


def apply_sorting(
    items: Iterable[T],
    sort_by: str | None,
    direction: SortDirection = SortDirection.ASCENDING,
    *,
    model: type | None = None,
) -> list[T]:
    """Return ``items`` ordered by the field named ``sort_by``.

    String fields compare case-insensitively. ``None`` values sort first in
    ascending order and last in descending order. An empty or unknown
    ``sort_by`` returns the items in their original order.
    """

    items = list(items)
    query_field = _resolve(items, sort_by, model)
    if query_field is None:
        if sort_by:
            logger.debug("Ignoring unknown sort field %r", sort_by)
        return items

    getter = query_field.getter
    fold = query_field.kind is FieldKind.STRING

    def key(item: T) -> tuple[bool, Any]:
        value = getter(item)
        if fold and value is not None:
            value = str(value).casefold()
        return (value is not None, value)

    return sorted(items, key=key, reverse=direction is SortDirection.DESCENDING)


def apply_filters(
    items: Iterable[T], expression: str | None, *, model: type | None = None
) -> list[T]:
    """Return the ``items`` matching every clause of ``expression``.

    ``expression`` is a ``;``-separated list of ``field:value`` clauses. Fields
    are looked up on ``model``, defaulting to the type of the first item.
    """

    items = list(items)
    if not expression or not expression.strip():
        return items

    for clause in expression.split(";"):
        clause = clause.strip()
        if not clause:
            continue
        name, sep, raw = clause.partition(":")
        if not sep:
            logger.debug("Ignoring malformed filter clause %r", clause)
            continue
        query_field = _resolve(items, name, model)
        if query_field is None:
            logger.debug("Ignoring filter on unknown field %r", name.strip())
            continue
        try:
            expected = query_field.parse(raw.strip())
        except ValueError:
            logger.debug("Ignoring unparsable value %r for field %r", raw, query_field.name)
            continue
        items = [item for item in items if query_field.matches(item, expected)]
    return items


class PagedRequest(BaseModel):
    """Paging, sorting and filtering parameters of a listing request."""

    page_number: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=100)
    sort_by: str | None = None
    sort_direction: SortDirection = SortDirection.ASCENDING
    filter: str | None = None

    @property
    def skip(self) -> int:
        return (self.page_number - 1) * self.page_size

    @property
    def take(self) -> int:
        return self.page_size


class PagedResponse(BaseModel, Generic[T]):
    items: list[T]
    page_number: int
    page_size: int
    total_count: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.page_size else 0


def paginate(
    items: Iterable[T], request: PagedRequest, *, model: type | None = None
) -> PagedResponse[T]:
    """Filter, sort and slice ``items`` according to ``request``."""

    selected = apply_filters(items, request.filter, model=model)
    selected = apply_sorting(
        selected, request.sort_by, request.sort_direction, model=model
    )
    page = selected[request.skip : request.skip + request.take]
    return PagedResponse(
        items=page,
        page_number=request.page_number,
        page_size=request.page_size,
        total_count=len(selected),
    )
