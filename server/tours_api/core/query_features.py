"""Translate request query parameters into filter, sort, projection and pagination on a select."""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple, Union
from uuid import UUID

from sqlalchemy import JSON, Select, inspect
from sqlalchemy.orm import lazyload, load_only

from .config import settings
from .exceptions import ValidationError

logger = logging.getLogger(__name__)

RESERVED_PARAMS = frozenset({"page", "sort", "limit", "fields"})

# Bracket operators accepted in ``field[op]=value`` keys
COMPARISON_OPERATORS = {
    "gte": lambda column, value: column >= value,
    "gt": lambda column, value: column > value,
    "lte": lambda column, value: column <= value,
    "lt": lambda column, value: column < value,
}

# Integer values and OFFSET must fit a signed 64-bit database integer
MIN_DB_INT = -(2**63)
MAX_DB_INT = 2**63 - 1

_PARAM_KEY = re.compile(r"^(?P<field>[A-Za-z_][A-Za-z0-9_]*)(?:\[(?P<op>[^\]]*)\])?$")

QueryParams = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


@dataclass(frozen=True)
class FilterCondition:
    """A single predicate: field, operator ('eq' or a comparison) and coerced value."""

    field: str
    operator: str
    value: Any


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class Projection:
    """Fields to include, or to exclude when ``exclude`` is set."""

    fields: Tuple[str, ...] = ()
    exclude: bool = True


@dataclass(frozen=True)
class QueryDirectives:
    """Filter, sort, projection and pagination derived from one request."""

    filters: Tuple[FilterCondition, ...] = ()
    sort: Tuple[SortKey, ...] = ()
    projection: Projection = field(default_factory=Projection)
    page: int = 1
    limit: int = 100

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


class QueryFieldRegistry:
    """
    Public (camelCase) field names of a model and the attributes behind them.

    Args:
        model: Mapped class the names resolve against
        fields: Public name to attribute name mapping
        hidden: Public names left out of the default projection
        default_sort: Sort applied when the request names none
    """

    def __init__(
        self,
        model: type,
        fields: Mapping[str, str],
        hidden: Sequence[str] = (),
        default_sort: Sequence[SortKey] = (),
    ):
        self.model = model
        self.fields = dict(fields)
        self.hidden = tuple(hidden)
        self.default_sort = tuple(default_sort)

        mapper = inspect(model)
        self._columns = {
            public: mapper.columns[attr]
            for public, attr in self.fields.items()
            if attr in mapper.columns
        }
        self._relationships = {
            public: attr
            for public, attr in self.fields.items()
            if attr in mapper.relationships
        }
        self._primary_key = tuple(column.key for column in mapper.primary_key)

    def attribute(self, name: str):
        """Return the mapped attribute for a public field name."""
        return getattr(self.model, self.fields[name])

    def is_column(self, name: str) -> bool:
        return name in self._columns

    def is_filterable(self, name: str) -> bool:
        return name in self._columns and not isinstance(self._columns[name].type, JSON)

    def is_relationship(self, name: str) -> bool:
        return name in self._relationships

    def visible_fields(self, projection: Projection) -> Tuple[str, ...]:
        """Resolve a projection to the ordered public field names it returns."""
        always = [name for name, attr in self.fields.items() if attr in self._primary_key]
        if projection.exclude:
            excluded = set(projection.fields) - set(always)
            return tuple(name for name in self.fields if name not in excluded)
        return tuple(always + [name for name in projection.fields if name not in always])

    def coerce(self, name: str, raw: str) -> Any:
        """Convert a raw query-string value to the Python type of the column."""
        try:
            python_type = self._columns[name].type.python_type
        except NotImplementedError:
            return raw

        try:
            if python_type is bool:
                lowered = raw.strip().lower()
                if lowered in ("true", "1", "yes"):
                    return True
                if lowered in ("false", "0", "no"):
                    return False
                raise ValueError(raw)
            if python_type is datetime:
                value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
                if value.tzinfo is not None:
                    value = value.astimezone(timezone.utc).replace(tzinfo=None)
                return value
            if python_type is date:
                return date.fromisoformat(raw)
            if python_type is UUID:
                return UUID(raw)
            if python_type is int:
                value = int(raw)
                if not MIN_DB_INT <= value <= MAX_DB_INT:
                    raise ValueError(raw)
                return value
            if python_type is float:
                value = float(raw)
                if not math.isfinite(value):
                    raise ValueError(raw)
                return value
            return raw
        except ValueError:
            raise ValidationError(
                detail=f"Invalid value '{raw}' for field '{name}'",
                violations=[{"path": name, "message": f"Expected {python_type.__name__}"}],
            )


def query_pairs(params: QueryParams) -> list:
    """Flatten a query mapping or multi-dict into (key, value) pairs."""
    if hasattr(params, "multi_items"):
        return list(params.multi_items())
    if isinstance(params, Mapping):
        return list(params.items())
    return list(params)


def _split_list(value: str) -> list:
    return [part.strip() for part in value.split(",") if part.strip()]


def _positive_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value < 1:
        raise ValidationError(
            detail=f"Query parameter '{name}' must be a positive integer",
            violations=[{"path": name, "message": "Must be an integer >= 1"}],
        )
    return value


def parse_filters(pairs: Sequence[Tuple[str, str]], registry: QueryFieldRegistry) -> Tuple[FilterCondition, ...]:
    """Build filter conditions from every non-reserved parameter."""
    conditions = []
    for key, raw in pairs:
        if key in RESERVED_PARAMS:
            continue
        match = _PARAM_KEY.match(key)
        if not match:
            raise ValidationError(detail=f"Malformed query parameter '{key}'")
        name, operator = match.group("field"), match.group("op")
        if not registry.is_filterable(name):
            raise ValidationError(detail=f"Cannot filter on unknown field '{name}'")
        if operator is None:
            operator = "eq"
        elif operator not in COMPARISON_OPERATORS:
            raise ValidationError(
                detail=f"Unsupported filter operator '{operator}'",
                violations=[{
                    "path": key,
                    "message": f"Operator must be one of: {', '.join(COMPARISON_OPERATORS)}",
                }],
            )
        conditions.append(FilterCondition(name, operator, registry.coerce(name, raw)))
    return tuple(conditions)


def parse_sort(raw: Optional[str], registry: QueryFieldRegistry) -> Tuple[SortKey, ...]:
    if not raw or not _split_list(raw):
        return registry.default_sort
    keys = []
    for part in _split_list(raw):
        descending = part.startswith("-")
        name = part[1:] if descending else part
        if not registry.is_filterable(name):
            raise ValidationError(detail=f"Cannot sort on unknown field '{name}'")
        keys.append(SortKey(name, descending))
    return tuple(keys)


def parse_projection(raw: Optional[str], registry: QueryFieldRegistry) -> Projection:
    if not raw or not _split_list(raw):
        return Projection(fields=registry.hidden, exclude=True)
    parts = _split_list(raw)
    excluded = [part.startswith("-") for part in parts]
    if any(excluded) and not all(excluded):
        raise ValidationError(detail="Cannot mix field inclusion and exclusion in 'fields'")
    names = tuple(dict.fromkeys(part[1:] if part.startswith("-") else part for part in parts))
    unknown = [name for name in names if name not in registry.fields]
    if unknown:
        raise ValidationError(detail=f"Unknown field(s) in projection: {', '.join(unknown)}")
    if all(excluded):
        return Projection(fields=tuple(dict.fromkeys(registry.hidden + names)), exclude=True)
    return Projection(fields=names, exclude=False)


def parse_query_params(
    params: QueryParams,
    registry: QueryFieldRegistry,
    max_limit: Optional[int] = None,
    default_limit: Optional[int] = None,
) -> QueryDirectives:
    """
    Turn request query parameters into a QueryDirectives value.

    ``page`` and ``limit`` must be positive integers; a ``limit`` above
    ``max_limit`` is clamped to it.
    """
    max_limit = max_limit or settings.max_page_size
    default_limit = default_limit or settings.default_page_size

    pairs = query_pairs(params)
    # Control parameters: the last occurrence wins
    controls = {key: value for key, value in pairs if key in RESERVED_PARAMS}

    page = _positive_int("page", controls["page"]) if "page" in controls else 1
    limit = _positive_int("limit", controls["limit"]) if "limit" in controls else default_limit
    if limit > max_limit:
        logger.debug("Clamping page size", extra={"requested": limit, "max_limit": max_limit})
        limit = max_limit
    # OFFSET must fit a 64-bit integer; any page that far out is empty
    page = min(page, MAX_DB_INT // limit + 1)

    return QueryDirectives(
        filters=parse_filters(pairs, registry),
        sort=parse_sort(controls.get("sort"), registry),
        projection=parse_projection(controls.get("fields"), registry),
        page=page,
        limit=limit,
    )


class QueryFeatures:
    """
    Apply QueryDirectives to a SQLAlchemy select, one chainable step at a time.

    Usage::

        features = (
            QueryFeatures(select(Tour), directives, registry)
            .filter()
            .sort()
            .limit_fields()
            .paginate()
        )
        result = await db.execute(features.statement)
    """

    def __init__(self, statement: Select, directives: QueryDirectives, registry: QueryFieldRegistry):
        self.statement = statement
        self.directives = directives
        self.registry = registry

    def filter(self) -> "QueryFeatures":
        for condition in self.directives.filters:
            column = self.registry.attribute(condition.field)
            if condition.operator == "eq":
                clause = column == condition.value
            else:
                clause = COMPARISON_OPERATORS[condition.operator](column, condition.value)
            self.statement = self.statement.where(clause)
        return self

    def sort(self) -> "QueryFeatures":
        order_by = []
        for key in self.directives.sort:
            column = self.registry.attribute(key.field)
            order_by.append(column.desc() if key.descending else column.asc())
        # Primary key tie-breaker keeps pages stable
        order_by.extend(column.asc() for column in inspect(self.registry.model).primary_key)
        self.statement = self.statement.order_by(*order_by)
        return self

    def limit_fields(self) -> "QueryFeatures":
        visible = self.registry.visible_fields(self.directives.projection)
        columns = [
            self.registry.attribute(name) for name in visible if self.registry.is_column(name)
        ]
        options = [load_only(*columns)] if columns else []
        options.extend(
            lazyload(self.registry.attribute(name))
            for name in self.registry.fields
            if self.registry.is_relationship(name) and name not in visible
        )
        if options:
            self.statement = self.statement.options(*options)
        return self

    def paginate(self) -> "QueryFeatures":
        self.statement = self.statement.offset(self.directives.skip).limit(self.directives.limit)
        return self
