"""
Query Builder

Translates an untyped query-parameter mapping into a parameterized
WHERE / ORDER BY / LIMIT clause, and assembles the CRUD statements for a
record descriptor.

Table and column names only ever come from descriptors. Every value that
arrives from outside is passed as an asyncpg positional parameter
($1, $2, ...) and never interpolated.

Query-string grammar:
    key    := field ( "_ne" | "_lt" | "_gt" | "_lte" | "_gte" | "_contains" | "_anyOf" )?
    sortBy := ["-"] field
    limit, offset := decimal integer (ASCII digits, within the int64 range)

Filter values are first coerced to int, float or str on their own, then
shaped for the field they filter (see bind_value) so that the driver encodes
them for the column's type.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from functools import lru_cache
from typing import Any, List, Mapping, Optional, Tuple

from pydantic import EmailStr, TypeAdapter, ValidationError

from errors import InvalidPagination, InvalidQueryParameter, InvalidQueryValue

from .descriptor import Descriptor

logger = logging.getLogger(__name__)

RESERVED_KEYS = frozenset({"sortBy", "limit", "offset"})

# Suffix -> SQL operator. IN and LIKE get special value handling.
OPERATOR_SUFFIXES = {
    "_ne": "!=",
    "_lt": "<",
    "_gt": ">",
    "_lte": "<=",
    "_gte": ">=",
    "_contains": "LIKE",
    "_anyOf": "IN",
}

DEFAULT_LIMIT = 10
DEFAULT_OFFSET = 0

_INT_RE = re.compile(r"[+-]?\d+", re.ASCII)
_FLOAT_RE = re.compile(r"[+-]?(\d+\.?\d*([eE][+-]?\d+)?|\.\d+([eE][+-]?\d+)?)", re.ASCII)

# LIMIT and OFFSET are bound as bigint
_MAX_INT64 = 2 ** 63 - 1

_TEXT_TYPES = (str, EmailStr)


def coerce_value(value: str) -> Any:
    """Bind value for a raw query string: int, else float, else the string itself."""
    if _INT_RE.fullmatch(value):
        return int(value)
    if _FLOAT_RE.fullmatch(value):
        return float(value)
    return value


def _base_type(annotation: Any) -> Any:
    """Optional[X] (or X | None) -> X"""
    args = getattr(annotation, "__args__", ())
    if type(None) in args:
        rest = [a for a in args if a is not type(None)]
        if len(rest) == 1:
            return rest[0]
    return annotation


@lru_cache(maxsize=None)
def _adapter(target: Any) -> TypeAdapter:
    return TypeAdapter(target)


def bind_value(field_name: str, raw: str, annotation: Any = None) -> Tuple[Any, str]:
    """
    Final bind value for one raw filter value.

    Returns (value, cast) where cast is appended to the placeholder. Without
    an annotation the coerced value is bound as is. Otherwise:
        text fields     -> the raw string, even if it looks numeric
        int fields      -> int; a fractional number compares as numeric
        float fields    -> float
        anything else   -> parsed from the raw string by pydantic
                           (datetimes from ISO 8601; a UTC offset is dropped,
                           as PostgreSQL does for TIMESTAMP input)

    Raises:
        InvalidQueryValue: raw cannot be read as the field's type
    """
    value = coerce_value(raw)
    target = _base_type(annotation)
    if target is None:
        return value, ""
    if target in _TEXT_TYPES:
        return raw, ""
    if target is int and isinstance(value, float):
        return Decimal(raw), "::numeric"
    if target in (int, float) and isinstance(value, (int, float)):
        return target(value), ""

    try:
        result = _adapter(target).validate_python(raw)
    except ValidationError as e:
        raise InvalidQueryValue(field_name, raw) from e
    if isinstance(result, datetime) and result.tzinfo is not None:
        result = result.replace(tzinfo=None)
    return result, ""


def parse_operator(key: str) -> Tuple[str, str]:
    """Split a query key into (field name, SQL operator)."""
    for suffix, operator in OPERATOR_SUFFIXES.items():
        if key.endswith(suffix):
            return key[: -len(suffix)], operator
    return key, "="


def _resolve(field_name: str, external_to_column: Mapping[str, str]) -> str:
    column = external_to_column.get(field_name)
    if not column:
        raise InvalidQueryParameter(field_name)
    return column


def _parse_pagination_value(query_params: Mapping[str, str], name: str, default: int) -> int:
    raw = query_params.get(name)
    if raw is None:
        return default
    if not _INT_RE.fullmatch(raw):
        raise InvalidPagination(name, raw)
    value = int(raw)
    if value < 0 or value > _MAX_INT64:
        raise InvalidPagination(name, raw)
    return value


@dataclass
class QueryPlan:
    """WHERE / ORDER BY / LIMIT fragments for one query, with their bind values."""
    where_parts: List[str] = field(default_factory=list)
    filter_params: List[Any] = field(default_factory=list)
    order_clause: str = ""
    limit: int = DEFAULT_LIMIT
    offset: int = DEFAULT_OFFSET

    @property
    def where_clause(self) -> str:
        if not self.where_parts:
            return ""
        return "WHERE " + " AND ".join(self.where_parts)

    @property
    def pagination_clause(self) -> str:
        # Continues the placeholder numbering after the last filter value
        n = len(self.filter_params)
        return f"LIMIT ${n + 1} OFFSET ${n + 2}"

    @property
    def params(self) -> List[Any]:
        return [*self.filter_params, self.limit, self.offset]

    def render(self) -> str:
        parts = [self.where_clause, self.order_clause, self.pagination_clause]
        return " ".join(p for p in parts if p)


class QueryBuilder:
    """Builds parameterized SQL for records described by a Descriptor."""

    # ------------------------------------------------------------------
    # Clauses
    # ------------------------------------------------------------------

    def _build_filter(
        self,
        key: str,
        value: str,
        external_to_column: Mapping[str, str],
        field_types: Mapping[str, Any],
        params: list,
    ) -> str:
        """Build one WHERE fragment, appending its bind values to params."""
        field_name, operator = parse_operator(key)
        column = _resolve(field_name, external_to_column)
        annotation = field_types.get(field_name)

        if operator == "IN":
            placeholders = []
            for item in value.split(","):
                bound, cast = bind_value(field_name, item, annotation)
                params.append(bound)
                placeholders.append(f"${len(params)}{cast}")
            return f"{column} IN ({','.join(placeholders)})"

        if operator == "LIKE":
            params.append(f"%{value}%")
            return f"{column} LIKE ${len(params)}"

        bound, cast = bind_value(field_name, value, annotation)
        params.append(bound)
        return f"{column} {operator} ${len(params)}{cast}"

    def _build_order(
        self,
        query_params: Mapping[str, str],
        external_to_column: Mapping[str, str],
        default_sort_column: str,
    ) -> str:
        sort = query_params.get("sortBy", "")
        direction = "ASC"
        if sort.startswith("-"):
            direction = "DESC"
            sort = sort[1:]
        if not sort:
            return f"ORDER BY {default_sort_column} {direction}"
        return f"ORDER BY {_resolve(sort, external_to_column)} {direction}"

    def build_clauses(
        self,
        query_params: Optional[Mapping[str, str]],
        external_to_column: Mapping[str, str],
        default_sort_column: str = "id",
        field_types: Optional[Mapping[str, Any]] = None,
    ) -> QueryPlan:
        """
        Parse query parameters into a QueryPlan.

        field_types maps external names to declared field types; values of
        fields missing from it are bound as coerced.

        Filters are combined with AND in the iteration order of query_params.
        Either the whole plan is built or an error is raised; there is no
        partial result.

        Raises:
            InvalidQueryParameter: a filter or sort key names no known field
            InvalidQueryValue: a filter value cannot be read as its field's type
            InvalidPagination: limit/offset is not a non-negative integer
        """
        query_params = query_params or {}
        field_types = field_types or {}
        where_parts: List[str] = []
        params: List[Any] = []

        for key, value in query_params.items():
            if key in RESERVED_KEYS:
                continue
            where_parts.append(self._build_filter(key, value, external_to_column, field_types, params))

        order_clause = self._build_order(query_params, external_to_column, default_sort_column)
        limit = _parse_pagination_value(query_params, "limit", DEFAULT_LIMIT)
        offset = _parse_pagination_value(query_params, "offset", DEFAULT_OFFSET)

        return QueryPlan(
            where_parts=where_parts,
            filter_params=params,
            order_clause=order_clause,
            limit=limit,
            offset=offset,
        )

    def build_plan(self, descriptor: Descriptor, query_params: Optional[Mapping[str, str]]) -> QueryPlan:
        return self.build_clauses(
            query_params,
            descriptor.external_to_column,
            descriptor.id_column,
            descriptor.external_to_annotation,
        )

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def build_insert(self, descriptor: Descriptor) -> str:
        columns = descriptor.columns(exclude_read_only=True)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        return (
            f"INSERT INTO {descriptor.table_name} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) RETURNING {descriptor.id_column}"
        )

    def build_update(self, descriptor: Descriptor) -> str:
        columns = descriptor.columns(exclude_read_only=True)
        assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(columns, start=1))
        return (
            f"UPDATE {descriptor.table_name} SET {assignments} "
            f"WHERE {descriptor.id_column} = ${len(columns) + 1}"
        )

    def build_delete(self, descriptor: Descriptor) -> str:
        return f"DELETE FROM {descriptor.table_name} WHERE {descriptor.id_column} = $1"

    def build_select_by_id(self, descriptor: Descriptor) -> str:
        return (
            f"SELECT {', '.join(descriptor.columns())} FROM {descriptor.table_name} "
            f"WHERE {descriptor.id_column} = $1"
        )

    def build_select(
        self,
        descriptor: Descriptor,
        query_params: Optional[Mapping[str, str]] = None,
    ) -> Tuple[str, List[Any], QueryPlan]:
        """
        Build a filtered, sorted, paginated SELECT over every column.
        Returns (sql, params, plan).
        """
        plan = self.build_plan(descriptor, query_params)
        sql = f"SELECT {', '.join(descriptor.columns())} FROM {descriptor.table_name} {plan.render()}"
        logger.debug(f"Built select for {descriptor.table_name}: {sql}")
        return sql, plan.params, plan

    def build_count(
        self,
        descriptor: Descriptor,
        query_params: Optional[Mapping[str, str]] = None,
    ) -> Tuple[str, List[Any]]:
        """
        Build a COUNT query (same filters, no sorting or pagination).
        Returns (sql, params).
        """
        plan = self.build_plan(descriptor, query_params)
        sql = f"SELECT COUNT(*) FROM {descriptor.table_name}"
        if plan.where_clause:
            sql = f"{sql} {plan.where_clause}"
        return sql, list(plan.filter_params)
