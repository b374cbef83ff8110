"""
Read-path statement assembly: projection, WHERE, ORDER BY and paging for
SELECT / COUNT / search queries.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence

from secure_access import config
from secure_access.errors import DenialKind, PolicyDenial, ValidationError
from secure_access.filters import compile_filters, is_identifier
from secure_access.models import (
    CompiledConditions,
    CompiledQuery,
    Columns,
    Pagination,
    PaginationLimits,
    ReadRequest,
)
from secure_access.permissions import PolicyStore

_RAW_STRIP_RE = re.compile(r"[;\-?]")
_DIRECTIONS = {"ASC", "DESC"}


@dataclass(frozen=True)
class SelectPlan:
    query: CompiledQuery
    count_query: CompiledQuery
    pagination: Pagination


# ── Pagination ───────────────────────────────────────────────────────

def parse_int(value: Any) -> Optional[int]:
    """Lenient integer parsing for query-string values; junk reads as absent."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    try:
        return int(str(value).strip())
    except (ValueError, OverflowError):
        return None


def _clamp(value: int, low: int, high: int) -> int:
    return min(max(value, low), high)


def resolve_pagination(limits: PaginationLimits, limit=None, offset=None, page=None) -> Pagination:
    """Clamp the requested window to the role's ceilings.

    ``page`` wins over ``offset``: it is turned into an offset using the
    already-clamped limit, and that offset is clamped again.
    """
    requested_limit = parse_int(limit)
    effective_limit = _clamp(
        limits.default_limit if requested_limit is None else requested_limit,
        1, limits.max_limit,
    )

    requested_offset = parse_int(offset)
    effective_offset = _clamp(requested_offset or 0, 0, limits.max_offset)

    requested_page = parse_int(page)
    effective_page = None
    if requested_page is not None:
        effective_page = max(requested_page, 1)
        effective_offset = _clamp((effective_page - 1) * effective_limit, 0, limits.max_offset)

    return Pagination(limit=effective_limit, offset=effective_offset, page=effective_page)


# ── Projection / ordering ────────────────────────────────────────────

def _split_columns(select: Any) -> List[str]:
    if isinstance(select, str):
        return [c.strip() for c in select.split(",") if c.strip()]
    if isinstance(select, (list, tuple)):
        return [c.strip() for c in select if isinstance(c, str) and c.strip()]
    return []


def resolve_projection(columns: Columns, select: Any = None) -> List[str]:
    """Return the column list to project, ``["*"]`` standing for every column.

    An explicit request is intersected with the role's columns; an empty
    intersection is a denial, never a silent ``SELECT *``.
    """
    requested = _split_columns(select)
    if requested:
        valid = [c for c in requested if is_identifier(c) and columns.allows(c)]
        if not valid:
            raise PolicyDenial(DenialKind.COLUMN_DENIED, "No valid columns specified for this role")
        return list(dict.fromkeys(valid))

    if columns.is_wildcard:
        return ["*"]
    if not columns:
        raise PolicyDenial(DenialKind.COLUMN_DENIED, "No valid columns specified for this role")
    return sorted(columns.names)


def resolve_order(order: Any, columns: Columns) -> Optional[str]:
    """Validate ``"col [ASC|DESC], ..."`` against the role's columns.

    Terms naming an invisible column or carrying anything but a bare
    direction are dropped.
    """
    if not isinstance(order, str) or not order.strip():
        return None

    terms = []
    for term in order.split(","):
        parts = term.split()
        if not parts or len(parts) > 2:
            continue
        column = parts[0]
        direction = parts[1].upper() if len(parts) == 2 else "ASC"
        if direction not in _DIRECTIONS:
            continue
        if not is_identifier(column) or not columns.allows(column):
            continue
        terms.append(f"{column} {direction}")
    return ", ".join(terms) or None


def sanitize_raw_fragment(fragment: str) -> str:
    """Legacy clean-up for raw WHERE strings. Not a substitute for binding."""
    return _RAW_STRIP_RE.sub("", fragment).strip()


# ── WHERE ────────────────────────────────────────────────────────────

def build_where(
    role: str,
    policy: PolicyStore,
    columns: Columns,
    filters=None,
    raw_where: Optional[str] = None,
    allow_raw_where: Optional[bool] = None,
) -> CompiledConditions:
    if allow_raw_where is None:
        allow_raw_where = config.ALLOW_RAW_WHERE

    where = CompiledConditions()
    if raw_where:
        if not allow_raw_where:
            raise ValidationError(
                DenialKind.INVALID_FILTER,
                "Raw where clauses are not supported; use structured filters",
            )
        cleaned = sanitize_raw_fragment(str(raw_where))
        if cleaned:
            where.conditions.append(cleaned)

    compiled = compile_filters(filters, role, policy, columns)
    where.conditions.extend(compiled.conditions)
    where.values.extend(compiled.values)
    return where


def _where_sql(where: CompiledConditions) -> str:
    if not where.conditions:
        return ""
    return " WHERE " + " AND ".join(where.conditions)


# ── Statements ───────────────────────────────────────────────────────

def build_count_query(table: str, where: CompiledConditions) -> CompiledQuery:
    return CompiledQuery(
        sql=f"SELECT COUNT(*) AS total FROM {table}{_where_sql(where)}",
        values=tuple(where.values),
    )


def build_select_query(
    request: ReadRequest,
    policy: PolicyStore,
    allow_raw_where: Optional[bool] = None,
) -> SelectPlan:
    """Assemble the SELECT (and its COUNT twin) for an already-guarded request."""
    columns = policy.get_allowed_columns(request.role, request.table)
    projection = resolve_projection(columns, request.select)
    where = build_where(request.role, policy, columns, request.filters, request.where, allow_raw_where)
    pagination = resolve_pagination(
        policy.get_pagination_limits(request.role),
        limit=request.limit, offset=request.offset, page=request.page,
    )

    sql = f"SELECT {', '.join(projection)} FROM {request.table}{_where_sql(where)}"
    order_by = resolve_order(request.order, columns)
    if order_by:
        sql += f" ORDER BY {order_by}"
    # Literal integers: both are server-computed after clamping.
    sql += f" LIMIT {int(pagination.limit)} OFFSET {int(pagination.offset)}"

    return SelectPlan(
        query=CompiledQuery(sql=sql, values=tuple(where.values)),
        count_query=build_count_query(request.table, where),
        pagination=pagination,
    )


def build_search_query(
    table: str,
    columns: Columns,
    term: str,
    limit: int,
    search_columns: Sequence[str] = (),
) -> Optional[CompiledQuery]:
    """``col LIKE ? OR ...`` over the searchable columns the role can see.

    Returns None when none of the candidate columns is visible, so the
    caller skips the table instead of returning it unfiltered.
    """
    candidates: Iterable[str] = search_columns or config.DEFAULT_SEARCH_COLUMNS
    searchable = [c for c in dict.fromkeys(candidates) if is_identifier(c) and columns.allows(c)]
    if not searchable:
        return None

    projection = "*" if columns.is_wildcard else ", ".join(sorted(columns.names))
    conditions = " OR ".join(f"{c} LIKE ?" for c in searchable)
    return CompiledQuery(
        sql=f"SELECT {projection} FROM {table} WHERE ({conditions}) LIMIT {int(limit)}",
        values=tuple(f"%{term}%" for _ in searchable),
    )


def build_conditions_query(
    table: str,
    columns: Columns,
    where: CompiledConditions,
    limit: int,
) -> CompiledQuery:
    """SELECT the role's columns under already-compiled conditions."""
    projection = resolve_projection(columns)
    return CompiledQuery(
        sql=f"SELECT {', '.join(projection)} FROM {table}{_where_sql(where)} LIMIT {int(limit)}",
        values=tuple(where.values),
    )


def build_lookup_by_id(table: str, columns: Columns, record_id: Any) -> CompiledQuery:
    """Re-read one row by primary key with a case-exact id comparison."""
    projection = resolve_projection(columns)
    return CompiledQuery(
        sql=f"SELECT {', '.join(projection)} FROM {table} WHERE BINARY id = BINARY ?",
        values=(record_id,),
    )
