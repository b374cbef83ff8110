"""
Filter compilation: abstract filter descriptors -> parameterized WHERE
fragments.

Two entry points with deliberately different failure behaviour:

* ``compile_filters`` (read path) drops any descriptor it cannot use and
  keeps going, so a bad filter only ever widens a result the role may
  already see.
* ``compile_equality_conditions`` (write path) raises on the first bad
  column, because silently ignoring part of an UPDATE's WHERE would change
  which rows get written.
"""

import logging
import re
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from secure_access.config import IDENTIFIER_PATTERN
from secure_access.errors import DenialKind, PolicyDenial, ValidationError
from secure_access.models import Columns, CompiledConditions, FilterClass, FilterDescriptor
from secure_access.permissions import PolicyStore

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(IDENTIFIER_PATTERN)
_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

SCALAR_TYPES = (str, int, float, bool)


class Operator(str, Enum):
    # text
    LIKE = "like"
    ILIKE = "ilike"
    NOT_LIKE = "not_like"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    # comparison
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    # ranges
    BETWEEN = "between"
    NOT_BETWEEN = "not_between"
    # arrays
    IN = "in"
    NOT_IN = "not_in"
    # nulls
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    # booleans
    IS_TRUE = "is_true"
    IS_FALSE = "is_false"
    # dates
    DATE_EQUALS = "date_equals"
    DATE_BETWEEN = "date_between"
    DATE_AFTER = "date_after"
    DATE_BEFORE = "date_before"


_CLASS_BY_OPERATOR: Dict[str, FilterClass] = {
    **dict.fromkeys(("like", "ilike", "contains", "starts_with", "ends_with"), FilterClass.TEXT_SEARCH),
    **dict.fromkeys(("gt", "gte", "lt", "lte", "between"), FilterClass.NUMERIC_RANGE),
    **dict.fromkeys(("date_equals", "date_between", "date_after", "date_before"), FilterClass.DATE_RANGE),
    **dict.fromkeys(("is_true", "is_false"), FilterClass.BOOLEAN_FILTER),
    **dict.fromkeys(("in", "not_in"), FilterClass.ARRAY_FILTER),
    **dict.fromkeys(("is_null", "is_not_null"), FilterClass.NULL_CHECK),
}

_COMPARISON_SQL = {
    Operator.EQUALS: "=",
    Operator.NOT_EQUALS: "!=",
    Operator.GT: ">",
    Operator.GTE: ">=",
    Operator.LT: "<",
    Operator.LTE: "<=",
    Operator.DATE_AFTER: ">",
    Operator.DATE_BEFORE: "<",
}

# Operators advertised per filter class on the capabilities endpoint.
CAPABILITY_OPERATORS: Dict[FilterClass, List[str]] = {
    FilterClass.TEXT_SEARCH: ["like", "ilike", "contains", "starts_with", "ends_with", "equals", "not_equals"],
    FilterClass.NUMERIC_RANGE: ["gt", "gte", "lt", "lte", "between", "not_between", "equals", "not_equals"],
    FilterClass.DATE_RANGE: ["date_equals", "date_between", "date_after", "date_before"],
    FilterClass.BOOLEAN_FILTER: ["is_true", "is_false", "equals"],
    FilterClass.ARRAY_FILTER: ["in", "not_in"],
    FilterClass.NULL_CHECK: ["is_null", "is_not_null"],
}


# ── Helpers ──────────────────────────────────────────────────────────

def is_identifier(name: Any) -> bool:
    return isinstance(name, str) and bool(_IDENTIFIER_RE.match(name))


def is_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(_UUID_RE.match(value))


def filter_class_for(operator: Any) -> FilterClass:
    """Map an operator tag to the capability class that gates it."""
    if not isinstance(operator, str):
        return FilterClass.CUSTOM_QUERIES
    return _CLASS_BY_OPERATOR.get(operator, FilterClass.CUSTOM_QUERIES)


def parse_operator(operator: Any) -> Optional[Operator]:
    if not isinstance(operator, str):
        return None
    try:
        return Operator(operator)
    except ValueError:
        return None


def _is_scalar(value: Any) -> bool:
    return isinstance(value, SCALAR_TYPES)


def _is_pair(value: Any) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) == 2
        and all(_is_scalar(v) for v in value)
    )


def _render(column: str, op: Operator, value: Any) -> Optional[tuple]:
    """Return ``(sql, values)`` for one descriptor, or None if the value is unusable."""
    if op in (Operator.LIKE, Operator.CONTAINS, Operator.NOT_LIKE, Operator.ILIKE,
              Operator.STARTS_WITH, Operator.ENDS_WITH):
        if not _is_scalar(value):
            return None
        if op is Operator.ILIKE:
            return f"LOWER({column}) LIKE LOWER(?)", [f"%{value}%"]
        if op is Operator.STARTS_WITH:
            return f"{column} LIKE ?", [f"{value}%"]
        if op is Operator.ENDS_WITH:
            return f"{column} LIKE ?", [f"%{value}"]
        keyword = "NOT LIKE" if op is Operator.NOT_LIKE else "LIKE"
        return f"{column} {keyword} ?", [f"%{value}%"]

    if op in (Operator.BETWEEN, Operator.NOT_BETWEEN, Operator.DATE_BETWEEN):
        if not _is_pair(value):
            return None
        keyword = "NOT BETWEEN" if op is Operator.NOT_BETWEEN else "BETWEEN"
        return f"{column} {keyword} ? AND ?", [value[0], value[1]]

    if op in (Operator.IN, Operator.NOT_IN):
        if not isinstance(value, (list, tuple)) or not value:
            return None
        if not all(_is_scalar(v) for v in value):
            return None
        placeholders = ",".join("?" for _ in value)
        keyword = "NOT IN" if op is Operator.NOT_IN else "IN"
        return f"{column} {keyword} ({placeholders})", list(value)

    if op is Operator.IS_NULL:
        return f"{column} IS NULL", []
    if op is Operator.IS_NOT_NULL:
        return f"{column} IS NOT NULL", []
    if op is Operator.IS_TRUE:
        return f"{column} = 1", []
    if op is Operator.IS_FALSE:
        return f"{column} = 0", []

    if op is Operator.DATE_EQUALS:
        if not _is_scalar(value):
            return None
        return f"DATE({column}) = DATE(?)", [value]

    if op in _COMPARISON_SQL:
        if not _is_scalar(value):
            return None
        return f"{column} {_COMPARISON_SQL[op]} ?", [value]

    raise AssertionError(f"operator {op!r} has no SQL rendering")


def _check_all_operators_rendered():
    # Fails at import time if an Operator member is added without a rendering.
    for op in Operator:
        sample = [1, 2] if op in (Operator.BETWEEN, Operator.NOT_BETWEEN,
                                 Operator.DATE_BETWEEN, Operator.IN, Operator.NOT_IN) else 1
        _render("c", op, sample)


_check_all_operators_rendered()


# ── Read path ────────────────────────────────────────────────────────

def coerce_descriptors(raw_filters: Any) -> List[FilterDescriptor]:
    """Turn a decoded JSON filter list into descriptors, dropping non-objects."""
    if not isinstance(raw_filters, list):
        return []
    descriptors = []
    for item in raw_filters:
        if isinstance(item, FilterDescriptor):
            descriptors.append(item)
        elif isinstance(item, dict):
            descriptors.append(FilterDescriptor.from_dict(item))
    return descriptors


def compile_filters(
    filters: Optional[Iterable[FilterDescriptor]],
    role: str,
    policy: PolicyStore,
    columns: Columns,
) -> CompiledConditions:
    """Compile descriptors into AND-able conditions, silently dropping bad ones.

    A descriptor on a column outside *columns* is dropped like any other
    unusable one.

    Placeholders and values stay aligned: a descriptor contributes its
    condition and its values together or not at all.
    """
    compiled = CompiledConditions()
    if not filters:
        return compiled

    for descriptor in filters:
        column = descriptor.column
        if not is_identifier(column):
            logger.debug("Dropping filter: invalid column name %r", column)
            continue
        if not columns.allows(column):
            logger.debug("Dropping filter on %s: column not visible to role %s", column, role)
            continue

        filter_class = filter_class_for(descriptor.operator)
        if not policy.can_use_filter_class(role, filter_class):
            logger.debug("Dropping filter on %s: role %s lacks %s", column, role, filter_class.value)
            continue

        op = parse_operator(descriptor.operator)
        if op is None:
            logger.debug("Dropping filter on %s: unknown operator %r", column, descriptor.operator)
            continue

        rendered = _render(column, op, descriptor.value)
        if rendered is None:
            logger.debug("Dropping filter on %s: unusable value for %s", column, op.value)
            continue

        sql, values = rendered
        compiled.conditions.append(sql)
        compiled.values.extend(values)

    return compiled


# ── Write path ───────────────────────────────────────────────────────

def compile_equality_conditions(where: Mapping[str, Any], columns: Columns) -> CompiledConditions:
    """Compile an UPDATE's ``{column: value}`` map, failing on any bad entry.

    A column outside *columns* is a COLUMN_DENIED denial.

    ``id`` columns and UUID-looking values compare with ``BINARY`` on both
    sides so that ids differing only in letter case never match each other.
    """
    if not isinstance(where, Mapping) or not where:
        raise ValidationError(
            DenialKind.NO_WHERE_CLAUSE,
            "WHERE conditions are required for UPDATE operations",
        )

    compiled = CompiledConditions()
    for column, value in where.items():
        if not is_identifier(column):
            raise ValidationError(DenialKind.INVALID_FILTER, f"Invalid WHERE column: {column!r}")
        if not columns.allows(column):
            raise PolicyDenial(
                DenialKind.COLUMN_DENIED,
                f"Access denied - Invalid WHERE columns for your role: {column}",
            )
        if not _is_scalar(value):
            raise ValidationError(DenialKind.INVALID_FILTER, f"Invalid WHERE value for column {column}")

        if column == "id" or is_uuid(value):
            compiled.conditions.append(f"BINARY {column} = BINARY ?")
        else:
            compiled.conditions.append(f"{column} = ?")
        compiled.values.append(value)
    return compiled
