"""
Write-path statement assembly for INSERT / UPDATE and their bulk variants.

Unlike the read path, nothing here is dropped quietly: a column the role
may not write, a missing WHERE, or a malformed record fails the whole
request (or the whole batch).
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from secure_access.config import SYSTEM_COLUMNS
from secure_access.errors import DenialKind, PolicyDenial, ValidationError
from secure_access.filters import SCALAR_TYPES, compile_equality_conditions, is_identifier
from secure_access.models import CompiledQuery, Columns

AUDIT_CREATE_COLUMNS = ("created_at", "updated_at", "created_by", "updated_by")

_ISO_UTC_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})T(\d{2}:\d{2}:\d{2})(?:\.\d+)?Z$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def audit_timestamp(now: datetime) -> str:
    return now.strftime("%Y-%m-%d %H:%M:%S")


def is_timestamp_column(column: str) -> bool:
    return "_at" in column or "_date" in column or "_time" in column


def normalize_timestamp(value: Any) -> Any:
    """``2025-11-17T07:38:18.566Z`` -> ``2025-11-17 07:38:18``; anything else unchanged."""
    if isinstance(value, str):
        match = _ISO_UTC_RE.match(value)
        if match:
            return f"{match.group(1)} {match.group(2)}"
    return value


def _require_columns(columns: Columns):
    if not columns:
        raise PolicyDenial(DenialKind.COLUMN_DENIED, "Access denied - No columns accessible for this role")


def _split_writable(record: Mapping[str, Any], columns: Columns, skip=frozenset()) -> Tuple[Dict[str, Any], List[str], List[str]]:
    """Partition a record into (allowed values, denied columns, structural errors)."""
    allowed: Dict[str, Any] = {}
    denied: List[str] = []
    problems: List[str] = []
    for column, value in record.items():
        if not is_identifier(column):
            problems.append(f"Invalid column name: {column!r}")
            continue
        if column in skip:
            continue
        if value is not None and not isinstance(value, SCALAR_TYPES):
            problems.append(f"Invalid value for column {column}")
            continue
        if columns.allows(column):
            allowed[column] = value
        else:
            denied.append(column)
    return allowed, denied, problems


def _with_insert_audit(data: Dict[str, Any], columns: Columns, user_id: Any, now: datetime) -> Dict[str, Any]:
    stamp = audit_timestamp(now)
    audit = {
        "created_at": stamp,
        "updated_at": stamp,
        "created_by": str(user_id),
        "updated_by": str(user_id),
    }
    for column in AUDIT_CREATE_COLUMNS:
        if columns.allows(column):
            data[column] = audit[column]
    return data


# ── INSERT ───────────────────────────────────────────────────────────

def prepare_insert_record(record: Any, columns: Columns, user_id: Any, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Validate one insert payload and add the audit columns the role can write."""
    if not isinstance(record, Mapping) or not record:
        raise ValidationError(DenialKind.INVALID_PAYLOAD, "Insert data is required")
    _require_columns(columns)

    allowed, denied, problems = _split_writable(record, columns)
    if problems:
        raise ValidationError(DenialKind.INVALID_PAYLOAD, "; ".join(problems))
    if denied:
        raise PolicyDenial(
            DenialKind.COLUMN_DENIED,
            f"Access denied - Invalid columns for your role: {', '.join(denied)}",
        )
    return _with_insert_audit(allowed, columns, user_id, now or utc_now())


def build_insert(table: str, record: Any, columns: Columns, user_id: Any,
                 now: Optional[datetime] = None) -> Tuple[CompiledQuery, Dict[str, Any]]:
    data = prepare_insert_record(record, columns, user_id, now)
    names = list(data)
    placeholders = ", ".join("?" for _ in names)
    query = CompiledQuery(
        sql=f"INSERT INTO {table} ({', '.join(names)}) VALUES ({placeholders})",
        values=tuple(data[n] for n in names),
    )
    return query, data


def build_bulk_insert(table: str, records: Any, columns: Columns, user_id: Any,
                      now: Optional[datetime] = None) -> Tuple[CompiledQuery, List[str], int]:
    """One multi-row INSERT; any invalid record rejects the whole batch."""
    if not isinstance(records, list) or not records:
        raise ValidationError(DenialKind.INVALID_PAYLOAD, "Bulk insert data array is required")
    _require_columns(columns)

    now = now or utc_now()
    prepared: List[Dict[str, Any]] = []
    errors: List[str] = []
    for i, record in enumerate(records, start=1):
        if not isinstance(record, Mapping) or not record:
            errors.append(f"Record {i}: Invalid object")
            continue
        allowed, denied, problems = _split_writable(record, columns)
        if problems:
            errors.extend(f"Record {i}: {p}" for p in problems)
            continue
        if denied:
            errors.append(f"Record {i}: Invalid columns - {', '.join(denied)}")
            continue
        prepared.append(_with_insert_audit(allowed, columns, user_id, now))

    if not errors and prepared:
        names = list(prepared[0])
        for i, data in enumerate(prepared, start=1):
            if set(data) != set(names):
                errors.append(f"Record {i}: columns differ from the first record")

    if errors:
        raise ValidationError(DenialKind.INVALID_PAYLOAD, "Validation errors in bulk data", errors)

    row = "(" + ", ".join("?" for _ in names) + ")"
    values: List[Any] = []
    for data in prepared:
        values.extend(data[n] for n in names)
    query = CompiledQuery(
        sql=f"INSERT INTO {table} ({', '.join(names)}) VALUES {', '.join(row for _ in prepared)}",
        values=tuple(values),
    )
    return query, names, len(prepared)


# ── UPDATE ───────────────────────────────────────────────────────────

def prepare_update_data(data: Any, columns: Columns, user_id: Any, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Filter SET values: system columns dropped, denied columns fatal, audit appended."""
    if not isinstance(data, Mapping) or not data:
        raise ValidationError(DenialKind.INVALID_PAYLOAD, "No data provided for update")
    _require_columns(columns)

    allowed, denied, problems = _split_writable(data, columns, skip=SYSTEM_COLUMNS)
    if problems:
        raise ValidationError(DenialKind.INVALID_PAYLOAD, "; ".join(problems))
    if denied:
        raise PolicyDenial(
            DenialKind.COLUMN_DENIED,
            f"Access denied - Invalid columns for your role: {', '.join(denied)}",
        )
    if not allowed:
        raise ValidationError(DenialKind.INVALID_PAYLOAD, "No valid columns to update")

    for column, value in allowed.items():
        if is_timestamp_column(column):
            allowed[column] = normalize_timestamp(value)

    allowed["updated_at"] = audit_timestamp(now or utc_now())
    allowed["updated_by"] = str(user_id)
    return allowed


def build_update(table: str, where: Any, data: Any, columns: Columns, user_id: Any,
                 now: Optional[datetime] = None) -> Tuple[CompiledQuery, Dict[str, Any]]:
    """UPDATE with a mandatory, strictly compiled WHERE. SET values bind first."""
    conditions = compile_equality_conditions(where, columns)
    values = prepare_update_data(data, columns, user_id, now)

    set_clause = ", ".join(f"{column} = ?" for column in values)
    query = CompiledQuery(
        sql=f"UPDATE {table} SET {set_clause} WHERE {' AND '.join(conditions.conditions)}",
        values=tuple(values.values()) + tuple(conditions.values),
    )
    return query, values


def build_bulk_update(table: str, updates: Any, columns: Columns, user_id: Any,
                      now: Optional[datetime] = None) -> List[Tuple[int, CompiledQuery]]:
    """Validate every ``{where, data}`` entry up front; one bad entry rejects all."""
    if not isinstance(updates, list) or not updates:
        raise ValidationError(DenialKind.INVALID_PAYLOAD, "Bulk updates array is required")
    _require_columns(columns)

    now = now or utc_now()
    statements: List[Tuple[int, CompiledQuery]] = []
    errors: List[str] = []
    for i, entry in enumerate(updates, start=1):
        if not isinstance(entry, Mapping):
            errors.append(f"Update {i}: Invalid object")
            continue
        try:
            query, _ = build_update(table, entry.get("where"), entry.get("data"), columns, user_id, now)
        except (ValidationError, PolicyDenial) as e:
            errors.append(f"Update {i}: {e.message}")
            continue
        statements.append((i, query))

    if errors:
        raise ValidationError(DenialKind.INVALID_PAYLOAD, "Validation errors in bulk update data", errors)
    return statements
