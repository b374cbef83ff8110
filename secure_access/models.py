"""
Domain dataclasses used across the application.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Union


# ── Column sets ──────────────────────────────────────────────────────

class AllColumns:
    """Wildcard column access. Compared by identity, never by name."""

    def allows(self, column: str) -> bool:
        return True

    @property
    def is_wildcard(self) -> bool:
        return True

    def __bool__(self) -> bool:
        return True

    def __repr__(self) -> str:
        return "ALL_COLUMNS"


ALL_COLUMNS = AllColumns()


@dataclass(frozen=True)
class NamedColumns:
    """An explicit allow-list of column names."""
    names: FrozenSet[str] = frozenset()

    @classmethod
    def of(cls, names: Iterable[str]) -> "NamedColumns":
        return cls(frozenset(names))

    def allows(self, column: str) -> bool:
        return column in self.names

    @property
    def is_wildcard(self) -> bool:
        return False

    def __bool__(self) -> bool:
        return bool(self.names)


Columns = Union[AllColumns, NamedColumns]
NO_COLUMNS = NamedColumns()


# ── Policy ───────────────────────────────────────────────────────────

class Operation(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class FilterClass(str, Enum):
    TEXT_SEARCH = "textSearch"
    NUMERIC_RANGE = "numericRange"
    DATE_RANGE = "dateRange"
    BOOLEAN_FILTER = "booleanFilter"
    ARRAY_FILTER = "arrayFilter"
    NULL_CHECK = "nullCheck"
    CUSTOM_QUERIES = "customQueries"


@dataclass(frozen=True)
class TablePolicy:
    """What one role may do with one table."""
    accessible: bool
    columns: Columns = NO_COLUMNS
    operations: FrozenSet[Operation] = frozenset()


DENIED_TABLE = TablePolicy(accessible=False)


@dataclass(frozen=True)
class FilterCapability:
    text_search: bool = False
    numeric_range: bool = False
    date_range: bool = False
    boolean_filter: bool = False
    array_filter: bool = False
    null_check: bool = False
    custom_queries: bool = False

    def allows(self, filter_class: FilterClass) -> bool:
        return {
            FilterClass.TEXT_SEARCH: self.text_search,
            FilterClass.NUMERIC_RANGE: self.numeric_range,
            FilterClass.DATE_RANGE: self.date_range,
            FilterClass.BOOLEAN_FILTER: self.boolean_filter,
            FilterClass.ARRAY_FILTER: self.array_filter,
            FilterClass.NULL_CHECK: self.null_check,
            FilterClass.CUSTOM_QUERIES: self.custom_queries,
        }[filter_class]

    def as_dict(self) -> Dict[str, bool]:
        return {fc.value: self.allows(fc) for fc in FilterClass}


NO_FILTERS = FilterCapability()


@dataclass(frozen=True)
class PaginationLimits:
    max_limit: int
    default_limit: int
    max_offset: int

    def as_dict(self) -> Dict[str, int]:
        return {
            "maxLimit": self.max_limit,
            "defaultLimit": self.default_limit,
            "maxOffset": self.max_offset,
        }


@dataclass(frozen=True)
class Pagination:
    """Server-computed, clamped paging values."""
    limit: int
    offset: int
    page: Optional[int] = None


# ── Queries ──────────────────────────────────────────────────────────

@dataclass
class FilterDescriptor:
    column: Any
    operator: Any
    value: Any = None
    logic: str = "AND"   # accepted for compatibility, conditions are always AND-joined

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "FilterDescriptor":
        return cls(
            column=raw.get("column"),
            operator=raw.get("operator"),
            value=raw.get("value"),
            logic=str(raw.get("logic") or "AND").upper(),
        )


@dataclass(frozen=True)
class CompiledQuery:
    """A parameterized statement: ``?`` placeholders aligned with ``values``."""
    sql: str
    values: tuple = ()


@dataclass
class CompiledConditions:
    conditions: List[str] = field(default_factory=list)
    values: List[Any] = field(default_factory=list)


# ── Identity / requests ──────────────────────────────────────────────

@dataclass
class AccessContext:
    """The authenticated caller, as supplied by the identity provider."""
    user_id: Any
    role: str
    email: Optional[str] = None


@dataclass
class GuardResult:
    """What the Access Guard hands downstream once a request may proceed."""
    table: str
    role: str
    operation: Operation
    pagination_limits: PaginationLimits
    columns: Columns


@dataclass
class ReadRequest:
    role: str
    table: str
    select: Optional[List[str]] = None
    filters: Optional[List[FilterDescriptor]] = None
    where: Optional[str] = None
    order: Optional[str] = None
    page: Any = None
    limit: Any = None
    offset: Any = None
    include_count: bool = False
    user_id: Any = None


@dataclass
class ReadResult:
    rows: List[Dict[str, Any]]
    pagination: Pagination
    total_count: Optional[int] = None


@dataclass
class InsertRequest:
    role: str
    user_id: Any
    table: str
    record: Any


@dataclass
class InsertResult:
    inserted_id: Any
    written_columns: List[str]
    record: Optional[Dict[str, Any]] = None
    filtered_columns: Any = "all"


@dataclass
class BulkInsertResult:
    inserted_count: int
    first_insert_id: Any
    last_insert_id: Any
    columns: List[str]


@dataclass
class UpdateRequest:
    role: str
    user_id: Any
    table: str
    where: Any
    data: Any


@dataclass
class UpdateResult:
    affected_rows: int
    updated_columns: List[str]
    records: Optional[List[Dict[str, Any]]] = None


@dataclass
class BulkUpdateEntryResult:
    index: int
    success: bool
    affected_rows: int = 0
    error: Optional[str] = None


@dataclass
class BulkUpdateResult:
    total_affected_rows: int
    processed: int
    results: List[BulkUpdateEntryResult]
