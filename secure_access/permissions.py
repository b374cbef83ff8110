"""
Role-based policy store: which tables, columns, operations, filter classes
and page sizes each role gets.

The tables below are the shipped defaults. They are turned into an
immutable ``PolicyStore`` once at start-up and injected wherever a policy
decision is made; nothing mutates them afterwards.
"""

from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple, Union

from secure_access.models import (
    ALL_COLUMNS,
    DENIED_TABLE,
    NO_COLUMNS,
    NO_FILTERS,
    AllColumns,
    Columns,
    FilterCapability,
    FilterClass,
    NamedColumns,
    Operation,
    PaginationLimits,
    TablePolicy,
)

ALL = ALL_COLUMNS

R = ("read",)
CR = ("create", "read")
RU = ("read", "update")
CRU = ("create", "read", "update")
RUD = ("read", "update", "delete")
CRUD = ("create", "read", "update", "delete")

# ── Place management tables shared by most staff-side roles ──────────
_PLACE_TABLES = (
    "places", "place_configuration", "place_deactivation_reasons", "visitors", "visits",
    "visit_cancellations", "place_access_logs", "place_notifications",
    "place_statistics", "active_places", "todays_visits",
)
_BOOKING_TABLES = (
    "bookings", "booking_history", "booking_participants", "booking_refreshments",
    "external_participants", "meetings", "meeting_participants", "meeting_history",
)

TABLE_ACCESS: Dict[str, Tuple[str, ...]] = {
    "admin": (
        "users", "profiles", "userprofile", "user_sessions", "otp_codes", "login_attempts",
        "api_usage", "system_settings", "products", "orders", "booking_cancellations",
        "external_members", "pass_assignments", "passes", "pass_types",
        "categories", "inventory", "transactions", "logs", "audit_trail",
        "customers", "suppliers", "employees", "departments", "projects",
    ) + _BOOKING_TABLES + _PLACE_TABLES,
    "manager": (
        "users", "profiles", "products", "orders", "categories", "inventory",
        "customers", "suppliers", "employees", "departments", "projects",
        "transactions", "logs",
    ) + _BOOKING_TABLES + _PLACE_TABLES,
    "staff": (
        "users", "profiles", "userprofile", "products", "orders", "booking_cancellations",
        "external_members", "categories", "inventory", "customers", "projects",
    ) + _BOOKING_TABLES + _PLACE_TABLES,
    "reception": (
        "users", "profiles", "products", "categories",
    ) + _BOOKING_TABLES + _PLACE_TABLES,
    "user": ("places", "products", "categories", "booking_cancellations"),
    "visitor": ("places", "bookings", "booking_history", "booking_participants", "products", "categories"),
    "assistant": (
        "places", "bookings", "booking_history", "booking_participants", "booking_refreshments",
        "external_participants", "external_members", "meetings", "meeting_participants",
        "products", "categories",
    ),
}

_ALL_BOOKINGS = {name: ALL for name in _BOOKING_TABLES + ("booking_cancellations",)}

COLUMN_ACCESS: Dict[str, Dict[str, Any]] = {
    "admin": {
        **_ALL_BOOKINGS,
        "users": ALL, "profiles": ALL, "userprofile": ALL, "user_sessions": ALL,
        "otp_codes": ALL, "places": ALL, "products": ALL, "orders": ALL,
        "external_members": ALL, "pass_assignments": ALL, "passes": ALL, "pass_types": ALL,
        "categories": ALL, "inventory": ALL, "transactions": ALL, "customers": ALL,
        "suppliers": ALL, "employees": ALL, "departments": ALL, "projects": ALL,
        "place_configuration": ALL,
        "place_deactivation_reasons": (
            "id", "place_id", "reason_type", "reason_description", "deactivated_by",
            "deactivated_at", "estimated_reactivation_date", "contact_person", "contact_phone",
            "contact_email", "is_resolved", "resolved_at", "resolved_by", "resolution_notes",
        ),
        "visitors": ALL, "visits": ALL, "visit_cancellations": ALL, "place_access_logs": ALL,
        "place_notifications": ALL, "place_statistics": ALL, "active_places": ALL,
        "todays_visits": ALL,
    },
    "manager": {
        **_ALL_BOOKINGS,
        "users": ("id", "email", "role", "is_active", "created_at", "last_login"),
        "profiles": ("user_id", "first_name", "last_name", "phone", "address"),
        "places": ALL, "products": ALL, "orders": ALL, "categories": ALL, "inventory": ALL,
        "transactions": ("id", "amount", "type", "status", "created_at"),
        "customers": ALL, "suppliers": ALL, "employees": ALL, "departments": ALL, "projects": ALL,
        "place_configuration": ("id", "place_id", "config_key", "config_value", "description", "is_active", "created_at"),
        "place_deactivation_reasons": ("id", "place_id", "reason_type", "reason_description", "deactivated_at", "estimated_reactivation_date"),
        "visitors": ("id", "first_name", "last_name", "email", "phone", "company", "designation", "created_at"),
        "visits": ("id", "visitor_id", "place_id", "visit_purpose", "host_name", "scheduled_start_time", "scheduled_end_time", "visit_status", "created_at"),
        "visit_cancellations": ("id", "visit_id", "cancellation_reason", "cancellation_description", "cancelled_at"),
        "place_access_logs": ("id", "visit_id", "place_id", "access_type", "access_time", "access_point"),
        "place_notifications": ("id", "place_id", "notification_type", "title", "message", "priority", "created_at"),
        "place_statistics": ("id", "place_id", "date", "total_visitors", "unique_visitors", "completed_visits"),
        "active_places": ALL, "todays_visits": ALL,
    },
    # employee has column and operation entries but no table access: denied everywhere.
    "employee": {
        **_ALL_BOOKINGS,
        "users": ("id", "email", "role"),
        "profiles": ("first_name", "last_name"),
        "places": ALL, "products": ALL, "orders": ALL, "categories": ALL,
        "inventory": ("id", "product_id", "quantity", "location"),
        "transactions": ("id", "amount", "type", "status"),
        "customers": ("id", "name", "email", "phone", "address"),
        "projects": ("id", "name", "status", "start_date", "end_date"),
        "active_places": ALL, "todays_visits": ALL,
    },
    "staff": {
        **_ALL_BOOKINGS,
        "users": ("id", "email", "role"),
        "profiles": ("first_name", "last_name", "phone"),
        "userprofile": ALL, "places": ALL, "products": ALL, "orders": ALL,
        "external_members": ALL, "categories": ALL,
        "inventory": ("id", "product_id", "quantity", "location"),
        "customers": ("id", "name", "email", "phone", "address"),
        "projects": ("id", "name", "status", "start_date", "end_date"),
        "place_configuration": ALL, "place_deactivation_reasons": ALL, "visitors": ALL,
        "visits": ALL, "visit_cancellations": ALL, "place_access_logs": ALL,
        "place_notifications": ALL, "place_statistics": ALL, "active_places": ALL,
        "todays_visits": ALL,
    },
    "reception": {
        **_ALL_BOOKINGS,
        "users": ("id", "email"),
        "profiles": ("first_name", "last_name"),
        "places": ("id", "name", "description", "address", "phone", "email"),
        "products": ("id", "name", "description", "price"),
        "categories": ("id", "name", "description"),
        "place_configuration": ("id", "place_id", "config_key", "config_value", "is_active"),
        "place_deactivation_reasons": ("id", "place_id", "reason_type", "reason_description", "deactivated_at"),
        "visitors": ("id", "first_name", "last_name", "email", "phone", "company", "created_at"),
        "visits": ("id", "visitor_id", "place_id", "visit_purpose", "host_name", "scheduled_start_time", "visit_status"),
        "visit_cancellations": ("id", "visit_id", "cancellation_reason", "cancelled_at"),
        "place_access_logs": ("id", "visit_id", "access_type", "access_time"),
        "place_notifications": ("id", "place_id", "title", "message", "priority"),
        "place_statistics": ("id", "place_id", "date", "total_visitors"),
        "active_places": ALL, "todays_visits": ALL,
    },
    "user": {
        "users": ("id", "email"),
        "profiles": ("first_name", "last_name"),
        "places": ("id", "name", "description", "location", "rating", "price_range"),
        "products": ("id", "name", "description", "price", "category_id", "image_url"),
        "categories": ("id", "name", "description", "image_url"),
        "booking_cancellations": ALL,
    },
    "visitor": {
        "places": ("id", "name", "description", "location", "capacity", "status"),
        "bookings": ALL, "booking_history": ALL, "booking_participants": ALL,
        "products": ("id", "name", "description", "price", "category_id"),
        "categories": ("id", "name", "description"),
    },
    "assistant": {
        "places": ("id", "name", "description", "location", "capacity", "status"),
        "bookings": ALL, "booking_history": ALL, "booking_participants": ALL,
        "booking_refreshments": ALL, "external_participants": ALL, "external_members": ALL,
        "meetings": ALL, "meeting_participants": ALL,
        "products": ("id", "name", "description", "price", "category_id"),
        "categories": ("id", "name", "description"),
    },
}

_READ_ONLY_PLACES = {name: R for name in _PLACE_TABLES}

OPERATION_ACCESS: Dict[str, Dict[str, Tuple[str, ...]]] = {
    "admin": {
        "users": RUD, "profiles": RUD, "userprofile": CRUD, "places": CRUD,
        "products": RUD, "orders": RUD,
        "bookings": CRUD, "booking_history": CRUD, "booking_participants": CRUD,
        "booking_refreshments": CRUD, "booking_cancellations": CRUD,
        "external_participants": CRUD, "meetings": CRUD, "meeting_participants": CRUD,
        "meeting_history": CRUD, "external_members": CRU,
        "pass_assignments": CRUD, "passes": CRUD, "pass_types": CRUD,
        "categories": RUD, "inventory": RUD, "transactions": RUD, "customers": RUD,
        "suppliers": RUD, "employees": RUD, "departments": RUD, "projects": RUD,
        "place_configuration": CRUD, "place_deactivation_reasons": CRUD,
        "visitors": RUD, "visits": RUD, "visit_cancellations": RUD,
        "place_access_logs": RUD, "place_notifications": RUD, "place_statistics": RUD,
        "active_places": R, "todays_visits": R,
    },
    "manager": {
        **_READ_ONLY_PLACES,
        "users": R, "profiles": R, "places": RUD, "products": RUD, "orders": RU,
        "bookings": CRUD, "booking_history": R, "booking_participants": CRU,
        "booking_refreshments": CRU, "external_participants": CRU,
        "meetings": CRUD, "meeting_participants": CRU, "meeting_history": R,
        "categories": RU, "inventory": RU, "transactions": R, "customers": RU,
        "suppliers": RU, "employees": R, "departments": R, "projects": RUD,
    },
    "employee": {
        **_READ_ONLY_PLACES,
        "users": R, "profiles": R, "products": R, "orders": RU,
        "bookings": CRU, "booking_history": R, "booking_participants": CRU,
        "booking_refreshments": CRU, "external_participants": CRU,
        "meetings": CRU, "meeting_participants": CRU, "meeting_history": R,
        "categories": R, "inventory": RU, "transactions": R, "customers": RU, "projects": R,
    },
    "staff": {
        **_READ_ONLY_PLACES,
        "users": R, "profiles": R, "userprofile": CRU, "products": R, "orders": R,
        "bookings": CRU, "booking_history": R, "booking_participants": CRU,
        "booking_refreshments": CRU, "booking_cancellations": CRU,
        "external_participants": CRU, "meetings": CRU, "meeting_participants": CRU,
        "meeting_history": R, "external_members": CRU,
        "categories": R, "inventory": R, "customers": R, "projects": R,
    },
    "reception": {
        **{name: R for name in _PLACE_TABLES if name != "place_configuration"},
        "users": R, "profiles": R, "products": R,
        "bookings": CRU, "booking_history": R, "booking_participants": CRU,
        "booking_refreshments": CRU, "external_participants": CRU,
        "meetings": CRU, "meeting_participants": CRU, "meeting_history": R,
        "categories": R,
    },
    "user": {
        "users": R, "profiles": R, "places": R, "products": R, "categories": R,
        "booking_cancellations": CR,
    },
    "visitor": {
        "places": R, "bookings": CRU, "booking_history": R, "booking_participants": CRU,
        "products": R, "categories": R,
    },
    "assistant": {
        "places": R, "bookings": CRU, "booking_history": R, "booking_participants": CRU,
        "booking_refreshments": CRU, "external_participants": CRU, "external_members": CRU,
        "meetings": CRU, "meeting_participants": CRU, "products": R, "categories": R,
    },
}

FILTER_PERMISSIONS: Dict[str, FilterCapability] = {
    "admin": FilterCapability(
        text_search=True, numeric_range=True, date_range=True, boolean_filter=True,
        array_filter=True, null_check=True, custom_queries=True,
    ),
    "manager": FilterCapability(
        text_search=True, numeric_range=True, date_range=True, boolean_filter=True, null_check=True,
    ),
    "employee": FilterCapability(text_search=True, numeric_range=True, date_range=True),
    "staff": FilterCapability(
        text_search=True, numeric_range=True, date_range=True, boolean_filter=True, null_check=True,
    ),
    "reception": FilterCapability(text_search=True, date_range=True),
    "user": FilterCapability(text_search=True),
    "visitor": FilterCapability(text_search=True, date_range=True),
    "assistant": FilterCapability(
        text_search=True, numeric_range=True, date_range=True, boolean_filter=True,
    ),
}

PAGINATION_LIMITS: Dict[str, PaginationLimits] = {
    "admin": PaginationLimits(max_limit=1000, default_limit=50, max_offset=100000),
    "manager": PaginationLimits(max_limit=500, default_limit=25, max_offset=50000),
    "employee": PaginationLimits(max_limit=100, default_limit=20, max_offset=10000),
    "staff": PaginationLimits(max_limit=200, default_limit=25, max_offset=20000),
    "reception": PaginationLimits(max_limit=100, default_limit=20, max_offset=10000),
    "user": PaginationLimits(max_limit=50, default_limit=10, max_offset=1000),
    "visitor": PaginationLimits(max_limit=100, default_limit=20, max_offset=5000),
    "assistant": PaginationLimits(max_limit=150, default_limit=25, max_offset=10000),
}

# Advisory only: the guard never resolves roles through this mapping.
ROLE_HIERARCHY: Dict[str, Tuple[str, ...]] = {
    "admin": ("admin", "manager", "staff", "employee", "reception", "assistant", "user", "visitor"),
    "manager": ("manager", "staff", "employee", "reception", "assistant", "user", "visitor"),
    "staff": ("staff", "employee", "assistant", "user", "visitor"),
    "employee": ("employee", "assistant", "user", "visitor"),
    "reception": ("reception", "assistant", "user", "visitor"),
    "assistant": ("assistant", "visitor", "user"),
    "user": ("user",),
    "visitor": ("visitor",),
}

FALLBACK_PAGINATION_ROLE = "user"
_LAST_RESORT_LIMITS = PaginationLimits(max_limit=50, default_limit=10, max_offset=1000)


def _to_columns(spec: Union[AllColumns, Iterable[str], None]) -> Columns:
    if spec is None:
        return NO_COLUMNS
    if isinstance(spec, AllColumns):
        return spec
    return NamedColumns.of(spec)


def _to_operations(names: Iterable[str]) -> FrozenSet[Operation]:
    return frozenset(Operation(n) for n in names)


def _coerce_operation(operation) -> Optional[Operation]:
    if isinstance(operation, Operation):
        return operation
    try:
        return Operation(operation)
    except ValueError:
        return None


class PolicyStore:
    """Read-only lookups over the role tables.

    Every lookup is total: an unknown role, table, operation or filter class
    gets the safe answer (deny, empty set, fallback limits) instead of an
    exception.
    """

    def __init__(
        self,
        table_access: Mapping[str, Iterable[str]],
        column_access: Mapping[str, Mapping[str, Any]],
        operation_access: Mapping[str, Mapping[str, Iterable[str]]],
        filter_permissions: Mapping[str, FilterCapability],
        pagination_limits: Mapping[str, PaginationLimits],
        role_hierarchy: Optional[Mapping[str, Iterable[str]]] = None,
        fallback_pagination_role: str = FALLBACK_PAGINATION_ROLE,
    ):
        policies: Dict[str, Mapping[str, TablePolicy]] = {}
        for role, tables in table_access.items():
            role_columns = column_access.get(role, {})
            role_ops = operation_access.get(role, {})
            policies[role] = MappingProxyType({
                table: TablePolicy(
                    accessible=True,
                    columns=_to_columns(role_columns.get(table)),
                    operations=_to_operations(role_ops.get(table, ())),
                )
                for table in tables
            })
        self._policies = MappingProxyType(policies)
        self._filters = MappingProxyType(dict(filter_permissions))
        self._pagination = MappingProxyType(dict(pagination_limits))
        self._hierarchy = MappingProxyType({
            role: tuple(members) for role, members in (role_hierarchy or {}).items()
        })
        self._fallback_limits = self._pagination.get(fallback_pagination_role, _LAST_RESORT_LIMITS)

    @property
    def roles(self) -> FrozenSet[str]:
        return frozenset(self._policies)

    def table_policy(self, role: str, table: str) -> TablePolicy:
        if not isinstance(role, str) or not isinstance(table, str):
            return DENIED_TABLE
        return self._policies.get(role, {}).get(table, DENIED_TABLE)

    def can_access_table(self, role: str, table: str) -> bool:
        return self.table_policy(role, table).accessible

    def can_perform_operation(self, role: str, table: str, operation) -> bool:
        policy = self.table_policy(role, table)
        if not policy.accessible:
            return False
        op = _coerce_operation(operation)
        return op is not None and op in policy.operations

    def get_allowed_columns(self, role: str, table: str) -> Columns:
        policy = self.table_policy(role, table)
        if not policy.accessible:
            return NO_COLUMNS
        return policy.columns

    def get_filter_capability(self, role: str) -> FilterCapability:
        if not isinstance(role, str):
            return NO_FILTERS
        return self._filters.get(role, NO_FILTERS)

    def can_use_filter_class(self, role: str, filter_class) -> bool:
        try:
            fc = FilterClass(filter_class)
        except ValueError:
            return False
        return self.get_filter_capability(role).allows(fc)

    def get_pagination_limits(self, role: str) -> PaginationLimits:
        if not isinstance(role, str):
            return self._fallback_limits
        return self._pagination.get(role, self._fallback_limits)

    def get_allowed_tables(self, role: str) -> FrozenSet[str]:
        if not isinstance(role, str):
            return frozenset()
        return frozenset(self._policies.get(role, {}))

    def get_role_hierarchy(self) -> Mapping[str, Tuple[str, ...]]:
        return self._hierarchy


def build_default_policy() -> PolicyStore:
    """Build the policy store from the shipped role tables."""
    return PolicyStore(
        table_access=TABLE_ACCESS,
        column_access=COLUMN_ACCESS,
        operation_access=OPERATION_ACCESS,
        filter_permissions=FILTER_PERMISSIONS,
        pagination_limits=PAGINATION_LIMITS,
        role_hierarchy=ROLE_HIERARCHY,
    )
