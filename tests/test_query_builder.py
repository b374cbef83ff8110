"""
Unit tests for SELECT / COUNT / search statement assembly.
"""

import pytest

from secure_access.errors import DenialKind, PolicyDenial, ValidationError
from secure_access.models import (
    ALL_COLUMNS,
    CompiledConditions,
    FilterDescriptor,
    NamedColumns,
    PaginationLimits,
    ReadRequest,
)
from secure_access.permissions import build_default_policy
from secure_access.query_builder import (
    build_lookup_by_id,
    build_search_query,
    build_select_query,
    build_where,
    parse_int,
    resolve_order,
    resolve_pagination,
    resolve_projection,
    sanitize_raw_fragment,
)

LIMITS = PaginationLimits(max_limit=100, default_limit=20, max_offset=10000)


@pytest.fixture(scope="module")
def policy():
    return build_default_policy()


# ── Tests: pagination ────────────────────────────────────────────────

def test_parse_int():
    assert parse_int("12") == 12
    assert parse_int(" 7 ") == 7
    assert parse_int("abc") is None
    assert parse_int(None) is None
    assert parse_int(True) is None


def test_parse_int_non_finite_floats_read_as_absent():
    assert parse_int(float("inf")) is None
    assert parse_int(float("-inf")) is None
    assert parse_int(float("nan")) is None
    assert parse_int(12.9) == 12
    assert resolve_pagination(LIMITS, limit=float("inf"), offset=float("nan")).limit == 20


def test_default_limit_when_absent():
    p = resolve_pagination(LIMITS)
    assert (p.limit, p.offset, p.page) == (20, 0, None)


def test_limit_clamped_to_max():
    assert resolve_pagination(LIMITS, limit="9999").limit == 100


@pytest.mark.parametrize("limit", ["0", "-5"])
def test_limit_clamped_to_one(limit):
    assert resolve_pagination(LIMITS, limit=limit).limit == 1


def test_junk_limit_reads_as_absent():
    assert resolve_pagination(LIMITS, limit="lots").limit == 20


def test_offset_clamped():
    assert resolve_pagination(LIMITS, offset="-3").offset == 0
    assert resolve_pagination(LIMITS, offset="999999").offset == 10000


def test_page_overrides_offset():
    p = resolve_pagination(LIMITS, limit="10", offset="5", page="3")
    assert (p.limit, p.offset, p.page) == (10, 20, 3)


def test_page_offset_uses_clamped_limit_and_is_clamped_again():
    p = resolve_pagination(LIMITS, limit="5000", page="500")
    assert p.limit == 100
    assert p.offset == 10000


def test_employee_limit_scenario(policy):
    p = resolve_pagination(policy.get_pagination_limits("employee"), limit="9999")
    assert p.limit == 100


# ── Tests: projection / order ────────────────────────────────────────

def test_wildcard_projection_passes_request_through():
    assert resolve_projection(ALL_COLUMNS, "a, b") == ["a", "b"]
    assert resolve_projection(ALL_COLUMNS) == ["*"]


def test_explicit_projection_intersects():
    cols = NamedColumns.of(["id", "name", "price"])
    assert resolve_projection(cols, "name,secret,id") == ["name", "id"]
    assert resolve_projection(cols) == ["id", "name", "price"]


def test_empty_intersection_is_denied():
    with pytest.raises(PolicyDenial) as e:
        resolve_projection(NamedColumns.of(["id"]), "secret")
    assert e.value.kind is DenialKind.COLUMN_DENIED


def test_no_columns_is_denied():
    with pytest.raises(PolicyDenial):
        resolve_projection(NamedColumns())


def test_non_identifier_select_is_dropped():
    assert resolve_projection(ALL_COLUMNS, "id, 1;DROP") == ["id"]


def test_order_validation():
    cols = NamedColumns.of(["name", "price"])
    assert resolve_order("price desc, name", cols) == "price DESC, name ASC"
    assert resolve_order("secret DESC", cols) is None
    assert resolve_order("price; DROP TABLE x", cols) is None
    assert resolve_order("name SIDEWAYS, price ASC", cols) == "price ASC"
    assert resolve_order("", cols) is None


# ── Tests: WHERE ─────────────────────────────────────────────────────

def test_raw_where_rejected_when_disabled(policy):
    with pytest.raises(ValidationError) as e:
        build_where("admin", policy, ALL_COLUMNS, raw_where="1=1", allow_raw_where=False)
    assert e.value.kind is DenialKind.INVALID_FILTER


def test_raw_where_stripped_when_enabled(policy):
    where = build_where(
        "admin", policy, ALL_COLUMNS,
        filters=[FilterDescriptor("name", "contains", "x")],
        raw_where="status = 'open'; -- ?",
        allow_raw_where=True,
    )
    assert where.conditions == ["status = 'open'", "name LIKE ?"]
    assert where.values == ["%x%"]


def test_sanitize_raw_fragment():
    assert sanitize_raw_fragment("a=1;--?") == "a=1"


# ── Tests: statements ────────────────────────────────────────────────

def test_select_for_explicit_columns(policy):
    request = ReadRequest(
        role="user", table="products",
        filters=[FilterDescriptor("name", "contains", "mug")],
        order="price DESC", limit="500",
    )
    plan = build_select_query(request, policy, allow_raw_where=False)
    assert plan.query.sql == (
        "SELECT category_id, description, id, image_url, name, price FROM products "
        "WHERE name LIKE ? ORDER BY price DESC LIMIT 50 OFFSET 0"
    )
    assert plan.query.values == ("%mug%",)
    assert plan.count_query.sql == "SELECT COUNT(*) AS total FROM products WHERE name LIKE ?"
    assert plan.count_query.values == ("%mug%",)


def test_select_drops_filter_on_hidden_column(policy):
    request = ReadRequest(
        role="manager", table="users", select="id",
        filters=[FilterDescriptor("password", "starts_with", "$2b$10$a")],
    )
    plan = build_select_query(request, policy, allow_raw_where=False)
    assert "password" not in plan.query.sql
    assert plan.query.sql == "SELECT id FROM users LIMIT 25 OFFSET 0"
    assert plan.query.values == ()
    assert "password" not in plan.count_query.sql


def test_select_drops_gated_filter(policy):
    request = ReadRequest(
        role="visitor", table="bookings",
        filters=[FilterDescriptor("age", "between", [18, 30])],
    )
    plan = build_select_query(request, policy, allow_raw_where=False)
    assert "BETWEEN" not in plan.query.sql
    assert "WHERE" not in plan.query.sql
    assert plan.query.sql == "SELECT * FROM bookings LIMIT 20 OFFSET 0"


def test_select_with_page(policy):
    request = ReadRequest(role="admin", table="users", page="3", limit="10")
    plan = build_select_query(request, policy)
    assert plan.query.sql.endswith("LIMIT 10 OFFSET 20")
    assert plan.pagination.page == 3


def test_search_query_none_without_visible_columns():
    assert build_search_query("t", NamedColumns.of(["id", "price"]), "x", 10) is None


def test_search_query_over_visible_defaults():
    query = build_search_query("t", NamedColumns.of(["id", "name", "email"]), "bob", 10)
    assert query.sql == "SELECT email, id, name FROM t WHERE (name LIKE ? OR email LIKE ?) LIMIT 10"
    assert query.values == ("%bob%", "%bob%")


def test_search_query_custom_columns():
    query = build_search_query("t", ALL_COLUMNS, "x", 5, ["code", "bad col"])
    assert query.sql == "SELECT * FROM t WHERE (code LIKE ?) LIMIT 5"


def test_lookup_by_id():
    query = build_lookup_by_id("users", NamedColumns.of(["id", "email"]), "abc")
    assert query.sql == "SELECT email, id FROM users WHERE BINARY id = BINARY ?"
    assert query.values == ("abc",)


def test_where_sql_empty_conditions():
    from secure_access.query_builder import build_count_query
    assert build_count_query("t", CompiledConditions()).sql == "SELECT COUNT(*) AS total FROM t"
