"""
Integration tests for the Flask API using the test client and a scripted engine.
"""

import json
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from secure_access.api.app import create_app
from secure_access.api.auth import generate_token, verify_token
from secure_access.models import AccessContext

from conftest import FIXED_NOW, FakeEngine, build_test_policy

SECRET = "test-secret-key-0123456789abcdef0123456789"


def make_client(*responses, expose_details=False):
    engine = FakeEngine(*responses)
    app = create_app(
        engine=engine,
        policy=build_test_policy(),
        clock=lambda: FIXED_NOW,
        config={
            "JWT_SECRET_KEY": SECRET,
            "EXPOSE_ERROR_DETAILS": expose_details,
            "ALLOW_RAW_WHERE": False,
            "TESTING": True,
        },
    )
    return app.test_client(), engine


def auth(role="clerk", user_id=7, secret=SECRET, **kwargs):
    token = generate_token(AccessContext(user_id=user_id, role=role), secret, **kwargs)
    return {"Authorization": f"Bearer {token}"}


# ── Tests: tokens ────────────────────────────────────────────────────

def test_generate_and_verify_token():
    token = generate_token(AccessContext(user_id=7, role="clerk", email="c@x"), SECRET)
    payload = verify_token(token, SECRET)
    assert payload["role"] == "clerk"
    assert payload["user_id"] == 7
    assert payload["sub"] == "7"
    assert verify_token(token, "other-secret") is None


def test_missing_token():
    client, _ = make_client()
    resp = client.get("/api/secure-select/bookings")
    assert resp.status_code == 401
    assert resp.get_json()["message"] == "Access token required"


def test_malformed_header():
    client, _ = make_client()
    resp = client.get("/api/secure-select/bookings", headers={"Authorization": "Token abc"})
    assert resp.status_code == 401
    assert resp.get_json()["message"] == "Invalid authorization header format"


def test_expired_or_foreign_token():
    client, _ = make_client()
    for headers in (auth(expires_in=timedelta(seconds=-5)), auth(secret="someone-else")):
        resp = client.get("/api/secure-select/bookings", headers=headers)
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "UNAUTHORIZED"


# ── Tests: select ────────────────────────────────────────────────────

def test_select_success_with_pagination_meta():
    client, engine = make_client({"rows": [{"id": 1, "title": "A"}]}, {"rows": [{"total": 12}]})
    filters = json.dumps([
        {"column": "title", "operator": "contains", "value": "A"},
        {"column": "age", "operator": "between", "value": [18, 30]},
    ])
    resp = client.get(
        "/api/secure-select/bookings",
        query_string={"filters": filters, "page": "2", "limit": "5", "select": "id,title"},
        headers=auth(),
    )
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    assert body["data"] == [{"id": 1, "title": "A"}]
    meta = body["meta"]
    assert meta["table"] == "bookings"
    assert meta["role"] == "clerk"
    assert meta["totalCount"] == 12
    assert meta["appliedFilters"] == 2
    assert meta["pagination"]["totalPages"] == 3
    assert meta["pagination"]["startRecord"] == 6
    assert meta["pagination"]["hasNextPage"] is True
    # the between filter was dropped: clerk lacks numericRange
    assert engine.executed[0][0] == "SELECT id, title FROM bookings WHERE title LIKE :p0 LIMIT 5 OFFSET 5"


def test_denied_table_envelope():
    client, engine = make_client()
    resp = client.get("/api/secure-select/otp_codes", headers=auth())
    assert resp.status_code == 403
    assert resp.get_json() == {"success": False, "message": "Access denied", "error": "TABLE_DENIED"}
    assert engine.executed == []


def test_unknown_role_is_denied():
    client, _ = make_client()
    resp = client.get("/api/secure-select/bookings", headers=auth(role="intruder"))
    assert resp.status_code == 403


def test_bad_filters_json():
    client, _ = make_client()
    resp = client.get("/api/secure-select/bookings", query_string={"filters": "{oops"}, headers=auth())
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "INVALID_FILTER"


def test_raw_where_rejected():
    client, engine = make_client()
    resp = client.get("/api/secure-select/bookings", query_string={"where": "1=1"}, headers=auth())
    assert resp.status_code == 400
    assert engine.executed == []


def test_tables_and_capabilities():
    client, _ = make_client()
    tables = client.get("/api/secure-select/tables", headers=auth()).get_json()["data"]
    assert tables["allowedTables"] == ["bookings", "users"]
    caps = client.get("/api/secure-select/capabilities", headers=auth()).get_json()["data"]
    assert caps["capabilities"]["numericRange"]["available"] is False


def test_global_search_endpoint():
    client, _ = make_client({"rows": [{"id": 1, "title": "bob"}]}, {"rows": []})
    resp = client.post("/api/secure-select/search", json={"searchTerm": "bob"}, headers=auth())
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["totalResults"] == 1
    assert data["resultsByTable"][0]["table"] == "bookings"


# ── Tests: insert / update ───────────────────────────────────────────

def test_insert_created():
    client, _ = make_client({"rowcount": 1, "lastrowid": 3}, {"rows": [{"id": 3, "title": "X"}]})
    resp = client.post("/api/secure-insert/bookings", json={"title": "X"}, headers=auth())
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["data"]["id"] == 3
    assert body["data"]["record"] == {"id": 3, "title": "X"}
    assert body["meta"]["timestamp"] == "2025-11-17 07:38:18"


def test_insert_disallowed_column():
    client, engine = make_client()
    resp = client.post("/api/secure-insert/bookings", json={"id": 1, "title": "X", "secret": "Y"}, headers=auth())
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "COLUMN_DENIED"
    assert engine.executed == []


def test_insert_on_read_only_table():
    client, _ = make_client()
    resp = client.post("/api/secure-insert/users", json={"email": "x"}, headers=auth())
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "OPERATION_DENIED"


def test_update_requires_where():
    client, engine = make_client()
    resp = client.put("/api/secure-update/bookings", json={"where": {}, "data": {"title": "x"}},
                      headers=auth(role="root"))
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "NO_WHERE_CLAUSE"
    assert engine.executed == []


def test_update_on_hidden_where_column_is_denied():
    client, engine = make_client()
    resp = client.put("/api/secure-update/bookings", json={"where": {"secret": 1}, "data": {"title": "x"}},
                      headers=auth())
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "COLUMN_DENIED"
    assert engine.executed == []


def test_update_flat_body_and_not_found():
    client, _ = make_client({"rowcount": 0})
    resp = client.put("/api/secure-update/bookings", json={"where": {"id": 9}, "title": "x"}, headers=auth())
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "NOT_FOUND"


def test_bulk_update_hides_driver_errors_by_default():
    failure = OperationalError("UPDATE", {}, Exception("secret driver text"))
    for expose, visible in ((False, False), (True, True)):
        client, _ = make_client({"rowcount": 1}, failure, expose_details=expose)
        resp = client.put("/api/secure-update/bookings/bulk", json={"updates": [
            {"where": {"title": "a"}, "data": {"title": "b"}},
            {"where": {"title": "c"}, "data": {"title": "d"}},
        ]}, headers=auth())
        assert resp.status_code == 200
        entry = resp.get_json()["data"]["results"][1]
        assert entry["success"] is False
        assert ("secret driver text" in entry["error"]) is visible


def test_execution_error_details_gated():
    failure = OperationalError("SELECT", {}, Exception("table is locked"))
    client, _ = make_client(failure)
    body = client.get("/api/secure-select/bookings", headers=auth()).get_json()
    assert body["error"] == "EXECUTION_FAILED"
    assert "details" not in body

    client, _ = make_client(failure, expose_details=True)
    body = client.get("/api/secure-select/bookings", headers=auth()).get_json()
    assert "table is locked" in body["details"]


# ── Tests: misc ──────────────────────────────────────────────────────

def test_health_and_unknown_route():
    client, _ = make_client()
    assert client.get("/health").get_json()["status"] == "healthy"
    resp = client.get("/no/such/route")
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "NOT_FOUND"


def test_health_unhealthy_when_database_down():
    client, _ = make_client(OperationalError("SELECT 1", {}, Exception("down")))
    resp = client.get("/health")
    assert resp.status_code == 503
    assert resp.get_json()["checks"]["database"] is False
