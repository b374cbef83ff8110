"""
Shared fakes: a scripted stand-in for a SQLAlchemy engine, and a small
policy store for tests that need different role tables than the shipped ones.
"""

from datetime import datetime, timezone

import pytest

from secure_access.models import ALL_COLUMNS, FilterCapability, PaginationLimits
from secure_access.permissions import PolicyStore


# ── Helpers / Fakes ──────────────────────────────────────────────────

class FakeResult:
    """Mimic SQLAlchemy Result with .mappings().all(), rowcount and lastrowid."""
    def __init__(self, rows=None, rowcount=0, lastrowid=None):
        self._rows = rows
        self.returns_rows = rows is not None
        self.rowcount = rowcount if rows is None else len(rows)
        self.lastrowid = lastrowid

    def mappings(self):
        return self

    def all(self):
        return list(self._rows or [])


class FakeConn:
    def __init__(self, engine):
        self._engine = engine

    def execute(self, stmt, params=None):
        self._engine.executed.append((getattr(stmt, "text", str(stmt)), dict(params or {})))
        if not self._engine.responses:
            return FakeResult()
        response = self._engine.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return FakeResult(**response)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class FakeEngine:
    """Mimic engine.connect() / engine.begin(), answering from a script.

    Each entry of *responses* is either kwargs for FakeResult or an
    exception to raise from execute().
    """
    def __init__(self, *responses):
        self.responses = list(responses)
        self.executed = []
        self.connect_calls = 0
        self.begin_calls = 0

    def connect(self):
        self.connect_calls += 1
        return FakeConn(self)

    def begin(self):
        self.begin_calls += 1
        return FakeConn(self)

    @property
    def statements(self):
        return [sql for sql, _ in self.executed]


FIXED_NOW = datetime(2025, 11, 17, 7, 38, 18, tzinfo=timezone.utc)


def build_test_policy():
    """Two roles over a 'bookings' and a 'users' table.

    ``clerk`` sees an explicit column list and may use ``customQueries`` but
    not ``numericRange``; ``root`` sees every column and may do anything.
    """
    return PolicyStore(
        table_access={
            "clerk": ("bookings", "users"),
            "root": ("bookings", "users"),
        },
        column_access={
            "clerk": {
                "bookings": ("id", "title", "age", "created_at", "updated_at", "updated_by"),
                "users": ("id", "email"),
            },
            "root": {"bookings": ALL_COLUMNS, "users": ALL_COLUMNS},
        },
        operation_access={
            "clerk": {"bookings": ("create", "read", "update"), "users": ("read",)},
            "root": {
                "bookings": ("create", "read", "update", "delete"),
                "users": ("create", "read", "update", "delete"),
            },
        },
        filter_permissions={
            "clerk": FilterCapability(text_search=True, custom_queries=True),
            "root": FilterCapability(
                text_search=True, numeric_range=True, date_range=True, boolean_filter=True,
                array_filter=True, null_check=True, custom_queries=True,
            ),
        },
        pagination_limits={
            "clerk": PaginationLimits(max_limit=20, default_limit=5, max_offset=100),
            "root": PaginationLimits(max_limit=1000, default_limit=50, max_offset=100000),
            "user": PaginationLimits(max_limit=50, default_limit=10, max_offset=1000),
        },
    )


@pytest.fixture
def test_policy():
    return build_test_policy()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW
