"""
Database engine initialisation, statement execution and table introspection.
"""

import logging
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError
from sqlalchemy.sql.elements import TextClause

from secure_access.config import DB_POOL_RECYCLE, DB_POOL_SIZE, get_env
from secure_access.errors import ExecutionError
from secure_access.models import CompiledQuery

logger = logging.getLogger(__name__)


@dataclass
class StatementResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0
    lastrowid: Any = None


def init_engine(db_uri: Optional[str] = None):
    """Create a SQLAlchemy engine and verify the connection."""
    db_uri = db_uri or get_env("DB_URI")
    engine = create_engine(
        db_uri,
        echo=False,
        future=True,
        pool_pre_ping=True,
        pool_size=DB_POOL_SIZE,
        pool_recycle=DB_POOL_RECYCLE,
    )
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    print("[init] Connected to DB.")
    return engine


def to_text(query: CompiledQuery) -> Tuple[TextClause, Dict[str, Any]]:
    """Rewrite ``?`` placeholders as named binds ``:p0, :p1, ...``.

    Any literal colon already in the SQL is escaped first so it can never
    be read as a bind parameter.
    """
    parts = query.sql.replace(":", "\\:").split("?")
    if len(parts) - 1 != len(query.values):
        raise ExecutionError(
            "Statement could not be prepared",
            detail=f"{len(parts) - 1} placeholders for {len(query.values)} values",
        )
    sql = parts[0] + "".join(f":p{i}{part}" for i, part in enumerate(parts[1:]))
    params = {f"p{i}": value for i, value in enumerate(query.values)}
    return text(sql), params


def run_statement(engine, query: CompiledQuery, write: bool = False) -> StatementResult:
    """Execute one statement on its own pooled connection.

    Writes run inside ``engine.begin()`` and commit on success. The
    connection goes back to the pool on every exit path. Nothing is retried.
    """
    stmt, params = to_text(query)
    scope = engine.begin() if write else engine.connect()
    try:
        with scope as conn:
            result = conn.execute(stmt, params)
            rows = [dict(r) for r in result.mappings().all()] if result.returns_rows else []
            return StatementResult(
                rows=rows,
                rowcount=result.rowcount,
                lastrowid=getattr(result, "lastrowid", None),
            )
    except SQLAlchemyError as e:
        logger.error("Database query error: %s", e)
        raise ExecutionError("Database query failed", detail=str(e)) from e


def fetch_rows(engine, query: CompiledQuery) -> List[Dict[str, Any]]:
    return run_statement(engine, query).rows


def describe_table(engine, table: str) -> Optional[List[Dict[str, Any]]]:
    """Column descriptions for *table*, or None if the database has no such table."""
    try:
        columns = inspect(engine).get_columns(table)
    except NoSuchTableError:
        return None
    except SQLAlchemyError as e:
        logger.error("Could not describe table %s: %s", table, e)
        raise ExecutionError("Failed to get table information", detail=str(e)) from e
    return [
        {
            "name": c["name"],
            "type": str(c["type"]),
            "nullable": bool(c.get("nullable", True)),
            "default": None if c.get("default") is None else str(c["default"]),
        }
        for c in columns
    ]
