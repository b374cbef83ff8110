"""
Centralised configuration constants and environment helpers.
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


# ── Database ─────────────────────────────────────────────────────────
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "1800"))

# ── Identifiers ──────────────────────────────────────────────────────
IDENTIFIER_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*$"

# ── Query surface ────────────────────────────────────────────────────
# Legacy raw `where=` strings are only honoured when explicitly enabled.
ALLOW_RAW_WHERE = _flag("SECURE_ACCESS_ALLOW_RAW_WHERE")

DEFAULT_SEARCH_COLUMNS = ("name", "title", "description", "email")

# Columns the update path never writes, whatever the role.
SYSTEM_COLUMNS = frozenset({"id", "created_at", "created_by"})

# ── API server ───────────────────────────────────────────────────────
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
TOKEN_EXPIRY_HOURS = 24
FLASK_ENV = os.getenv("FLASK_ENV", "production")

# Driver error strings are only returned to clients in development.
EXPOSE_ERROR_DETAILS = FLASK_ENV == "development" or _flag("SECURE_ACCESS_DEBUG_ERRORS")


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value
