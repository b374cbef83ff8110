"""
Error taxonomy shared by the guard, the builders and the HTTP layer.
"""

from enum import Enum
from typing import List, Optional


class DenialKind(str, Enum):
    TABLE_DENIED = "TABLE_DENIED"
    OPERATION_DENIED = "OPERATION_DENIED"
    COLUMN_DENIED = "COLUMN_DENIED"
    NO_WHERE_CLAUSE = "NO_WHERE_CLAUSE"
    INVALID_FILTER = "INVALID_FILTER"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    NOT_FOUND = "NOT_FOUND"
    EXECUTION_FAILED = "EXECUTION_FAILED"


class SecureAccessError(Exception):
    """Base class: every failure carries a kind, a message and an HTTP status."""

    http_status = 500

    def __init__(self, kind: DenialKind, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.errors = list(errors or [])


class PolicyDenial(SecureAccessError):
    """Table, operation or column not permitted for the role. Never retried."""

    http_status = 403


class ValidationError(SecureAccessError):
    """Malformed request: bad filters, missing WHERE, empty payload."""

    http_status = 400


class NoRowsMatched(SecureAccessError):
    http_status = 404

    def __init__(self, message: str = "No records found matching the WHERE conditions"):
        super().__init__(DenialKind.NOT_FOUND, message)


class ExecutionError(SecureAccessError):
    """The database rejected or failed a statement.

    ``detail`` holds the driver message; callers decide whether to expose it.
    """

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(DenialKind.EXECUTION_FAILED, message)
        self.detail = detail
