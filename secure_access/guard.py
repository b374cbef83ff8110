"""
Request-level gate: table check, then operation check, before any SQL exists.
"""

import logging

from secure_access.errors import DenialKind, PolicyDenial
from secure_access.models import GuardResult, Operation
from secure_access.permissions import PolicyStore

logger = logging.getLogger(__name__)

# Same wording for every denial so responses cannot be used to map tables.
DENIED_MESSAGE = "Access denied"


def authorize(policy: PolicyStore, role: str, table: str, operation: Operation) -> GuardResult:
    """Run START -> TABLE_CHECK -> OPERATION_CHECK -> PROCEED.

    Raises PolicyDenial from either check. An unknown (role, table) pair is
    denied at TABLE_CHECK and never reaches the operation lookup.
    """
    if not policy.can_access_table(role, table):
        logger.info("Denied %s on %r for role %r: table", operation.value, table, role)
        raise PolicyDenial(DenialKind.TABLE_DENIED, DENIED_MESSAGE)

    if not policy.can_perform_operation(role, table, operation):
        logger.info("Denied %s on %s for role %s: operation", operation.value, table, role)
        raise PolicyDenial(DenialKind.OPERATION_DENIED, DENIED_MESSAGE)

    return GuardResult(
        table=table,
        role=role,
        operation=operation,
        pagination_limits=policy.get_pagination_limits(role),
        columns=policy.get_allowed_columns(role, table),
    )
