"""
Per-request orchestration: guard, build, execute, shape the result.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from secure_access.database import describe_table, fetch_rows, run_statement
from secure_access.errors import DenialKind, ExecutionError, NoRowsMatched, ValidationError
from secure_access.filters import CAPABILITY_OPERATORS, Operator, compile_filters, filter_class_for
from secure_access.guard import authorize
from secure_access.models import (
    BulkInsertResult,
    BulkUpdateEntryResult,
    BulkUpdateResult,
    FilterClass,
    FilterDescriptor,
    InsertRequest,
    InsertResult,
    Operation,
    ReadRequest,
    ReadResult,
    UpdateRequest,
    UpdateResult,
)
from secure_access.mutations import build_bulk_insert, build_bulk_update, build_insert, build_update, utc_now
from secure_access.permissions import PolicyStore
from secure_access.query_builder import (
    build_conditions_query,
    build_lookup_by_id,
    build_search_query,
    build_select_query,
)

logger = logging.getLogger(__name__)

# Advanced-search operator spellings -> filter operators.
SEARCH_OPERATORS = {
    "=": Operator.EQUALS,
    "!=": Operator.NOT_EQUALS,
    "<": Operator.LT,
    ">": Operator.GT,
    "<=": Operator.LTE,
    ">=": Operator.GTE,
    "LIKE": Operator.CONTAINS,
    "IN": Operator.IN,
    "BETWEEN": Operator.BETWEEN,
}


class SecureDataService:
    """The secure generic data-access surface, independent of HTTP."""

    def __init__(self, engine, policy: PolicyStore, clock: Callable[[], datetime] = utc_now,
                 allow_raw_where: Optional[bool] = None):
        self.engine = engine
        self.policy = policy
        self.clock = clock
        self.allow_raw_where = allow_raw_where

    # ── Read ─────────────────────────────────────────────────────────

    def select(self, request: ReadRequest) -> ReadResult:
        authorize(self.policy, request.role, request.table, Operation.READ)
        plan = build_select_query(request, self.policy, self.allow_raw_where)

        logger.info("[SECURE SELECT] User %s (%s) accessing table: %s",
                    request.user_id, request.role, request.table)
        rows = fetch_rows(self.engine, plan.query)

        total_count = None
        if request.page is not None or request.include_count:
            try:
                count_rows = fetch_rows(self.engine, plan.count_query)
            except ExecutionError as e:
                logger.warning("Count query failed for %s, continuing without count: %s",
                               request.table, e.detail)
            else:
                if count_rows:
                    total_count = int(count_rows[0]["total"])

        return ReadResult(rows=rows, pagination=plan.pagination, total_count=total_count)

    def allowed_tables(self, role: str) -> Dict[str, Any]:
        tables = sorted(self.policy.get_allowed_tables(role))
        return {
            "role": role,
            "allowedTables": tables,
            "tableCount": len(tables),
            "filterCapabilities": self.policy.get_filter_capability(role).as_dict(),
            "paginationLimits": self.policy.get_pagination_limits(role).as_dict(),
        }

    def filter_capabilities(self, role: str) -> Dict[str, Any]:
        capabilities = {
            fc.value: {
                "available": self.policy.can_use_filter_class(role, fc),
                "operators": list(CAPABILITY_OPERATORS[fc]),
            }
            for fc in FilterClass
            if fc in CAPABILITY_OPERATORS
        }
        search_operators = {
            spelling: {
                "operator": op.value,
                "filterClass": filter_class_for(op.value).value,
                "available": self.policy.can_use_filter_class(role, filter_class_for(op.value)),
            }
            for spelling, op in SEARCH_OPERATORS.items()
        }
        return {
            "role": role,
            "capabilities": capabilities,
            "allOperators": [op.value for op in Operator],
            "searchOperators": search_operators,
        }

    def table_info(self, role: str, table: str) -> Optional[Dict[str, Any]]:
        guard = authorize(self.policy, role, table, Operation.READ)
        described = describe_table(self.engine, table)
        if described is None:
            return None
        visible = [c for c in described if guard.columns.allows(c["name"])]
        return {
            "table": table,
            "role": role,
            "columns": visible,
            "allowedColumns": "all" if guard.columns.is_wildcard else sorted(guard.columns.names),
            "totalColumns": len(described),
            "visibleColumnsCount": len(visible),
            "filterCapabilities": self.policy.get_filter_capability(role).as_dict(),
        }

    def advanced_search(self, role: str, table: str, search_params: Any) -> List[Dict[str, Any]]:
        guard = authorize(self.policy, role, table, Operation.READ)
        if not isinstance(search_params, list):
            raise ValidationError(DenialKind.INVALID_FILTER,
                                  "Search parameters must be an array of conditions")

        descriptors = []
        for condition in search_params:
            if not isinstance(condition, dict):
                continue
            op = SEARCH_OPERATORS.get(str(condition.get("operator") or "=").upper())
            if op is None:
                continue
            descriptors.append(FilterDescriptor(
                column=condition.get("column"), operator=op.value, value=condition.get("value"),
            ))

        where = compile_filters(descriptors, role, self.policy, guard.columns)
        if not where.conditions:
            raise ValidationError(
                DenialKind.INVALID_FILTER,
                "No valid search conditions provided. Conditions are dropped when the column "
                "is not visible to your role or the operator's filter class is not enabled "
                "for it; see searchOperators on /api/secure-select/capabilities.",
            )

        query = build_conditions_query(table, guard.columns, where, guard.pagination_limits.default_limit)
        return fetch_rows(self.engine, query)

    def global_search(self, role: str, term: Any, search_columns: Sequence[str] = ()) -> List[Dict[str, Any]]:
        if not isinstance(term, str) or not term.strip():
            raise ValidationError(DenialKind.INVALID_FILTER, "Search term is required and must be a string")
        if not isinstance(search_columns, (list, tuple)):
            search_columns = ()

        limit = self.policy.get_pagination_limits(role).default_limit
        results = []
        for table in sorted(self.policy.get_allowed_tables(role)):
            if not self.policy.can_perform_operation(role, table, Operation.READ):
                continue
            query = build_search_query(
                table, self.policy.get_allowed_columns(role, table), term.strip(), limit, search_columns,
            )
            if query is None:
                continue
            try:
                rows = fetch_rows(self.engine, query)
            except ExecutionError as e:
                logger.warning("Search error in table %s: %s", table, e.detail)
                continue
            if rows:
                results.append({"table": table, "results": rows, "count": len(rows)})
        return results

    # ── Write ────────────────────────────────────────────────────────

    def _reread(self, table: str, columns, record_id: Any) -> Optional[List[Dict[str, Any]]]:
        try:
            return fetch_rows(self.engine, build_lookup_by_id(table, columns, record_id))
        except ExecutionError as e:
            logger.warning("Could not re-read %s id %s: %s", table, record_id, e.detail)
            return None

    def insert(self, request: InsertRequest) -> InsertResult:
        guard = authorize(self.policy, request.role, request.table, Operation.CREATE)
        query, data = build_insert(request.table, request.record, guard.columns,
                                   request.user_id, self.clock())

        logger.info("[SECURE INSERT] User %s (%s) inserting into table: %s",
                    request.user_id, request.role, request.table)
        logger.info("[SECURE INSERT] Columns: %s", ", ".join(data))
        outcome = run_statement(self.engine, query, write=True)

        inserted_id = outcome.lastrowid or data.get("id")
        record = None
        if inserted_id:
            rows = self._reread(request.table, guard.columns, inserted_id)
            record = rows[0] if rows else None

        return InsertResult(
            inserted_id=inserted_id,
            written_columns=list(data),
            record=record,
            filtered_columns="all" if guard.columns.is_wildcard else sorted(guard.columns.names),
        )

    def bulk_insert(self, role: str, user_id: Any, table: str, records: Any) -> BulkInsertResult:
        guard = authorize(self.policy, role, table, Operation.CREATE)
        query, columns, count = build_bulk_insert(table, records, guard.columns, user_id, self.clock())

        logger.info("[SECURE BULK INSERT] User %s (%s) bulk inserting %d records into table: %s",
                    user_id, role, count, table)
        outcome = run_statement(self.engine, query, write=True)

        first_id = outcome.lastrowid or None
        last_id = first_id + count - 1 if isinstance(first_id, int) else None
        return BulkInsertResult(
            inserted_count=count, first_insert_id=first_id, last_insert_id=last_id, columns=columns,
        )

    def update(self, request: UpdateRequest) -> UpdateResult:
        guard = authorize(self.policy, request.role, request.table, Operation.UPDATE)
        query, values = build_update(request.table, request.where, request.data, guard.columns,
                                     request.user_id, self.clock())

        logger.info("[SECURE UPDATE] User %s (%s) updating table: %s",
                    request.user_id, request.role, request.table)
        logger.info("[SECURE UPDATE] WHERE columns: %s SET columns: %s",
                    ", ".join(request.where), ", ".join(values))
        outcome = run_statement(self.engine, query, write=True)

        if outcome.rowcount == 0:
            raise NoRowsMatched()

        records = None
        if outcome.rowcount == 1 and request.where.get("id") is not None:
            records = self._reread(request.table, guard.columns, request.where["id"])

        return UpdateResult(affected_rows=outcome.rowcount, updated_columns=list(values), records=records)

    def bulk_update(self, role: str, user_id: Any, table: str, updates: Any) -> BulkUpdateResult:
        guard = authorize(self.policy, role, table, Operation.UPDATE)
        statements = build_bulk_update(table, updates, guard.columns, user_id, self.clock())

        results = []
        total = 0
        for index, query in statements:
            try:
                outcome = run_statement(self.engine, query, write=True)
            except ExecutionError as e:
                results.append(BulkUpdateEntryResult(index=index, success=False, error=e.detail))
                continue
            total += outcome.rowcount
            results.append(BulkUpdateEntryResult(index=index, success=True, affected_rows=outcome.rowcount))

        logger.info("[SECURE BULK UPDATE] User %s (%s) bulk updating %d records in table: %s",
                    user_id, role, len(statements), table)
        return BulkUpdateResult(total_affected_rows=total, processed=len(statements), results=results)
