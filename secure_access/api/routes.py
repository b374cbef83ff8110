"""
Flask route handlers for the secure select / insert / update REST surface.
"""

import json
import logging
import math

from flask import current_app, g, jsonify, request

from secure_access.api.auth import token_required
from secure_access.errors import DenialKind, ExecutionError, SecureAccessError, ValidationError
from secure_access.filters import coerce_descriptors
from secure_access.models import InsertRequest, ReadRequest, UpdateRequest
from secure_access.mutations import audit_timestamp

logger = logging.getLogger(__name__)


def _expose_details() -> bool:
    return bool(current_app.config.get("EXPOSE_ERROR_DETAILS"))


def _parse_filters(raw):
    if raw is None:
        return None
    try:
        decoded = json.loads(raw)
    except ValueError:
        decoded = None
    if not isinstance(decoded, list):
        raise ValidationError(DenialKind.INVALID_FILTER, "Invalid filters format. Must be valid JSON array.")
    return decoded


def _json_body():
    """The decoded JSON object body, or an empty dict; shape errors surface after the guard."""
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _meta(table, operation):
    return {
        "table": table,
        "role": g.access.role,
        "operation": operation,
        "timestamp": audit_timestamp(current_app.extensions["secure_access"].clock()),
    }


def _pagination_meta(result):
    limit = result.pagination.limit
    offset = result.pagination.offset
    current_page = result.pagination.page or 1
    total = result.total_count

    meta = {
        "totalRecords": len(result.rows),
        "totalCount": total,
        "page": current_page,
        "limit": limit,
        "offset": offset,
        "hasMore": bool(total) and current_page * limit < total,
    }
    if total is not None:
        total_pages = math.ceil(total / limit)
        meta["pagination"] = {
            "currentPage": current_page,
            "totalPages": total_pages,
            "totalRecords": total,
            "recordsPerPage": limit,
            "hasNextPage": current_page < total_pages,
            "hasPreviousPage": current_page > 1,
            "nextPage": current_page + 1 if current_page < total_pages else None,
            "previousPage": current_page - 1 if current_page > 1 else None,
            "startRecord": offset + 1,
            "endRecord": min(offset + limit, total),
        }
    return meta


def register_routes(app, service):
    """Register all API routes on the Flask *app*."""

    app.extensions["secure_access"] = service

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "Secure Data Access API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "select": "/api/secure-select/<table>",
                "tables": "/api/secure-select/tables",
                "capabilities": "/api/secure-select/capabilities",
                "insert": "/api/secure-insert/<table>",
                "update": "/api/secure-update/<table>",
                "health": "/health",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        from sqlalchemy import text as sa_text
        from sqlalchemy.exc import SQLAlchemyError

        checks = {"database": False, "policy": service.policy is not None}
        try:
            with service.engine.connect() as conn:
                conn.execute(sa_text("SELECT 1"))
            checks["database"] = True
        except SQLAlchemyError as e:
            logger.warning("Health check database failure: %s", e)

        all_healthy = all(checks.values())
        return jsonify({
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }), 200 if all_healthy else 503

    # ── Secure select ────────────────────────────────────────────────

    @app.route("/api/secure-select/tables", methods=["GET"])
    @token_required
    def allowed_tables():
        return jsonify({"success": True, "data": service.allowed_tables(g.access.role)}), 200

    @app.route("/api/secure-select/capabilities", methods=["GET"])
    @token_required
    def filter_capabilities():
        return jsonify({"success": True, "data": service.filter_capabilities(g.access.role)}), 200

    @app.route("/api/secure-select/search", methods=["POST"])
    @token_required
    def global_search():
        body = _json_body()
        term = body.get("searchTerm")
        search_columns = body.get("searchColumns") or []
        results = service.global_search(g.access.role, term, search_columns)
        return jsonify({
            "success": True,
            "data": {
                "searchTerm": term,
                "totalResults": sum(r["count"] for r in results),
                "resultsByTable": results,
                "tablesWithResults": len(results),
            },
            "meta": {
                "role": g.access.role,
                "searchColumns": search_columns or "default columns",
            },
        }), 200

    @app.route("/api/secure-select/<table>", methods=["GET"])
    @token_required
    def secure_select(table):
        args = request.args
        raw_filters = _parse_filters(args.get("filters"))
        read = ReadRequest(
            role=g.access.role,
            user_id=g.access.user_id,
            table=table,
            select=args.get("select"),
            filters=coerce_descriptors(raw_filters) if raw_filters is not None else None,
            where=args.get("where"),
            order=args.get("order"),
            page=args.get("page"),
            limit=args.get("limit"),
            offset=args.get("offset"),
            include_count=args.get("include_count") == "true",
        )
        result = service.select(read)

        meta = {"table": table, "role": g.access.role}
        meta.update(_pagination_meta(result))
        meta["filters"] = raw_filters
        meta["appliedFilters"] = len(raw_filters) if raw_filters else 0
        return jsonify({"success": True, "data": result.rows, "meta": meta}), 200

    @app.route("/api/secure-select/<table>/info", methods=["GET"])
    @token_required
    def table_info(table):
        info = service.table_info(g.access.role, table)
        if info is None:
            return jsonify({"success": False, "message": "Table not found", "error": "NOT_FOUND"}), 404
        return jsonify({"success": True, "data": info}), 200

    @app.route("/api/secure-select/<table>/search", methods=["POST"])
    @token_required
    def advanced_search(table):
        body = _json_body()
        params = body.get("searchParams")
        rows = service.advanced_search(g.access.role, table, params)
        return jsonify({
            "success": True,
            "data": rows,
            "meta": {
                "table": table,
                "role": g.access.role,
                "searchConditions": params,
                "totalResults": len(rows),
            },
        }), 200

    # ── Secure insert ────────────────────────────────────────────────

    @app.route("/api/secure-insert/<table>", methods=["POST"])
    @token_required
    def secure_insert(table):
        record = request.get_json(silent=True)
        result = service.insert(InsertRequest(
            role=g.access.role, user_id=g.access.user_id, table=table, record=record,
        ))
        return jsonify({
            "success": True,
            "message": f"Record inserted successfully into {table}",
            "data": {
                "id": result.inserted_id,
                "record": result.record,
                "insertedColumns": result.written_columns,
                "filteredColumns": result.filtered_columns,
            },
            "meta": _meta(table, "insert"),
        }), 201

    @app.route("/api/secure-insert/<table>/bulk", methods=["POST"])
    @token_required
    def secure_bulk_insert(table):
        body = _json_body()
        result = service.bulk_insert(g.access.role, g.access.user_id, table, body.get("data"))
        return jsonify({
            "success": True,
            "message": f"Bulk insert completed successfully - {result.inserted_count} records inserted into {table}",
            "data": {
                "insertedCount": result.inserted_count,
                "firstInsertId": result.first_insert_id,
                "lastInsertId": result.last_insert_id,
                "columns": result.columns,
            },
            "meta": _meta(table, "bulk_insert"),
        }), 201

    # ── Secure update ────────────────────────────────────────────────

    @app.route("/api/secure-update/<table>", methods=["PUT"])
    @token_required
    def secure_update(table):
        body = _json_body()
        where = body.get("where")
        data = body.get("data")
        if data is None:
            data = {k: v for k, v in body.items() if k not in ("where", "data")}

        result = service.update(UpdateRequest(
            role=g.access.role, user_id=g.access.user_id, table=table, where=where, data=data,
        ))
        return jsonify({
            "success": True,
            "message": f"Update completed successfully - {result.affected_rows} record(s) updated in {table}",
            "data": {
                "affectedRows": result.affected_rows,
                "updatedRecord": result.records,
                "updatedColumns": result.updated_columns,
                "whereConditions": where,
            },
            "meta": _meta(table, "update"),
        }), 200

    @app.route("/api/secure-update/<table>/bulk", methods=["PUT"])
    @token_required
    def secure_bulk_update(table):
        body = _json_body()
        result = service.bulk_update(g.access.role, g.access.user_id, table, body.get("updates"))
        entries = []
        for r in result.results:
            entry = {"index": r.index, "success": r.success, "affectedRows": r.affected_rows}
            if not r.success:
                entry["error"] = r.error if _expose_details() else "Update failed"
            entries.append(entry)
        return jsonify({
            "success": True,
            "message": f"Bulk update completed - {result.total_affected_rows} total record(s) updated in {table}",
            "data": {
                "totalAffectedRows": result.total_affected_rows,
                "processedUpdates": result.processed,
                "results": entries,
            },
            "meta": _meta(table, "bulk_update"),
        }), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(SecureAccessError)
    def secure_access_error(e):
        body = {"success": False, "message": e.message, "error": e.kind.value}
        if e.errors:
            body["errors"] = e.errors
        if isinstance(e, ExecutionError) and _expose_details():
            body["details"] = e.detail
        return jsonify(body), e.http_status

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"success": False, "message": "Endpoint not found", "error": "NOT_FOUND"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"success": False, "message": "Method not allowed", "error": "METHOD_NOT_ALLOWED"}), 405

    @app.errorhandler(500)
    def internal_error(e):
        original = getattr(e, "original_exception", None)
        logger.error("Unhandled error: %s", original or e, exc_info=original)
        body = {"success": False, "message": "Internal server error", "error": "INTERNAL_ERROR"}
        if _expose_details() and original is not None:
            body["details"] = str(original)
        return jsonify(body), 500
