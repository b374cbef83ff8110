"""
Interactive CLI for the secure data-access layer.
Shows, per role, the exact SQL and bound values a read request compiles to,
without touching a database.
"""

import json

from secure_access.errors import SecureAccessError
from secure_access.filters import coerce_descriptors
from secure_access.guard import authorize
from secure_access.models import Operation, ReadRequest
from secure_access.permissions import build_default_policy
from secure_access.query_builder import build_select_query


def _ask(prompt):
    """Read one line; None on EOF / Ctrl-C or an explicit quit."""
    try:
        answer = input(prompt).strip()
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return None
    if answer.lower() in {"quit", "exit"}:
        print("Goodbye.")
        return None
    return answer


def explain(policy, role, table, filters_json="", select="", limit=""):
    """Compile one read request and return the SelectPlan."""
    raw = json.loads(filters_json) if filters_json else None
    request = ReadRequest(
        role=role,
        table=table,
        select=select or None,
        filters=coerce_descriptors(raw) if raw is not None else None,
        limit=limit or None,
    )
    authorize(policy, role, table, Operation.READ)
    return build_select_query(request, policy, allow_raw_where=False)


def main():
    print("=== Secure Data Access: query explainer ===\n")

    policy = build_default_policy()

    # ── Role ─────────────────────────────────────────────────────────
    role = _ask(f"Role to explain as ({', '.join(sorted(policy.roles))}) or 'quit': ")
    if not role:
        return

    tables = sorted(policy.get_allowed_tables(role))
    print(f"\n[policy] {role} may read from {len(tables)} table(s)")
    print(f"[policy] Filters: {policy.get_filter_capability(role).as_dict()}")
    print(f"[policy] Paging:  {policy.get_pagination_limits(role).as_dict()}")

    # ── REPL ─────────────────────────────────────────────────────────
    while True:
        table = _ask("\nTable (or 'quit'): ")
        if table is None:
            break
        if not table:
            continue

        filters_json = _ask("Filters JSON array (blank for none): ")
        if filters_json is None:
            break
        select = _ask("Columns, comma separated (blank for all visible): ")
        if select is None:
            break

        try:
            plan = explain(policy, role, table, filters_json, select)
        except ValueError as e:
            print("\n[INPUT ERROR] Filters are not valid JSON.")
            print("Details:", e)
            continue
        except SecureAccessError as e:
            print(f"\n[{e.kind.value}] {e.message}")
            continue

        print("\n[SQL]")
        print(plan.query.sql)
        print("[values]", list(plan.query.values))
        print(f"[paging] limit={plan.pagination.limit} offset={plan.pagination.offset}")


if __name__ == "__main__":
    main()
