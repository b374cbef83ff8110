"""
Flask application factory and server entry-point.
"""

import logging
import os
import sys
import traceback

from flask import Flask
from flask_cors import CORS

from secure_access.config import ALLOW_RAW_WHERE, EXPOSE_ERROR_DETAILS, SECRET_KEY, TOKEN_EXPIRY_HOURS
from secure_access.database import init_engine
from secure_access.permissions import build_default_policy
from secure_access.service import SecureDataService
from secure_access.api.routes import register_routes


def configure_logging(level=logging.INFO):
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(engine=None, policy=None, clock=None, config=None):
    """Build and return a fully configured Flask application.

    *engine* and *policy* are injected in tests; in production the engine
    comes from ``DB_URI`` and the policy from the shipped role tables.
    """
    app = Flask(__name__)
    CORS(app)
    app.config.update(
        JWT_SECRET_KEY=SECRET_KEY,
        EXPOSE_ERROR_DETAILS=EXPOSE_ERROR_DETAILS,
        ALLOW_RAW_WHERE=ALLOW_RAW_WHERE,
    )
    if config:
        app.config.update(config)

    # ── Initialise shared resources ──────────────────────────────────
    try:
        if engine is None:
            print("[init] Initializing database connection...")
            engine = init_engine()
        if policy is None:
            print("[init] Loading role policies...")
            policy = build_default_policy()
    except Exception as e:
        print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
        traceback.print_exc()
        sys.exit(1)

    service_kwargs = {"allow_raw_where": app.config["ALLOW_RAW_WHERE"]}
    if clock is not None:
        service_kwargs["clock"] = clock
    service = SecureDataService(engine, policy, **service_kwargs)

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app, service)

    return app


def main():
    """Run the development server."""
    configure_logging()
    print("=" * 60)
    print("Secure Data Access – REST API Server")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] Raw where clauses: {'enabled' if ALLOW_RAW_WHERE else 'disabled'}")
    print(f"[server] Token expiry: {TOKEN_EXPIRY_HOURS} hours")
    print("\nAPI Endpoints:")
    print(f"  - GET  http://{host}:{port}/api/secure-select/tables")
    print(f"  - GET  http://{host}:{port}/api/secure-select/capabilities")
    print(f"  - POST http://{host}:{port}/api/secure-select/search")
    print(f"  - GET  http://{host}:{port}/api/secure-select/<table>")
    print(f"  - GET  http://{host}:{port}/api/secure-select/<table>/info")
    print(f"  - POST http://{host}:{port}/api/secure-select/<table>/search")
    print(f"  - POST http://{host}:{port}/api/secure-insert/<table>[/bulk]")
    print(f"  - PUT  http://{host}:{port}/api/secure-update/<table>[/bulk]")
    print(f"  - GET  http://{host}:{port}/health")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
