"""
Flask application factory and server entry-point.
"""

import os
import sys
import traceback

from flask import Flask
from flask_cors import CORS

from clinicore.config import TOKEN_EXPIRY_HOURS
from clinicore.database import init_engine
from clinicore.api.auth import get_sessions
from clinicore.api.routes import ENDPOINTS, register_routes


def create_app(engine=None):
    """
    Build a configured Flask app. Pass *engine* to reuse an existing SQLAlchemy
    engine (tests pass a fake); otherwise one is created from DB_URI.
    """
    app = Flask(__name__)
    CORS(app)

    if engine is None:
        try:
            print("[init] Initializing database connection...")
            engine = init_engine()
        except Exception as e:
            print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
            traceback.print_exc()
            sys.exit(1)

    get_sessions(app)
    register_routes(app, engine)
    print("[init] ✓ API server ready")
    return app


def main():
    """Run the development server."""
    print("=" * 60)
    print("Clinic Core – REST API Server")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] Session expiry: {TOKEN_EXPIRY_HOURS} hours")
    print("\nAPI Endpoints:")
    for _, method, path in ENDPOINTS:
        print(f"  - {method:<7} http://{host}:{port}{path}")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
