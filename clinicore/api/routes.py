"""
Flask route handlers for the REST API.
"""

import sys
import traceback
from datetime import timedelta

from flask import Response, jsonify, request
from sqlalchemy import text

from clinicore.config import TOKEN_EXPIRY_HOURS
from clinicore.database import fetch_document_record
from clinicore.layouts import TEMPLATES, UnknownDocumentKind
from clinicore.permissions import capability_catalog
from clinicore.rbac import (
    accessible_modules,
    can_access_module,
    can_render_document,
    display_role,
    effective_permissions,
    has_capability,
    load_actor,
    load_permission_overrides,
    resolve_permissions,
    save_permission_overrides,
)
from clinicore.renderer import BACKENDS, render
from clinicore.api.auth import get_sessions, open_session, token_required

# (name, method, path) as listed by the index route and the startup banner
ENDPOINTS = (
    ("login", "POST", "/api/auth/login"),
    ("logout", "POST", "/api/auth/logout"),
    ("profile", "GET", "/api/user/profile"),
    ("access", "GET", "/api/access/<module>"),
    ("catalog", "GET", "/api/permissions/catalog"),
    ("role_defaults", "GET", "/api/permissions/roles/<role>"),
    ("user_permissions", "GET|PUT", "/api/users/<id>/permissions"),
    ("documents", "GET", "/api/documents/<kind>/<patient_id>"),
    ("health", "GET", "/health"),
)


def _user_payload(actor, overrides):
    return {
        "id": actor.id,
        "username": actor.username,
        "display_name": actor.display_name,
        "role": actor.role,
        "role_label": display_role(actor.role),
        "modules": accessible_modules(actor),
        "permissions": sorted(effective_permissions(actor, overrides)),
    }


def register_routes(app, engine):
    """Register all API routes on the Flask *app*."""

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "Clinic Core API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {name: f"{method} {path}" for name, method, path in ENDPOINTS},
        })

    @app.route("/health", methods=["GET"])
    def health():
        checks = {"database": False, "templates": bool(TEMPLATES)}
        try:
            if engine:
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                checks["database"] = True
        except Exception as e:
            print(f"[WARN] Health check could not reach the database: {e}", file=sys.stderr)

        all_healthy = all(checks.values())
        return jsonify({
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
            "active_sessions": len(get_sessions()),
        }), 200 if all_healthy else 503

    # ── Auth ─────────────────────────────────────────────────────────

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        if not request.is_json:
            return jsonify({"error": "Content-Type must be application/json"}), 400

        api_key = (request.json.get("api_key") or "").strip()
        if not api_key:
            return jsonify({"error": "api_key is required"}), 400

        try:
            actor = load_actor(engine, api_key)
            overrides = load_permission_overrides(engine, actor.id)
        except ValueError as e:
            return jsonify({"error": f"Authentication failed: {str(e)}"}), 401
        except Exception as e:
            print(f"[ERROR] Login error: {e}", file=sys.stderr)
            traceback.print_exc()
            return jsonify({"error": "Internal server error during login"}), 500

        token, session = open_session(actor, overrides)
        expires_at = session["created_at"] + timedelta(hours=TOKEN_EXPIRY_HOURS)
        return jsonify({
            "success": True,
            "token": token,
            "user": _user_payload(actor, session["overrides"]),
            "expires_at": expires_at.isoformat(),
        }), 200

    @app.route("/api/auth/logout", methods=["POST"])
    @token_required
    def logout():
        get_sessions().pop(request.token, None)
        return jsonify({"success": True, "message": "Logged out successfully"}), 200

    # ── Profile / access checks ──────────────────────────────────────

    @app.route("/api/user/profile", methods=["GET"])
    @token_required
    def get_profile():
        session_data = request.session_data
        return jsonify({
            "success": True,
            "user": _user_payload(session_data["actor"], session_data["overrides"]),
            "session": {
                "created_at": session_data["created_at"].isoformat(),
                "last_activity": session_data["last_activity"].isoformat(),
            },
        }), 200

    @app.route("/api/access/<module>", methods=["GET"])
    @token_required
    def check_access(module):
        actor = request.session_data["actor"]
        return jsonify({"module": module, "allowed": can_access_module(actor, module)}), 200

    # ── Permissions administration ───────────────────────────────────

    @app.route("/api/permissions/catalog", methods=["GET"])
    @token_required
    def permission_catalog():
        return jsonify({"categories": capability_catalog()}), 200

    @app.route("/api/permissions/roles/<role>", methods=["GET"])
    @token_required
    def role_defaults(role):
        return jsonify({
            "role": role,
            "label": display_role(role),
            "permissions": sorted(resolve_permissions(role)),
        }), 200

    @app.route("/api/users/<int:user_id>/permissions", methods=["GET", "PUT"])
    @token_required
    def user_permissions(user_id):
        session_data = request.session_data
        if not has_capability(session_data["actor"], "user_manage", session_data["overrides"]):
            return jsonify({"error": "Not allowed to manage user permissions"}), 403

        try:
            if request.method == "GET":
                overrides = load_permission_overrides(engine, user_id)
            else:
                if not request.is_json:
                    return jsonify({"error": "Content-Type must be application/json"}), 400
                grants = request.json.get("permissions")
                if grants is not None and not isinstance(grants, list):
                    return jsonify({"error": "permissions must be a list or null"}), 400
                overrides = save_permission_overrides(engine, user_id, grants)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        except Exception as e:
            print(f"[ERROR] Permission update error: {e}", file=sys.stderr)
            traceback.print_exc()
            return jsonify({"error": "Internal server error"}), 500

        return jsonify({
            "user_id": user_id,
            "overridden": overrides is not None,
            "permissions": sorted(overrides) if overrides is not None else None,
        }), 200

    # ── Documents ────────────────────────────────────────────────────

    @app.route("/api/documents/<kind>/<patient_id>", methods=["GET"])
    @token_required
    def render_document(kind, patient_id):
        session_data = request.session_data
        actor = session_data["actor"]
        output = request.args.get("format", "html")
        event_id = request.args.get("event_id", type=int)
        invoice_number = request.args.get("invoice", "")

        if kind not in TEMPLATES:
            return jsonify({"error": "Could not generate document",
                            "details": str(UnknownDocumentKind(kind))}), 404
        if not can_render_document(actor, kind, session_data["overrides"]):
            return jsonify({"error": "Not allowed to print this document"}), 403
        if output not in BACKENDS:
            return jsonify({"error": f"Unsupported format: {output}"}), 400

        try:
            record = fetch_document_record(engine, kind, patient_id, event_id, invoice_number)
            doc = render(kind, record, output=output)
        except ValueError as e:
            return jsonify({"error": "Could not generate document", "details": str(e)}), 404
        except Exception as e:
            print(f"[ERROR] Document error ({kind}, {patient_id}): {e}", file=sys.stderr)
            traceback.print_exc()
            return jsonify({"error": "Could not generate document"}), 500

        print(f"[render] {actor.username} printed {doc.filename}")
        disposition = "attachment" if request.args.get("download") else "inline"
        return Response(
            doc.content,
            mimetype=doc.media_type,
            headers={"Content-Disposition": f'{disposition}; filename="{doc.filename}"'},
        )

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Endpoint not found", "message": str(e)}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({"error": "Internal server error", "message": str(e)}), 500
