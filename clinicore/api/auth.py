"""
JWT authentication helpers and middleware for the Flask API.

Sessions live on the application instance (``app.extensions``), one dict per
app: ``{token: {"actor": Actor, "overrides": set | None, "created_at": ..., ...}}``.
Route handlers read the actor from ``request.session_data`` and pass it
explicitly into every access-control and rendering call.
"""

import secrets
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Dict, Iterable, Optional, Tuple

import jwt
from flask import current_app, jsonify, request

from clinicore.config import SECRET_KEY, TOKEN_EXPIRY_HOURS
from clinicore.models import Actor

SESSIONS_KEY = "clinicore.sessions"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_sessions(app=None) -> Dict[str, Dict[str, Any]]:
    app = app or current_app
    return app.extensions.setdefault(SESSIONS_KEY, {})


def generate_token(actor: Actor, issued_at: Optional[datetime] = None) -> str:
    """Signed token for *actor*; ``jti`` keeps two logins in the same second apart."""
    issued_at = issued_at or utcnow()
    claims = {
        "user_id": actor.id,
        "role": actor.role,
        "username": actor.username,
        "jti": secrets.token_hex(8),
        "iat": issued_at,
        "exp": issued_at + timedelta(hours=TOKEN_EXPIRY_HOURS),
    }
    return jwt.encode(claims, SECRET_KEY, algorithm="HS256")


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Decoded claims, or None for an expired, tampered or malformed token."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=["HS256"])
    except jwt.PyJWTError:
        return None


def open_session(actor: Actor, overrides: Optional[Iterable[str]]) -> Tuple[str, Dict[str, Any]]:
    """Issue a token for *actor* and store its session on the current app."""
    cleanup_expired_sessions()
    now = utcnow()
    token = generate_token(actor, issued_at=now)
    session = {
        "actor": actor,
        "overrides": set(overrides) if overrides is not None else None,
        "created_at": now,
        "last_activity": now,
    }
    get_sessions()[token] = session
    print(f"[auth] {actor.username} logged in (role={actor.role})")
    return token, session


def _token_from_request() -> Tuple[Optional[str], Optional[str]]:
    """(token, error) from the Bearer header, else from ``?token=`` (print links)."""
    header = request.headers.get("Authorization")
    if header is not None:
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None, "Invalid authorization header format"
        return token.strip(), None
    return request.args.get("token"), None


def token_required(f):
    """Decorator that protects endpoints with JWT authentication."""
    @wraps(f)
    def decorated(*args, **kwargs):
        token, error = _token_from_request()
        if error:
            return jsonify({"error": error}), 401
        if not token:
            return jsonify({"error": "Authentication token is missing"}), 401

        claims = verify_token(token)
        if not claims:
            return jsonify({"error": "Invalid or expired token"}), 401

        session = get_sessions().get(token)
        if session is None or session["actor"].id != claims.get("user_id"):
            return jsonify({"error": "Session not found. Please login again."}), 401

        session["last_activity"] = utcnow()
        request.session_data = session
        request.token = token
        return f(*args, **kwargs)

    return decorated


def cleanup_expired_sessions(app=None) -> int:
    """Drop sessions idle for longer than TOKEN_EXPIRY_HOURS; returns how many."""
    sessions = get_sessions(app)
    cutoff = utcnow() - timedelta(hours=TOKEN_EXPIRY_HOURS)
    expired = [tok for tok, data in sessions.items() if data["last_activity"] < cutoff]
    for tok in expired:
        del sessions[tok]
    if expired:
        print(f"[cleanup] Removed {len(expired)} expired sessions")
    return len(expired)
