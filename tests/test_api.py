"""
Tests for the Flask REST API using the Flask test client.
Storage calls made by the routes are monkeypatched; no database is needed.
"""

from datetime import timedelta

import pytest

from clinicore.api import routes
from clinicore.api.app import create_app
from clinicore.api.auth import cleanup_expired_sessions, get_sessions, utcnow
from clinicore.models import Actor, DocumentRecord, PatientRecord


# ── Helpers / Fakes ──────────────────────────────────────────────────

class FakeConn:
    def execute(self, sql, params=None):
        return None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class FakeEngine:
    def __init__(self, fail=False):
        self.fail = fail

    def connect(self):
        if self.fail:
            raise RuntimeError("connection refused")
        return FakeConn()


@pytest.fixture
def app():
    return create_app(engine=FakeEngine())


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def records(monkeypatch):
    """Serve a bare patient record for any document request."""
    calls = []

    def fake_fetch(engine, kind, patient_id, event_id=None, invoice_number=""):
        calls.append((kind, patient_id, event_id, invoice_number))
        if patient_id == "CMH-404":
            raise ValueError(f"No patient with number {patient_id}.")
        return DocumentRecord(patient=PatientRecord(patient_id=patient_id, first_name="Amani"))

    monkeypatch.setattr(routes, "fetch_document_record", fake_fetch)
    return calls


def login(client, monkeypatch, role="nurse", overrides=None, user_id=5):
    actor = Actor(id=user_id, username=f"{role}{user_id}", role=role, display_name=role.title())
    monkeypatch.setattr(routes, "load_actor", lambda engine, key: actor)
    monkeypatch.setattr(routes, "load_permission_overrides", lambda engine, uid: overrides)
    resp = client.post("/api/auth/login", json={"api_key": "k"})
    assert resp.status_code == 200
    return resp.get_json()["token"]


def auth(token):
    return {"Authorization": f"Bearer {token}"}


# ── Tests: info / health ─────────────────────────────────────────────

def test_index(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "running"


def test_health_ok(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["checks"] == {"database": True, "templates": True}


def test_health_database_down():
    client = create_app(engine=FakeEngine(fail=True)).test_client()
    resp = client.get("/health")
    assert resp.status_code == 503
    assert resp.get_json()["status"] == "unhealthy"


# ── Tests: login / logout ────────────────────────────────────────────

def test_login_requires_json(client):
    resp = client.post("/api/auth/login", data="api_key=k")
    assert resp.status_code == 400


def test_login_requires_key(client):
    resp = client.post("/api/auth/login", json={"api_key": "  "})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "api_key is required"


def test_login_invalid_key(client, monkeypatch):
    def bad_key(engine, key):
        raise ValueError("Invalid key (no match in users).")

    monkeypatch.setattr(routes, "load_actor", bad_key)
    resp = client.post("/api/auth/login", json={"api_key": "nope"})
    assert resp.status_code == 401
    assert "Invalid key" in resp.get_json()["error"]


def test_login_returns_modules_and_permissions(client, monkeypatch):
    monkeypatch.setattr(routes, "load_actor",
                        lambda engine, key: Actor(id=3, username="nurse3", role="nurse"))
    monkeypatch.setattr(routes, "load_permission_overrides", lambda engine, uid: None)

    resp = client.post("/api/auth/login", json={"api_key": "k"})
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["token"]
    assert body["user"]["role_label"] == "Nurse"
    assert "laboratory" in body["user"]["modules"]
    assert "billing" not in body["user"]["modules"]
    assert body["user"]["permissions"] == sorted(body["user"]["permissions"])


def test_logout_ends_session(client, monkeypatch):
    token = login(client, monkeypatch)
    assert client.post("/api/auth/logout", headers=auth(token)).status_code == 200
    assert client.get("/api/user/profile", headers=auth(token)).status_code == 401


# ── Tests: token handling ────────────────────────────────────────────

def test_profile_requires_token(client):
    resp = client.get("/api/user/profile")
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Authentication token is missing"


def test_profile_rejects_garbage_token(client):
    resp = client.get("/api/user/profile", headers=auth("not-a-jwt"))
    assert resp.status_code == 401


def test_profile_rejects_non_bearer_header(client):
    resp = client.get("/api/user/profile", headers={"Authorization": "Token abc"})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Invalid authorization header format"


def test_repeat_logins_get_distinct_sessions(client, monkeypatch):
    first = login(client, monkeypatch)
    second = login(client, monkeypatch)
    assert first != second
    assert client.post("/api/auth/logout", headers=auth(first)).status_code == 200
    assert client.get("/api/user/profile", headers=auth(second)).status_code == 200


def test_profile_with_token(client, monkeypatch):
    token = login(client, monkeypatch, role="cashier")
    resp = client.get("/api/user/profile", headers=auth(token))
    assert resp.status_code == 200
    assert resp.get_json()["user"]["modules"] == ["dashboard", "billing", "insurance"]


def test_cleanup_expired_sessions(app, client, monkeypatch):
    token = login(client, monkeypatch)
    sessions = get_sessions(app)
    sessions[token]["last_activity"] = utcnow() - timedelta(hours=9)
    assert cleanup_expired_sessions(app) == 1
    assert token not in sessions


# ── Tests: access checks ─────────────────────────────────────────────

def test_access_check(client, monkeypatch):
    token = login(client, monkeypatch, role="nurse")
    assert client.get("/api/access/laboratory", headers=auth(token)).get_json()["allowed"] is True
    assert client.get("/api/access/billing", headers=auth(token)).get_json()["allowed"] is False


def test_role_defaults_unknown_role(client, monkeypatch):
    token = login(client, monkeypatch)
    body = client.get("/api/permissions/roles/auditor", headers=auth(token)).get_json()
    assert body["permissions"] == []


def test_permission_catalog(client, monkeypatch):
    token = login(client, monkeypatch)
    body = client.get("/api/permissions/catalog", headers=auth(token)).get_json()
    assert [c["key"] for c in body["categories"]][0] == "patient_management"


# ── Tests: permission administration ─────────────────────────────────

def test_user_permissions_needs_user_manage(client, monkeypatch):
    token = login(client, monkeypatch, role="doctor")
    resp = client.get("/api/users/9/permissions", headers=auth(token))
    assert resp.status_code == 403


def test_user_permissions_get_and_put(client, monkeypatch):
    token = login(client, monkeypatch, role="admin")
    saved = {}

    def fake_save(engine, user_id, grants):
        saved[user_id] = grants
        return set(grants) if grants is not None else None

    monkeypatch.setattr(routes, "save_permission_overrides", fake_save)

    resp = client.get("/api/users/9/permissions", headers=auth(token))
    assert resp.get_json() == {"user_id": 9, "overridden": False, "permissions": None}

    resp = client.put("/api/users/9/permissions", headers=auth(token),
                      json={"permissions": ["patient_view", "billing_view"]})
    assert resp.status_code == 200
    assert resp.get_json()["permissions"] == ["billing_view", "patient_view"]
    assert saved[9] == ["patient_view", "billing_view"]


def test_user_permissions_put_rejects_bad_payload(client, monkeypatch):
    token = login(client, monkeypatch, role="admin")
    resp = client.put("/api/users/9/permissions", headers=auth(token),
                      json={"permissions": "everything"})
    assert resp.status_code == 400


def test_user_permissions_put_unknown_key(client, monkeypatch):
    token = login(client, monkeypatch, role="admin")

    def reject(engine, user_id, grants):
        raise ValueError("Unknown permission(s): launch_rockets")

    monkeypatch.setattr(routes, "save_permission_overrides", reject)
    resp = client.put("/api/users/9/permissions", headers=auth(token),
                      json={"permissions": ["launch_rockets"]})
    assert resp.status_code == 400
    assert "launch_rockets" in resp.get_json()["error"]


# ── Tests: documents ─────────────────────────────────────────────────

def test_render_document_html(client, monkeypatch, records):
    token = login(client, monkeypatch, role="doctor")
    resp = client.get("/api/documents/clinical-summary/CMH-1?event_id=31", headers=auth(token))

    assert resp.status_code == 200
    assert resp.mimetype == "text/html"
    disposition = resp.headers["Content-Disposition"]
    assert disposition.startswith('inline; filename="Clinical_Summary_CMH-1_')
    assert disposition.endswith('.html"')
    assert b"CLINICAL SUMMARY" in resp.data
    assert records == [("clinical-summary", "CMH-1", 31, "")]


def test_render_document_text_download(client, monkeypatch, records):
    token = login(client, monkeypatch, role="cashier")
    resp = client.get(
        "/api/documents/detailed-service-bill/CMH-1?format=text&download=1&invoice=INV-7",
        headers=auth(token),
    )
    assert resp.status_code == 200
    assert resp.mimetype == "text/plain"
    assert resp.headers["Content-Disposition"].startswith('attachment; filename="Service_Bill_CMH-1_')
    assert records[0][3] == "INV-7"


def test_render_document_token_in_query(client, monkeypatch, records):
    token = login(client, monkeypatch, role="doctor")
    resp = client.get(f"/api/documents/clinical-summary/CMH-1?token={token}")
    assert resp.status_code == 200


def test_render_document_denied_for_role(client, monkeypatch, records):
    token = login(client, monkeypatch, role="nurse")
    resp = client.get("/api/documents/detailed-service-bill/CMH-1", headers=auth(token))
    assert resp.status_code == 403
    assert records == []


def test_render_document_override_grants_access(client, monkeypatch, records):
    token = login(client, monkeypatch, role="nurse", overrides={"billing_view"})
    resp = client.get("/api/documents/detailed-service-bill/CMH-1", headers=auth(token))
    assert resp.status_code == 200


def test_render_document_unknown_kind(client, monkeypatch, records):
    token = login(client, monkeypatch, role="admin")
    resp = client.get("/api/documents/horoscope/CMH-1", headers=auth(token))
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "Could not generate document"
    assert records == []


def test_render_document_unknown_format(client, monkeypatch, records):
    token = login(client, monkeypatch, role="admin")
    resp = client.get("/api/documents/clinical-summary/CMH-1?format=pdf", headers=auth(token))
    assert resp.status_code == 400


def test_render_document_missing_patient(client, monkeypatch, records):
    token = login(client, monkeypatch, role="admin")
    resp = client.get("/api/documents/clinical-summary/CMH-404", headers=auth(token))
    assert resp.status_code == 404
    assert "CMH-404" in resp.get_json()["details"]
