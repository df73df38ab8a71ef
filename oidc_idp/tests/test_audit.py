"""
Tests for audit logging of interception decisions and logins. No passwords in audit records.
"""
import json
import os

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("IDP_DATABASE_URL", "sqlite:///:memory:")

from oidc_idp.audit import (
    EVENT_AUTHZ_COMPLETED,
    EVENT_AUTHZ_REQUEST_ACCEPTED,
    EVENT_AUTHZ_REQUEST_REJECTED,
    EVENT_LOGIN_FAIL,
    EVENT_LOGIN_OK,
    EVENT_PROMPT_NONE_DENIED,
    EVENT_REAUTH_FORCED,
)
from oidc_idp.config import AUTHORIZE_PATH, LOGIN_PATH
from oidc_idp.database import SessionLocal, init_db
from oidc_idp.main import app
from oidc_idp.models import AuditLog, Client, User
from oidc_idp.seed import hash_password

CALLBACK = "http://127.0.0.1:8000/callback"


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def seeded(client):
    init_db()
    db = SessionLocal()
    try:
        if db.query(User).filter(User.username == "audituser").first() is None:
            db.add(User(username="audituser", password_hash=hash_password("auditpass")))
        if db.query(Client).filter(Client.client_id == "audit-client").first() is None:
            db.add(Client(client_id="audit-client", redirect_uris=json.dumps([CALLBACK])))
        db.commit()
        yield db
    finally:
        db.close()


def _events(event_type: str, client_id: str = "audit-client") -> list[AuditLog]:
    db = SessionLocal()
    try:
        return (
            db.query(AuditLog)
            .filter(AuditLog.event_type == event_type, AuditLog.client_id == client_id)
            .all()
        )
    finally:
        db.close()


def test_audit_rejected_request_recorded(client, seeded):
    before = len(_events(EVENT_AUTHZ_REQUEST_REJECTED, "no-such-client"))
    client.get(AUTHORIZE_PATH, params={"client_id": "no-such-client"})
    rows = _events(EVENT_AUTHZ_REQUEST_REJECTED, "no-such-client")
    assert len(rows) == before + 1
    assert rows[-1].outcome == "fail"


def test_audit_prompt_none_denied_recorded(client, seeded):
    before = len(_events(EVENT_PROMPT_NONE_DENIED))
    client.get(
        AUTHORIZE_PATH,
        params={"client_id": "audit-client", "redirect_uri": CALLBACK, "prompt": "none"},
        follow_redirects=False,
    )
    assert len(_events(EVENT_PROMPT_NONE_DENIED)) == before + 1
    assert _events(EVENT_AUTHZ_REQUEST_ACCEPTED)


def test_audit_login_fail_and_ok_recorded(client, seeded):
    client.get(AUTHORIZE_PATH, params={"client_id": "audit-client", "prompt": "login"})
    assert _events(EVENT_REAUTH_FORCED)

    fails_before = len(_events(EVENT_LOGIN_FAIL))
    client.post(LOGIN_PATH, data={"username": "audituser", "password": "wrong"})
    fails = _events(EVENT_LOGIN_FAIL)
    assert len(fails) == fails_before + 1
    assert fails[-1].subject is None

    response = client.post(
        LOGIN_PATH, data={"username": "audituser", "password": "auditpass"}, follow_redirects=False
    )
    oks = _events(EVENT_LOGIN_OK)
    assert oks and oks[-1].subject == "audituser"

    client.get(response.headers["location"])
    completed = _events(EVENT_AUTHZ_COMPLETED)
    assert completed and completed[-1].subject == "audituser"


def test_audit_list_endpoint_filters(client, seeded):
    client.get(AUTHORIZE_PATH, params={"client_id": "no-such-client"})
    response = client.get(
        "/audit", params={"event_type": EVENT_AUTHZ_REQUEST_REJECTED, "client_id": "no-such-client"}
    )
    assert response.status_code == 200
    data = response.json()
    assert data
    assert all(e["event_type"] == EVENT_AUTHZ_REQUEST_REJECTED for e in data)
    assert all("password" not in json.dumps(e) for e in data)
