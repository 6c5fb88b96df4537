from __future__ import annotations

import json

from fastapi.testclient import TestClient

from taskboard.config import get_settings
from taskboard.ops import audit
from taskboard.server import app
from tests._helpers.auth import register_user


def test_audit_emit_scrubs_sensitive_meta() -> None:
    audit.emit(
        "auth.login_failed",
        request_id="rid1",
        user_id=None,
        meta={"password": "hunter22", "title": "secret plans", "email": "a@b.co"},
        outcome="denied",
    )
    recs = audit.read_recent(10)
    assert recs[-1]["event"] == "auth.login_failed"
    assert recs[-1]["request_id"] == "rid1"
    raw = json.dumps(recs)
    assert "hunter22" not in raw
    assert "secret plans" not in raw
    assert recs[-1]["meta"]["email"] == "a@b.co"


def test_auth_flow_is_audited() -> None:
    with TestClient(app) as c:
        register_user(c, email="leo@example.com", password="hunter22")
        c.post("/auth/login", json={"email": "leo@example.com", "password": "badpass"})
        c.get("/auth/refresh")
        c.post("/auth/logout")

    events = [r["event"] for r in audit.read_recent(50)]
    for ev in ("auth.register_ok", "auth.login_failed", "auth.refresh_ok", "auth.logout"):
        assert ev in events

    daily = list(get_settings().log_dir.glob("audit-*.log"))
    assert daily
    text = "\n".join(p.read_text(encoding="utf-8") for p in daily)
    assert "hunter22" not in text
    assert "badpass" not in text
