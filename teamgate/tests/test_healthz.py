from fastapi.testclient import TestClient

import teamgate.api.health as health_api
from teamgate.main import app

client = TestClient(app)


def test_healthz_always_ok():
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json().get("status") == "ok"


def test_readyz_ok_with_tables():
    resp = client.get("/readyz")
    assert resp.status_code == 200
    assert resp.json().get("status") == "ok"


def test_readyz_reports_missing_tables(monkeypatch):
    class FakeInspector:
        def has_table(self, name):
            return name != "invitations"

    monkeypatch.setattr(health_api, "inspect", lambda engine: FakeInspector())

    resp = client.get("/readyz")
    assert resp.status_code == 503
    assert "invitations" in resp.json().get("detail", "")


def test_readyz_handles_db_down(monkeypatch):
    def boom():
        raise RuntimeError("db down")

    monkeypatch.setattr(health_api, "get_engine", boom)

    resp = client.get("/readyz")
    body = resp.json()
    assert resp.status_code == 503
    assert body.get("status") == "error"
    assert "database" in body.get("detail", "")


def test_health_db_lists_tables_deterministically():
    resp = client.get("/api/health/db", params={"now": "2026-01-05T10:00:00+00:00"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["ok"] is True
    assert data["db"]["latency_ms"] is None
    assert "2026-01-05T10:00:00" in data["computed_at"]
    assert set(health_api.REQUIRED_TABLES) <= set(data["db"]["tables_present"])
