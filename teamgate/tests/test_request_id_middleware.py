import logging

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from teamgate.core.logging import get_request_id
from teamgate.core.middleware.request_id import RequestIdMiddleware


def _make_app():
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)

    @app.get("/")
    async def root(request: Request):
        return {
            "request_id": getattr(request.state, "request_id", None),
            "context_id": get_request_id(),
        }

    return app


def test_generates_request_id_when_missing():
    client = TestClient(_make_app())

    resp = client.get("/")
    assert resp.status_code == 200
    rid_header = resp.headers.get("x-request-id")
    body = resp.json()

    assert rid_header
    assert body["request_id"] == rid_header
    assert body["context_id"] == rid_header


def test_echoes_provided_request_id():
    client = TestClient(_make_app())

    resp = client.get("/", headers={"X-Request-Id": "test-rid-123"})

    assert resp.headers.get("x-request-id") == "test-rid-123"
    assert resp.json()["request_id"] == "test-rid-123"


def test_context_is_reset_after_request():
    client = TestClient(_make_app())
    client.get("/", headers={"X-Request-Id": "scoped-rid"})
    assert get_request_id() is None


def test_completion_log_carries_team_header(caplog):
    client = TestClient(_make_app())
    with caplog.at_level(logging.INFO, logger="teamgate"):
        client.get("/", headers={"X-Request-Id": "rid-team", "X-Team-Id": "42"})

    completions = [r for r in caplog.records if r.getMessage() == "request.complete"]
    assert completions
    assert completions[-1].request_id == "rid-team"
    assert completions[-1].team_id == "42"
    assert completions[-1].status == 200
