"""Tests for normalized error responses."""

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from teamgate.core.errors import (
    AppError,
    PlanRestrictedError,
    SeatLimitError,
    ExpiredTokenError,
    app_error_handler,
    http_error_handler,
)
from teamgate.core.middleware.request_id import RequestIdMiddleware


def _app():
    test_app = FastAPI()
    test_app.add_middleware(RequestIdMiddleware)
    test_app.add_exception_handler(AppError, app_error_handler)
    test_app.add_exception_handler(HTTPException, http_error_handler)

    @test_app.get("/plan")
    def plan():
        raise PlanRestrictedError("Upgrade required")

    @test_app.get("/seats")
    def seats():
        raise SeatLimitError("No seats left")

    @test_app.get("/expired")
    def expired():
        raise ExpiredTokenError("Invitation has expired")

    @test_app.get("/http")
    def http():
        raise HTTPException(status_code=404, detail="nope")

    return test_app


def test_domain_error_has_standard_shape():
    client = TestClient(_app())
    resp = client.get("/plan")
    assert resp.status_code == 403
    body = resp.json()
    rid = resp.headers.get("x-request-id")
    assert body["error"]["code"] == "plan_restricted"
    assert body["error"]["message"] == "Upgrade required"
    assert body["error"]["request_id"] == rid
    assert body["detail"] == "Upgrade required"


def test_incoming_request_id_is_echoed():
    client = TestClient(_app())
    resp = client.get("/seats", headers={"x-request-id": "req-123"})
    assert resp.status_code == 403
    assert resp.headers["x-request-id"] == "req-123"
    assert resp.json()["error"] == {"code": "seat_limit", "message": "No seats left", "request_id": "req-123"}


def test_expired_token_is_gone():
    client = TestClient(_app())
    resp = client.get("/expired")
    assert resp.status_code == 410
    assert resp.json()["error"]["code"] == "token_expired"


def test_http_exception_normalized():
    client = TestClient(_app())
    resp = client.get("/http")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_domain_errors_keep_builtin_bases():
    import builtins
    from teamgate.core.errors import PermissionError, ValidationError, NotFoundError

    assert issubclass(PlanRestrictedError, PermissionError)
    assert issubclass(PermissionError, builtins.PermissionError)
    assert issubclass(ValidationError, ValueError)
    assert issubclass(NotFoundError, ValueError)
