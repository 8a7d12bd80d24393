"""Tests for application exceptions and their HTTP mapping."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tally.app.core.config import settings
from tally.app.exceptions import (
    AuthenticationError,
    BadRequestError,
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitExceededError,
    TallyException,
    UnknownProductError,
)
from tally.app.main import register_exception_handlers


@pytest.mark.parametrize(
    "exc, status_code, error",
    [
        (BadRequestError("bad"), 400, "bad_request"),
        (AuthenticationError(), 401, "authentication_failed"),
        (PermissionDeniedError(), 403, "permission_denied"),
        (NotFoundError(), 404, "not_found"),
        (ConflictError("taken"), 409, "conflict"),
        (UnknownProductError("p-1"), 400, "unknown_product"),
        (RateLimitExceededError(retry_after=3), 429, "rate_limit_exceeded"),
    ],
)
def test_status_codes(exc, status_code, error):
    assert isinstance(exc, TallyException)
    assert exc.status_code == status_code
    assert exc.to_response()["error"] == error


def test_insufficient_stock_response():
    exc = InsufficientStockError("p-1", required=4, available=1)
    assert exc.to_response() == {
        "error": "insufficient_stock",
        "message": "Insufficient stock for product p-1",
        "product_id": "p-1",
        "required": 4,
        "available": 1,
    }


def _app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/limited")
    async def limited() -> dict:
        raise RateLimitExceededError(retry_after=7)

    @app.get("/boom")
    async def boom() -> dict:
        raise RuntimeError("secret detail")

    return app


def test_rate_limit_handler_sets_retry_after():
    resp = TestClient(_app()).get("/limited")

    assert resp.status_code == 429
    assert resp.headers["Retry-After"] == "7"
    assert resp.json()["message"] == "Too many requests"


def test_unhandled_errors_hide_details(monkeypatch):
    monkeypatch.setattr(settings, "debug", False)
    resp = TestClient(_app(), raise_server_exceptions=False).get("/boom")

    assert resp.status_code == 500
    assert resp.json()["message"] == "Internal server error"


def test_unhandled_errors_in_debug(monkeypatch):
    monkeypatch.setattr(settings, "debug", True)
    resp = TestClient(_app(), raise_server_exceptions=False).get("/boom")

    assert resp.status_code == 500
    assert resp.json()["message"] == "secret detail"
    assert resp.json()["exception_type"] == "RuntimeError"
