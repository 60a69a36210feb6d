"""
ShutterBox Backend — Middleware Tests
=======================================

What we test:
    ✅ Request IDs are echoed or generated
    ✅ Requests over the per-IP limit get 429 + Retry-After
    ✅ /health is never rate limited
"""

import logging

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from shutterbox.middleware.rate_limit import RateLimitMiddleware
from shutterbox.middleware.request_id import RequestIDLogFilter, RequestIDMiddleware, request_id_var


def _app(max_requests: int) -> FastAPI:
    app = FastAPI()

    @app.get("/ping")
    async def ping():
        return {"request_id": request_id_var.get("")}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware, max_requests=max_requests, window_seconds=60)
    return app


@pytest.mark.asyncio
async def test_request_id_echoed_and_generated():
    async with AsyncClient(transport=ASGITransport(app=_app(100)), base_url="http://test") as http:
        echoed = await http.get("/ping", headers={"X-Request-ID": "abc12345"})
        generated = await http.get("/ping")

    assert echoed.headers["X-Request-ID"] == "abc12345"
    assert echoed.json()["request_id"] == "abc12345"
    assert len(generated.headers["X-Request-ID"]) == 8


@pytest.mark.asyncio
async def test_rate_limit():
    async with AsyncClient(transport=ASGITransport(app=_app(2)), base_url="http://test") as http:
        assert (await http.get("/ping")).status_code == 200
        assert (await http.get("/ping")).status_code == 200
        limited = await http.get("/ping")
        health = await http.get("/health")

    assert limited.status_code == 429
    assert int(limited.headers["Retry-After"]) >= 1
    assert limited.json()["error"] == "rate_limit_exceeded"
    assert health.status_code == 200


def test_log_filter_defaults_to_dash():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    assert RequestIDLogFilter().filter(record) is True
    assert record.request_id == "-"
