import logging

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from seating.main import app as seating_app
from seating.main import request_id_middleware
from seating.utils.request_id import RequestIdLogFilter, generate_request_id, get_request_id, set_request_id


def test_request_id_set_and_get() -> None:
    set_request_id("req-abc")
    assert get_request_id() == "req-abc"
    set_request_id(None)
    assert get_request_id() is None


def test_generate_request_id_is_not_empty() -> None:
    value = generate_request_id()
    assert isinstance(value, str)
    assert len(value) > 0
    assert value != generate_request_id()


def test_log_filter_tags_records() -> None:
    record = logging.LogRecord("seating", logging.INFO, __file__, 1, "hello", None, None)
    set_request_id("req-log")
    try:
        assert RequestIdLogFilter().filter(record) is True
    finally:
        set_request_id(None)
    assert record.request_id == "req-log"  # type: ignore[attr-defined]

    RequestIdLogFilter().filter(record)
    assert record.request_id == "-"  # type: ignore[attr-defined]


def _echo_app() -> FastAPI:
    app = FastAPI()

    @app.get("/check")
    async def check() -> dict[str, str]:
        return {"rid": get_request_id() or ""}

    app.middleware("http")(request_id_middleware)
    return app


@pytest.mark.asyncio
async def test_request_id_middleware_generates_and_sets_header() -> None:
    transport = ASGITransport(app=_echo_app())
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.get("/check")
    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID")
    assert resp.json()["rid"] == resp.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_middleware_uses_incoming_header() -> None:
    incoming = "req-custom-123"
    transport = ASGITransport(app=_echo_app())
    async with AsyncClient(transport=transport, base_url="http://test", headers={"X-Request-ID": incoming}) as client:
        resp = await client.get("/check")
    assert resp.status_code == 200
    assert resp.headers["X-Request-ID"] == incoming
    assert resp.json()["rid"] == incoming


@pytest.mark.asyncio
async def test_health_endpoint_carries_request_id() -> None:
    transport = ASGITransport(app=seating_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers.get("X-Request-ID")
