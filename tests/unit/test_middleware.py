"""
Unit tests for request tracing middleware.
"""

from __future__ import annotations

from typing import Optional

import pytest
import structlog
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from booking_ledger.middleware import RequestIDMiddleware, resolve_request_id


@pytest.fixture
def app_with_middleware() -> FastAPI:
    """Create FastAPI app with RequestIDMiddleware for testing."""
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware)

    @app.get("/test")
    async def test_endpoint(request: Request) -> dict[str, str]:
        """Test endpoint that returns the request ID and the bound log context."""
        bound = structlog.contextvars.get_contextvars()
        return {
            "request_id": request.state.request_id,
            "log_request_id": str(bound.get("request_id")),
        }

    return app


@pytest.fixture
def client(app_with_middleware: FastAPI) -> TestClient:
    """FastAPI test client with middleware."""
    return TestClient(app_with_middleware)


@pytest.mark.unit
def test_request_id_middleware_adds_header(client: TestClient) -> None:
    """Test that RequestIDMiddleware adds X-Request-ID header to response."""
    response = client.get("/test")

    assert response.status_code == 200
    assert len(response.headers["X-Request-ID"]) == 36  # UUID length


@pytest.mark.unit
def test_request_id_matches_header_state_and_log_context(client: TestClient) -> None:
    """Test that the header, request.state and structlog context share one ID."""
    response = client.get("/test")

    data = response.json()
    assert data["request_id"] == response.headers["X-Request-ID"]
    assert data["log_request_id"] == data["request_id"]


@pytest.mark.unit
def test_request_id_middleware_unique_per_request(client: TestClient) -> None:
    """Test that each request gets a unique request ID."""
    response1 = client.get("/test")
    response2 = client.get("/test")

    assert response1.headers["X-Request-ID"] != response2.headers["X-Request-ID"]


@pytest.mark.unit
def test_caller_request_id_is_reused(client: TestClient) -> None:
    """Test that a well-formed incoming X-Request-ID is kept for correlation."""
    response = client.get("/test", headers={"X-Request-ID": "widget-retry-0001"})

    assert response.headers["X-Request-ID"] == "widget-retry-0001"
    assert response.json()["log_request_id"] == "widget-retry-0001"


@pytest.mark.unit
@pytest.mark.parametrize("incoming", [None, "", "short", "has spaces in it", "x" * 65])
def test_malformed_request_id_is_replaced(incoming: Optional[str]) -> None:
    """Test that missing or unsafe ids are replaced by a fresh UUID."""
    request_id = resolve_request_id(incoming)

    assert request_id != incoming
    assert len(request_id) == 36
