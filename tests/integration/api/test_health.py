"""
Integration tests for the liveness and readiness probes.
"""

from __future__ import annotations

from typing import Generator
from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from booking_ledger.main import create_app


@pytest.fixture
def client(engine: Engine) -> Generator[TestClient, None, None]:
    app = create_app(engine=engine, dispatcher=Mock(), start_scheduler=False)
    with TestClient(app) as test_client:
        yield test_client


@pytest.mark.integration
def test_health(client: TestClient) -> None:
    """Test that the liveness probe answers without touching the database."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.integration
def test_ready(client: TestClient) -> None:
    """Test that the readiness probe reports a reachable database."""
    response = client.get("/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "ready", "checks": {"database": "ok"}}


@pytest.mark.integration
@patch("booking_ledger.routes.health.check_engine_health", return_value=False)
def test_not_ready(mock_health: Mock, client: TestClient) -> None:
    """
    Test that an unreachable database makes the instance not ready.

    Args:
        mock_health (Mock): Mocked database check.
        client (TestClient): Application client.
    """
    response = client.get("/ready")

    assert response.status_code == 503
    assert response.json()["checks"]["database"] == "failed"
