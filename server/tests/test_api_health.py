"""Simple API health tests without a running lifespan."""

import pytest
from httpx import ASGITransport, AsyncClient

from courtbook.main import create_app
from courtbook.models.followup import FollowUpKind, FollowUpStatus
from courtbook.services.followup_service import FollowUpService


@pytest.mark.asyncio
async def test_api_health_endpoints(test_database):
    """Health answers without dependencies; readiness checks the database."""
    app = create_app()
    app.state.database = test_database

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"

        response = await client.get("/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"]["database"] == "ok"


@pytest.mark.asyncio
async def test_ready_without_database():
    """Readiness reports degraded before the database handle exists."""
    app = create_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/ready")
        assert response.status_code == 503
        assert response.json()["status"] == "degraded"


@pytest.mark.asyncio
async def test_metrics_endpoint():
    """Test the metrics endpoint."""
    app = create_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "courtbook_holds_placed_total" in response.text


@pytest.mark.asyncio
async def test_metrics_recount_pending_followups(test_database, test_session):
    """Each scrape reports the follow-ups currently waiting for a retry."""
    followups = FollowUpService(test_session)
    await followups.record(FollowUpKind.HOLD_RELEASE, error="hold store unavailable", order_id="order_a")
    await followups.record(FollowUpKind.MEMBERSHIP_DEBIT, error="counter store unavailable", order_id="order_b")
    await followups.record(
        FollowUpKind.PAID_CONFLICT, error="slot already booked", order_id="order_c", status=FollowUpStatus.MANUAL
    )

    app = create_app()
    app.state.database = test_database

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/metrics")
        assert response.status_code == 200
        assert "courtbook_followups_pending 2.0" in response.text


@pytest.mark.asyncio
async def test_request_id_is_echoed():
    """Every response carries the request id, generated when the caller sends none."""
    app = create_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

        response = await client.get("/health")
        assert response.headers["X-Request-ID"]
