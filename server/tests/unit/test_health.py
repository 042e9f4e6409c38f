"""Unit tests for the RPC health endpoint."""

from datetime import date, datetime, timezone

import pytest

from courtbook.core.clock import local_date


@pytest.mark.asyncio
async def test_health_ping_rpc(test_client):
    """The ping reports status and the venue's booking calendar."""
    response = await test_client.post("/v1/health/ping", json={})
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "timestamp" in data
    assert data["version"] == "1.0.0"
    assert data["timezone"] == "Asia/Kolkata"
    assert data["courts"] == 3
    assert data["first_start"] == "06:00"
    assert data["last_start"] == "22:00"
    date.fromisoformat(data["business_date"])


def test_local_date_crosses_midnight_before_utc():
    # 20:00 UTC is already the next day at UTC+5:30
    assert local_date(datetime(2026, 3, 1, 20, 0), "Asia/Kolkata") == date(2026, 3, 2)
    assert local_date(datetime(2026, 3, 1, 18, 0, tzinfo=timezone.utc), "Asia/Kolkata") == date(2026, 3, 1)
