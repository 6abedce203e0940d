"""Integration tests: health, metrics and response headers."""
import pytest

pytestmark = pytest.mark.asyncio


async def test_health_reports_database(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["database"] == "ok"


async def test_metrics_exposed(client):
    resp = await client.get("/metrics")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")


async def test_correlation_id_echoed(client):
    resp = await client.get("/health", headers={"X-Correlation-ID": "abc-123"})
    assert resp.headers["X-Correlation-ID"] == "abc-123"


async def test_security_headers_present(client):
    resp = await client.get("/health")
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


async def test_unknown_route_is_404(client):
    resp = await client.get("/api/v1/nope")
    assert resp.status_code == 404
