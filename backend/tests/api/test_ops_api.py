import pytest

from careerlink.settings import settings


@pytest.mark.asyncio
async def test_health_endpoints(api_client):
	live = await api_client.get("/health/live")
	assert live.json() == {"status": "ok"}

	ready = await api_client.get("/health/ready")
	assert ready.status_code == 200
	body = ready.json()
	assert body["checks"]["redis"]["ok"] is True
	assert body["checks"]["postgres"]["skipped"] is True


@pytest.mark.asyncio
async def test_metrics_requires_admin_token(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_metrics_public", False)
	monkeypatch.setattr(settings, "obs_admin_token", None)
	assert (await api_client.get("/metrics")).status_code == 403

	monkeypatch.setattr(settings, "obs_admin_token", "admin-secret")
	assert (await api_client.get("/metrics", headers={"X-Admin-Token": "nope"})).status_code == 403
	response = await api_client.get("/metrics", headers={"X-Admin-Token": "admin-secret"})
	assert response.status_code == 200
	assert "careerlink_" in response.text


@pytest.mark.asyncio
async def test_request_id_is_echoed(api_client):
	response = await api_client.get("/health/live", headers={"X-Request-Id": "req-123"})
	assert response.headers["X-Request-Id"] == "req-123"
