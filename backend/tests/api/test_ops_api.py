import pytest


@pytest.mark.asyncio
async def test_liveness(api_client):
	response = await api_client.get("/health/live")
	assert response.status_code == 200
	assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_metrics_require_admin(api_client, admin_headers):
	assert (await api_client.get("/metrics")).status_code == 403
	response = await api_client.get("/metrics", headers={"Authorization": f"Bearer {admin_headers['X-Admin-Token']}"})
	assert response.status_code == 200
	assert "evermark_lb_aggregation_runs_total" in response.text


@pytest.mark.asyncio
async def test_request_id_is_echoed(api_client):
	response = await api_client.get("/health/live", headers={"X-Request-Id": "req-123"})
	assert response.headers["X-Request-Id"] == "req-123"
