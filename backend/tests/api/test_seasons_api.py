import pytest

from evermark.domain.leaderboard import container


@pytest.mark.asyncio
async def test_current_season(api_client):
	response = await api_client.get("/seasons/current")
	assert response.status_code == 200
	body = response.json()
	assert body["number"] == container.get_oracle().current_season().number
	assert body["status"] == "active"
	assert body["timeRemainingSeconds"] > 0


@pytest.mark.asyncio
async def test_season_by_number(api_client):
	response = await api_client.get("/seasons/5")
	assert response.status_code == 200
	body = response.json()
	assert body["week"] == "W05"
	assert body["year"] == 2024
	assert body["status"] == "completed"
	assert body["timeRemainingSeconds"] == 0


@pytest.mark.asyncio
async def test_season_number_must_be_positive(api_client):
	response = await api_client.get("/seasons/0")
	assert response.status_code == 422
	assert response.json()["detail"] == "validation_error"


@pytest.mark.asyncio
async def test_audit_requires_admin(api_client, admin_headers):
	assert (await api_client.get("/seasons/audit")).status_code == 403
	response = await api_client.get("/seasons/audit", headers=admin_headers)
	assert response.status_code == 200
	body = response.json()
	assert body["computed"] == container.get_oracle().current_season().number
	assert body["contract"] is None
	assert body["inSync"] is None
