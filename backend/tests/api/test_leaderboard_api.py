from datetime import datetime, timezone

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from evermark.domain.leaderboard import container
from evermark.domain.leaderboard.exceptions import SourceUnavailable
from evermark.domain.leaderboard.lease import lease_key
from evermark.domain.leaderboard.ledger import InMemoryVoteLedger
from evermark.domain.leaderboard.models import Item
from evermark.domain.leaderboard.repository import InMemoryItemDirectory, InMemoryLeaderboardRepository
from evermark.domain.leaderboard.season import SeasonOracle
from evermark.infra.redis import RedisProxy

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)
BIG = 123456789012345678901234567890


class UnavailableRepository(InMemoryLeaderboardRepository):
	async def get_snapshot(self, season):
		raise SourceUnavailable("database is down")

	async def get_page(self, season, *, offset, limit):
		raise SourceUnavailable("database is down")

	async def list_snapshots(self, *, finalized_only=True):
		raise SourceUnavailable("database is down")


class DownRedis:
	async def set(self, *args, **kwargs):
		raise RedisConnectionError("Error 111 connecting to redis:6379. Connection refused.")


@pytest.fixture
def seeded(make_vote):
	ledger = InMemoryVoteLedger(
		[
			make_vote("fan-1", "A", BIG),
			make_vote("fan-2", "B", 100),
			make_vote("owner-b", "B", 1000),
		]
	)
	items = InMemoryItemDirectory(
		[
			Item(item_id="A", owner_id="owner-a", title="Alpha", metadata={"kind": "article"}),
			Item(item_id="B", owner_id="owner-b", title="Beta"),
		]
	)
	container.configure(oracle=SeasonOracle(EPOCH), ledger=ledger, items=items)
	return ledger


@pytest.mark.asyncio
async def test_uncomputed_season_is_pending(api_client, seeded):
	response = await api_client.get("/leaderboard", params={"season": 1})
	assert response.status_code == 200
	body = response.json()
	assert body["status"] == "pending"
	assert body["entries"] == []
	assert response.headers.get("X-Request-Id")


@pytest.mark.asyncio
async def test_refresh_requires_admin_token(api_client, seeded):
	response = await api_client.post("/leaderboard/refresh", json={"season": 1})
	assert response.status_code == 403
	assert response.json()["detail"] == "forbidden"


@pytest.mark.asyncio
async def test_refresh_then_read(api_client, seeded, admin_headers):
	response = await api_client.post("/leaderboard/refresh", json={"season": 1}, headers=admin_headers)
	assert response.status_code == 200
	body = response.json()
	assert body["success"] is True
	assert body["entriesWritten"] == 2
	assert body["selfVotesExcluded"] == 1
	assert body["totalVotes"] == str(BIG + 100)
	assert [entry["itemId"] for entry in body["topEntries"]] == ["A", "B"]
	assert len(body["snapshotHash"]) == 64

	response = await api_client.get("/leaderboard", params={"season": 1, "limit": 10})
	assert response.status_code == 200
	board = response.json()
	assert board["status"] == "computed"
	assert board["totalEntries"] == 2
	first = board["entries"][0]
	assert first["itemId"] == "A"
	assert first["totalVotes"] == str(BIG)
	assert first["rank"] == 1
	assert first["item"] == {"title": "Alpha", "ownerId": "owner-a", "metadata": {"kind": "article"}}
	assert board["entries"][1]["totalVotes"] == "100"


@pytest.mark.asyncio
async def test_refresh_body_is_optional(api_client, seeded, admin_headers):
	response = await api_client.post("/leaderboard/refresh", headers=admin_headers)
	assert response.status_code == 200
	assert response.json()["season"] == container.get_oracle().current_season().number


@pytest.mark.asyncio
async def test_lease_conflict_returns_409(api_client, seeded, admin_headers, fake_redis):
	await fake_redis.set(lease_key(1), "other-run", ex=60)
	response = await api_client.post("/leaderboard/refresh", json={"season": 1}, headers=admin_headers)
	assert response.status_code == 409
	body = response.json()
	assert body["success"] is False
	assert body["error"] == "write_conflict"


@pytest.mark.asyncio
async def test_read_failure_hides_internal_errors(api_client):
	container.configure(oracle=SeasonOracle(EPOCH), repository=UnavailableRepository())
	response = await api_client.get("/leaderboard", params={"season": 1})
	assert response.status_code == 503
	assert response.json()["detail"] == "temporarily_unavailable"


@pytest.mark.asyncio
async def test_limit_and_offset_bounds(api_client, seeded):
	assert (await api_client.get("/leaderboard", params={"season": 1, "limit": 501})).status_code == 422
	assert (await api_client.get("/leaderboard", params={"season": 1, "limit": 0})).status_code == 422
	assert (await api_client.get("/leaderboard", params={"season": 1, "offset": -1})).status_code == 422
	assert (await api_client.get("/leaderboard", params={"season": 0})).status_code == 422


@pytest.mark.asyncio
async def test_finalize_then_refresh_is_rejected(api_client, seeded, admin_headers):
	response = await api_client.post("/leaderboard/finalize", json={"season": 1}, headers=admin_headers)
	assert response.status_code == 200
	body = response.json()
	assert body["finalized"] is True
	assert body["finalizedAt"]

	response = await api_client.post("/leaderboard/refresh", json={"season": 1}, headers=admin_headers)
	assert response.status_code == 409
	assert response.json()["error"] == "season_finalized"

	response = await api_client.post(
		"/leaderboard/refresh", json={"season": 1, "force": True}, headers=admin_headers
	)
	assert response.status_code == 200


@pytest.mark.asyncio
async def test_finalize_open_season_conflicts(api_client, seeded, admin_headers):
	current = container.get_oracle().current_season().number
	response = await api_client.post("/leaderboard/finalize", json={"season": current}, headers=admin_headers)
	assert response.status_code == 409
	assert response.json()["error"] == "season_not_ended"


@pytest.mark.asyncio
async def test_redis_outage_on_refresh_returns_error_body(api_client, seeded, admin_headers):
	container.configure(redis_proxy=RedisProxy(DownRedis()))
	response = await api_client.post("/leaderboard/refresh", json={"season": 1}, headers=admin_headers)
	assert response.status_code == 503
	body = response.json()
	assert body["success"] is False
	assert body["error"] == "source_unavailable"


@pytest.mark.asyncio
async def test_read_before_epoch_hides_configuration_detail(api_client):
	container.configure(oracle=SeasonOracle(datetime(2999, 1, 1, tzinfo=timezone.utc)))
	response = await api_client.get("/leaderboard")
	assert response.status_code == 400
	assert response.json()["detail"] == "invalid_season"
	assert "epoch" not in response.text


@pytest.mark.asyncio
async def test_finalized_seasons_newest_first(api_client, seeded, admin_headers, make_vote):
	seeded.append(make_vote("fan-3", "B", 7, season=2))
	for season in (1, 2):
		response = await api_client.post("/leaderboard/finalize", json={"season": season}, headers=admin_headers)
		assert response.status_code == 200
	response = await api_client.post("/leaderboard/refresh", json={"season": 3}, headers=admin_headers)
	assert response.status_code == 200

	response = await api_client.get("/leaderboard/seasons")
	assert response.status_code == 200
	body = response.json()
	assert body["total"] == 2
	newest, oldest = body["seasons"]
	assert newest["season"] == 2
	assert newest["label"] == "Season 2"
	assert newest["topItemId"] == "B"
	assert newest["topItemVotes"] == "7"
	assert oldest["season"] == 1
	assert oldest["topItemId"] == "A"
	assert oldest["totalVotes"] == str(BIG + 100)
	assert oldest["entryCount"] == 2
	assert oldest["finalized"] is True
	assert oldest["finalizedAt"]
	assert oldest["start"].startswith("2024-01-01")

	response = await api_client.get("/leaderboard/seasons", params={"finalized": "false"})
	seasons = response.json()["seasons"]
	assert [season["season"] for season in seasons] == [3, 2, 1]
	assert seasons[0]["finalized"] is False
	assert seasons[0]["topItemId"] is None


@pytest.mark.asyncio
async def test_seasons_listing_outage_is_503(api_client):
	container.configure(repository=UnavailableRepository())
	response = await api_client.get("/leaderboard/seasons")
	assert response.status_code == 503
	assert response.json()["detail"] == "temporarily_unavailable"
