import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from evermark.domain.leaderboard import container
from evermark.domain.leaderboard.models import VoteRecord
from evermark.infra import postgres
from evermark.main import app
from evermark.settings import settings

ADMIN_TOKEN = "test-admin-token"
EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from evermark.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Dev environment with a known admin token and a fast retry budget."""
	original = (
		settings.environment,
		settings.obs_admin_token,
		settings.ledger_backoff_seconds,
	)
	settings.environment = "dev"
	settings.obs_admin_token = ADMIN_TOKEN
	settings.ledger_backoff_seconds = 0.0
	try:
		yield
	finally:
		settings.environment, settings.obs_admin_token, settings.ledger_backoff_seconds = original


@pytest.fixture(autouse=True)
def fresh_container(force_test_settings):
	container.reset()
	yield
	container.reset()


@pytest.fixture
def admin_headers():
	return {"X-Admin-Token": ADMIN_TOKEN}


@pytest.fixture
def make_vote():
	counter = {"id": 0}

	def _make(voter_id, item_id, amount, *, season=1, vote_id=None, cast_at=None):
		counter["id"] += 1
		return VoteRecord(
			id=vote_id if vote_id is not None else counter["id"],
			voter_id=voter_id,
			item_id=item_id,
			season=season,
			amount=amount,
			cast_at=cast_at or EPOCH,
		)

	return _make


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
