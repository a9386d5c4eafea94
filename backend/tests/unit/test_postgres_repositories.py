import asyncio
import copy
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from evermark.domain.leaderboard import aggregator
from evermark.domain.leaderboard.exceptions import SourceUnavailable
from evermark.domain.leaderboard.models import LeaderboardEntry, LeaderboardSnapshot
from evermark.infra.item_repo import PostgresItemDirectory
from evermark.infra.leaderboard_repo import PostgresLeaderboardRepository
from evermark.infra.ledger_repo import PostgresVoteLedger

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)
WEI = 10**30

SNAPSHOT_COLUMNS = (
	"season",
	"computed_at",
	"entry_count",
	"total_votes",
	"snapshot_hash",
	"self_votes_excluded",
	"dangling_references",
	"finalized",
	"finalized_at",
)


class FakeTransaction:
	def __init__(self, conn, options):
		self._conn = conn
		self._options = options
		self._saved = None

	async def __aenter__(self):
		self._conn.transactions.append(self._options)
		self._saved = copy.deepcopy((self._conn.snapshots, self._conn.entries))
		return self

	async def __aexit__(self, exc_type, exc, tb):
		if exc_type is not None:
			self._conn.snapshots, self._conn.entries = self._saved
		return False


class FakeConnection:
	"""Enough of an asyncpg connection to hold the two leaderboard tables."""

	def __init__(self):
		self.snapshots = {}
		self.entries = {}
		self.transactions = []
		self.fail_on = None

	def transaction(self, **options):
		return FakeTransaction(self, options)

	def _fail(self, operation):
		if self.fail_on == operation:
			self.fail_on = None
			raise ConnectionResetError("server closed the connection unexpectedly")

	async def execute(self, query, *args):
		self._fail("execute")
		if "DELETE FROM leaderboard_entries" in query:
			self.entries = {key: row for key, row in self.entries.items() if key[0] != args[0]}
		elif "INSERT INTO leaderboard_snapshots" in query:
			self.snapshots[args[0]] = dict(zip(SNAPSHOT_COLUMNS, args))
		return "OK"

	async def executemany(self, query, rows):
		for index, (season, item_id, total_votes, rank, percentage) in enumerate(rows):
			if index == 1:
				self._fail("executemany")
			self.entries[(season, item_id)] = {
				"season": season,
				"item_id": item_id,
				"total_votes": total_votes,
				"rank": rank,
				"percentage_of_total": percentage,
			}

	async def fetchrow(self, query, season):
		self._fail("fetchrow")
		return self.snapshots.get(season)

	def _ranked(self, season):
		rows = [row for key, row in self.entries.items() if key[0] == season]
		return sorted(rows, key=lambda row: (row["rank"], row["item_id"]))

	async def fetch(self, query, *args, **kwargs):
		self._fail("fetch")
		if "FROM leaderboard_snapshots s" in query:
			finalized_only = args[0]
			rows = []
			for season in sorted(self.snapshots, reverse=True):
				snapshot = self.snapshots[season]
				if finalized_only and not snapshot["finalized"]:
					continue
				ranked = self._ranked(season)
				top = ranked[0] if ranked else {}
				rows.append(
					{
						**snapshot,
						"top_item_id": top.get("item_id"),
						"top_total_votes": top.get("total_votes"),
						"top_rank": top.get("rank"),
						"top_percentage_of_total": top.get("percentage_of_total"),
					}
				)
			return rows
		season, offset, limit = args
		return self._ranked(season)[offset : offset + limit]


class FakePool:
	def __init__(self, conn):
		self.conn = conn

	@asynccontextmanager
	async def acquire(self):
		yield self.conn

	async def fetchrow(self, query, *args):
		return await self.conn.fetchrow(query, *args)

	async def fetch(self, query, *args, **kwargs):
		return await self.conn.fetch(query, *args)


def _snapshot(season, entries, *, finalized=False):
	return LeaderboardSnapshot(
		season=season,
		computed_at=EPOCH + timedelta(weeks=season),
		entry_count=len(entries),
		total_votes=sum(entry.total_votes for entry in entries),
		snapshot_hash=aggregator.snapshot_hash(entries),
		finalized=finalized,
		finalized_at=EPOCH + timedelta(weeks=season) if finalized else None,
	)


def _ranked(season, **totals):
	return aggregator.rank(
		[LeaderboardEntry(item_id=item_id, season=season, total_votes=total) for item_id, total in totals.items()]
	)


@pytest.fixture
def conn():
	return FakeConnection()


@pytest.fixture
def repository(conn):
	return PostgresLeaderboardRepository(FakePool(conn))


@pytest.mark.asyncio
async def test_replace_and_read_page_keeps_wei_precision(repository, conn):
	entries = _ranked(1, A=WEI, B=WEI, C=1)
	await repository.replace_snapshot(_snapshot(1, entries), entries)

	page = await repository.get_page(1, offset=0, limit=2)
	assert [(entry.item_id, entry.rank) for entry in page.entries] == [("A", 1), ("B", 1)]
	assert page.entries[0].total_votes == WEI
	assert isinstance(page.entries[0].total_votes, int)
	assert page.snapshot.total_votes == 2 * WEI + 1
	assert page.snapshot.entry_count == 3
	assert conn.transactions[-1] == {"isolation": "repeatable_read", "readonly": True}


@pytest.mark.asyncio
async def test_page_for_unknown_season_is_none(repository):
	assert await repository.get_page(9, offset=0, limit=10) is None
	assert await repository.get_snapshot(9) is None


@pytest.mark.asyncio
async def test_failed_insert_rolls_back_to_previous_rows(repository, conn):
	first = _ranked(1, A=10, B=20)
	await repository.replace_snapshot(_snapshot(1, first), first)

	second = _ranked(1, C=30, D=5, E=1)
	conn.fail_on = "executemany"
	with pytest.raises(SourceUnavailable):
		await repository.replace_snapshot(_snapshot(1, second), second)

	page = await repository.get_page(1, offset=0, limit=10)
	assert [entry.item_id for entry in page.entries] == ["B", "A"]
	assert page.snapshot.snapshot_hash == aggregator.snapshot_hash(first)


@pytest.mark.asyncio
async def test_replace_with_no_entries_clears_season(repository):
	entries = _ranked(1, A=10)
	await repository.replace_snapshot(_snapshot(1, entries), entries)
	await repository.replace_snapshot(_snapshot(1, []), [])
	page = await repository.get_page(1, offset=0, limit=10)
	assert page.entries == []
	assert page.snapshot.entry_count == 0


@pytest.mark.asyncio
async def test_list_snapshots_newest_first(repository):
	for season, finalized in ((1, True), (2, False), (3, True)):
		entries = _ranked(season, A=season, B=10)
		await repository.replace_snapshot(_snapshot(season, entries, finalized=finalized), entries)
	await repository.replace_snapshot(_snapshot(4, [], finalized=True), [])

	finalized = await repository.list_snapshots()
	assert [summary.snapshot.season for summary in finalized] == [4, 3, 1]
	assert finalized[0].top_entry is None
	assert finalized[1].top_entry.item_id == "B"
	assert finalized[1].top_entry.total_votes == 10

	everything = await repository.list_snapshots(finalized_only=False)
	assert [summary.snapshot.season for summary in everything] == [4, 3, 2, 1]


@pytest.mark.asyncio
@pytest.mark.parametrize("operation", ["fetchrow", "fetch"])
async def test_read_errors_become_source_unavailable(repository, conn, operation):
	entries = _ranked(1, A=10)
	await repository.replace_snapshot(_snapshot(1, entries), entries)
	conn.fail_on = operation
	with pytest.raises(SourceUnavailable):
		await repository.get_page(1, offset=0, limit=10)


@pytest.mark.asyncio
async def test_ledger_page_uses_id_keyset():
	pool = MagicMock()
	pool.fetch = AsyncMock(
		return_value=[
			{
				"id": 5,
				"voter_id": "voter",
				"item_id": "A",
				"season": 2,
				"amount": Decimal(WEI),
				"cast_at": EPOCH,
			}
		]
	)
	ledger = PostgresVoteLedger(pool, query_timeout=3.0)

	votes = await ledger.fetch_page(2, after_id=4, limit=50)

	args, kwargs = pool.fetch.call_args
	assert "id > $2" in args[0]
	assert "ORDER BY id ASC" in args[0]
	assert args[1:] == (2, 4, 50)
	assert kwargs["timeout"] == 3.0
	assert votes[0].id == 5
	assert votes[0].amount == WEI
	assert isinstance(votes[0].amount, int)


@pytest.mark.asyncio
@pytest.mark.parametrize(
	"error",
	[
		ConnectionRefusedError("connection refused"),
		asyncio.TimeoutError(),
		asyncpg.InterfaceError("connection is closed"),
	],
)
async def test_ledger_transient_errors_become_source_unavailable(error):
	pool = MagicMock()
	pool.fetch = AsyncMock(side_effect=error)
	with pytest.raises(SourceUnavailable):
		await PostgresVoteLedger(pool).fetch_page(1, after_id=0, limit=10)


@pytest.mark.asyncio
async def test_item_directory_parses_metadata():
	pool = MagicMock()
	pool.fetch = AsyncMock(
		return_value=[
			{"item_id": "A", "owner_id": "owner-a", "title": "Alpha", "metadata": '{"kind": "article"}'},
			{"item_id": "B", "owner_id": "owner-b", "title": None, "metadata": {"kind": "image"}},
			{"item_id": "C", "owner_id": "owner-c", "title": "Gamma", "metadata": None},
		]
	)
	items = await PostgresItemDirectory(pool).get_items(["C", "A", "B", "A"])

	args, _ = pool.fetch.call_args
	assert "ANY($1::text[])" in args[0]
	assert args[1] == ["A", "B", "C"]
	assert items["A"].metadata == {"kind": "article"}
	assert items["B"].metadata == {"kind": "image"}
	assert items["C"].metadata == {}
	assert items["B"].title is None


@pytest.mark.asyncio
async def test_item_directory_skips_query_for_no_ids():
	pool = MagicMock()
	pool.fetch = AsyncMock()
	assert await PostgresItemDirectory(pool).get_items([]) == {}
	pool.fetch.assert_not_called()


@pytest.mark.asyncio
async def test_item_directory_outage_is_source_unavailable():
	pool = MagicMock()
	pool.fetch = AsyncMock(side_effect=OSError("network unreachable"))
	with pytest.raises(SourceUnavailable):
		await PostgresItemDirectory(pool).get_items(["A"])
