"""PostgreSQL-backed leaderboard snapshot repository."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence

import asyncpg

from evermark.domain.leaderboard.exceptions import SourceUnavailable
from evermark.domain.leaderboard.models import (
	LeaderboardEntry,
	LeaderboardSnapshot,
	SeasonSummary,
	SnapshotPage,
)
from evermark.domain.leaderboard.repository import LeaderboardRepository
from evermark.infra.ledger_repo import TRANSIENT_ERRORS
from evermark.infra.postgres import get_pool

_SNAPSHOT_SQL = """
	SELECT season, computed_at, entry_count, total_votes, snapshot_hash,
		self_votes_excluded, dangling_references, finalized, finalized_at
	FROM leaderboard_snapshots
	WHERE season = $1
"""

_ENTRIES_SQL = """
	SELECT season, item_id, total_votes, rank, percentage_of_total
	FROM leaderboard_entries
	WHERE season = $1
	ORDER BY rank ASC, item_id ASC
	OFFSET $2
	LIMIT $3
"""

_SUMMARIES_SQL = """
	SELECT s.season, s.computed_at, s.entry_count, s.total_votes, s.snapshot_hash,
		s.self_votes_excluded, s.dangling_references, s.finalized, s.finalized_at,
		top.item_id AS top_item_id, top.total_votes AS top_total_votes,
		top.rank AS top_rank, top.percentage_of_total AS top_percentage_of_total
	FROM leaderboard_snapshots s
	LEFT JOIN LATERAL (
		SELECT item_id, total_votes, rank, percentage_of_total
		FROM leaderboard_entries e
		WHERE e.season = s.season
		ORDER BY rank ASC, item_id ASC
		LIMIT 1
	) top ON TRUE
	WHERE s.finalized OR NOT $1
	ORDER BY s.season DESC
"""


def _row_to_snapshot(row: asyncpg.Record) -> LeaderboardSnapshot:
	return LeaderboardSnapshot(
		season=int(row["season"]),
		computed_at=row["computed_at"],
		entry_count=int(row["entry_count"]),
		total_votes=int(row["total_votes"]),
		snapshot_hash=str(row["snapshot_hash"]),
		self_votes_excluded=int(row["self_votes_excluded"]),
		dangling_references=int(row["dangling_references"]),
		finalized=bool(row["finalized"]),
		finalized_at=row["finalized_at"],
	)


def _row_to_entry(row: asyncpg.Record) -> LeaderboardEntry:
	return LeaderboardEntry(
		item_id=str(row["item_id"]),
		season=int(row["season"]),
		total_votes=int(row["total_votes"]),
		rank=int(row["rank"]),
		percentage_of_total=Decimal(row["percentage_of_total"]),
	)


def _row_to_summary(row: asyncpg.Record) -> SeasonSummary:
	top = None
	if row["top_item_id"] is not None:
		top = LeaderboardEntry(
			item_id=str(row["top_item_id"]),
			season=int(row["season"]),
			total_votes=int(row["top_total_votes"]),
			rank=int(row["top_rank"]),
			percentage_of_total=Decimal(row["top_percentage_of_total"]),
		)
	return SeasonSummary(snapshot=_row_to_snapshot(row), top_entry=top)


class PostgresLeaderboardRepository(LeaderboardRepository):
	"""Stores one full leaderboard per season plus its snapshot row."""

	def __init__(self, pool: Optional[asyncpg.Pool] = None) -> None:
		self._pool = pool

	async def _get_pool(self) -> asyncpg.Pool:
		return self._pool if self._pool is not None else await get_pool()

	async def get_snapshot(self, season: int) -> Optional[LeaderboardSnapshot]:
		try:
			pool = await self._get_pool()
			row = await pool.fetchrow(_SNAPSHOT_SQL, season)
		except TRANSIENT_ERRORS as exc:
			raise SourceUnavailable(f"snapshot lookup failed: {exc.__class__.__name__}") from exc
		return _row_to_snapshot(row) if row is not None else None

	async def replace_snapshot(self, snapshot: LeaderboardSnapshot, entries: Sequence[LeaderboardEntry]) -> None:
		try:
			pool = await self._get_pool()
			async with pool.acquire() as conn:
				async with conn.transaction():
					await conn.execute("DELETE FROM leaderboard_entries WHERE season = $1", snapshot.season)
					if entries:
						await conn.executemany(
							"""
							INSERT INTO leaderboard_entries (season, item_id, total_votes, rank, percentage_of_total)
							VALUES ($1, $2, $3, $4, $5)
							""",
							[
								(
									snapshot.season,
									entry.item_id,
									Decimal(entry.total_votes),
									entry.rank,
									entry.percentage_of_total,
								)
								for entry in entries
							],
						)
					await conn.execute(
						"""
						INSERT INTO leaderboard_snapshots (
							season, computed_at, entry_count, total_votes, snapshot_hash,
							self_votes_excluded, dangling_references, finalized, finalized_at
						)
						VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
						ON CONFLICT (season) DO UPDATE SET
							computed_at = EXCLUDED.computed_at,
							entry_count = EXCLUDED.entry_count,
							total_votes = EXCLUDED.total_votes,
							snapshot_hash = EXCLUDED.snapshot_hash,
							self_votes_excluded = EXCLUDED.self_votes_excluded,
							dangling_references = EXCLUDED.dangling_references,
							finalized = EXCLUDED.finalized,
							finalized_at = EXCLUDED.finalized_at
						""",
						snapshot.season,
						snapshot.computed_at,
						snapshot.entry_count,
						Decimal(snapshot.total_votes),
						snapshot.snapshot_hash,
						snapshot.self_votes_excluded,
						snapshot.dangling_references,
						snapshot.finalized,
						snapshot.finalized_at,
					)
		except TRANSIENT_ERRORS as exc:
			raise SourceUnavailable(f"snapshot write failed: {exc.__class__.__name__}") from exc

	async def get_page(self, season: int, *, offset: int, limit: int) -> Optional[SnapshotPage]:
		# One snapshot for both statements so a concurrent refresh cannot interleave.
		try:
			pool = await self._get_pool()
			async with pool.acquire() as conn:
				async with conn.transaction(isolation="repeatable_read", readonly=True):
					row = await conn.fetchrow(_SNAPSHOT_SQL, season)
					if row is None:
						return None
					rows = await conn.fetch(_ENTRIES_SQL, season, offset, limit)
		except TRANSIENT_ERRORS as exc:
			raise SourceUnavailable(f"leaderboard read failed: {exc.__class__.__name__}") from exc
		return SnapshotPage(snapshot=_row_to_snapshot(row), entries=[_row_to_entry(entry) for entry in rows])

	async def list_snapshots(self, *, finalized_only: bool = True) -> Sequence[SeasonSummary]:
		try:
			pool = await self._get_pool()
			rows = await pool.fetch(_SUMMARIES_SQL, finalized_only)
		except TRANSIENT_ERRORS as exc:
			raise SourceUnavailable(f"season listing failed: {exc.__class__.__name__}") from exc
		return [_row_to_summary(row) for row in rows]


__all__ = ["PostgresLeaderboardRepository"]
