"""PostgreSQL-backed vote ledger."""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence

import asyncpg

from evermark.domain.leaderboard.exceptions import SourceUnavailable
from evermark.domain.leaderboard.ledger import VoteLedger
from evermark.domain.leaderboard.models import VoteRecord
from evermark.infra.postgres import get_pool

TRANSIENT_ERRORS = (
	OSError,
	asyncio.TimeoutError,
	asyncpg.PostgresConnectionError,
	asyncpg.InterfaceError,
	asyncpg.exceptions.CannotConnectNowError,
)


def _row_to_vote(row: asyncpg.Record) -> VoteRecord:
	return VoteRecord(
		id=int(row["id"]),
		voter_id=str(row["voter_id"]),
		item_id=str(row["item_id"]),
		season=int(row["season"]),
		amount=int(row["amount"]),
		cast_at=row["cast_at"],
	)


class PostgresVoteLedger(VoteLedger):
	"""Reads `vote_ledger` with an `id` keyset cursor."""

	def __init__(self, pool: Optional[asyncpg.Pool] = None, *, query_timeout: float = 10.0) -> None:
		self._pool = pool
		self.query_timeout = query_timeout

	async def _get_pool(self) -> asyncpg.Pool:
		return self._pool if self._pool is not None else await get_pool()

	async def fetch_page(self, season: int, *, after_id: int, limit: int) -> Sequence[VoteRecord]:
		try:
			pool = await self._get_pool()
			rows = await pool.fetch(
				"""
				SELECT id, voter_id, item_id, season, amount, cast_at
				FROM vote_ledger
				WHERE season = $1 AND id > $2
				ORDER BY id ASC
				LIMIT $3
				""",
				season,
				after_id,
				limit,
				timeout=self.query_timeout,
			)
		except TRANSIENT_ERRORS as exc:
			raise SourceUnavailable(f"vote ledger read failed: {exc.__class__.__name__}") from exc
		return [_row_to_vote(row) for row in rows]


__all__ = ["PostgresVoteLedger", "TRANSIENT_ERRORS"]
