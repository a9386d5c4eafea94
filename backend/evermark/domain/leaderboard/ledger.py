"""Vote ledger access: keyset-paginated reads with bounded retries."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Protocol, Sequence

from evermark.domain.leaderboard.exceptions import SourceUnavailable
from evermark.domain.leaderboard.models import VoteRecord
from evermark.obs import metrics as obs_metrics

_LOG = logging.getLogger(__name__)


class VoteLedger(Protocol):
	"""Raw vote storage. Pages are ordered by `id` ascending."""

	async def fetch_page(self, season: int, *, after_id: int, limit: int) -> Sequence[VoteRecord]:
		...


class LedgerReader:
	"""Reads every vote of a season, one bounded page at a time.

	Pages are requested with a stable `id` cursor rather than an offset, so a
	retried page starts exactly where the previous successful page ended and
	votes inserted concurrently never shift already-read rows.
	"""

	def __init__(
		self,
		ledger: VoteLedger,
		*,
		page_size: int = 100,
		max_attempts: int = 3,
		backoff_seconds: float = 0.2,
	) -> None:
		if page_size < 1:
			raise ValueError("page_size must be positive")
		if max_attempts < 1:
			raise ValueError("max_attempts must be positive")
		self._ledger = ledger
		self.page_size = page_size
		self.max_attempts = max_attempts
		self.backoff_seconds = backoff_seconds

	@classmethod
	def from_settings(cls, ledger: VoteLedger, settings) -> "LedgerReader":
		return cls(
			ledger,
			page_size=settings.ledger_page_size,
			max_attempts=settings.ledger_max_attempts,
			backoff_seconds=settings.ledger_backoff_seconds,
		)

	async def _fetch_with_retry(self, season: int, after_id: int) -> Sequence[VoteRecord]:
		attempt = 0
		while True:
			attempt += 1
			try:
				page = await self._ledger.fetch_page(season, after_id=after_id, limit=self.page_size)
			except SourceUnavailable as exc:
				if attempt >= self.max_attempts:
					_LOG.error(
						"ledger.page_failed",
						extra={"season": season, "after_id": after_id, "attempts": attempt},
					)
					raise SourceUnavailable(
						f"vote ledger unavailable for season {season} after {attempt} attempts"
					) from exc
				delay = self.backoff_seconds * (2 ** (attempt - 1))
				obs_metrics.inc_ledger_retry()
				_LOG.warning(
					"ledger.page_retry",
					extra={"season": season, "after_id": after_id, "attempt": attempt, "delay": delay},
				)
				await asyncio.sleep(delay)
				continue
			obs_metrics.inc_ledger_page()
			return page

	async def read_votes(self, season: int) -> list[VoteRecord]:
		votes: list[VoteRecord] = []
		seen: set[int] = set()
		cursor = 0
		while True:
			page = await self._fetch_with_retry(season, cursor)
			for vote in page:
				if vote.id in seen or vote.season != season:
					continue
				seen.add(vote.id)
				votes.append(vote)
			if page:
				cursor = max(cursor, max(vote.id for vote in page))
			if len(page) < self.page_size:
				break
		_LOG.debug("ledger.read_complete", extra={"season": season, "votes": len(votes)})
		return votes


class InMemoryVoteLedger(VoteLedger):
	"""Append-only ledger held in memory for local development and tests."""

	def __init__(self, votes: Iterable[VoteRecord] = ()) -> None:
		self._votes: dict[int, VoteRecord] = {}
		for vote in votes:
			self.append(vote)

	def append(self, vote: VoteRecord) -> VoteRecord:
		if vote.id in self._votes:
			raise ValueError(f"vote id {vote.id} already recorded")
		self._votes[vote.id] = vote
		return vote

	async def fetch_page(self, season: int, *, after_id: int, limit: int) -> Sequence[VoteRecord]:
		matching = sorted(
			(vote for vote in self._votes.values() if vote.season == season and vote.id > after_id),
			key=lambda vote: vote.id,
		)
		return matching[:limit]


__all__ = ["InMemoryVoteLedger", "LedgerReader", "VoteLedger"]
