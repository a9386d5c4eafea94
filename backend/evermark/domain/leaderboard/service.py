"""Leaderboard service: season aggregation runs and the read path."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from evermark.domain.leaderboard import aggregator
from evermark.domain.leaderboard.exceptions import (
	AggregationTimeout,
	LeaderboardError,
	SeasonFinalized,
	SeasonNotEnded,
	SourceUnavailable,
)
from evermark.domain.leaderboard.filters import filter_self_votes
from evermark.domain.leaderboard.ledger import LedgerReader
from evermark.domain.leaderboard.lease import SeasonLease
from evermark.domain.leaderboard.models import (
	AggregationResult,
	LeaderboardPage,
	LeaderboardRow,
	LeaderboardSnapshot,
	Season,
	SeasonSummary,
	SnapshotStatus,
)
from evermark.domain.leaderboard.repository import ItemDirectory, LeaderboardRepository
from evermark.domain.leaderboard.season import SeasonOracle
from evermark.obs import logging as obs_logging
from evermark.obs import metrics as obs_metrics

_LOG = logging.getLogger(__name__)

TOP_ENTRIES = 3
MAX_PAGE_SIZE = 500


def _now() -> datetime:
	return datetime.now(timezone.utc)


class LeaderboardService:
	"""Materialises season leaderboards from the vote ledger and serves them."""

	def __init__(
		self,
		*,
		oracle: SeasonOracle,
		reader: LedgerReader,
		items: ItemDirectory,
		repository: LeaderboardRepository,
		redis: Any,
		timeout_seconds: float = 120.0,
		lease_ttl_seconds: int = 300,
		run_attempts: int = 2,
		retry_backoff_seconds: float = 0.2,
		clock: Callable[[], datetime] = _now,
	) -> None:
		self.oracle = oracle
		self.reader = reader
		self.items = items
		self.repository = repository
		self._redis = redis
		self.timeout_seconds = timeout_seconds
		self.lease_ttl_seconds = lease_ttl_seconds
		self.run_attempts = max(1, run_attempts)
		self.retry_backoff_seconds = retry_backoff_seconds
		self._clock = clock

	def _resolve_season(self, season: Optional[int]) -> int:
		if season is None:
			return self.oracle.current_season().number
		return self.oracle.season_boundaries(season).number

	async def refresh_season(self, season: Optional[int] = None, *, force: bool = False) -> AggregationResult:
		"""Recompute one season and replace its snapshot.

		Raises WriteConflict when another run holds the season lease and
		SeasonFinalized when the season is frozen and `force` is not set.
		"""
		number = self._resolve_season(season)
		return await self._run(number, force=force, finalize_at=None)

	async def run_with_retry(
		self,
		season: Optional[int] = None,
		*,
		force: bool = False,
		attempts: Optional[int] = None,
	) -> AggregationResult:
		"""Re-run a whole season from scratch after transient source failures."""
		total = max(1, attempts or self.run_attempts)
		number = self._resolve_season(season)
		attempt = 0
		while True:
			attempt += 1
			try:
				return await self.refresh_season(number, force=force)
			except SourceUnavailable:
				if attempt >= total:
					raise
				_LOG.warning(
					"leaderboard.refresh.retry",
					extra={"season": number, "attempt": attempt, "attempts": total},
				)
				await asyncio.sleep(self.retry_backoff_seconds * attempt)

	async def finalize_season(self, season: int, *, now: Optional[datetime] = None) -> AggregationResult:
		"""Recompute an ended season one last time and freeze its snapshot."""
		boundaries = self.oracle.season_boundaries(season)
		moment = now or self._clock()
		if moment < boundaries.end:
			raise SeasonNotEnded(f"season {season} ends at {boundaries.end.isoformat()}")
		stored = await self.repository.get_page(season, offset=0, limit=TOP_ENTRIES)
		if stored is not None and stored.snapshot.finalized:
			_LOG.info("leaderboard.finalize.noop", extra={"season": season})
			return _result_from_snapshot(stored.snapshot, list(stored.entries))
		return await self._run(season, force=False, finalize_at=moment)

	async def _run(self, season: int, *, force: bool, finalize_at: Optional[datetime]) -> AggregationResult:
		tokens = obs_logging.bind_context(season=season)
		try:
			return await self._run_locked(season, force=force, finalize_at=finalize_at)
		finally:
			obs_logging.reset_context(tokens)

	async def _run_locked(self, season: int, *, force: bool, finalize_at: Optional[datetime]) -> AggregationResult:
		started = time.perf_counter()
		try:
			async with SeasonLease(self._redis, season, ttl_seconds=self.lease_ttl_seconds):
				try:
					async with asyncio.timeout(self.timeout_seconds):
						result = await self._compute(season, force=force, finalize_at=finalize_at)
				except TimeoutError as exc:
					raise AggregationTimeout(
						f"season {season} aggregation exceeded {self.timeout_seconds}s"
					) from exc
		except LeaderboardError as exc:
			elapsed = time.perf_counter() - started
			obs_metrics.record_aggregation(exc.detail, elapsed_seconds=elapsed)
			_LOG.warning(
				"leaderboard.refresh.failed",
				extra={"season": season, "error": exc.detail, "duration": elapsed},
			)
			raise
		elapsed = time.perf_counter() - started
		obs_metrics.record_aggregation("success", elapsed_seconds=elapsed)
		obs_metrics.set_snapshot_entries(season, result.entries_written)
		_LOG.info(
			"leaderboard.refresh.completed",
			extra={
				"season": season,
				"entries": result.entries_written,
				"total_votes": result.total_votes,
				"self_votes_excluded": result.self_votes_excluded,
				"dangling_references": result.dangling_references,
				"finalized": result.finalized,
				"duration": elapsed,
			},
		)
		return result

	async def _compute(self, season: int, *, force: bool, finalize_at: Optional[datetime]) -> AggregationResult:
		existing = await self.repository.get_snapshot(season)
		if existing is not None and existing.finalized and not force:
			raise SeasonFinalized(f"season {season} was finalized at {existing.finalized_at}")

		votes = await self.reader.read_votes(season)
		items = await self.items.get_items({vote.item_id for vote in votes})
		outcome = filter_self_votes(votes, items)
		obs_metrics.inc_self_votes_excluded(outcome.self_votes_excluded)
		obs_metrics.inc_dangling_references(outcome.dangling_references)

		entries = aggregator.rank(aggregator.aggregate(outcome.votes))
		computed_at = self._clock()
		if finalize_at is None and existing is not None and existing.finalized:
			# Forced refreshes of a frozen season stay frozen.
			finalize_at = existing.finalized_at
		snapshot = LeaderboardSnapshot(
			season=season,
			computed_at=computed_at,
			entry_count=len(entries),
			total_votes=sum(entry.total_votes for entry in entries),
			snapshot_hash=aggregator.snapshot_hash(entries),
			self_votes_excluded=outcome.self_votes_excluded,
			dangling_references=outcome.dangling_references,
			finalized=finalize_at is not None,
			finalized_at=finalize_at,
		)
		await self.repository.replace_snapshot(snapshot, entries)
		return _result_from_snapshot(
			snapshot,
			entries[:TOP_ENTRIES],
			dangling_item_ids=outcome.dangling_item_ids,
		)

	async def get_leaderboard(
		self,
		season: Optional[int] = None,
		*,
		offset: int = 0,
		limit: int = 100,
	) -> LeaderboardPage:
		if offset < 0:
			raise ValueError("offset must be >= 0")
		if limit < 1 or limit > MAX_PAGE_SIZE:
			raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
		number = self._resolve_season(season)
		stored = await self.repository.get_page(number, offset=offset, limit=limit)
		if stored is None:
			return LeaderboardPage.pending(number)
		snapshot, entries = stored.snapshot, stored.entries
		items = await self.items.get_items(entry.item_id for entry in entries) if entries else {}
		rows = [LeaderboardRow(entry=entry, item=items.get(entry.item_id)) for entry in entries]
		return LeaderboardPage(
			season=number,
			status=SnapshotStatus.COMPUTED,
			rows=rows,
			total_entries=snapshot.entry_count,
			computed_at=snapshot.computed_at,
			finalized=snapshot.finalized,
			snapshot_hash=snapshot.snapshot_hash,
		)

	async def list_seasons(self, *, finalized_only: bool = True) -> list[tuple[Season, SeasonSummary]]:
		"""Seasons with a stored snapshot, newest first, with their boundaries."""
		summaries = await self.repository.list_snapshots(finalized_only=finalized_only)
		return [(self.oracle.season_boundaries(summary.snapshot.season), summary) for summary in summaries]


def _result_from_snapshot(
	snapshot: LeaderboardSnapshot,
	top_entries: list,
	*,
	dangling_item_ids: Optional[list[str]] = None,
) -> AggregationResult:
	return AggregationResult(
		season=snapshot.season,
		entries_written=snapshot.entry_count,
		top_entries=top_entries,
		total_votes=snapshot.total_votes,
		self_votes_excluded=snapshot.self_votes_excluded,
		dangling_references=snapshot.dangling_references,
		dangling_item_ids=list(dangling_item_ids or []),
		snapshot_hash=snapshot.snapshot_hash,
		computed_at=snapshot.computed_at,
		finalized=snapshot.finalized,
		finalized_at=snapshot.finalized_at,
	)


__all__ = ["LeaderboardService", "MAX_PAGE_SIZE", "TOP_ENTRIES"]
