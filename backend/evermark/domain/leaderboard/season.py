"""Season oracle: maps wall-clock time onto fixed-length voting seasons.

Season numbering is derived from a configured epoch and period and is the
authoritative numbering for aggregation. Any on-chain cycle counter is only
compared against it (see :mod:`evermark.domain.leaderboard.contract`).
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from evermark.domain.leaderboard.exceptions import InvalidConfiguration
from evermark.domain.leaderboard.models import Season


def _utc(moment: datetime) -> datetime:
	if moment.tzinfo is None:
		return moment.replace(tzinfo=timezone.utc)
	return moment.astimezone(timezone.utc)


def _now() -> datetime:
	return datetime.now(timezone.utc)


class SeasonCache:
	"""Memoizes the current season for a short TTL with explicit invalidation."""

	def __init__(self, ttl_seconds: float = 30.0, *, clock: Callable[[], float] = time.monotonic) -> None:
		self.ttl_seconds = ttl_seconds
		self._clock = clock
		self._season: Optional[Season] = None
		self._stored_at = 0.0

	def get(self) -> Optional[Season]:
		if self._season is None:
			return None
		if self._clock() - self._stored_at >= self.ttl_seconds:
			self._season = None
			return None
		return self._season

	def put(self, season: Season) -> None:
		self._season = season
		self._stored_at = self._clock()

	def invalidate(self) -> None:
		self._season = None
		self._stored_at = 0.0


class SeasonOracle:
	"""Pure season arithmetic around an epoch and a fixed period."""

	def __init__(
		self,
		epoch: datetime,
		period: timedelta = timedelta(weeks=1),
		*,
		cache: Optional[SeasonCache] = None,
	) -> None:
		if period <= timedelta(0):
			raise InvalidConfiguration(f"season period must be positive, got {period}")
		self.epoch = _utc(epoch)
		self.period = period
		self.cache = cache if cache is not None else SeasonCache()

	@classmethod
	def from_settings(cls, settings) -> "SeasonOracle":
		return cls(
			settings.season_epoch,
			timedelta(days=settings.season_period_days),
			cache=SeasonCache(settings.season_cache_ttl_seconds),
		)

	def season_for_date(self, moment: datetime) -> Season:
		moment = _utc(moment)
		if moment < self.epoch:
			raise InvalidConfiguration(
				f"season epoch {self.epoch.isoformat()} is after {moment.isoformat()}"
			)
		number = (moment - self.epoch) // self.period + 1
		return self.season_boundaries(number)

	def season_boundaries(self, number: int) -> Season:
		if number < 1:
			raise InvalidConfiguration(f"season numbers start at 1, got {number}")
		start = self.epoch + (number - 1) * self.period
		return Season(number=number, start=start, end=start + self.period)

	def current_season(self, now: Optional[datetime] = None) -> Season:
		if now is not None:
			return self.season_for_date(now)
		cached = self.cache.get()
		if cached is not None:
			return cached
		season = self.season_for_date(_now())
		self.cache.put(season)
		return season

	def previous_season(self, now: Optional[datetime] = None) -> Optional[Season]:
		current = self.current_season(now)
		if current.number <= 1:
			return None
		return self.season_boundaries(current.number - 1)

	def next_season(self, now: Optional[datetime] = None) -> Season:
		return self.season_boundaries(self.current_season(now).number + 1)

	def should_transition(self, now: Optional[datetime] = None) -> bool:
		"""True once `now` has reached the end of the cached current season."""
		moment = _utc(now) if now is not None else _now()
		return moment >= self.current_season().end

	def time_remaining(self, now: Optional[datetime] = None) -> timedelta:
		moment = _utc(now) if now is not None else _now()
		season = self.season_for_date(moment)
		return max(timedelta(0), season.end - moment)

	def invalidate(self) -> None:
		self.cache.invalidate()


__all__ = ["SeasonCache", "SeasonOracle"]
