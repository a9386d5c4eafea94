"""Per-season Redis lease guarding concurrent aggregation runs."""

from __future__ import annotations

import logging
import secrets
from typing import Any, Optional

from redis.exceptions import RedisError, WatchError

from evermark.domain.leaderboard.exceptions import SourceUnavailable, WriteConflict

_LOG = logging.getLogger(__name__)


def lease_key(season: int) -> str:
	return f"lb:lease:{season}"


class SeasonLease:
	"""Single-holder lease: `SET key token NX EX ttl`, released only by its holder.

	Use as an async context manager::

		async with SeasonLease(redis_client, season, ttl_seconds=300):
			...

	An unreachable Redis on acquire raises SourceUnavailable. Release never
	raises; a key that cannot be deleted expires with its TTL.
	"""

	def __init__(self, redis: Any, season: int, *, ttl_seconds: int = 300) -> None:
		self._redis = redis
		self.season = season
		self.ttl_seconds = ttl_seconds
		self.key = lease_key(season)
		self.token: Optional[str] = None

	async def acquire(self) -> None:
		token = secrets.token_hex(16)
		try:
			ok = await self._redis.set(self.key, token, nx=True, ex=self.ttl_seconds)
		except RedisError as exc:
			raise SourceUnavailable(f"season lease unavailable: {exc.__class__.__name__}") from exc
		if not ok:
			_LOG.info("leaderboard.lease.busy", extra={"season": self.season})
			raise WriteConflict(f"season {self.season} is already being aggregated")
		self.token = token

	async def release(self) -> bool:
		if self.token is None:
			return False
		token, self.token = self.token, None
		try:
			async with self._redis.pipeline(transaction=True) as pipe:
				await pipe.watch(self.key)
				current = await pipe.get(self.key)
				if isinstance(current, bytes):
					current = current.decode("utf-8")
				if current != token:
					await pipe.unwatch()
					_LOG.warning("leaderboard.lease.lost", extra={"season": self.season})
					return False
				pipe.multi()
				pipe.delete(self.key)
				await pipe.execute()
		except WatchError:
			_LOG.warning("leaderboard.lease.lost", extra={"season": self.season})
			return False
		except RedisError:
			_LOG.warning(
				"leaderboard.lease.release_failed",
				extra={"season": self.season, "ttl": self.ttl_seconds},
				exc_info=True,
			)
			return False
		return True

	async def __aenter__(self) -> "SeasonLease":
		await self.acquire()
		return self

	async def __aexit__(self, exc_type, exc, tb) -> None:
		await self.release()


__all__ = ["SeasonLease", "lease_key"]
