"""Background jobs for refreshing season leaderboards."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from evermark.domain.leaderboard import container
from evermark.domain.leaderboard.exceptions import SourceUnavailable, WriteConflict
from evermark.domain.leaderboard.models import AggregationResult
from evermark.settings import settings

_LOG = logging.getLogger(__name__)


def seasons_due(now: datetime, *, grace: timedelta) -> list[int]:
	"""Current season, plus the previous one while still inside the grace window."""

	oracle = container.get_oracle()
	current = oracle.season_for_date(now)
	due = [current.number]
	if current.number > 1 and now - current.start < grace:
		due.append(current.number - 1)
	return due


async def refresh_current_season(*, now: Optional[datetime] = None) -> list[AggregationResult]:
	"""Entry point for the scheduled refresh.

	Lease conflicts and frozen seasons are skipped; transient source failures
	are logged so the next tick can try again.
	"""

	moment = now or datetime.now(timezone.utc)
	service = container.get_service()
	results: list[AggregationResult] = []
	for season in seasons_due(moment, grace=timedelta(hours=settings.previous_season_grace_hours)):
		try:
			results.append(await service.run_with_retry(season))
		except WriteConflict as exc:
			_LOG.info("leaderboard.job.skipped", extra={"season": season, "reason": exc.detail})
		except SourceUnavailable as exc:
			_LOG.error("leaderboard.job.failed", extra={"season": season, "reason": exc.detail})
	return results


__all__ = ["refresh_current_season", "seasons_due"]
