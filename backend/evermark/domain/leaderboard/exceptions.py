"""Error taxonomy for leaderboard aggregation."""

from __future__ import annotations

from fastapi import status


class LeaderboardError(Exception):
	"""Base class for leaderboard related errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "leaderboard_error"

	def __init__(self, message: str | None = None) -> None:
		super().__init__(message or self.detail)
		self.message = message or self.detail


class InvalidConfiguration(LeaderboardError):
	"""Season settings cannot produce a valid season (e.g. epoch after the date)."""

	status_code = 422
	detail = "invalid_configuration"


class SourceUnavailable(LeaderboardError):
	"""The vote ledger or leaderboard store could not be reached."""

	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	detail = "source_unavailable"


class AggregationTimeout(SourceUnavailable):
	"""An aggregation run exceeded its time budget and was abandoned."""

	detail = "aggregation_timeout"


class WriteConflict(LeaderboardError):
	"""Another aggregation already holds the season."""

	status_code = status.HTTP_409_CONFLICT
	detail = "write_conflict"


class SeasonFinalized(WriteConflict):
	"""The season snapshot is frozen and only a forced refresh may replace it."""

	detail = "season_finalized"


class SeasonNotEnded(LeaderboardError):
	"""Finalization was requested for a season that is still open."""

	status_code = status.HTTP_409_CONFLICT
	detail = "season_not_ended"


class DanglingReference(LeaderboardError):
	"""A vote references an item that no longer exists.

	Recovered locally by the self-vote filter: the vote is excluded and a
	warning is logged. Never propagated out of an aggregation run.
	"""

	detail = "dangling_reference"

	def __init__(self, item_id: str, vote_id: int | None = None) -> None:
		super().__init__(f"vote {vote_id} references missing item {item_id}")
		self.item_id = item_id
		self.vote_id = vote_id
