"""Vote aggregation and dense ranking."""

from __future__ import annotations

import hashlib
from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Sequence

from evermark.domain.leaderboard.models import LeaderboardEntry, VoteRecord

_PERCENT_SCALE = 10_000
_TWO_PLACES = Decimal("0.01")


def aggregate(votes: Iterable[VoteRecord]) -> list[LeaderboardEntry]:
	"""Sum vote amounts per item. Entries come back unranked."""

	totals: dict[str, int] = defaultdict(int)
	seasons: dict[str, int] = {}
	for vote in votes:
		if isinstance(vote.amount, bool) or not isinstance(vote.amount, int):
			raise TypeError(f"vote {vote.id} amount must be an int, got {type(vote.amount).__name__}")
		totals[vote.item_id] += vote.amount
		seasons.setdefault(vote.item_id, vote.season)
	return [
		LeaderboardEntry(item_id=item_id, season=seasons[item_id], total_votes=total)
		for item_id, total in totals.items()
	]


def percentage_of_total(total_votes: int, season_total: int) -> Decimal:
	if season_total <= 0:
		return Decimal("0.00")
	basis_points = total_votes * _PERCENT_SCALE // season_total
	return (Decimal(basis_points) / 100).quantize(_TWO_PLACES)


def rank(entries: Sequence[LeaderboardEntry]) -> list[LeaderboardEntry]:
	"""Order by total descending and assign competition ranks.

	Equal totals share a rank; the next distinct total takes its 1-based
	position, so {100, 100, 50} ranks as {1, 1, 3}. Ties are ordered by
	`item_id` so repeated runs produce identical rows.
	"""

	ordered = sorted(entries, key=lambda entry: (-entry.total_votes, entry.item_id))
	season_total = sum(entry.total_votes for entry in ordered)
	ranked: list[LeaderboardEntry] = []
	current_rank = 0
	previous_total: int | None = None
	for index, entry in enumerate(ordered):
		if entry.total_votes != previous_total:
			current_rank = index + 1
			previous_total = entry.total_votes
		ranked.append(entry.ranked(current_rank, percentage_of_total(entry.total_votes, season_total)))
	return ranked


def snapshot_hash(entries: Sequence[LeaderboardEntry]) -> str:
	"""SHA-256 over `item_id:rank:total_votes` lines in rank order."""

	payload = "|".join(f"{entry.item_id}:{entry.rank}:{entry.total_votes}" for entry in entries)
	return hashlib.sha256(payload.encode("utf-8")).hexdigest()


__all__ = ["aggregate", "percentage_of_total", "rank", "snapshot_hash"]
