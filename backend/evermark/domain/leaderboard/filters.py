"""Vote filters applied before aggregation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from evermark.domain.leaderboard.exceptions import DanglingReference
from evermark.domain.leaderboard.models import Item, VoteRecord

_LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class FilterOutcome:
	votes: list[VoteRecord]
	self_votes_excluded: int = 0
	dangling_references: int = 0
	dangling_item_ids: list[str] = field(default_factory=list)


def _normalise_address(value: str) -> str:
	return value.strip().lower()


def is_self_vote(vote: VoteRecord, item: Item) -> bool:
	return _normalise_address(vote.voter_id) == _normalise_address(item.owner_id)


def filter_self_votes(votes: Iterable[VoteRecord], items: Mapping[str, Item]) -> FilterOutcome:
	"""Drop votes cast by an item's owner and votes for items that no longer exist."""

	kept: list[VoteRecord] = []
	self_votes = 0
	dangling_votes = 0
	dangling: list[str] = []
	for vote in votes:
		item = items.get(vote.item_id)
		if item is None:
			warning = DanglingReference(vote.item_id, vote.id)
			_LOG.warning(
				"leaderboard.dangling_reference",
				extra={"item_id": vote.item_id, "vote_id": vote.id, "season": vote.season, "reason": str(warning)},
			)
			dangling_votes += 1
			if vote.item_id not in dangling:
				dangling.append(vote.item_id)
			continue
		if is_self_vote(vote, item):
			self_votes += 1
			continue
		kept.append(vote)
	return FilterOutcome(
		votes=kept,
		self_votes_excluded=self_votes,
		dangling_references=dangling_votes,
		dangling_item_ids=dangling,
	)


__all__ = ["FilterOutcome", "filter_self_votes", "is_self_vote"]
