import logging

from evermark.domain.leaderboard.filters import filter_self_votes
from evermark.domain.leaderboard.models import Item


def _items(*pairs):
	return {item_id: Item(item_id=item_id, owner_id=owner) for item_id, owner in pairs}


def test_owner_votes_are_excluded(make_vote):
	items = _items(("item-1", "0xOwner"))
	votes = [
		make_vote("0xowner", "item-1", 1000),
		make_vote("0xVoter", "item-1", 5),
	]
	outcome = filter_self_votes(votes, items)
	assert [vote.voter_id for vote in outcome.votes] == ["0xVoter"]
	assert outcome.self_votes_excluded == 1
	assert outcome.dangling_references == 0


def test_address_comparison_ignores_case_and_whitespace(make_vote):
	items = _items(("item-1", " 0xABCDEF "))
	outcome = filter_self_votes([make_vote("0xabcdef", "item-1", 7)], items)
	assert outcome.votes == []
	assert outcome.self_votes_excluded == 1


def test_dangling_votes_are_dropped_and_logged(make_vote, caplog):
	items = _items(("item-1", "0xOwner"))
	votes = [
		make_vote("0xVoter", "item-gone", 3),
		make_vote("0xOther", "item-gone", 4),
		make_vote("0xVoter", "item-1", 2),
	]
	with caplog.at_level(logging.WARNING):
		outcome = filter_self_votes(votes, items)
	assert [vote.item_id for vote in outcome.votes] == ["item-1"]
	assert outcome.dangling_references == 2
	assert outcome.dangling_item_ids == ["item-gone"]
	assert any(record.getMessage() == "leaderboard.dangling_reference" for record in caplog.records)


def test_no_votes():
	outcome = filter_self_votes([], {})
	assert outcome.votes == []
	assert outcome.self_votes_excluded == 0
	assert outcome.dangling_references == 0
