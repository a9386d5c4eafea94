"""Storage contracts for leaderboard snapshots and item metadata."""

from __future__ import annotations

from typing import Iterable, Mapping, Optional, Protocol, Sequence

from evermark.domain.leaderboard.models import (
	Item,
	LeaderboardEntry,
	LeaderboardSnapshot,
	SeasonSummary,
	SnapshotPage,
)


class LeaderboardRepository(Protocol):
	async def get_snapshot(self, season: int) -> Optional[LeaderboardSnapshot]:
		...

	async def replace_snapshot(self, snapshot: LeaderboardSnapshot, entries: Sequence[LeaderboardEntry]) -> None:
		"""Swap the season's entries and metadata atomically.

		Either every entry and the snapshot row are committed, or nothing
		changes and the previous snapshot stays readable.
		"""
		...

	async def get_page(self, season: int, *, offset: int, limit: int) -> Optional[SnapshotPage]:
		"""Snapshot row and entry slice from one consistent read; None before the first run."""
		...

	async def list_snapshots(self, *, finalized_only: bool = True) -> Sequence[SeasonSummary]:
		"""Stored snapshots, newest season first."""
		...


class ItemDirectory(Protocol):
	async def get_items(self, item_ids: Iterable[str]) -> Mapping[str, Item]:
		...


class InMemoryLeaderboardRepository(LeaderboardRepository):
	"""Repository storing snapshots in memory for local development."""

	def __init__(self) -> None:
		self._seasons: dict[int, tuple[LeaderboardSnapshot, list[LeaderboardEntry]]] = {}

	async def get_snapshot(self, season: int) -> Optional[LeaderboardSnapshot]:
		stored = self._seasons.get(season)
		return stored[0] if stored is not None else None

	async def replace_snapshot(self, snapshot: LeaderboardSnapshot, entries: Sequence[LeaderboardEntry]) -> None:
		self._seasons[snapshot.season] = (snapshot, list(entries))

	async def get_page(self, season: int, *, offset: int, limit: int) -> Optional[SnapshotPage]:
		stored = self._seasons.get(season)
		if stored is None:
			return None
		snapshot, entries = stored
		return SnapshotPage(snapshot=snapshot, entries=entries[offset : offset + limit])

	async def list_snapshots(self, *, finalized_only: bool = True) -> Sequence[SeasonSummary]:
		return [
			SeasonSummary(snapshot=snapshot, top_entry=entries[0] if entries else None)
			for _, (snapshot, entries) in sorted(self._seasons.items(), reverse=True)
			if snapshot.finalized or not finalized_only
		]


class InMemoryItemDirectory(ItemDirectory):
	def __init__(self, items: Iterable[Item] = ()) -> None:
		self._items: dict[str, Item] = {item.item_id: item for item in items}

	def add(self, item: Item) -> Item:
		self._items[item.item_id] = item
		return item

	def remove(self, item_id: str) -> None:
		self._items.pop(item_id, None)

	async def get_items(self, item_ids: Iterable[str]) -> Mapping[str, Item]:
		return {item_id: self._items[item_id] for item_id in set(item_ids) if item_id in self._items}


__all__ = [
	"InMemoryItemDirectory",
	"InMemoryLeaderboardRepository",
	"ItemDirectory",
	"LeaderboardRepository",
]
