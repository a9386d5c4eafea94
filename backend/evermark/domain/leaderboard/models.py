"""Domain models for season leaderboards."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional


class SeasonStatus(str, Enum):
	"""Where a season sits relative to a reference time."""

	PREPARING = "preparing"
	ACTIVE = "active"
	COMPLETED = "completed"


class SnapshotStatus(str, Enum):
	"""Whether a season leaderboard has been materialised yet."""

	COMPUTED = "computed"
	PENDING = "pending"


@dataclass(frozen=True, slots=True)
class Season:
	"""A fixed-length voting window; `end` is exclusive."""

	number: int
	start: datetime
	end: datetime

	@property
	def length(self) -> timedelta:
		return self.end - self.start

	@property
	def year(self) -> int:
		return self.start.isocalendar()[0]

	@property
	def week(self) -> str:
		return f"W{self.start.isocalendar()[1]:02d}"

	def contains(self, moment: datetime) -> bool:
		return self.start <= moment < self.end

	def status_at(self, moment: datetime) -> SeasonStatus:
		if moment < self.start:
			return SeasonStatus.PREPARING
		if moment < self.end:
			return SeasonStatus.ACTIVE
		return SeasonStatus.COMPLETED


@dataclass(frozen=True, slots=True)
class VoteRecord:
	"""A single delegation of voting power to an item within a season.

	`amount` is denominated in wei (18 decimals) and kept as a Python int so
	season totals are exact.
	"""

	id: int
	voter_id: str
	item_id: str
	season: int
	amount: int
	cast_at: datetime

	def __post_init__(self) -> None:
		if isinstance(self.amount, bool) or not isinstance(self.amount, int):
			raise TypeError("vote amount must be an integer number of wei")
		if self.amount < 0:
			raise ValueError("vote amount must be non-negative")


@dataclass(frozen=True, slots=True)
class Item:
	"""Minted content an owner can receive votes for."""

	item_id: str
	owner_id: str
	title: Optional[str] = None
	metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
	"""Aggregated vote total for one item; `rank` is None until ranked."""

	item_id: str
	season: int
	total_votes: int
	rank: Optional[int] = None
	percentage_of_total: Decimal = Decimal("0")

	def ranked(self, rank: int, percentage_of_total: Decimal) -> "LeaderboardEntry":
		return replace(self, rank=rank, percentage_of_total=percentage_of_total)


@dataclass(frozen=True, slots=True)
class LeaderboardSnapshot:
	"""Metadata persisted alongside each full season leaderboard."""

	season: int
	computed_at: datetime
	entry_count: int
	total_votes: int
	snapshot_hash: str
	self_votes_excluded: int = 0
	dangling_references: int = 0
	finalized: bool = False
	finalized_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class SnapshotPage:
	"""A snapshot row and a slice of its entries, read together."""

	snapshot: LeaderboardSnapshot
	entries: list[LeaderboardEntry]


@dataclass(frozen=True, slots=True)
class SeasonSummary:
	"""Snapshot metadata plus the season's top entry, for season pickers."""

	snapshot: LeaderboardSnapshot
	top_entry: Optional[LeaderboardEntry] = None


@dataclass(slots=True)
class AggregationResult:
	"""Outcome of one aggregation run, returned to operators and the trigger API."""

	season: int
	entries_written: int
	top_entries: list[LeaderboardEntry]
	total_votes: int
	self_votes_excluded: int
	dangling_references: int
	dangling_item_ids: list[str]
	snapshot_hash: str
	computed_at: datetime
	finalized: bool = False
	finalized_at: Optional[datetime] = None


@dataclass(slots=True)
class LeaderboardRow:
	"""Ranked entry joined with the item it belongs to, for display."""

	entry: LeaderboardEntry
	item: Optional[Item]


@dataclass(slots=True)
class LeaderboardPage:
	"""One page of a season leaderboard as served to readers."""

	season: int
	status: SnapshotStatus
	rows: list[LeaderboardRow]
	total_entries: int = 0
	computed_at: Optional[datetime] = None
	finalized: bool = False
	snapshot_hash: Optional[str] = None

	@classmethod
	def pending(cls, season: int) -> "LeaderboardPage":
		return cls(season=season, status=SnapshotStatus.PENDING, rows=[])
