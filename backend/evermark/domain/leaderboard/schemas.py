"""Pydantic schemas for the leaderboard and season APIs.

Responses use camelCase keys. Vote totals are wei and can exceed the
integer precision of JSON consumers, so they are serialised as decimal
strings.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from evermark.domain.leaderboard.models import (
	AggregationResult,
	LeaderboardEntry,
	LeaderboardPage,
	LeaderboardRow,
	Season,
	SeasonStatus,
	SeasonSummary,
	SnapshotStatus,
)


class _CamelModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ItemSummarySchema(_CamelModel):
	title: Optional[str] = None
	owner_id: str
	metadata: Dict[str, Any] = Field(default_factory=dict)


class TopEntrySchema(_CamelModel):
	item_id: str
	total_votes: str
	rank: int = Field(..., ge=1)
	percentage_of_total: Decimal

	@classmethod
	def from_entry(cls, entry: LeaderboardEntry) -> "TopEntrySchema":
		return cls(
			item_id=entry.item_id,
			total_votes=str(entry.total_votes),
			rank=entry.rank or 0,
			percentage_of_total=entry.percentage_of_total,
		)


class LeaderboardEntrySchema(TopEntrySchema):
	item: Optional[ItemSummarySchema] = None

	@classmethod
	def from_row(cls, row: LeaderboardRow) -> "LeaderboardEntrySchema":
		item = None
		if row.item is not None:
			item = ItemSummarySchema(
				title=row.item.title,
				owner_id=row.item.owner_id,
				metadata=dict(row.item.metadata),
			)
		return cls(
			item_id=row.entry.item_id,
			total_votes=str(row.entry.total_votes),
			rank=row.entry.rank or 0,
			percentage_of_total=row.entry.percentage_of_total,
			item=item,
		)


class LeaderboardResponseSchema(_CamelModel):
	season: int
	status: SnapshotStatus
	computed_at: Optional[datetime] = None
	total_entries: int = 0
	finalized: bool = False
	snapshot_hash: Optional[str] = None
	entries: list[LeaderboardEntrySchema] = Field(default_factory=list)

	@classmethod
	def from_page(cls, page: LeaderboardPage) -> "LeaderboardResponseSchema":
		return cls(
			season=page.season,
			status=page.status,
			computed_at=page.computed_at,
			total_entries=page.total_entries,
			finalized=page.finalized,
			snapshot_hash=page.snapshot_hash,
			entries=[LeaderboardEntrySchema.from_row(row) for row in page.rows],
		)


class RefreshRequest(_CamelModel):
	season: Optional[int] = Field(default=None, ge=1)
	force: bool = False


class FinalizeRequest(_CamelModel):
	season: int = Field(..., ge=1)


class AggregationResponseSchema(_CamelModel):
	success: bool = True
	season: int
	entries_written: int
	top_entries: list[TopEntrySchema]
	total_votes: str
	dangling_references: int
	self_votes_excluded: int
	snapshot_hash: str
	computed_at: datetime
	finalized: bool = False
	finalized_at: Optional[datetime] = None

	@classmethod
	def from_result(cls, result: AggregationResult) -> "AggregationResponseSchema":
		return cls(
			season=result.season,
			entries_written=result.entries_written,
			top_entries=[TopEntrySchema.from_entry(entry) for entry in result.top_entries],
			total_votes=str(result.total_votes),
			dangling_references=result.dangling_references,
			self_votes_excluded=result.self_votes_excluded,
			snapshot_hash=result.snapshot_hash,
			computed_at=result.computed_at,
			finalized=result.finalized,
			finalized_at=result.finalized_at,
		)


class ErrorResponseSchema(_CamelModel):
	success: bool = False
	error: str
	message: str


class SeasonSchema(_CamelModel):
	number: int
	start: datetime
	end: datetime
	year: int
	week: str
	status: SeasonStatus
	time_remaining_seconds: int

	@classmethod
	def from_season(cls, season: Season, now: datetime) -> "SeasonSchema":
		if now < season.start:
			remaining = season.length
		else:
			remaining = max(timedelta(0), season.end - now)
		return cls(
			number=season.number,
			start=season.start,
			end=season.end,
			year=season.year,
			week=season.week,
			status=season.status_at(now),
			time_remaining_seconds=int(remaining.total_seconds()),
		)


class SeasonSummarySchema(_CamelModel):
	season: int
	label: str
	start: datetime
	end: datetime
	entry_count: int
	total_votes: str
	top_item_id: Optional[str] = None
	top_item_votes: Optional[str] = None
	snapshot_hash: str
	computed_at: datetime
	finalized: bool
	finalized_at: Optional[datetime] = None

	@classmethod
	def from_summary(cls, season: Season, summary: SeasonSummary) -> "SeasonSummarySchema":
		snapshot, top = summary.snapshot, summary.top_entry
		return cls(
			season=season.number,
			label=f"Season {season.number}",
			start=season.start,
			end=season.end,
			entry_count=snapshot.entry_count,
			total_votes=str(snapshot.total_votes),
			top_item_id=top.item_id if top is not None else None,
			top_item_votes=str(top.total_votes) if top is not None else None,
			snapshot_hash=snapshot.snapshot_hash,
			computed_at=snapshot.computed_at,
			finalized=snapshot.finalized,
			finalized_at=snapshot.finalized_at,
		)


class SeasonListSchema(_CamelModel):
	seasons: list[SeasonSummarySchema] = Field(default_factory=list)
	total: int = 0


class SeasonAuditSchema(_CamelModel):
	computed: int
	contract: Optional[int] = None
	in_sync: Optional[bool] = None
	checked_at: datetime


__all__ = [
	"AggregationResponseSchema",
	"ErrorResponseSchema",
	"FinalizeRequest",
	"ItemSummarySchema",
	"LeaderboardEntrySchema",
	"LeaderboardResponseSchema",
	"RefreshRequest",
	"SeasonAuditSchema",
	"SeasonListSchema",
	"SeasonSchema",
	"SeasonSummarySchema",
	"TopEntrySchema",
]
