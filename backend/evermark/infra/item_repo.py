"""PostgreSQL-backed item directory."""

from __future__ import annotations

import json
from typing import Any, Iterable, Mapping, Optional

import asyncpg

from evermark.domain.leaderboard.exceptions import SourceUnavailable
from evermark.domain.leaderboard.models import Item
from evermark.domain.leaderboard.repository import ItemDirectory
from evermark.infra.ledger_repo import TRANSIENT_ERRORS
from evermark.infra.postgres import get_pool


def _metadata(value: Any) -> Mapping[str, Any]:
	if value is None:
		return {}
	if isinstance(value, str):
		return json.loads(value)
	return dict(value)


class PostgresItemDirectory(ItemDirectory):
	def __init__(self, pool: Optional[asyncpg.Pool] = None) -> None:
		self._pool = pool

	async def get_items(self, item_ids: Iterable[str]) -> Mapping[str, Item]:
		ids = sorted(set(item_ids))
		if not ids:
			return {}
		try:
			pool = self._pool if self._pool is not None else await get_pool()
			rows = await pool.fetch(
				"""
				SELECT item_id, owner_id, title, metadata
				FROM items
				WHERE item_id = ANY($1::text[])
				""",
				ids,
			)
		except TRANSIENT_ERRORS as exc:
			raise SourceUnavailable(f"item lookup failed: {exc.__class__.__name__}") from exc
		return {
			str(row["item_id"]): Item(
				item_id=str(row["item_id"]),
				owner_id=str(row["owner_id"]),
				title=row["title"],
				metadata=_metadata(row["metadata"]),
			)
			for row in rows
		}


__all__ = ["PostgresItemDirectory"]
