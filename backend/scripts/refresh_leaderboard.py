"""Recompute, repair or finalize a season leaderboard from the command line.

Usage:
    cd backend
    python scripts/refresh_leaderboard.py --season 42
    python scripts/refresh_leaderboard.py --season 41 --finalize
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from evermark.domain.leaderboard import container
from evermark.domain.leaderboard.exceptions import LeaderboardError
from evermark.domain.leaderboard.schemas import AggregationResponseSchema
from evermark.infra import postgres
from evermark.infra.redis import redis_client
from evermark.obs.logging import configure_logging


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
	parser = argparse.ArgumentParser(description="Refresh an Evermark season leaderboard")
	parser.add_argument("--season", type=int, default=None, help="Season number (defaults to the current season)")
	parser.add_argument("--finalize", action="store_true", help="Freeze the season after recomputing it")
	parser.add_argument("--force", action="store_true", help="Recompute even if the season is finalized")
	return parser.parse_args(argv)


async def run(season: int | None, *, finalize: bool, force: bool) -> int:
	pool = await postgres.init_pool()
	container.configure_postgres(pool, redis_client)
	service = container.get_service()
	try:
		if finalize:
			if season is None:
				raise SystemExit("--finalize requires --season")
			result = await service.finalize_season(season)
		else:
			result = await service.run_with_retry(season, force=force)
	except LeaderboardError as exc:
		print(json.dumps({"success": False, "error": exc.detail, "message": exc.message}))
		return 1
	finally:
		await postgres.close_pool()
	print(AggregationResponseSchema.from_result(result).model_dump_json(by_alias=True, indent=2))
	return 0


def main(argv: list[str] | None = None) -> None:
	args = _parse_args(argv)
	configure_logging()
	raise SystemExit(asyncio.run(run(args.season, finalize=args.finalize, force=args.force)))


if __name__ == "__main__":
	main()
