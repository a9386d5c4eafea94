"""Liveness and readiness probes.

Readiness needs Redis (season leases), Postgres (ledger and snapshots) and a
schema at or above ``settings.health_min_migration``.
"""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Tuple

from evermark.infra import postgres
from evermark.infra.redis import redis_client
from evermark.obs import metrics
from evermark.settings import settings

LOGGER = logging.getLogger(__name__)

Check = Dict[str, Any]


async def _timed(name: str, probe: Callable[[], Awaitable[Any]], timeout: float) -> Tuple[Check, Any]:
	start = perf_counter()
	try:
		value = await asyncio.wait_for(probe(), timeout=timeout)
	except Exception as exc:  # pragma: no cover - depends on runtime
		LOGGER.warning("health.%s_failed", name, exc_info=True)
		return {"ok": False, "error": str(exc) or exc.__class__.__name__}, None
	return {"ok": True, "latency_ms": round((perf_counter() - start) * 1000, 2)}, value


async def _redis_check() -> Check:
	check, _ = await _timed("redis", redis_client.ping, timeout=0.2)
	metrics.mark_redis(check["ok"])
	return check


async def _postgres_check() -> Tuple[Check, Any]:
	async def _probe():
		pool = await postgres.get_pool()
		async with pool.acquire() as conn:
			await conn.execute("SELECT 1")
			return await conn.fetchval(
				"SELECT version FROM schema_migrations ORDER BY version DESC LIMIT 1"
			)

	check, version = await _timed("postgres", _probe, timeout=0.5)
	metrics.mark_postgres(check["ok"])
	return check, version


def _migration_check(postgres_ok: bool, version: Any) -> Check:
	required = settings.health_min_migration
	if not postgres_ok:
		return {"ok": False, "error": "postgres_unavailable", "required": required}
	if version is None:
		return {"ok": False, "error": "no_migrations", "required": required}
	current = str(version)
	return {"ok": current >= required, "version": current, "required": required}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	redis_state, (postgres_state, version) = await asyncio.gather(_redis_check(), _postgres_check())
	migration_state = _migration_check(postgres_state["ok"], version)
	checks = {"redis": redis_state, "postgres": postgres_state, "migrations": migration_state}
	ok = all(check["ok"] for check in checks.values())
	return (200 if ok else 503), {"status": "ok" if ok else "degraded", "checks": checks}
