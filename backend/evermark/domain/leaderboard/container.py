"""Lightweight service container shared by the leaderboard API, jobs and CLI."""

from __future__ import annotations

from typing import Optional

import asyncpg
from redis.asyncio import Redis

from evermark.domain.leaderboard.contract import ContractSeasonProbe, CycleProbe, SeasonAudit
from evermark.domain.leaderboard.ledger import InMemoryVoteLedger, LedgerReader, VoteLedger
from evermark.domain.leaderboard.repository import (
    InMemoryItemDirectory,
    InMemoryLeaderboardRepository,
    ItemDirectory,
    LeaderboardRepository,
)
from evermark.domain.leaderboard.season import SeasonOracle
from evermark.domain.leaderboard.service import LeaderboardService
from evermark.infra.item_repo import PostgresItemDirectory
from evermark.infra.leaderboard_repo import PostgresLeaderboardRepository
from evermark.infra.ledger_repo import PostgresVoteLedger
from evermark.infra.redis import RedisProxy, redis_client
from evermark.settings import settings

_oracle: SeasonOracle = SeasonOracle.from_settings(settings)
_ledger: VoteLedger = InMemoryVoteLedger()
_items: ItemDirectory = InMemoryItemDirectory()
_repository: LeaderboardRepository = InMemoryLeaderboardRepository()
_redis_proxy: RedisProxy = redis_client
_probe: Optional[CycleProbe] = None
_service: LeaderboardService
_audit: SeasonAudit


def _build() -> None:
    global _service, _audit
    _service = LeaderboardService(
        oracle=_oracle,
        reader=LedgerReader.from_settings(_ledger, settings),
        items=_items,
        repository=_repository,
        redis=_redis_proxy,
        timeout_seconds=settings.aggregation_timeout_seconds,
        lease_ttl_seconds=settings.aggregation_lease_ttl_seconds,
        run_attempts=settings.aggregation_run_attempts,
        retry_backoff_seconds=settings.ledger_backoff_seconds,
    )
    _audit = SeasonAudit(_oracle, _probe)


def configure(
    *,
    oracle: Optional[SeasonOracle] = None,
    ledger: Optional[VoteLedger] = None,
    items: Optional[ItemDirectory] = None,
    repository: Optional[LeaderboardRepository] = None,
    redis_proxy: Optional[RedisProxy] = None,
    probe: Optional[CycleProbe] = None,
) -> None:
    global _oracle, _ledger, _items, _repository, _redis_proxy, _probe
    if oracle is not None:
        _oracle = oracle
    if ledger is not None:
        _ledger = ledger
    if items is not None:
        _items = items
    if repository is not None:
        _repository = repository
    if probe is not None:
        _probe = probe
    _redis_proxy = redis_proxy or _redis_proxy
    _build()


def configure_postgres(pool: asyncpg.Pool, redis_conn: Redis | RedisProxy) -> None:
    proxy = redis_conn if isinstance(redis_conn, RedisProxy) else RedisProxy(redis_conn)
    configure(
        ledger=PostgresVoteLedger(pool),
        items=PostgresItemDirectory(pool),
        repository=PostgresLeaderboardRepository(pool),
        redis_proxy=proxy,
        probe=ContractSeasonProbe.from_settings(settings),
    )


def reset() -> None:
    """Back to fresh in-memory stores; used by tests."""
    global _oracle, _ledger, _items, _repository, _redis_proxy, _probe
    _oracle = SeasonOracle.from_settings(settings)
    _ledger = InMemoryVoteLedger()
    _items = InMemoryItemDirectory()
    _repository = InMemoryLeaderboardRepository()
    _redis_proxy = redis_client
    _probe = None
    _build()


def get_oracle() -> SeasonOracle:
    return _oracle


def get_service() -> LeaderboardService:
    return _service


def get_audit() -> SeasonAudit:
    return _audit


_build()
