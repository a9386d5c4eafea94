"""Central registry for Prometheus metrics used across the service."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNTER = Counter(
	"evermark_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"evermark_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

AGGREGATION_RUNS = Counter(
	"evermark_lb_aggregation_runs_total",
	"Leaderboard aggregation runs by outcome",
	["outcome"],
)

AGGREGATION_DURATION = Histogram(
	"evermark_lb_aggregation_duration_seconds",
	"Wall time of a full season aggregation run",
	buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

SNAPSHOT_ENTRIES = Gauge(
	"evermark_lb_snapshot_entries",
	"Entries written by the latest snapshot of a season",
	["season"],
)

SELF_VOTES_EXCLUDED = Counter(
	"evermark_lb_self_votes_excluded_total",
	"Votes dropped because the voter owns the item",
)

DANGLING_REFERENCES = Counter(
	"evermark_lb_dangling_references_total",
	"Votes dropped because the referenced item no longer exists",
)

LEDGER_PAGE_RETRIES = Counter(
	"evermark_lb_ledger_page_retries_total",
	"Ledger page reads retried after a transient failure",
)

LEDGER_PAGES = Counter(
	"evermark_lb_ledger_pages_total",
	"Ledger pages fetched",
)

SEASON_AUDIT_MISMATCH = Counter(
	"evermark_lb_season_audit_mismatch_total",
	"Contract season number disagreed with the computed season",
)

REDIS_UP = Gauge("evermark_redis_up", "Redis reachability (1 = up)")
POSTGRES_UP = Gauge("evermark_postgres_up", "Postgres reachability (1 = up)")


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def record_aggregation(outcome: str, *, elapsed_seconds: float | None = None) -> None:
	AGGREGATION_RUNS.labels(outcome=outcome).inc()
	if elapsed_seconds is not None:
		AGGREGATION_DURATION.observe(elapsed_seconds)


def set_snapshot_entries(season: int, count: int) -> None:
	SNAPSHOT_ENTRIES.labels(season=str(season)).set(count)


def inc_self_votes_excluded(count: int) -> None:
	if count <= 0:
		return
	SELF_VOTES_EXCLUDED.inc(count)


def inc_dangling_references(count: int) -> None:
	if count <= 0:
		return
	DANGLING_REFERENCES.inc(count)


def inc_ledger_page() -> None:
	LEDGER_PAGES.inc()


def inc_ledger_retry() -> None:
	LEDGER_PAGE_RETRIES.inc()


def inc_season_audit_mismatch() -> None:
	SEASON_AUDIT_MISMATCH.inc()


def mark_redis(ok: bool) -> None:
	REDIS_UP.set(1 if ok else 0)


def mark_postgres(ok: bool) -> None:
	POSTGRES_UP.set(1 if ok else 0)
