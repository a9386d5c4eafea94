"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from evermark.api import leaderboard, ops, seasons
from evermark.api.errors import install_error_handlers
from evermark.domain.leaderboard import container
from evermark.domain.leaderboard import jobs as leaderboard_jobs
from evermark.infra import postgres
from evermark.infra.redis import redis_client
from evermark.infra.scheduler import RefreshScheduler
from evermark.obs import init as obs_init
from evermark.settings import settings

_LOG = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	pool = await postgres.init_pool()
	if pool is not None:
		container.configure_postgres(pool, redis_client)
	scheduler: RefreshScheduler | None = None
	if settings.leaderboard_scheduler_enabled:
		scheduler = RefreshScheduler()
		scheduler.start()
		scheduler.schedule_every(
			"leaderboard-refresh",
			leaderboard_jobs.refresh_current_season,
			minutes=settings.refresh_interval_minutes,
		)
		_LOG.info("leaderboard.scheduler.started", extra={"interval_minutes": settings.refresh_interval_minutes})
	app.state.refresh_scheduler = scheduler
	try:
		yield
	finally:
		if scheduler is not None:
			scheduler.shutdown()
		await postgres.close_pool()


app = FastAPI(title="Evermark Leaderboard", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(getattr(settings, "cors_allow_origins", []))
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []

# Starlette disallows wildcard '*' with allow_credentials=True.
if "*" in allow_origins:
	allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["GET", "POST"],
	allow_headers=["*"],
)
obs_init(app)

app.include_router(leaderboard.router)
app.include_router(seasons.router)
app.include_router(ops.router)
