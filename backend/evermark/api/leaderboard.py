"""FastAPI routes for season leaderboards."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from evermark.api.ops import require_admin
from evermark.domain.leaderboard import container
from evermark.domain.leaderboard.exceptions import InvalidConfiguration, SourceUnavailable
from evermark.domain.leaderboard.schemas import (
	AggregationResponseSchema,
	ErrorResponseSchema,
	FinalizeRequest,
	LeaderboardResponseSchema,
	RefreshRequest,
	SeasonListSchema,
	SeasonSummarySchema,
)
from evermark.domain.leaderboard.service import MAX_PAGE_SIZE, LeaderboardService

_LOG = logging.getLogger(__name__)

router = APIRouter(prefix="/leaderboard", tags=["leaderboard"])

_ERROR_RESPONSES = {
	status.HTTP_409_CONFLICT: {"model": ErrorResponseSchema},
	422: {"model": ErrorResponseSchema},
	status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponseSchema},
}


def get_leaderboard_service() -> LeaderboardService:
	return container.get_service()


@router.get("", response_model=LeaderboardResponseSchema)
async def leaderboard_endpoint(
	season: Optional[int] = Query(default=None, ge=1, description="Season number; defaults to the current season"),
	offset: int = Query(default=0, ge=0),
	limit: int = Query(default=100, ge=1, le=MAX_PAGE_SIZE),
	service: LeaderboardService = Depends(get_leaderboard_service),
) -> LeaderboardResponseSchema:
	try:
		page = await service.get_leaderboard(season, offset=offset, limit=limit)
	except SourceUnavailable as exc:
		raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="temporarily_unavailable") from exc
	except InvalidConfiguration as exc:
		_LOG.warning("leaderboard.read_rejected", extra={"reason": exc.message})
		raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="invalid_season") from exc
	except ValueError as exc:
		raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="invalid_page") from exc
	return LeaderboardResponseSchema.from_page(page)


@router.post(
	"/refresh",
	response_model=AggregationResponseSchema,
	responses=_ERROR_RESPONSES,
	dependencies=[Depends(require_admin)],
)
async def refresh_endpoint(
	payload: Optional[RefreshRequest] = None,
	service: LeaderboardService = Depends(get_leaderboard_service),
) -> AggregationResponseSchema:
	request = payload or RefreshRequest()
	result = await service.run_with_retry(request.season, force=request.force)
	return AggregationResponseSchema.from_result(result)


@router.post(
	"/finalize",
	response_model=AggregationResponseSchema,
	responses=_ERROR_RESPONSES,
	dependencies=[Depends(require_admin)],
)
async def finalize_endpoint(
	payload: FinalizeRequest,
	service: LeaderboardService = Depends(get_leaderboard_service),
) -> AggregationResponseSchema:
	result = await service.finalize_season(payload.season)
	return AggregationResponseSchema.from_result(result)


@router.get("/seasons", response_model=SeasonListSchema)
async def seasons_endpoint(
	finalized: bool = Query(default=True, description="Only finalized seasons; false lists every stored snapshot"),
	service: LeaderboardService = Depends(get_leaderboard_service),
) -> SeasonListSchema:
	try:
		listed = await service.list_seasons(finalized_only=finalized)
	except SourceUnavailable as exc:
		raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="temporarily_unavailable") from exc
	seasons = [SeasonSummarySchema.from_summary(season, summary) for season, summary in listed]
	return SeasonListSchema(seasons=seasons, total=len(seasons))
