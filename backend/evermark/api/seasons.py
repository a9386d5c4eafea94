"""Season lookup routes."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Path

from evermark.api.ops import require_admin
from evermark.domain.leaderboard import container
from evermark.domain.leaderboard.schemas import SeasonAuditSchema, SeasonSchema

router = APIRouter(prefix="/seasons", tags=["seasons"])


@router.get("/current", response_model=SeasonSchema)
async def current_season_endpoint() -> SeasonSchema:
	now = datetime.now(timezone.utc)
	return SeasonSchema.from_season(container.get_oracle().current_season(), now)


@router.get("/audit", response_model=SeasonAuditSchema, dependencies=[Depends(require_admin)])
async def season_audit_endpoint() -> SeasonAuditSchema:
	report = await container.get_audit().compare()
	return SeasonAuditSchema(
		computed=report.computed,
		contract=report.contract,
		in_sync=report.in_sync,
		checked_at=report.checked_at,
	)


@router.get("/{number}", response_model=SeasonSchema)
async def season_endpoint(number: int = Path(..., ge=1)) -> SeasonSchema:
	now = datetime.now(timezone.utc)
	return SeasonSchema.from_season(container.get_oracle().season_boundaries(number), now)
