"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from evermark.domain.leaderboard.exceptions import LeaderboardError

_LOG = logging.getLogger(__name__)


def request_id_of(request: Request) -> str | None:
	return getattr(request.state, "request_id", None) or request.headers.get("X-Request-Id")


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(LeaderboardError)
	async def leaderboard_exc_handler(request: Request, exc: LeaderboardError):  # type: ignore[override]
		rid = request_id_of(request)
		_LOG.warning(
			"leaderboard.request_failed",
			extra={"error": exc.detail, "status": exc.status_code, "path": request.url.path},
		)
		payload = {"success": False, "error": exc.detail, "message": exc.message, "request_id": rid}
		return JSONResponse(status_code=exc.status_code, content=payload)

	@app.exception_handler(StarletteHTTPException)
	async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		rid = request_id_of(request)
		payload = {"detail": exc.detail, "request_id": rid}
		return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

	@app.exception_handler(RequestValidationError)
	async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
		rid = request_id_of(request)
		payload = {"detail": "validation_error", "errors": jsonable_encoder(exc.errors()), "request_id": rid}
		return JSONResponse(status_code=422, content=payload)
