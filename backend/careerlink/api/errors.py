"""Error mapping and global handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from careerlink.domain.realtime.errors import (
	AuthError,
	InvalidInput,
	NotFound,
	PersistenceFailure,
	RealtimeError,
	Unauthorized,
)
from careerlink.obs.logging import current_request_id


def _request_id(request: Request) -> str | None:
	return getattr(request.state, "request_id", None) or current_request_id() or request.headers.get("X-Request-Id")


def map_error(exc: RealtimeError) -> HTTPException:
	if isinstance(exc, AuthError):
		return HTTPException(status.HTTP_401_UNAUTHORIZED, detail=exc.reason)
	if isinstance(exc, Unauthorized):
		return HTTPException(status.HTTP_403_FORBIDDEN, detail=exc.reason)
	if isinstance(exc, NotFound):
		return HTTPException(status.HTTP_404_NOT_FOUND, detail=exc.reason)
	if isinstance(exc, PersistenceFailure):
		return HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.reason)
	if isinstance(exc, InvalidInput):
		return HTTPException(status.HTTP_400_BAD_REQUEST, detail=exc.reason)
	return HTTPException(status.HTTP_400_BAD_REQUEST, detail=exc.reason)


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(StarletteHTTPException)
	async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		payload = {"detail": exc.detail, "request_id": _request_id(request)}
		return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

	@app.exception_handler(RequestValidationError)
	async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
		payload = {"detail": "validation_error", "errors": exc.errors(), "request_id": _request_id(request)}
		return JSONResponse(status_code=422, content=jsonable_encoder(payload))

	@app.exception_handler(RealtimeError)
	async def realtime_exc_handler(request: Request, exc: RealtimeError):  # type: ignore[override]
		mapped = map_error(exc)
		payload = {"detail": mapped.detail, "request_id": _request_id(request)}
		return JSONResponse(status_code=mapped.status_code, content=payload)
