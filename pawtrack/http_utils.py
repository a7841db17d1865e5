from __future__ import annotations

import logging
from typing import Any, Sequence

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pawtrack.errors import PawtrackError
from pawtrack.services.broadcaster import RealtimeBroadcaster
from pawtrack.services.ingestion import IngestionService
from pawtrack.services.telemetry_store import TelemetryStore

logger = logging.getLogger(__name__)


def telemetry_store(app: FastAPI) -> TelemetryStore:
    return app.state.store


def broadcaster(app: FastAPI) -> RealtimeBroadcaster:
    return app.state.broadcaster


def ingestion(app: FastAPI) -> IngestionService:
    return app.state.ingestion


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def describe_validation_errors(errors: Sequence[dict[str, Any]]) -> str:
    """Collapse pydantic errors into one line, e.g. ``deviceId: Field required``."""

    parts = []
    for error in errors:
        location = [str(item) for item in error.get("loc", ()) if item not in ("body", "query", "path")]
        field = ".".join(location)
        message = error.get("msg", "invalid value")
        parts.append(f"{field}: {message}" if field else message)
    return "; ".join(parts) or "Invalid request"


async def _pawtrack_error_handler(request: Request, exc: PawtrackError) -> JSONResponse:
    return error_response(exc.status_code, str(exc))


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = describe_validation_errors(exc.errors())
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, message)
    return error_response(status.HTTP_400_BAD_REQUEST, message)


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    response = error_response(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


def install_error_handlers(app: FastAPI) -> None:
    """Every error body on this API has the shape ``{"error": "<message>"}``."""

    app.add_exception_handler(PawtrackError, _pawtrack_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
