from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from backend.errors import (
    ERROR_CODES,
    AppError,
    InternalError,
    app_error_payload,
    format_validation_details,
    http_error_payload,
    make_error_payload,
)
from backend.observability import log_structured

logger = logging.getLogger("smarthome")


def _error_response(
    status_code: int, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    content = {**payload, "detail": payload["error"]["message"]}
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)  # type: ignore[misc]
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = format_validation_details(exc)
        payload = make_error_payload(ERROR_CODES["validation"], "Invalid request", details)
        return _error_response(422, payload)

    @app.exception_handler(HTTPException)  # type: ignore[misc]
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return _error_response(exc.status_code, http_error_payload(exc), exc.headers)

    @app.exception_handler(AppError)  # type: ignore[misc]
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if isinstance(exc, InternalError):
            log_structured(
                logging.ERROR,
                "internal_error",
                path=request.url.path,
                message=exc.message,
                cause=repr(exc.__cause__) if exc.__cause__ else None,
            )
        return _error_response(exc.status_code, app_error_payload(exc))

    @app.exception_handler(SQLAlchemyError)  # type: ignore[misc]
    async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.exception("Database error during request handling", exc_info=exc)
        payload = make_error_payload(ERROR_CODES["internal"], "Unexpected error", None)
        return _error_response(500, payload)

    @app.exception_handler(Exception)  # type: ignore[misc]
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unexpected error during request handling", exc_info=exc)
        payload = make_error_payload(ERROR_CODES["internal"], "Unexpected error", None)
        return _error_response(500, payload)
