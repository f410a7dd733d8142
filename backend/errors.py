from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError

ERROR_CODES = {
    "validation": "VALIDATION_ERROR",
    "http": "HTTP_ERROR",
    "denied": "ACCESS_DENIED",
    "not_found": "NOT_FOUND",
    "internal": "INTERNAL_ERROR",
}

ACCESS_DENIED_MESSAGE = "Access denied"


class AppError(Exception):
    """Base class for errors raised by services and translated at the HTTP edge."""

    status_code = 500
    code = ERROR_CODES["internal"]

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class AccessDenied(AppError):
    status_code = 403
    code = ERROR_CODES["denied"]

    def __init__(self, message: str = ACCESS_DENIED_MESSAGE) -> None:
        super().__init__(message)


class ResourceNotFound(AppError):
    status_code = 404
    code = ERROR_CODES["not_found"]

    def __init__(self, resource: str, resource_id: Any) -> None:
        super().__init__(f"{resource.capitalize()} not found")
        self.resource = resource
        self.resource_id = resource_id


class ValidationFailed(AppError):
    status_code = 422
    code = ERROR_CODES["validation"]

    @classmethod
    def for_field(cls, loc: List[Any], msg: str, value: Any = None) -> "ValidationFailed":
        entry: Dict[str, Any] = {"loc": loc, "msg": msg, "type": "value_error"}
        if value is not None:
            entry["input"] = value
        return cls("Invalid request", [entry])


class InternalError(AppError):
    """Store or infrastructure failure; the message never reaches the caller."""


def make_error_payload(code: str, message: str, details: Optional[Any] = None) -> Dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
        }
    }


def format_validation_details(exc: RequestValidationError) -> List[Dict[str, Any]]:
    formatted: List[Dict[str, Any]] = []
    for err in exc.errors():
        formatted.append(
            {
                "loc": err.get("loc"),
                "msg": err.get("msg"),
                "type": err.get("type"),
            }
        )
    return formatted


def http_error_payload(exc: HTTPException) -> Dict[str, Any]:
    message = exc.detail if isinstance(exc.detail, str) else "HTTP error"
    return make_error_payload(
        ERROR_CODES["http"],
        message,
        {"status_code": exc.status_code},
    )


def app_error_payload(exc: AppError) -> Dict[str, Any]:
    if isinstance(exc, InternalError):
        return make_error_payload(exc.code, "Unexpected error", None)
    return make_error_payload(exc.code, exc.message, exc.details)
