"""JSON logging for the ``smarthome`` logger, with the active request id attached."""
import contextvars
import json
import logging
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

REQUEST_ID_CTX: contextvars.ContextVar[str] = contextvars.ContextVar("smarthome_request_id", default="")

LOGGER_NAME = "smarthome"
REQUEST_ID_HEADER = "X-Request-Id"
SENSITIVE_FIELDS = frozenset({"password", "token", "access_token", "refresh_token", "authorization"})
REDACTED = "<redacted>"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def iso_utc(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def sanitize_str(value: Optional[str], max_len: int = 256) -> str:
    """Single-line, length-capped text safe to put in a log line or header."""
    if value is None:
        return ""
    return " ".join(str(value).splitlines()).strip()[:max_len]


def _redact(key: str, value: Any) -> Any:
    if key.lower() in SENSITIVE_FIELDS:
        return REDACTED
    if isinstance(value, dict):
        return sanitize_payload(value)
    return value


def sanitize_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: _redact(key, value) for key, value in payload.items()}


class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": iso_utc(datetime.fromtimestamp(record.created, timezone.utc)),
            "level": record.levelname,
            "logger": record.name,
        }
        if REQUEST_ID_CTX.get():
            entry["request_id"] = REQUEST_ID_CTX.get()
        entry.update(getattr(record, "structured", None) or {"event": record.getMessage()})
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=True, default=str)


def configure_logging(level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if not any(isinstance(h.formatter, StructuredFormatter) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def log_structured(level: int, event: str, **fields: Any) -> None:
    logging.getLogger(LOGGER_NAME).log(
        level, event, extra={"structured": {"event": event, **sanitize_payload(fields)}}
    )


def level_for_status(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


@contextmanager
def request_context(incoming_id: Optional[str]) -> Iterator[str]:
    """Bind a request id (the caller's, or a fresh uuid4) for the duration of a request."""
    request_id = sanitize_str(incoming_id, 64) or str(uuid.uuid4())
    token = REQUEST_ID_CTX.set(request_id)
    try:
        yield request_id
    finally:
        REQUEST_ID_CTX.reset(token)


class RequestTimer:
    """Collects the fields of the one ``request`` log line emitted per HTTP request."""

    def __init__(self, method: str, path: str, env: str) -> None:
        self.fields: Dict[str, Any] = {"method": method, "path": path, "env": env}
        self.status_code = 500
        self._started = time.perf_counter()

    def failed(self, exc: BaseException) -> None:
        self.fields["error_type"] = type(exc).__name__

    def emit(self) -> None:
        elapsed_ms = (time.perf_counter() - self._started) * 1000.0
        log_structured(
            level_for_status(self.status_code),
            "request",
            status_code=self.status_code,
            duration_ms=round(elapsed_ms, 2),
            **self.fields,
        )
