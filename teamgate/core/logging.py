"""
Structured logging for teamgate.

Every record emitted under the ``teamgate`` logger carries the correlation
fields (request, user, team, event type, error code) as record attributes.
Production renders one JSON object per line with every custom attribute;
development renders a single readable line with the correlation fields
inlined.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LOGGER_NAME = "teamgate"
MAX_FIELD_LENGTH = 500
TRUNCATION_SUFFIX = "...<truncated>"

# Set by the request id middleware for the lifetime of one request
request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

CORRELATION_FIELDS = ("request_id", "user_id", "team_id", "event_type", "error_code")

# Attributes every LogRecord has; anything else was passed through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

_LATENCY_BUCKETS = (
    (10, "<10ms"),
    (100, "10-100ms"),
    (500, "100-500ms"),
    (1000, "500-1000ms"),
)


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return rid if rid is not None else default


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    """Coarse latency label for access logs."""
    if latency_ms is None:
        return "unknown"
    for upper, label in _LATENCY_BUCKETS:
        if latency_ms < upper:
            return label
    return ">=1000ms"


def record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Custom attributes of a record, i.e. what the caller passed as ``extra``."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_") and value is not None
    }


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z")


class RequestIdFilter(logging.Filter):
    """Fill in request_id from the context var when the caller did not pass one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        payload.update(record_fields(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        tags = []
        for field, tag in (("request_id", "rid"), ("team_id", "team"), ("user_id", "user")):
            value = getattr(record, field, None)
            if value is not None and value != "":
                tags.append(f"[{tag}={value}]")
        line = " ".join([_timestamp(record), record.levelname, f"[{LOGGER_NAME}]", *tags, record.getMessage()])
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(env: str = "development", level: int = logging.INFO) -> None:
    """Install a single stdout handler on the teamgate logger; safe to call repeatedly."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else PrettyFormatter())
    handler.addFilter(RequestIdFilter())

    logger.handlers = [handler]
    logger.propagate = True

    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.error").propagate = False


def _clip(value: Any, limit: int = MAX_FIELD_LENGTH) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, (dict, list, tuple)):
        text = json.dumps(value, default=str, sort_keys=True)
    else:
        try:
            text = str(value)
        except Exception:
            return "<unserializable>"
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_SUFFIX


def log_event(
    level: str,
    msg: str,
    *,
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
    team_id: Optional[int] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, object]] = None,
) -> None:
    """
    Emit one structured record on the teamgate logger.

    Keys of ``extra`` are attached as record attributes, clipped to
    MAX_FIELD_LENGTH characters. A key that names a correlation field or a
    built-in LogRecord attribute is kept under ``extra_<key>`` so it can never
    replace the caller's request, user or team.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        configure_logging(os.getenv("ENV", "development"))

    fields: Dict[str, Any] = {}
    for key, value in (extra or {}).items():
        if key in CORRELATION_FIELDS or key in _RECORD_ATTRS:
            key = f"extra_{key}"
        fields[key] = _clip(value)

    fields.update(
        request_id=request_id or get_request_id(),
        user_id=user_id,
        team_id=team_id,
        event_type=event_type,
        error_code=error_code,
    )

    log_fn = getattr(logger, level, logger.info)
    log_fn(msg, extra=fields)
