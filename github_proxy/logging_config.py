"""Structured JSON logging configuration.

Centralized logging for the proxy, with support for:
- JSON-formatted log output for machine parsing
- Correlation IDs (request_id, client_ip) for request tracing
- Configurable log levels via environment variables
- Context variables so concurrent requests never mix their context

Usage:
    from github_proxy.logging_config import setup_logging, get_logger, set_context

    setup_logging()
    logger = get_logger(__name__)

    set_context(request_id="req-123", client_ip="10.0.0.7")
    logger.info("Forwarding request")
    # {"timestamp": "...", "level": "INFO", "message": "Forwarding request",
    #  "request_id": "req-123", "client_ip": "10.0.0.7", ...}

    clear_context()
"""

import json
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Optional

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_client_ip: ContextVar[Optional[str]] = ContextVar("client_ip", default=None)
_extra_context: ContextVar[dict] = ContextVar("extra_context", default={})

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")  # "json" or "text"
LOG_INCLUDE_LOCATION = os.environ.get("LOG_INCLUDE_LOCATION", "false").lower() == "true"

# LogRecord attributes that are not user-supplied ``extra`` fields
_STANDARD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
})


def set_context(
    request_id: Optional[str] = None,
    client_ip: Optional[str] = None,
    **extra: Any,
) -> None:
    """Set correlation context for the current request.

    Args:
        request_id: Unique request identifier for tracing.
        client_ip: Address of the requesting client.
        **extra: Additional context fields to include in logs.
    """
    if request_id is not None:
        _request_id.set(request_id)
    if client_ip is not None:
        _client_ip.set(client_ip)
    if extra:
        current = _extra_context.get()
        _extra_context.set({**current, **extra})


def get_context() -> dict[str, Any]:
    """Return the current correlation context."""
    context = {}
    request_id = _request_id.get()
    if request_id:
        context["request_id"] = request_id
    client_ip = _client_ip.get()
    if client_ip:
        context["client_ip"] = client_ip
    extra = _extra_context.get()
    if extra:
        context.update(extra)
    return context


def clear_context() -> None:
    """Clear all correlation context for the current request."""
    _request_id.set(None)
    _client_ip.set(None)
    _extra_context.set({})


def _timestamp(record: logging.LogRecord) -> str:
    return time.strftime(
        "%Y-%m-%dT%H:%M:%S",
        time.gmtime(record.created),
    ) + f".{int(record.msecs * 1000):06d}Z"


class JSONFormatter(logging.Formatter):
    """JSON log formatter with correlation ID support.

    Produces logs in the format:
    {
        "timestamp": "2024-01-15T10:30:00.123456Z",
        "level": "INFO",
        "logger": "github_proxy.app",
        "message": "GET /https://github.com/a/b -> 200",
        "request_id": "req-123",
        "client_ip": "10.0.0.7",
        "status_code": 200
    }
    """

    def __init__(self, include_location: bool = False):
        super().__init__()
        self.include_location = include_location

    def format(self, record: logging.LogRecord) -> str:
        log_dict: dict[str, Any] = {
            "timestamp": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_dict.update(get_context())

        if self.include_location:
            log_dict["location"] = f"{record.filename}:{record.lineno}:{record.funcName}"

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                log_dict[key] = value

        return json.dumps(log_dict, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter.

    2024-01-15T10:30:00.123456Z INFO [github_proxy.app] [req-123] message
    """

    def __init__(self, include_location: bool = False):
        super().__init__()
        self.include_location = include_location

    def format(self, record: logging.LogRecord) -> str:
        parts = [_timestamp(record), record.levelname, f"[{record.name}]"]

        request_id = get_context().get("request_id")
        if request_id:
            parts.append(f"[{request_id}]")

        parts.append(record.getMessage())

        if self.include_location:
            parts.append(f"({record.filename}:{record.lineno})")

        result = " ".join(parts)
        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)
        return result


def setup_logging(
    level: Optional[str] = None,
    format_type: Optional[str] = None,
    include_location: Optional[bool] = None,
) -> None:
    """Configure the root logger.

    Args:
        level: Log level name. Defaults to ``LOG_LEVEL`` or INFO.
        format_type: ``"json"`` or ``"text"``. Defaults to ``LOG_FORMAT``.
        include_location: Include source location. Defaults to
            ``LOG_INCLUDE_LOCATION``.
    """
    level = level or LOG_LEVEL
    format_type = format_type or LOG_FORMAT
    if include_location is None:
        include_location = LOG_INCLUDE_LOCATION

    if format_type.lower() == "json":
        formatter: logging.Formatter = JSONFormatter(include_location=include_location)
    else:
        formatter = TextFormatter(include_location=include_location)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # werkzeug's own access log duplicates request_complete
    logging.getLogger("werkzeug").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def generate_request_id() -> str:
    return str(uuid.uuid4())


def flask_request_middleware(app):
    """Add request logging middleware to a Flask app.

    - Uses the inbound X-Request-ID header or generates a request_id
    - Sets logging context with request_id and client_ip
    - Logs request start and completion with duration
    - Echoes the request_id in the X-Request-ID response header

    Args:
        app: Flask application instance.
    """
    logger = get_logger("github_proxy.http")

    @app.before_request
    def before_request():
        from flask import request, g

        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        g.request_id = request_id
        g.request_start_time = time.time()

        set_context(
            request_id=request_id,
            client_ip=request.remote_addr,
            method=request.method,
            path=request.path,
        )
        logger.debug(
            f"{request.method} {request.path}",
            extra={"event": "request_start"},
        )

    @app.after_request
    def after_request(response):
        from flask import request, g

        duration_ms = None
        if hasattr(g, "request_start_time"):
            duration_ms = (time.time() - g.request_start_time) * 1000

        logger.info(
            f"{request.method} {request.path} -> {response.status_code}",
            extra={
                "event": "request_complete",
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        if hasattr(g, "request_id"):
            response.headers["X-Request-ID"] = g.request_id
        return response

    @app.teardown_request
    def teardown_request(exception=None):
        clear_context()
        if exception:
            logger.error(
                f"Request failed with exception: {exception}",
                exc_info=exception,
            )
