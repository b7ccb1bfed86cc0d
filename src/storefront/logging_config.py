"""
Logging setup for the storefront.

Serverless invocations (Lambda, Netlify) emit one JSON object per record so
the platform log search can filter on correlation and session ids; local
runs get a readable single-line format.
"""

import functools
import json
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
session_id_var: ContextVar[str] = ContextVar("session_id", default="")

SERVERLESS_ENV_MARKERS = ("AWS_LAMBDA_FUNCTION_NAME", "NETLIFY")
PLAIN_FORMAT = "[%(levelname)s] %(asctime)s - %(name)s - %(message)s"
QUIET_LOGGERS = ("boto3", "botocore", "urllib3", "apscheduler")


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Bind a correlation id to the current context, minting one if absent."""
    value = correlation_id or uuid.uuid4().hex
    correlation_id_var.set(value)
    return value


def get_correlation_id() -> str:
    return correlation_id_var.get()


def set_session_id(session_id: str) -> None:
    """Bind the shopper's cart session id to the current context."""
    session_id_var.set(session_id)


def get_session_id() -> str:
    return session_id_var.get()


class StructuredJsonFormatter(logging.Formatter):
    """Renders a record, its bound ids and selected ``extra`` fields as JSON."""

    PASSTHROUGH_FIELDS = (
        "product_id",
        "section_id",
        "storage_key",
        "status_code",
        "duration_ms",
        "metrics",
    )

    def __init__(self, service_name: str = "storefront"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "service": self.service_name,
            "message": record.getMessage(),
            "source": f"{record.module}:{record.funcName}:{record.lineno}",
            "correlation_id": get_correlation_id(),
            "session_id": get_session_id(),
        }

        payload.update(
            (name, getattr(record, name))
            for name in self.PASSTHROUGH_FIELDS
            if hasattr(record, name)
        )

        error = getattr(record, "error", None)
        if isinstance(error, dict):
            payload["error"] = error

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            payload["exception"] = {"type": exc_type.__name__, "message": str(exc_value)}

        return json.dumps(payload, default=str)


def is_serverless() -> bool:
    return any(os.environ.get(marker) for marker in SERVERLESS_ENV_MARKERS)


def configure_logging(level: str = "INFO", service_name: str = "storefront") -> logging.Logger:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: Level name; unknown names fall back to INFO
        service_name: Value of the ``service`` field in JSON records

    Returns:
        The root logger
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(
        StructuredJsonFormatter(service_name) if is_serverless() else logging.Formatter(PLAIN_FORMAT)
    )

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def log_execution_time(logger: logging.Logger, level: int = logging.DEBUG):
    """
    Log the wall time of each call; failures are logged with their
    traceback and re-raised.

    Example:
        @log_execution_time(logger)
        def refresh(self):
            ...
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed = _elapsed_ms(started)
                logger.error(
                    f"{func.__qualname__} raised {type(e).__name__} after {elapsed}ms: {e}",
                    extra={"duration_ms": elapsed},
                    exc_info=True,
                )
                raise
            elapsed = _elapsed_ms(started)
            logger.log(level, f"{func.__qualname__} took {elapsed}ms", extra={"duration_ms": elapsed})
            return result
        return wrapper
    return decorator
