import inspect
import json
import logging
import sys
from typing import Any

import httpx
from fastapi import status
from loguru import logger

from src.config.settings import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

# Stdlib loggers re-routed into Loguru
INTERCEPTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi", "sqlalchemy.engine")

# Transport chatter from the identity provider client
NOISY_LOGGERS = ("httpx", "httpcore")


def _sanitize_value(val: Any) -> Any:
    """Recursively replaces callables and default object reprs with readable names."""
    if isinstance(val, dict):
        return {k: _sanitize_value(v) for k, v in val.items()}
    if isinstance(val, list | tuple | set):
        return type(val)(_sanitize_value(v) for v in val)

    if callable(val) or inspect.iscoroutinefunction(val):
        module = getattr(val, "__module__", "")
        qualname = getattr(val, "__qualname__", type(val).__name__)
        return f"{module}.{qualname}()" if module else f"{qualname}()"

    # e.g. <aiosqlite.core.Connection object at 0x...>
    val_repr = repr(val)
    if "<" in val_repr and " at 0x" in val_repr:
        return f"[{val.__class__.__module__}.{val.__class__.__name__}]"

    return val


def log_patcher(record: dict[str, Any]) -> None:
    """Cleans the Loguru record payload before it reaches any sink."""
    if "extra" in record:
        record["extra"] = _sanitize_value(record["extra"])

    if "args" in record:
        record["args"] = tuple(_sanitize_value(arg) for arg in record["args"])


class InterceptHandler(logging.Handler):
    """Routes standard logging records to Loguru, preserving the caller frame."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


class SeqSink:
    """Synchronous sink posting serialized Loguru records to Seq's raw events API."""

    def __init__(self, server_url: str, api_key: str | None = None):
        self.server_url = f"{server_url.rstrip('/')}/api/events/raw"
        self.api_key = api_key
        self.client = httpx.Client(timeout=4.0)

    def _build_event(self, record: dict[str, Any]) -> dict[str, Any]:
        event = {
            "Timestamp": record["time"]["repr"],
            "Level": record["level"]["name"],
            "MessageTemplate": record["message"],
            "Properties": {
                **record["extra"],
                "Function": record["function"],
                "Module": record["module"],
                "Line": record["line"],
                "Process": record["process"].get("name"),
            },
        }
        if record.get("exception"):
            event["Exception"] = record["exception"]["text"]
        return event

    def write(self, message: str) -> None:
        """Writes one serialized record to Seq. Failures go to stderr, never upward."""
        try:
            event = self._build_event(json.loads(message)["record"])

            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["X-Seq-ApiKey"] = self.api_key

            resp = self.client.post(self.server_url, json={"Events": [event]}, headers=headers)

            if resp.status_code >= status.HTTP_400_BAD_REQUEST:
                sys.stderr.write(f"Seq API Error {resp.status_code}: {resp.text}\n")

        except Exception as e:
            sys.stderr.write(f"Failed to send log to Seq: {e}\nPayload: {message}\n")


def configure_logging() -> None:
    """Configures Loguru as the single logging front-end for the service."""
    logger.remove()
    logger.configure(patcher=log_patcher)

    logger.add(sys.stderr, level=settings.LOG_LEVEL, format=CONSOLE_FORMAT)

    if settings.SEQ_URL:
        logger.add(
            SeqSink(settings.SEQ_URL, api_key=settings.SEQ_API_KEY),
            level=settings.LOG_LEVEL,
            format="{message}",
            serialize=True,
            enqueue=True,
            backtrace=True,
            diagnose=settings.DEBUG,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for name in INTERCEPTED_LOGGERS:
        _logger = logging.getLogger(name)
        _logger.handlers = [InterceptHandler()]
        _logger.propagate = False

    for name in NOISY_LOGGERS:
        _log = logging.getLogger(name)
        _log.setLevel(logging.WARNING)
        _log.propagate = False
        _log.handlers = []

    logger.info("Logging configured (level={}, seq={})", settings.LOG_LEVEL, settings.SEQ_URL or "disabled")
