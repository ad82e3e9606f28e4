from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from .context import get_request_id

# Loggers from libraries that should share our JSON format instead of their own handlers.
_ADOPTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "httpx", "botocore")

_configured = False


def _add_request_id(_: Any, __: str, event_dict: dict) -> dict:
    rid = get_request_id()
    if rid:
        event_dict["request_id"] = rid
    return event_dict


def _drop_none(_: Any, __: str, event_dict: dict) -> dict:
    # Optional ids (thread_ts, error, ...) are passed unconditionally; keep lines short.
    return {k: v for k, v in event_dict.items() if v is not None}


def _shared_processors() -> list:
    return [
        _add_request_id,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _drop_none,
    ]


def configure_logging(*, level: str | int = "INFO") -> None:
    """
    One JSON object per line on stdout, for both structlog and stdlib loggers.

    Safe to call more than once; only the first call takes effect.
    """
    global _configured
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=_shared_processors(),
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    for name in _ADOPTED_LOGGERS:
        lib = logging.getLogger(name)
        lib.handlers = []
        lib.propagate = True
    # httpx logs every request at INFO, which would include the Gemini key in the query string.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str | None = None):
    return structlog.get_logger(name)
