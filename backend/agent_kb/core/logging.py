"""Logging utilities for the knowledge base.

Records carry structured context through ``extra`` keys prefixed with
``ctx_``; the JSON formatter emits them without the prefix, e.g.
``logger.info("added", extra={"ctx_document_id": doc_id})``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import orjson

CONTEXT_PREFIX = "ctx_"

_DEFAULT_LEVEL = os.environ.get("AGKB_LOG_LEVEL", "INFO")

# Per-request logs from the embedding HTTP client drown out ingestion logs.
_QUIET_LOGGERS = ("httpx", "httpcore", "multipart")


class JsonFormatter(logging.Formatter):
    """One JSON object per line with the record's ``ctx_`` context fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": f"{self.formatTime(record, '%Y-%m-%dT%H:%M:%S')}.{int(record.msecs):03d}",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key.startswith(CONTEXT_PREFIX):
                payload[key[len(CONTEXT_PREFIX) :]] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode("utf-8")


def configure_logging(level: str | int = _DEFAULT_LEVEL, use_json: bool = True) -> None:
    """Install a single stdout handler on the root logger."""
    handler = logging.StreamHandler(sys.stdout)
    if use_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level.upper() if isinstance(level, str) else level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = "agent_kb") -> logging.Logger:
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["CONTEXT_PREFIX", "JsonFormatter", "configure_logging", "get_logger"]
