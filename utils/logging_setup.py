"""Logging configuration for the fetch pipeline and its callers."""

from __future__ import annotations

import logging
import os
from typing import Any

from pythonjsonlogger.json import JsonFormatter

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(service)s %(message)s"

_LOGGING_CONFIGURED = False


class _ServiceFilter(logging.Filter):
    def __init__(self, service: str | None):
        super().__init__()
        self._service = service or "econ-data-toolkit"

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "service"):
            record.service = self._service
        return True


def _build_formatter() -> logging.Formatter:
    return JsonFormatter(LOG_FORMAT)


def configure_logging(service_name: str | None = None) -> None:
    """Configure structured JSON logging on the root logger."""
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    root = logging.getLogger()
    root.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(_build_formatter())
    stream_handler.addFilter(_ServiceFilter(service_name))
    root.addHandler(stream_handler)

    _LOGGING_CONFIGURED = True


def reset_logging() -> None:
    """Reset logging configuration for tests."""
    global _LOGGING_CONFIGURED
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    _LOGGING_CONFIGURED = False


def log_outcome(
    logger: logging.Logger,
    message: str,
    *,
    stale: bool = False,
    extra: dict[str, Any] | None = None,
) -> None:
    """Log fetch outcomes at info, or warning when stale data was served."""
    level = logging.WARNING if stale else logging.INFO
    logger.log(level, message, extra=extra)
