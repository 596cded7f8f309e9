# Path: config/logging_config.py
# Purpose: Configure process-wide logging for scripts and the HTTP API.
# Layer: config.
# Details: Console output either human-readable or as JSON objects via python-json-logger.

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from pythonjsonlogger import jsonlogger

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Loggers that drown out pipeline output at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "PIL", "uvicorn.access")


class GalleryJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding the standard fields every entry carries.

    Output format::

        {"timestamp": "...", "level": "INFO", "logger": "core.indexing.index_builder",
         "module": "index_builder", "message": "...", ...extra fields...}
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["module"] = record.module


class _GalleryHandler(logging.StreamHandler):
    """Marker type so repeated setup replaces only handlers installed here."""


def setup_logging(level: Optional[str] = "INFO", json_format: bool = False) -> logging.Logger:
    """Configure the root logger once for the process.

    Calling this again swaps the handler it installed previously instead of stacking a new one.

    Args:
        level: Level name such as ``"DEBUG"`` or ``"INFO"``; unknown names fall back to INFO.
        json_format: Emit one JSON object per line instead of plain text.

    Returns:
        The configured root logger.
    """

    resolved = getattr(logging, (level or "INFO").upper(), logging.INFO)
    if not isinstance(resolved, int):
        resolved = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(resolved)
    for handler in list(root_logger.handlers):
        if isinstance(handler, _GalleryHandler):
            root_logger.removeHandler(handler)

    handler = _GalleryHandler()
    handler.setLevel(resolved)
    if json_format:
        handler.setFormatter(GalleryJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.debug(
        "Logging initialised",
        extra={"event_type": "logging_initialised", "json_format": json_format},
    )
    return root_logger


__all__ = ["GalleryJsonFormatter", "setup_logging"]
