"""Logging setup: plain text or one JSON object per line, to a file or stdout."""

from __future__ import annotations

import logging
import sys

import structlog

TEXT_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def json_formatter() -> logging.Formatter:
    """Formatter rendering stdlib records through structlog's JSON renderer."""
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.format_exc_info,
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
    )


def configure_logging(level: str = "INFO", log_file: str = "", as_json: bool = False) -> None:
    """Install a single root handler. Falls back to stdout if the file can't be opened."""
    fallback_reason = None
    handler: logging.Handler
    if log_file:
        try:
            handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as e:
            handler = logging.StreamHandler(sys.stdout)
            fallback_reason = str(e)
    else:
        handler = logging.StreamHandler(sys.stdout)

    handler.setFormatter(json_formatter() if as_json else logging.Formatter(TEXT_FORMAT))
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), handlers=[handler], force=True)

    if fallback_reason:
        logging.getLogger(__name__).info(
            "Failed to log to file %s (%s), using stdout", log_file, fallback_reason,
        )
