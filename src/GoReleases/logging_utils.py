"""Structured logging helpers shared across release fetching components."""

from __future__ import annotations

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

import platformdirs

__all__ = [
    "LOGGER_NAME",
    "JSONFormatter",
    "default_log_dir",
    "generate_correlation_id",
    "setup_logging",
]

LOGGER_NAME = "GoReleases"

# Attributes present on every LogRecord; anything else arrived through ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "stage", "correlation_id"}


def generate_correlation_id() -> str:
    """Create a short identifier that links the log entries of one fetch.

    Examples:
        >>> cid = generate_correlation_id()
        >>> len(cid)
        12
    """
    return uuid.uuid4().hex[:12]


def default_log_dir() -> Path:
    """Return the per-user log directory used when none is configured."""
    return Path(platformdirs.user_log_dir("goreleases"))


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a JSON string including ``extra`` fields."""

        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "stage": getattr(record, "stage", None),
        }
        for key, value in vars(record).items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _remove_managed_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, "_goreleases_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.StreamHandler) and not isinstance(
                handler, logging.FileHandler
            ):
                stream = getattr(handler, "stream", None)
                if stream in (sys.stdout, sys.stderr):
                    continue
            handler.close()


def setup_logging(
    *,
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    file_logging: bool = False,
    max_log_size_mb: int = 20,
    propagate: bool = False,
) -> logging.Logger:
    """Configure the ``GoReleases`` logger.

    A console handler writing to stderr is always installed.  When
    ``file_logging`` is set, JSON lines are additionally written to a rotating
    file in ``log_dir`` (or :func:`default_log_dir`).  Calling this again
    replaces the handlers a previous call installed.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    _remove_managed_handlers(logger)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    console_handler._goreleases_managed = True  # type: ignore[attr-defined]
    logger.addHandler(console_handler)

    if file_logging or log_dir is not None:
        resolved_dir = Path(log_dir) if log_dir is not None else default_log_dir()
        resolved_dir.mkdir(parents=True, exist_ok=True)
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        file_handler = RotatingFileHandler(
            resolved_dir / f"goreleases-{today}.jsonl",
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._goreleases_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger
