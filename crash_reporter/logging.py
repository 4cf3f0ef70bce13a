"""
Structured logging for the crash reporter itself.

Every log line written to file is a single JSON object with the keys
``timestamp``, ``level``, ``logger``, ``message``, ``service`` and
``version``, plus whatever per-request context the Flask hooks attached
(``request_path``, ``artifact_key``, ...).  The console gets the same JSON
when ``CRASH_REPORTER_LOG_FORMAT=json`` and a coloured one-liner otherwise.
"""

import json
import logging
import os
import sys
import threading
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from .constants import APP_VERSION, DEFAULT_LOG_DIR, LOG_BACKUP_COUNT, LOG_MAX_BYTES
from .redaction import SecretScrubber

_context = threading.local()

SERVICE_NAME: str = os.environ.get("CRASH_REPORTER_SERVICE_NAME", "crash_reporter")


def set_log_context(**kwargs: Any) -> None:
    """Attach key-value pairs to the current thread's log context."""
    if not hasattr(_context, "data"):
        _context.data = {}
    _context.data.update(kwargs)


def clear_log_context() -> None:
    _context.data = {}


def get_log_context() -> Dict[str, Any]:
    """Return a *copy* of the current thread's context dict."""
    return dict(getattr(_context, "data", {}))


# ── JSON Formatter ───────────────────────────────────────────────


class _JsonFormatter(logging.Formatter):
    """Emit each record as a single-line JSON object."""

    # Keys promoted from ``extra`` to the top-level JSON.
    _PROMOTE_KEYS = frozenset(
        {
            "request_path",
            "artifact_key",
            "attempt",
            "error_type",
            "transport",
            "recipients",
            "decision",
        }
    )

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": SERVICE_NAME,
            "version": APP_VERSION,
        }

        if record.levelno >= logging.ERROR:
            entry["func"] = record.funcName
            entry["line"] = record.lineno

        ctx = get_log_context()
        if ctx:
            entry.update(ctx)

        for key in self._PROMOTE_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
            entry["error_type"] = record.exc_info[0].__name__

        return json.dumps(entry, default=str, ensure_ascii=False)


# ── Console Formatter ───────────────────────────────────────────

_LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}
_RESET = "\033[0m"


class _DevFormatter(logging.Formatter):
    """One coloured line per record: time, level, logger, ``[path]``, message.

    The artifact a record refers to is appended by its file name only.
    """

    def format(self, record: logging.LogRecord) -> str:
        color = _LEVEL_COLORS.get(record.levelno, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        parts = [f"{color}{clock} {record.levelname:<8}{_RESET}", record.name]

        path = get_log_context().get("request_path")
        if path:
            parts.append(f"[{path}]")
        parts.append(record.getMessage())

        artifact_key = getattr(record, "artifact_key", None)
        if artifact_key:
            parts.append(f"(artifact {Path(artifact_key).name})")

        line = " ".join(parts)
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


# ── Logger Factory ───────────────────────────────────────────────


def get_log_dir() -> Path:
    """Return the log directory from CRASH_REPORTER_LOG_DIR (default ``./logs``)."""
    return Path(os.environ.get("CRASH_REPORTER_LOG_DIR", DEFAULT_LOG_DIR))


def _file_handler(log_file: str) -> logging.Handler:
    log_path = get_log_dir() / log_file
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(log_path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT)
    handler.setFormatter(_JsonFormatter())
    return handler


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    as_json = os.environ.get("CRASH_REPORTER_LOG_FORMAT", "").lower() == "json"
    handler.setFormatter(_JsonFormatter() if as_json else _DevFormatter())
    return handler


def setup_logger(
    name: str,
    log_file: str,
    *,
    level: Optional[int] = None,
    debug: bool = False,
) -> logging.Logger:
    """Create (or retrieve) a logger whose handlers scrub secrets.

    Loggers are process-wide; a second call with the same *name* only
    adjusts the level.

    Args:
        name: Logger name, conventionally ``crash_reporter.<component>``.
        log_file: Filename under the log directory.
        level: Explicit level (overrides *debug*).
        debug: If ``True``, sets level to ``DEBUG``.
    """
    if level is None:
        level = logging.DEBUG if debug else logging.INFO

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        scrubber = SecretScrubber()
        for handler in (_file_handler(log_file), _console_handler()):
            handler.addFilter(scrubber)
            logger.addHandler(handler)

    for handler in logger.handlers:
        handler.setLevel(level)
    return logger
