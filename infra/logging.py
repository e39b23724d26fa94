"""
Centralized Logging
-------------------
Console (Rich) and JSON-lines file logging for the media engine.

Records emitted while a take is being started, recorded or saved carry
that take's id, so a single take can be followed across the capture
stream, the recording session and the orchestrator.

Usage:
    from infra.logging import get_logger, TakeContext

    logger = get_logger("audio")

    with TakeContext() as take_id:
        logger.info("Recording...")
"""

from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional
import contextvars
import json
import logging
import uuid

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "mediakeep"
LOG_FILE_NAME = "mediakeep.log"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 3

_current_take: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "mediakeep_take", default=None
)


def generate_take_id() -> str:
    return f"take_{uuid.uuid4().hex[:12]}"


def get_take_id() -> Optional[str]:
    """Id of the take the current task is working on, if any."""
    return _current_take.get()


class TakeContext:
    """
    Scope log records to a take.

    Nested scopes with no explicit id inherit the enclosing take, so a
    composite operation and the session calls it makes share one id.
    """

    def __init__(self, take_id: Optional[str] = None):
        self.take_id = take_id or get_take_id() or generate_take_id()
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> str:
        self._token = _current_take.set(self.take_id)
        return self.take_id

    def __exit__(self, *exc_info) -> None:
        if self._token is not None:
            _current_take.reset(self._token)
            self._token = None


class TakeIdFilter(logging.Filter):
    """Stamp each record with the active take id ("-" outside a take)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "take_id", None) is None:
            record.take_id = get_take_id() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    EXTRA_FIELDS = ("latency_ms", "source", "path", "operation", "details")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "take_id": getattr(record, "take_id", "-"),
            "message": record.getMessage(),
        }
        entry.update(
            {key: getattr(record, key) for key in self.EXTRA_FIELDS if hasattr(record, key)}
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TakeConsoleFormatter(logging.Formatter):
    """Prefix console messages with the take id when one is set."""

    def format(self, record: logging.LogRecord) -> str:
        take_id = getattr(record, "take_id", "-")
        prefix = "" if take_id == "-" else f"[{take_id}] "
        return f"{prefix}{record.name}: {record.getMessage()}"


def configure_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = None,
    console: bool = True,
    file: bool = True,
    rich_console: Optional[Console] = None,
) -> None:
    """
    Configure the mediakeep logger tree once per process.

    Args:
        level: Console level; the file always receives DEBUG
        log_dir: Directory for the rotating log file (default: ./logs)
        console: Enable Rich console output
        file: Enable JSON file output
        rich_console: Console to render to (shared with the CLI)
    """
    root_logger = logging.getLogger(ROOT_LOGGER)
    if root_logger.handlers:
        return

    root_logger.setLevel(logging.DEBUG if file else level)
    take_filter = TakeIdFilter()

    if console:
        console_handler = RichHandler(console=rich_console, rich_tracebacks=True, show_path=False)
        console_handler.setLevel(level)
        console_handler.setFormatter(TakeConsoleFormatter())
        console_handler.addFilter(take_filter)
        root_logger.addHandler(console_handler)

    if file:
        log_path = Path(log_dir or "logs")
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path / LOG_FILE_NAME,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(take_filter)
        root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Logger under the mediakeep namespace."""
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
