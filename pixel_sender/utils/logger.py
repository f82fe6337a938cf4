"""
Logging setup for the pixel sender.

Everything goes through ``StructuredLogger``: keyword arguments become
structured fields (JSON lines in the log file, ``key=value`` tail on the
console). Run-scoped fields such as ``request_id`` and ``script_id`` can be
bound once per run with ``bind``.
"""
import logging
import logging.config
import json
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from pathlib import Path

ROOT_LOGGER = "pixel_sender"

# third-party loggers and the level they are capped at
LIBRARY_LOG_LEVELS: Dict[str, str] = {
    "uvicorn": "INFO",
    "sqlalchemy.engine": "WARNING",
    "aiohttp.client": "WARNING",
}

# fields pulled to the top of every JSON line when present
_PROMOTED_FIELDS = ("request_id", "script_id", "trx_id", "stage")


class JSONFormatter(logging.Formatter):
    """One JSON object per record; structured fields merged into the object."""

    def format(self, record: logging.LogRecord) -> str:
        fields = dict(getattr(record, "fields", None) or {})
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _PROMOTED_FIELDS:
            if key in fields:
                log_entry[key] = fields.pop(key)
        log_entry.update(fields)
        log_entry["location"] = f"{record.module}:{record.funcName}:{record.lineno}"

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Plain text line with the structured fields appended as key=value pairs."""

    def __init__(self):
        super().__init__("%(asctime)s - %(name)s - %(levelname)s - %(message)s", "%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = getattr(record, "fields", None)
        if fields:
            line += " | " + " ".join(f"{k}={v}" for k, v in fields.items())
        return line


class StructuredLogger:
    """
    Thin wrapper over ``logging.Logger`` taking structured fields as kwargs.
    None-valued fields are dropped.
    """

    def __init__(self, name: str, context: Optional[Dict[str, Any]] = None):
        self.logger = logging.getLogger(name)
        self.context = dict(context or {})

    def bind(self, **context) -> "StructuredLogger":
        """Copy of this logger that adds ``context`` to every record."""
        merged = dict(self.context)
        merged.update({k: v for k, v in context.items() if v is not None})
        return StructuredLogger(self.logger.name, merged)

    def _log(self, level: int, message: str, exc_info: bool = False, **kwargs):
        if not self.logger.isEnabledFor(level):
            return
        fields = dict(self.context)
        fields.update({k: v for k, v in kwargs.items() if v is not None})
        self.logger.log(level, message, exc_info=exc_info, extra={"fields": fields}, stacklevel=3)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def progress(self, verbose: bool, message: str, **kwargs):
        """Run progress: INFO for verbose runs, DEBUG otherwise."""
        self._log(logging.INFO if verbose else logging.DEBUG, message, **kwargs)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_console: bool = True,
    console_json: bool = False,
) -> None:
    """
    Configure the ``pixel_sender`` logger tree and the noisy library loggers.

    Args:
        log_level: Level for pixel_sender and the root logger
        log_file: Rotating JSON log file (directories are created)
        enable_console: Log to stdout
        console_json: Use JSON lines on stdout too (for log shippers)
    """
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    handlers: Dict[str, Dict[str, Any]] = {}
    if enable_console:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "stream": sys.stdout,
            "formatter": "json" if console_json else "console",
            "level": log_level,
        }
    if log_file:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": log_file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "formatter": "json",
            "level": log_level,
        }
    handler_names = list(handlers)

    loggers: Dict[str, Dict[str, Any]] = {
        ROOT_LOGGER: {"level": log_level, "handlers": handler_names, "propagate": False},
    }
    for name, level in LIBRARY_LOG_LEVELS.items():
        loggers[name] = {"level": level, "handlers": handler_names, "propagate": False}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JSONFormatter},
            "console": {"()": ConsoleFormatter},
        },
        "handlers": handlers,
        "loggers": loggers,
        "root": {"level": log_level, "handlers": handler_names},
    })


def get_logger(name: str) -> StructuredLogger:
    """Logger under the ``pixel_sender`` tree (``__name__`` of a package module is kept as is)."""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return StructuredLogger(name)
    return StructuredLogger(f"{ROOT_LOGGER}.{name}")


def log_business_event(
    event_type: str,
    details: Dict[str, Any],
    script_id: Optional[str] = None,
    request_id: Optional[str] = None
) -> None:
    """
    Audit record for a finished or aborted run (``pixel_sender.audit``).

    Args:
        event_type: e.g. 'pixel_run_completed', 'pixel_run_failed'
        details: Counters and flags of the run
        script_id: Scraper script the run was made for
        request_id: Request ID for tracing
    """
    get_logger("audit").info(
        f"Business event: {event_type}",
        event_type=event_type,
        script_id=script_id,
        request_id=request_id,
        **details
    )


def log_performance(
    operation: str,
    duration_ms: float,
    additional_data: Optional[Dict[str, Any]] = None
) -> None:
    """Timing record on ``pixel_sender.performance``; durations are rounded to 0.01 ms."""
    data: Dict[str, Any] = {"duration_ms": round(duration_ms, 2)}
    if additional_data:
        data.update(additional_data)
    get_logger("performance").info(f"Performance: {operation}", operation=operation, **data)
