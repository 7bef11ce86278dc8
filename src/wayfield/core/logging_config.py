"""
Logging configuration for the Wayfield world server.

Console output is colored in development and plain elsewhere. An optional
rotating file handler writes either plain lines or one JSON object per
record so chunk and client activity can be grepped or shipped as-is.
"""

import json
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from wayfield.core.config import settings

# Fields attached by LogContext or `extra=` that the JSON output lifts to the top
WORLD_FIELDS = ("client_id", "chunk_id", "version", "attempt", "duration_ms")

_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that are noisy below WARNING
DEFAULT_QUIET_LOGGERS = ("shapely", "shapely.geos", "concurrent.futures")


class JSONFormatter(logging.Formatter):
    """
    Render each record as a single JSON object.

    World fields come first, followed by any other custom attributes
    passed through ``extra``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}:{record.funcName}:{record.lineno}",
            "thread": record.threadName,
        }

        for field in WORLD_FIELDS:
            if hasattr(record, field):
                payload[field] = getattr(record, field)

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and key not in payload:
                payload[key] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class ColoredFormatter(logging.Formatter):
    """Console formatter that colors the level name."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        original = record.levelname
        color = self.COLORS.get(original)
        if color:
            record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def resolve_log_level(level_name: Optional[str], environment: str = "development") -> int:
    """
    Turn a configured level name into a logging constant.

    Args:
        level_name: Level name such as ``"debug"`` or ``"WARNING"``; None
            picks the environment default
        environment: Deployment environment used when no level is given

    Returns:
        Logging level constant. Unknown names resolve to INFO.
    """
    if level_name is None:
        return logging.DEBUG if environment == "development" else logging.INFO

    level = logging.getLevelName(level_name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if settings.environment == "development":
        handler.setFormatter(
            ColoredFormatter(
                "%(levelname)s | %(asctime)s | %(threadName)s | %(name)s | %(message)s",
                datefmt=DATE_FORMAT,
            )
        )
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt=DATE_FORMAT
            )
        )
    return handler


def _file_handler(log_file: Path, level: int, json_logs: bool) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)

    # 10MB per file, 5 backups
    handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
    )
    handler.setLevel(level)
    if json_logs:
        handler.setFormatter(JSONFormatter(datefmt=DATE_FORMAT))
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)s [%(threadName)s] %(name)s "
                "%(module)s:%(lineno)d - %(message)s",
                datefmt=DATE_FORMAT,
            )
        )
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
    json_logs: Optional[bool] = None,
    enable_console: bool = True,
    quiet_loggers: Iterable[str] = DEFAULT_QUIET_LOGGERS,
) -> List[logging.Handler]:
    """
    Configure the root logger for the world server.

    Arguments left as None fall back to ``settings``.

    Args:
        log_level: Level name for the root logger
        log_file: Rotating log file path, or None for no file output
        json_logs: Write the file handler's records as JSON
        enable_console: Attach a stdout handler
        quiet_loggers: Logger names raised to WARNING

    Returns:
        The handlers installed on the root logger
    """
    if log_level is None:
        log_level = settings.log_level
    if log_file is None:
        log_file = settings.log_file
    if json_logs is None:
        json_logs = settings.json_logs

    level = resolve_log_level(log_level, settings.environment)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handlers: List[logging.Handler] = []
    if enable_console:
        handlers.append(_console_handler(level))
    if log_file:
        handlers.append(_file_handler(Path(log_file), level, json_logs))
    for handler in handlers:
        root_logger.addHandler(handler)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(
        "Logging initialized: level=%s environment=%s json=%s handlers=%d",
        logging.getLevelName(level),
        settings.environment,
        json_logs,
        len(handlers),
    )
    return handlers


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module (pass ``__name__``)."""
    return logging.getLogger(name)


class LogContext:
    """
    Attach fields to every record created inside a block.

    Contexts nest: an inner context sees the outer fields and may
    override them.

    Usage:
        with LogContext(client_id="alice"):
            with LogContext(chunk_id="3:2"):
                logger.info("Serving chunk")  # carries both fields
    """

    def __init__(self, **fields: Any):
        self.fields = fields
        self._previous_factory: Optional[Any] = None

    def __enter__(self) -> "LogContext":
        previous = logging.getLogRecordFactory()
        self._previous_factory = previous
        fields = dict(self.fields)

        def factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
            record = previous(*args, **kwargs)
            record.__dict__.update(fields)
            return record

        logging.setLogRecordFactory(factory)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._previous_factory is not None:
            logging.setLogRecordFactory(self._previous_factory)
            self._previous_factory = None
