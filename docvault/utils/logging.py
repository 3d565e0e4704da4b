"""
Logging configuration for the docvault pipeline.

Console output goes through Rich; an optional log file receives one JSON
object per record so batch runs can be audited afterwards. Per-document
context (e.g. ``document_id``) is held in a context variable, so concurrent
tasks never see each other's values.
"""

import asyncio
import contextvars
import functools
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

from docvault.config import get_settings

# Attributes every LogRecord carries; anything else was passed via ``extra``
# or injected by the context filter.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}

_NOISY_LOGGERS = ("asyncpg", "httpx", "httpcore", "google", "ollama")

_log_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    "docvault_log_context", default={}
)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, extras included."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(
            (key, value) for key, value in record.__dict__.items() if key not in _RESERVED_ATTRS
        )

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ContextFilter(logging.Filter):
    """Copy the active logging context onto each record."""

    @property
    def context(self) -> Dict[str, Any]:
        return _log_context.get()

    def set_context(self, **kwargs: Any) -> None:
        _log_context.set({**_log_context.get(), **kwargs})

    def clear_context(self) -> None:
        _log_context.set({})

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            setattr(record, key, value)
        return True


# Global context filter instance
context_filter = ContextFilter()


def _console_handler(level: str, show_locals: bool) -> logging.Handler:
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
        tracebacks_show_locals=show_locals,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def _file_handler(path: Path, level: str, structured: bool) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    log_file_path: Optional[Path] = None,
    use_structured_logging: bool = True,
) -> None:
    """
    Configure logging for the application.

    Args:
        log_level: Logging level (defaults to settings)
        log_file_path: Path to log file (defaults to settings)
        use_structured_logging: Use JSON structured logging for files
    """
    settings = get_settings()
    log_level = (log_level or settings.log_level).upper()
    log_file_path = log_file_path or settings.get_log_file_path()

    handlers = [_console_handler(log_level, show_locals=settings.dev_mode)]
    if log_file_path:
        handlers.append(_file_handler(log_file_path, log_level, use_structured_logging))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    for handler in handlers:
        handler.addFilter(context_filter)
        root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging configured",
        extra={"log_level": log_level, "log_file": str(log_file_path) if log_file_path else None},
    )


def get_logger(name: str) -> logging.Logger:
    """Module logger; call with ``__name__``."""
    return logging.getLogger(name)


class LogContext:
    """
    Temporarily add fields to every log record.

    Usage:
        with LogContext(document_id=record.id):
            logger.info("Processing")  # record carries document_id
    """

    def __init__(self, **kwargs: Any) -> None:
        self.fields = kwargs
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> "LogContext":
        self._token = _log_context.set({**_log_context.get(), **self.fields})
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        _log_context.reset(self._token)


def _log_timing(func, start_time: float, error: Optional[BaseException] = None) -> None:
    logger = get_logger(func.__module__)
    extra = {"duration_seconds": round(time.perf_counter() - start_time, 4)}
    if error is None:
        logger.debug(f"Completed {func.__name__}", extra=extra)
    else:
        extra["error"] = str(error)
        logger.debug(f"Failed {func.__name__}", extra=extra)


def log_performance(func):
    """
    Log start, completion or failure and duration of a sync or async callable.

    Usage:
        @log_performance
        async def run(self) -> BatchSummary:
            ...
    """
    if asyncio.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            get_logger(func.__module__).debug(f"Starting {func.__name__}")
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _log_timing(func, start_time, e)
                raise
            _log_timing(func, start_time)
            return result

        return async_wrapper

    @functools.wraps(func)
    def sync_wrapper(*args, **kwargs):
        get_logger(func.__module__).debug(f"Starting {func.__name__}")
        start_time = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            _log_timing(func, start_time, e)
            raise
        _log_timing(func, start_time)
        return result

    return sync_wrapper
