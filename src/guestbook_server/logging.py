"""Structured logging for the guestbook server.

Everything goes through structlog on top of the stdlib ``logging`` root.
Visitors control several logged values (redirect targets, user agents,
names), so string fields are clipped and their control characters escaped
before any renderer sees them.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from structlog.typing import EventDict, WrappedLogger

from guestbook_server.config import Settings

SERVICE_NAME = "guestbook_server"
LOG_FILE_NAME = f"{SERVICE_NAME}.log"
CONSOLE_HANDLER_NAME = "guestbook.console"
FILE_HANDLER_NAME = "guestbook.file"
MAX_VALUE_LENGTH = 200

_QUIET_LOGGERS = ("httpx", "httpcore", "aiohttp.access")


def _clean(value: str) -> str:
    if len(value) > MAX_VALUE_LENGTH:
        value = value[:MAX_VALUE_LENGTH] + "..."
    if value.isprintable():
        return value
    return "".join(c if c.isprintable() else repr(c)[1:-1] for c in value)


def sanitize_visitor_values(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Clip long strings and escape control characters in every field but ``event``."""
    for key, value in event_dict.items():
        if key != "event" and isinstance(value, str):
            event_dict[key] = _clean(value)
    return event_dict


class ServiceContext:
    """Stamp every record with the service name and deployment environment."""

    def __init__(self, environment: str) -> None:
        self.environment = environment

    def __call__(
        self, logger: WrappedLogger, method_name: str, event_dict: EventDict
    ) -> EventDict:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("environment", self.environment)
        return event_dict


def _formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer]
    )


def _console_handler(settings: Settings, level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(CONSOLE_HANDLER_NAME)
    handler.setLevel(level)
    renderer = (
        structlog.dev.ConsoleRenderer(colors=True)
        if settings.is_development
        else structlog.processors.JSONRenderer()
    )
    handler.setFormatter(_formatter(renderer))
    return handler


def _file_handler(settings: Settings, level: int) -> logging.Handler:
    """Rotating JSON log under ``log_directory``. Raises OSError if unusable."""
    directory = Path(settings.log_directory)
    directory.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=directory / LOG_FILE_NAME,
        maxBytes=settings.log_file_max_bytes,
        backupCount=settings.log_file_backup_count,
        encoding="utf-8",
    )
    handler.set_name(FILE_HANDLER_NAME)
    handler.setLevel(level)
    handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    return handler


def _replace_handlers(handlers: list[logging.Handler], level: int) -> None:
    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() in (CONSOLE_HANDLER_NAME, FILE_HANDLER_NAME):
            root.removeHandler(existing)
            existing.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def setup_logging(settings: Settings) -> None:
    """Install the console handler, the optional file handler and structlog.

    Safe to call more than once: handlers installed by an earlier call are
    replaced rather than stacked. If the log file cannot be opened the
    server keeps running with console output and says so in the log.
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handlers = [_console_handler(settings, level)]
    file_error: OSError | None = None
    if settings.log_to_file:
        try:
            handlers.append(_file_handler(settings, level))
        except OSError as e:
            file_error = e
    _replace_handlers(handlers, level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            ServiceContext(settings.environment),
            sanitize_visitor_values,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if file_error is not None:
        get_logger(__name__).warning(
            "log_file_unavailable", directory=settings.log_directory, error=str(file_error)
        )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]
