"""Structlog setup.

One processor chain feeds every output: the console (coloured for local
runs, JSON otherwise) and, when enabled, two rotating JSON files, the full
log and an error-only log. Each event carries the request context from
``learnhub.core.context`` and has credential-like values masked.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog
from structlog.types import EventDict, Processor

from learnhub.core.context import get_context


if TYPE_CHECKING:
    from learnhub.config.settings import Settings


_SENSITIVE_KEYS = ("password", "secret", "token", "authorization", "credentials")
_KEEP_CHARS = 2

NOISY_LOGGERS = ("uvicorn.access", "cassandra", "httpx")


def add_context_processor(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Copy the request context into the event without overriding explicit keys."""
    for key, value in get_context().items():
        event_dict.setdefault(key, value)
    return event_dict


def _mask(key: str, value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _mask(k, v) for k, v in value.items()}
    if not isinstance(value, str) or not any(s in key.lower() for s in _SENSITIVE_KEYS):
        return value
    if len(value) <= 2 * _KEEP_CHARS:
        return "***"
    hidden = "*" * (len(value) - 2 * _KEEP_CHARS)
    return value[:_KEEP_CHARS] + hidden + value[-_KEEP_CHARS:]


def filter_sensitive_data(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask values whose key looks like a credential, keeping two chars each side."""
    return {k: _mask(k, v) for k, v in event_dict.items()}


def stringify_ids(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Course, student and enrollment ids are logged as plain strings."""
    return {k: str(v) if isinstance(v, UUID) else v for k, v in event_dict.items()}


def shared_processors(settings: "Settings") -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_context_processor,
        filter_sensitive_data,
        stringify_ids,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if settings.log_include_caller_info:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.LINENO,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                ]
            )
        )
    return processors


def _handler(
    handler: logging.Handler,
    level: str,
    renderer: Processor,
    pre_chain: list[Processor],
) -> logging.Handler:
    handler.setLevel(getattr(logging, level.upper()))
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain)
    )
    return handler


def configure_structlog(settings: "Settings", log_dir: Path | str | None = None) -> None:
    """Configure structlog and the stdlib root logger once at startup."""
    level = settings.log_level
    pre_chain = shared_processors(settings)

    if settings.log_format == "json":
        console_renderer: Processor = structlog.processors.JSONRenderer()
    else:
        console_renderer = structlog.dev.ConsoleRenderer(
            colors=True, exception_formatter=structlog.dev.plain_traceback
        )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, level.upper()))
    root.addHandler(
        _handler(logging.StreamHandler(sys.stdout), level, console_renderer, pre_chain)
    )

    if settings.log_to_file:
        directory = Path(log_dir or settings.log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        for suffix, file_level in (("log", level), ("error.log", "ERROR")):
            file_handler = RotatingFileHandler(
                filename=str(directory / f"{settings.app_name}.{suffix}"),
                maxBytes=settings.log_file_max_bytes,
                backupCount=settings.log_file_backup_count,
                encoding="utf-8",
            )
            root.addHandler(
                _handler(
                    file_handler,
                    file_level,
                    structlog.processors.JSONRenderer(),
                    pre_chain,
                )
            )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
