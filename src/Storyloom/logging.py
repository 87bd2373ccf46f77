# logging.py

import logging
import os
from logging.handlers import RotatingFileHandler

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars

from Storyloom.config import Settings

_SENSITIVE_FIELDS = frozenset({"notion_token", "database_url"})
_SENSITIVE_SUFFIXES = ("_token", "_secret", "_key")


def _json_formatter() -> structlog.stdlib.ProcessorFormatter:
    # Renders structlog events and plain stdlib records (httpx, sqlalchemy) alike
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            merge_contextvars,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        foreign_pre_chain=[
            structlog.processors.add_log_level,
            merge_contextvars,
        ],
    )


def _handler_level(level_name: str | None, legacy_enabled: bool, default: str) -> str:
    """Per-handler level name; ``NONE`` disables the handler."""
    if level_name is None:
        return default if legacy_enabled else "NONE"
    return level_name.upper()


def _build_handlers(settings: Settings | None, default_level: str) -> list[logging.Handler]:
    formatter = _json_formatter()
    handlers: list[logging.Handler] = []

    console = _handler_level(
        settings.logging_console if settings else None,
        settings.logging_to_console if settings else True,
        default_level,
    )
    if console != "NONE":
        ch = logging.StreamHandler()
        ch.setLevel(getattr(logging, console, logging.INFO))
        ch.setFormatter(formatter)
        handlers.append(ch)

    to_file = _handler_level(
        settings.logging_file if settings else None,
        settings.logging_to_file if settings else True,
        default_level,
    )
    if to_file != "NONE":
        path = settings.logging_file_path if settings else "logs/storyloom.jsonl"
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        fh = RotatingFileHandler(
            path,
            maxBytes=settings.logging_max_bytes if settings else 5_000_000,
            backupCount=settings.logging_backup_count if settings else 5,
        )
        fh.setLevel(getattr(logging, to_file, logging.INFO))
        fh.setFormatter(formatter)
        handlers.append(fh)
    return handlers


def setup_logging(settings: Settings | None = None) -> None:
    """Route structlog through stdlib logging with JSON output.

    Console and rotating-file handlers get their own levels from the
    ``[logging]`` config. With logging disabled everything goes to a
    NullHandler.
    """
    if settings is not None and not settings.logging_enabled:
        logging.basicConfig(level=logging.CRITICAL + 1, handlers=[logging.NullHandler()], force=True)
        return

    level_name = (settings.logging_level if settings else "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.captureWarnings(True)
    logging.basicConfig(level=level, handlers=_build_handlers(settings, level_name), force=True)

    # httpx logs every request URL at INFO; keep it for DEBUG runs only
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def bind_run_context(**fields) -> None:
    """Attach run-scoped fields (user_id, project_id) to every later log line."""
    clear_contextvars()
    bind_contextvars(**fields)


def redact_settings(settings: Settings) -> dict:
    """Settings as a dict with tokens, keys and the DB URL masked."""
    data = settings.model_dump()
    for k in data:
        if k in _SENSITIVE_FIELDS or k.endswith(_SENSITIVE_SUFFIXES):
            data[k] = "[REDACTED]"
    return data
