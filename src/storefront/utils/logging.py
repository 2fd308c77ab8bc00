"""Logging setup for embedding the storefront engine in a host process.

The engine only ever calls ``structlog.get_logger(__name__)``; the host
decides where events go by calling ``configure_logging`` once at startup.
Events carry order ids, coupon codes and refund ids in the clear. Customer
contact details and payment references are masked before rendering.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path

import structlog

ENGINE = "storefront"

_LEVELS = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}

# Third-party loggers that drown out engine events below WARNING.
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "protean")

_MASKED_FIELDS = frozenset({"contact_email", "payment_ref", "api_key"})

_ROTATE_BYTES = 10 * 1024 * 1024


def _environment() -> str:
    return (os.getenv("ENV") or os.getenv("ENVIRONMENT") or os.getenv("PROTEAN_ENV") or "development").lower()


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", _LEVELS.get(_environment(), "INFO")).upper()


def mask_sensitive_fields(logger, method_name, event_dict):
    """structlog processor: keep only the last four characters of sensitive values."""
    for key in _MASKED_FIELDS.intersection(event_dict):
        value = event_dict[key]
        if value:
            text = str(value)
            event_dict[key] = "***" + text[-4:] if len(text) > 4 else "***"
    return event_dict


def add_engine_name(logger, method_name, event_dict):
    event_dict.setdefault("engine", ENGINE)
    return event_dict


def _rotating_handler(path: Path, level) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=_ROTATE_BYTES,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def setup_stdlib_logging(log_dir: str | None = None) -> None:
    """Route engine records to stdout and, when a directory is given, to rotating files.

    ``LOG_DIR`` stands in for ``log_dir``. Without either, nothing is written
    to disk.
    """
    log_level = get_log_level()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    log_dir = log_dir or os.getenv("LOG_DIR")
    if log_dir:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        root_logger.addHandler(_rotating_handler(directory / f"{ENGINE}.log", log_level))
        root_logger.addHandler(_rotating_handler(directory / f"{ENGINE}_error.log", logging.ERROR))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def build_processors(environment: str | None = None) -> list:
    environment = environment or _environment()
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_engine_name,
        mask_sensitive_fields,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if environment in ("production", "staging"):
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=False, max_frames=5),
            )
        )
    return processors


def setup_structlog() -> None:
    structlog.configure(
        processors=build_processors(),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(log_dir: str | None = None) -> None:
    """Configure stdlib handlers and structlog rendering for the engine."""
    setup_stdlib_logging(log_dir)
    setup_structlog()
