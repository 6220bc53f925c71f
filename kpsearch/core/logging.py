"""
Logging configuration for the search API.

structlog renders every record; the request id set by RequestLoggingMiddleware
is attached to each event, so parse, query and advice lines of one search can
be grouped.

Usage:
    # Request-scoped logging, prefixed with the request id:
    from kpsearch.middleware.logging_middleware import get_logger
    logger = get_logger(__name__)

    # Plain module logging:
    import logging
    logger = logging.getLogger(__name__)
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

from kpsearch.core.config import settings
from kpsearch.middleware.logging_middleware import get_request_id

# Third-party loggers held at WARNING
NOISY_LOGGERS = (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "openai",
    "openai._base_client",
    "asyncpg",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
)

FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
MAX_LOG_BYTES = 10 * 1024 * 1024


def add_request_id(logger, method_name, event_dict):
    """structlog processor: attach the current request id, if any."""
    request_id = get_request_id()
    if request_id and "request_id" not in event_dict:
        event_dict["request_id"] = request_id
    return event_dict


def build_processors(log_format: str) -> list:
    """Shared structlog processor chain, ending in the renderer for the format."""
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_request_id,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    return processors


def build_file_handlers(log_dir: Path) -> list:
    """search.log gets everything, search_errors.log only errors."""
    log_dir.mkdir(parents=True, exist_ok=True)
    handlers = []
    for filename, level in (("search.log", logging.DEBUG), ("search_errors.log", logging.ERROR)):
        handler = RotatingFileHandler(log_dir / filename, maxBytes=MAX_LOG_BYTES, backupCount=5)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(FILE_FORMAT))
        handlers.append(handler)
    return handlers


def setup_logging():
    """Configure logging for the application."""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=build_processors(settings.log_format),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    if settings.log_format == "json":
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        console_handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"))
    root_logger.addHandler(console_handler)

    if settings.environment == "production":
        for handler in build_file_handlers(Path(settings.log_dir)):
            root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured: level={settings.log_level}, format={settings.log_format}, env={settings.environment}"
    )
