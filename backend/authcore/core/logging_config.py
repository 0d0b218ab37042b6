"""
Structured logging configuration.

Usage:
    from authcore.core.logging_config import setup_logging, get_logger

    # At process startup
    setup_logging()

    # In your code
    logger = get_logger(__name__)
    logger.info("totp_verified", user_id=str(user_id))

Never pass plaintext TOTP secrets or backup codes to a logger. Emails go
through ``authcore.utils.logging_utils.redact_email`` first.
"""

import logging
import sys

import structlog
from pythonjsonlogger import jsonlogger

from authcore.config import settings


def setup_logging() -> None:
    """
    Configure stdlib logging and structlog.

    JSON output in production (or when LOG_FORMAT=json), human-readable
    console output otherwise.
    """
    use_json = settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production"
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ],
        ),
    ]

    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configure_stdlib_logging(use_json)

    if settings.ENVIRONMENT == "production":
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def _configure_stdlib_logging(use_json: bool = False) -> None:
    """Format third-party stdlib loggers (SQLAlchemy, asyncpg) as JSON in production."""
    if not use_json:
        return

    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "level"},
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Structured logger with context support
    """
    return structlog.get_logger(name)
