"""Structured logging configuration using structlog."""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import FilteringBoundLogger

from shared.config.settings import settings


def configure_logging(
    log_level: Optional[str] = None,
    json_logs: Optional[bool] = None,
) -> None:
    """Configure structured logging with structlog.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Whether to output logs in JSON format (defaults to settings)
    """
    log_level = (log_level or settings.log_level).upper()
    if json_logs is None:
        json_logs = settings.json_logs

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level),
    )

    is_development = settings.environment.lower() in ("development", "dev", "local")

    processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ]
        ),
    ]

    if json_logs or not is_development:
        processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    _configure_third_party_loggers(log_level)

    logger = get_logger(__name__)
    logger.debug(
        "Logging configured",
        log_level=log_level,
        json_logs=json_logs,
        environment=settings.environment,
    )


def _configure_third_party_loggers(log_level: str) -> None:
    """Configure third-party library loggers."""
    # chardet logs every prober at DEBUG
    third_party_loggers = {
        "chardet": "WARNING",
        "chardet.charsetprober": "WARNING",
        "asyncio": "WARNING",
    }

    for logger_name, level in third_party_loggers.items():
        logging.getLogger(logger_name).setLevel(getattr(logging, level))

    logging.getLogger().setLevel(getattr(logging, log_level))


def get_logger(name: str) -> FilteringBoundLogger:
    """Get a configured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_performance(
    operation: str,
    duration: float,
    success: bool = True,
    **context: Any,
) -> None:
    """Log performance metrics.

    Args:
        operation: Name of the operation
        duration: Duration in seconds
        success: Whether the operation was successful
        **context: Additional context
    """
    logger = get_logger("performance")

    logger.info(
        "Performance metric",
        operation=operation,
        duration_seconds=duration,
        success=success,
        **context,
    )
