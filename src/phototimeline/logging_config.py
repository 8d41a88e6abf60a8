"""
Structured logging for phototimeline.

structlog is layered over the standard library logger so that SDK loggers
(google-cloud-storage, httpx) and our own events end up in the same stream.
Development renders human-readable console output, everything else renders JSON.
"""

import logging
import os
import sys
from typing import Any

import structlog

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def get_log_level() -> int:
    """Resolve LOG_LEVEL to a logging constant, defaulting to INFO."""
    return _LEVELS.get(os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)


def is_development_environment() -> bool:
    """Check if running in development environment."""
    return os.getenv("ENVIRONMENT", "development").lower() in ["development", "dev", "local"]


def configure_structured_logging() -> None:
    """
    Configure structlog and stdlib logging for the whole process.

    Safe to call more than once; the last call wins.
    """
    log_level = get_log_level()
    is_dev = is_development_environment()

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        stream=sys.stderr,
    )

    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if is_dev:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.getLogger().setLevel(log_level)

    structlog.get_logger("phototimeline.logging").info(
        "logging_configured",
        log_level=logging.getLevelName(log_level),
        environment="development" if is_dev else "production",
    )


def get_logger(name: str | None = None) -> Any:
    """
    Get a structured logger instance.

    Args:
        name: Logger name, usually the caller's ``__name__``

    Returns:
        structlog.BoundLogger: Configured logger instance
    """
    return structlog.get_logger(name)


def log_performance(operation: str, duration: float, **context: Any) -> None:
    """Log how long an operation took, in seconds."""
    logger = get_logger("phototimeline.performance")
    logger.info("performance_metric", operation=operation, duration_seconds=duration, **context)


def log_user_action(user_id: str, action: str, **context: Any) -> None:
    """Log user actions for audit trail."""
    logger = get_logger("phototimeline.user_actions")
    logger.info("user_action", user_id=user_id, action=action, **context)


def log_error(error: Exception, context: dict[str, Any] | None = None) -> None:
    """
    Log errors with structured context.

    Args:
        error: Exception that occurred
        context: Additional context information
    """
    logger = get_logger("phototimeline.errors")

    error_context = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }

    if context:
        error_context.update(context)

    logger.error("error_occurred", **error_context)


def log_security_event(event_type: str, user_id: str | None = None, **context: Any) -> None:
    """Log authentication and access related events."""
    logger = get_logger("phototimeline.security")
    logger.warning("security_event", event_type=event_type, user_id=user_id, **context)
