"""
Structured logging for the hirebuddy service.

Every entry is a structlog event with key-value context. Request-scoped values
(request id, user id) are kept in contextvars so the outreach code never has to
thread them through its calls just to log them.
"""

import logging
import sys
import uuid

import structlog
from structlog.stdlib import LoggerFactory

_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "psycopg.pool", "uvicorn.access")


def setup_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """
    Configure structlog over stdlib logging on stdout.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render JSON lines; a readable console format otherwise
    """
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def start_request_context(method: str, path: str) -> str:
    """Reset the per-request log context and tag it with a fresh request id."""
    request_id = uuid.uuid4().hex[:12]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, method=method, path=path)
    return request_id


def bind_user(user_id: str) -> None:
    """Attach the authenticated user to every log entry of the current request."""
    structlog.contextvars.bind_contextvars(user_id=user_id)


def log_request(status_code: int, duration_ms: float) -> None:
    """Log the end of an HTTP request; method, path and user come from the context."""
    logger = get_logger("http")

    if status_code >= 400:
        logger.warning("HTTP request failed", status_code=status_code, duration_ms=duration_ms)
    else:
        logger.info("HTTP request completed", status_code=status_code, duration_ms=duration_ms)
