"""
Structured logging for the UBGHub directory service.

JSON lines on stdout, one object per event, with the level, logger name, ISO
timestamp, service name and whatever the request context bound (request_id).
Set ``json_output=False`` for readable console output while developing.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

SERVICE_NAME = "ubghub"

_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "psycopg.pool")


def setup_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    renderer = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_service_context,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _add_service_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """Structured logger for a module; call with __name__."""
    return structlog.get_logger(name)


def log_request(
    method: str, path: str, status_code: int, duration_ms: float, request_id: str = None
):
    """One line per HTTP request; 4xx/5xx are warnings."""
    logger = get_logger("http")
    fields = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": duration_ms,
    }
    if request_id:
        fields["request_id"] = request_id

    if status_code >= 400:
        logger.warning("HTTP request failed", **fields)
    else:
        logger.info("HTTP request completed", **fields)
