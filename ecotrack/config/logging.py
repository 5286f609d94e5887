"""
Logging Configuration for EcoTrack

structlog events are rendered by a stdlib ProcessorFormatter so that uvicorn,
gunicorn, Prefect and httpx records come out in the same format as ours.
Webhook and API handlers bind shop, topic and request_id once per request
through contextvars; every line logged while serving that request carries them.
"""

import logging
import sys
from typing import Any, List, Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import ProcessorFormatter, add_log_level

from ecotrack.config.settings import get_settings

SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "gunicorn.error")

# Chatty at INFO: one line per Shopify call or SQLite statement
NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "asyncio")


def _shared_processors() -> List[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _build_handler(log_format: str, colors: bool, level: int) -> logging.Handler:
    renderer = JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer(colors=colors)
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(ProcessorFormatter(processor=renderer, foreign_pre_chain=_shared_processors()))
    return handler


def configure_logging(log_level: Optional[str] = None) -> None:
    """
    Route structlog and stdlib logging through one stdout handler.

    Safe to call more than once; the API lifespan and the Prefect flow both
    call it on startup.

    Args:
        log_level: Overrides LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)
    """
    settings = get_settings()
    level_name = (log_level or settings.monitoring.log_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    structlog.configure(
        processors=_shared_processors() + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = _build_handler(settings.monitoring.log_format, settings.is_development, level)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    for name in SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers = [handler]
        server_logger.setLevel(level)
        server_logger.propagate = False

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level_name,
        format=settings.monitoring.log_format,
        environment=settings.app_env,
    )


def bind_request_context(**values: Any) -> None:
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
