"""
Logging Configuration for the Car Wash Service

structlog events are rendered by a stdlib handler on stdout, so uvicorn,
SQLAlchemy and httpx records come out in the same format as ours:
- JSON lines in deployed environments (LOG_FORMAT=json)
- Colored console output for local work (LOG_FORMAT=text)
- Request ids bound by the request middleware appear on every line
"""

import logging
import sys
from typing import Dict, List, Optional

import structlog
from structlog.stdlib import ProcessorFormatter
from structlog.typing import Processor

from carwash.config.settings import Settings, get_settings

# Loggers we do not own and how loud they may be at most
_LIBRARY_LEVELS: Dict[str, int] = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
}


def _add_service(settings: Settings) -> Processor:
    def add_service(logger, method_name, event_dict):
        event_dict.setdefault("service", settings.app_name)
        event_dict.setdefault("env", settings.app_env)
        return event_dict
    return add_service


def _pre_chain(settings: Settings) -> List[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _add_service(settings),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Override LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)
        log_format: Override LOG_FORMAT (json or text)
    """
    settings = get_settings()
    level_name = (log_level or settings.monitoring.log_level).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO
    fmt = log_format or settings.monitoring.log_format

    pre_chain = _pre_chain(settings)
    structlog.configure(
        processors=pre_chain + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ProcessorFormatter(processor=_renderer(fmt), foreign_pre_chain=pre_chain))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # uvicorn attaches its own handlers; send its records through the root one
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True

    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database.echo else logging.WARNING
    )
    for name, ceiling in _LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(max(level, ceiling))

    structlog.get_logger(__name__).info("Logging configured", level=level_name, format=fmt)


def get_logger(name: str):
    """Get a logger instance with the given name."""
    return structlog.get_logger(name)
