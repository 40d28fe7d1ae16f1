"""
Logging Configuration for the Retail Analytics Warehouse

structlog is set up on top of the standard library so that our own events
and those of uvicorn, SQLAlchemy and Prefect share one handler and one
renderer (JSON in deployed environments, colored console locally).
"""

import logging
import sys
from typing import Dict, List, Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import ProcessorFormatter, add_log_level

from src.config.settings import get_settings

# Third-party loggers routed through our handler, with their level relative to ours
ROUTED_LOGGERS: Dict[str, Optional[int]] = {
    "uvicorn": None,
    "uvicorn.error": None,
    "uvicorn.access": None,
    "prefect": None,
    "sqlalchemy.engine": logging.WARNING,
}


def _shared_processors() -> List:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(log_format: str):
    if log_format == "json":
        return JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Configure structured logging for the API, loaders and refresh jobs.

    Args:
        log_level: Override the configured level (DEBUG, INFO, WARNING, ERROR)
        log_format: Override the configured renderer (json or console)
    """
    settings = get_settings()
    level_name = (log_level or settings.logging.level).upper()
    log_format = log_format or settings.logging.format
    level = getattr(logging, level_name, logging.INFO)

    processors = _shared_processors()
    structlog.configure(
        processors=processors + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ProcessorFormatter(processor=_renderer(log_format), foreign_pre_chain=processors))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)

    for name, routed_level in ROUTED_LOGGERS.items():
        routed = logging.getLogger(name)
        routed.handlers = []
        routed.propagate = True
        routed.setLevel(routed_level if routed_level is not None else level)

    # echo=True on the engine wants statement logging regardless of the level above
    if settings.database.echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level_name,
        format=log_format,
        environment=settings.app_env,
    )
