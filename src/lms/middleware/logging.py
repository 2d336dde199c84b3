"""Structured logging configuration with structlog."""

import logging

import structlog

from lms.config import Settings


def setup_logging(settings: Settings) -> None:
    """Configure structlog and the stdlib root logger.

    JSON output renders tracebacks as structured dicts; console output keeps
    the pretty multi-line traceback. Service modules log through stdlib
    ``logging``, so the root level applies to both.
    """
    json_output = settings.log_format == "json"
    shared: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        tail: list[structlog.types.Processor] = [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        tail = [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=[*shared, structlog.processors.UnicodeDecoder(), *tail],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s %(message)s")
    structlog.get_logger("lms").debug(
        "logging_configured",
        environment=settings.environment,
        version=settings.app_version,
    )
