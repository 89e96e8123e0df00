"""
Structured logging for the HN timeline.

Events are kebab-case names with keyword context, for example
``logger.debug("item-request", id=8863)``. Output is JSON when stderr is not a
terminal, unless ``HN_TIMELINE_LOG_FORMAT`` says otherwise.
"""

import logging
import os
import sys

import structlog

LOG_FORMAT_ENV_VAR = "HN_TIMELINE_LOG_FORMAT"


def _use_json() -> bool:
    fmt = os.environ.get(LOG_FORMAT_ENV_VAR, "").lower()
    if fmt in ("json", "console"):
        return fmt == "json"
    return not sys.stderr.isatty()


def configure_logging(level: str = "INFO") -> None:
    level = level.upper()
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
    logging.getLogger().setLevel(level)
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    renderer = (
        structlog.processors.JSONRenderer()
        if _use_json()
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
