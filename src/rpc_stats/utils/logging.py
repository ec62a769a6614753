import logging
import os
import sys

import structlog


def _resolve_level(level) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), logging.INFO)


def configure_logging(level=None):
    if level is None:
        level = os.getenv("RPC_STATS_LOG_LEVEL", "INFO")
    level = _resolve_level(level)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    # Basic standard logging capture
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

def get_logger(name: str):
    return structlog.get_logger(name)
