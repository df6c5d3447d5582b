from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

_CONFIGURED = False


def setup_logging(level: int | str | None = None, *, environment: str | None = None) -> None:
    """Configure structlog once per process.

    JSON lines everywhere except the ``local`` environment, which gets the
    coloured console renderer.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    if level is None or environment is None:
        from src.core.config import get_settings

        settings = get_settings()
        level = level if level is not None else settings.log_level
        environment = environment if environment is not None else settings.environment

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(message)s",
        stream=sys.stdout,
    )

    renderers: list[Any]
    if environment == "local":
        renderers = [structlog.dev.ConsoleRenderer()]
    else:
        renderers = [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        *renderers,
    ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    _CONFIGURED = True
