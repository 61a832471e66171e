from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from function_toolkit.config import LoggingMode


_CONFIGURED = False


def _renderer(mode: LoggingMode) -> Any:
    if mode is LoggingMode.CONSOLE:
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer()


def configure_logging(mode: LoggingMode = LoggingMode.STRUCTURED, level: int | str = logging.INFO) -> None:
    """Configure structlog + stdlib logging.

    Structured mode renders one JSON object per line for the platform's log
    collector; console mode renders human-readable lines for local runs.
    Safe to call multiple times (no-op after first call).
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=_renderer(mode),
        foreign_pre_chain=pre_chain,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    _CONFIGURED = True


def reset_logging() -> None:
    """Drop the configuration installed by configure_logging (used by tests)."""

    global _CONFIGURED
    structlog.reset_defaults()
    logging.getLogger().handlers = []
    _CONFIGURED = False
