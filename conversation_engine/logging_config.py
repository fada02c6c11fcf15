"""Structured logging setup."""

from __future__ import annotations

import logging

import structlog

from conversation_engine.config import Settings, get_settings


def _get_log_level(settings: Settings) -> int:
    level = logging.getLevelName(settings.log_level)
    return level if isinstance(level, int) else logging.INFO


def _renderer(settings: Settings) -> structlog.types.Processor:
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=not settings.is_production)


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog for processes embedding the engine.

    Library modules only call `structlog.get_logger()`; the host process
    decides level and rendering by calling this once at startup.
    """
    settings = settings or get_settings()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(settings),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_get_log_level(settings)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
