"""Centralized structlog configuration for the prediction scripts."""

import logging

import structlog

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Configure structlog with the project-standard processor chain.

    Safe to call multiple times; only the first call takes effect.
    ``level`` defaults to ``settings.LOG_LEVEL``.
    """
    global _configured
    if _configured:
        return
    if level is None:
        from config.settings import settings
        level = settings.LOG_LEVEL
    min_level = logging.getLevelName(level.upper())
    if not isinstance(min_level, int):
        min_level = logging.INFO
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
    )
    _configured = True
