"""Utility modules for the prediction engine.

Sub-modules:
- logging: configure_logging() for structlog setup
- parsing: payload coercion helpers (import directly from src.utils.parsing)
"""

from .logging import configure_logging

__all__ = [
    "configure_logging",
]
