"""Core utilities for the Tally application."""

from tally.app.core.config import settings
from tally.app.core.logging import get_logger, setup_logging

__all__ = [
    "settings",
    "get_logger",
    "setup_logging",
]
