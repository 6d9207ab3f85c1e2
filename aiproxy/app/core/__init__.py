"""Core utilities for the proxy application."""

from aiproxy.app.core.clock import ClockSource, ManualClock, SystemClock
from aiproxy.app.core.config import settings
from aiproxy.app.core.logging import get_logger, setup_logging

__all__ = [
    "ClockSource",
    "ManualClock",
    "SystemClock",
    "settings",
    "get_logger",
    "setup_logging",
]
