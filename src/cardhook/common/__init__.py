"""Common utilities for cardhook."""

from cardhook.common.logging import get_logger, setup_logging
from cardhook.common.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]
