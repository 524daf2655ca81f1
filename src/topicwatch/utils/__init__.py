"""Utility functions."""

from .async_bridge import run_async_in_sync
from .console import console
from .logging import log_to_file, set_log_level, setup_logging

__all__ = [
    "console",
    "run_async_in_sync",
    "log_to_file",
    "set_log_level",
    "setup_logging",
]
