"""
Utilities Package for the Tubely backend.

logger:
    Structured logging configuration (JSON and text formatters, Uvicorn
    integration, third-party verbosity control, context adapters).

async_utils:
    ``async_wrap`` for running blocking calls in the default thread pool.
"""

from tubely.utils.async_utils import async_wrap
from tubely.utils.logger import add_log_context, setup_logging


__all__ = [
    "add_log_context",
    "async_wrap",
    "setup_logging",
]
