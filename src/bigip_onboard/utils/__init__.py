"""Utility modules for retry policies and logging."""
from .connection import (
    RetryPolicy,
    NO_RETRY,
    SHORT_RETRY,
    MEDIUM_RETRY,
    LONG_RETRY,
    try_until,
    with_retry,
)
from .logging_config import setup_logging, timed, timed_section, perf_logger

__all__ = [
    "RetryPolicy",
    "NO_RETRY",
    "SHORT_RETRY",
    "MEDIUM_RETRY",
    "LONG_RETRY",
    "try_until",
    "with_retry",
    "setup_logging",
    "timed",
    "timed_section",
    "perf_logger",
]
