"""Logging configuration for BIG-IP onboarding.

Provides configurable logging with:
- File-based logging with rotation
- Console output for real-time debugging
- Performance timing of reconciliation phases

Environment Variables:
    ONBOARD_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    ONBOARD_LOG_FILE: Path to log file (default: ~/.bigip-onboard/onboard.log)
    ONBOARD_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    ONBOARD_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from bigip_onboard.utils.logging_config import setup_logging, timed_section

    setup_logging()  # Call once at startup

    async with timed_section("system.dns", device_id=state.id):
        ...
"""
import asyncio
import functools
import logging
import os
import time
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Callable, Any

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("onboard.perf")
main_logger = logging.getLogger("onboard")


def get_log_level() -> int:
    """Get log level from environment."""
    level_str = os.environ.get("ONBOARD_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    """Get log file path from environment."""
    default_path = Path.home() / ".bigip-onboard" / "onboard.log"
    path_str = os.environ.get("ONBOARD_LOG_FILE", str(default_path))
    return Path(path_str)


def setup_logging() -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (INFO+ by default, respects ONBOARD_LOG_LEVEL)
    - File handler with rotation (DEBUG level - captures everything)
    - Performance logger for phase timings
    """
    log_level = get_log_level()
    log_file = get_log_file()
    max_size_mb = int(os.environ.get("ONBOARD_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("ONBOARD_LOG_BACKUPS", "5"))

    log_file.parent.mkdir(parents=True, exist_ok=True)

    main_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(name)-32s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    perf_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | PERF | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(main_format)

    # File handler - captures DEBUG and above (everything)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(main_format)

    perf_log_file = log_file.parent / "onboard-perf.log"
    perf_handler = RotatingFileHandler(
        perf_log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    perf_handler.setLevel(logging.DEBUG)
    perf_handler.setFormatter(perf_format)

    root_logger = logging.getLogger("onboard")
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    # Module loggers live under the package name
    package_logger = logging.getLogger("bigip_onboard")
    package_logger.setLevel(logging.DEBUG)
    package_logger.addHandler(console_handler)
    package_logger.addHandler(file_handler)

    perf_logger.setLevel(logging.DEBUG)
    perf_logger.addHandler(perf_handler)
    perf_logger.addHandler(console_handler)

    root_logger.info(f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}")
    perf_logger.info(f"Performance logging to: {perf_log_file}")


def timed(operation: str, device_id: Optional[str] = None):
    """Decorator to log execution time of async functions.

    Args:
        operation: Name of the operation (e.g., "connect", "save")
        device_id: Optional device identifier (can also be inferred from self.device_id)
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            dev_id = device_id
            if dev_id is None and args and hasattr(args[0], 'device_id'):
                dev_id = args[0].device_id

            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
                elapsed = (time.perf_counter() - start) * 1000  # ms
                perf_logger.info(
                    f"{operation:24s} | {dev_id or 'N/A':15s} | {elapsed:8.2f}ms | OK"
                )
                return result
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(
                    f"{operation:24s} | {dev_id or 'N/A':15s} | {elapsed:8.2f}ms | FAIL: {e}"
                )
                raise

        if not asyncio.iscoroutinefunction(func):
            raise TypeError(f"timed() only wraps coroutine functions, got {func!r}")
        return async_wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, device_id: Optional[str] = None, **extra):
    """Async context manager for timing a reconciliation phase.

    Usage:
        async with timed_section("dsc.config_sync", device_id=task_id):
            await self._handle_config_sync()
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""

    try:
        yield
        elapsed = (time.perf_counter() - start) * 1000
        msg = f"{operation:24s} | {device_id or 'N/A':15s} | {elapsed:8.2f}ms | OK"
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.info(msg)
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        msg = f"{operation:24s} | {device_id or 'N/A':15s} | {elapsed:8.2f}ms | FAIL: {e}"
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.warning(msg)
        raise
