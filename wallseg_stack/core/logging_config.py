"""
Centralized logging configuration for the wall segmentation stack.

Provides consistent logging across all modules with configurable
levels and formats.
"""

import logging
import sys
import time
from enum import IntEnum
from typing import Optional, Union


class LogLevel(IntEnum):
    """Log level enumeration matching Python logging levels."""
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL

    @classmethod
    def parse(cls, value: Union[str, int, "LogLevel"]) -> "LogLevel":
        """Accept a LogLevel, a logging int or a name such as "debug"."""
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown log level: {value}")
        return cls(value)


# Module-level logger cache
_loggers: dict[str, logging.Logger] = {}

_ROOT_NAME = "wallseg"
_LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
_DATE_FORMAT = "%H:%M:%S"


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    log_file: Optional[str] = None
) -> None:
    """
    Configure the package logger.

    Args:
        level: Minimum log level to display
        log_file: Optional file path to write logs to
    """
    formatter = logging.Formatter(_LOG_FORMAT, _DATE_FORMAT)

    root_logger = logging.getLogger(_ROOT_NAME)
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Args:
        name: Module name (e.g., "perception.decoder", "pipeline")

    Returns:
        Logger instance under the package root
    """
    full_name = f"{_ROOT_NAME}.{name}"

    if full_name not in _loggers:
        _loggers[full_name] = logging.getLogger(full_name)

    return _loggers[full_name]


class RateLimitedLogger:
    """
    Logger wrapper that rate-limits repeated messages.

    Per-frame warnings go through this so a misbehaving tensor stream
    does not log the same line at camera rate.
    """

    def __init__(self, logger: logging.Logger, min_interval: float = 1.0):
        """
        Args:
            logger: Underlying logger
            min_interval: Minimum seconds between identical messages
        """
        self._logger = logger
        self._min_interval = min_interval
        self._last_log_times: dict[str, float] = {}

    def _should_log(self, msg: str) -> bool:
        now = time.monotonic()
        last_time = self._last_log_times.get(msg)

        if last_time is None or now - last_time >= self._min_interval:
            self._last_log_times[msg] = now
            return True
        return False

    def debug(self, msg: str, *args, **kwargs) -> None:
        if self._should_log(msg):
            self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        if self._should_log(msg):
            self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        if self._should_log(msg):
            self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs) -> None:
        if self._should_log(msg):
            self._logger.error(msg, *args, **kwargs)
