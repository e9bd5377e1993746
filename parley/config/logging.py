"""
Logging configuration and setup.

Provides structured logging with console and file output support, plus an
in-memory ring buffer of recent records for operators to inspect.
"""

import logging
import sys
import threading
from collections import deque
from pathlib import Path

from parley.config.settings import Settings


class ColoredFormatter(logging.Formatter):
    """Formatter that adds color to console output."""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with color."""
        # Color a copy so the file and buffer handlers see the plain level name
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = (
                f"{self.COLORS[record.levelname]}{record.levelname}{self.RESET}"
            )
        return super().format(record)


class LogBuffer:
    """
    Bounded, thread-safe buffer of recent formatted log lines.

    Oldest lines are evicted once ``capacity`` is reached. Reads return a
    copy so callers never observe a buffer mid-mutation.
    """

    def __init__(self, capacity: int = 500):
        if capacity < 1:
            raise ValueError("Log buffer capacity must be at least 1")
        self._lines: deque[str] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._lines.maxlen or 0

    def append(self, line: str) -> None:
        with self._lock:
            self._lines.append(line)

    def snapshot(self, limit: int | None = None) -> list[str]:
        """Return buffered lines oldest-first, optionally only the newest ``limit``."""
        with self._lock:
            lines = list(self._lines)
        if limit is not None:
            lines = lines[-limit:] if limit > 0 else []
        return lines

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)


class RingBufferHandler(logging.Handler):
    """Logging handler that formats records into a LogBuffer."""

    def __init__(self, buffer: LogBuffer, level: int = logging.NOTSET):
        super().__init__(level)
        self.buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.buffer.append(self.format(record))
        except Exception:
            self.handleError(record)


# Global buffer instance, replaced by setup_logging()
_log_buffer = LogBuffer()


def get_log_buffer() -> LogBuffer:
    """Return the buffer that collects recent log lines."""
    return _log_buffer


def setup_logging(settings: Settings) -> LogBuffer:
    """
    Configure logging based on settings.

    Args:
        settings: Application settings containing log configuration

    Returns:
        The ring buffer now receiving every record from the package logger
    """
    global _log_buffer

    # Create root logger
    root_logger = logging.getLogger("parley")
    root_logger.setLevel(getattr(logging, settings.log_level))

    # Remove existing handlers
    root_logger.handlers.clear()

    # Console handler with color
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, settings.log_level))
    console_formatter = ColoredFormatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    # In-memory ring buffer
    _log_buffer = LogBuffer(settings.log_buffer_size)
    buffer_handler = RingBufferHandler(_log_buffer, getattr(logging, settings.log_level))
    buffer_handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.addHandler(buffer_handler)

    # File handler if configured
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(getattr(logging, settings.log_level))
        file_formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    # Don't propagate to root logger
    root_logger.propagate = False

    # Log initial setup
    root_logger.info(f"Logging initialized - Level: {settings.log_level}")
    if settings.log_file:
        root_logger.info(f"Logging to file: {settings.log_file}")

    return _log_buffer


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    if name == "parley" or name.startswith("parley."):
        return logging.getLogger(name)
    return logging.getLogger(f"parley.{name}")
