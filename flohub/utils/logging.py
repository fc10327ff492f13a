"""Central logging configuration for FloHub.

Console output is colour-aware, every record carries the request correlation
id, and chatty third-party loggers are held at WARNING so that per-source
diagnostics stay readable.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlsplit, urlunsplit

LOG_FORMAT = "%(asctime)s [%(request_id)s] %(levelname)s %(name)s - %(message)s"
FILE_LOG_FORMAT = "%(asctime)s [%(request_id)s] %(levelname)s %(name)s:%(lineno)d - %(message)s"

NOISY_LOGGERS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web_log": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "charset_normalizer": logging.WARNING,
    "icalendar": logging.INFO,
}


def get_log_level(level_name: str) -> int:
    """Convert a level name such as ``"debug"`` to its numeric value.

    Unknown names fall back to INFO.
    """
    level = logging.getLevelName(level_name.upper())
    return level if isinstance(level, int) else logging.INFO


class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to all log records for request tracing."""

    def filter(self, record: logging.LogRecord) -> bool:
        # Import here to avoid circular dependency
        from flohub.web.middleware import get_request_id  # noqa: PLC0415

        record.request_id = get_request_id()
        return True


class AutoColoredFormatter(logging.Formatter):
    """Formatter that auto-detects terminal color support."""

    COLORS = {
        "ERROR": "\033[31m",
        "INFO": "\033[34m",
        "WARNING": "\033[33m",
        "DEBUG": "\033[35m",
        "CRITICAL": "\033[31m\033[1m",
    }
    RESET = "\033[0m"

    def __init__(self, *args: Any, enable_colors: bool = True, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.use_colors = enable_colors and self._detect_color_support()

    @staticmethod
    def _detect_color_support() -> bool:
        if not hasattr(sys.stdout, "isatty") or not sys.stdout.isatty():
            return False
        term = os.environ.get("TERM", "").lower()
        return bool(term) and term != "dumb"

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        if not self.use_colors or record.levelname not in self.COLORS:
            return formatted
        colored_level = f"{self.COLORS[record.levelname]}{record.levelname}{self.RESET}"
        return formatted.replace(record.levelname, colored_level, 1)


def mask_url(url: Optional[str]) -> str:
    """Strip query string and fragment so webhook secrets never reach the logs."""
    if not url:
        return ""
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<invalid-url>"
    masked = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    return f"{masked}?..." if parts.query else masked


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    enable_colors: bool = True,
) -> logging.Logger:
    """Configure the root logger for the FloHub process.

    Args:
        log_level: Root log level name; ``FLOHUB_DEBUG=1`` forces DEBUG
        log_file: Optional path for a rotating file handler
        enable_colors: Colourise console level names when stdout is a TTY

    Returns:
        The configured ``flohub`` package logger
    """
    if os.getenv("FLOHUB_DEBUG", "").lower() in ("1", "true", "yes"):
        log_level = "DEBUG"
    level = get_log_level(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    correlation_filter = CorrelationIdFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(AutoColoredFormatter(LOG_FORMAT, enable_colors=enable_colors))
    console_handler.addFilter(correlation_filter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        # Use rotating file handler to prevent large log files
        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
        file_handler.addFilter(correlation_filter)
        root_logger.addHandler(file_handler)

    for logger_name, logger_level in NOISY_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(max(logger_level, level))

    logger = logging.getLogger("flohub")
    logger.info("Logging initialized at %s level", logging.getLevelName(level))
    return logger
