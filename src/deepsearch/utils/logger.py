"""
Logging setup for DeepSearch using Python's standard logging
with JSON formatting for structured error logs.

Log destinations:
- Console (stderr): Human-readable format for debugging
- logs/errors.jsonl: JSON format for error tracking
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
import sys

from typing import Any, cast

from pythonjsonlogger import json as jsonlogger

from deepsearch.api.middleware.request_context import get_request_context
from deepsearch.core.constants import (
    LOG_BACKUP_COUNT_ERRORS,
    LOG_MAX_SIZE,
    LOG_PREVIEW_LENGTH,
    PROJECT_ROOT,
)

# PII Redaction patterns applied to search queries before they reach the logs
REDACTION_PATTERNS = [
    (r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b", "[EMAIL]"),
    (r"\b(?:\d{4}[- ]?){3}\d{4}\b", "[CARD]"),
    (r"\b(sk-|pk-|api[-_]?key[-_]?)[A-Za-z0-9]{20,}\b", "[API_KEY]"),
    (r"\b(password|secret|token)\s*[:=]\s*\S+", "[REDACTED]"),
]


class ErrorFilter(logging.Filter):
    """Filter to only allow ERROR and CRITICAL logs"""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


class ColoredConsoleFormatter(logging.Formatter):
    """
    Custom formatter that adds colors to log levels and standardizes format.
    Format: HH:MM:SS [LEVEL] logger_name - message
    """

    # ANSI color codes
    GREY = "\x1b[38;20m"
    GREEN = "\x1b[32;20m"
    YELLOW = "\x1b[33;20m"
    RED = "\x1b[31;20m"
    BOLD_RED = "\x1b[31;1m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: GREY,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        level_fmt = f"[{record.levelname}]"
        color = self.LEVEL_COLORS.get(record.levelno)
        if color:
            level_fmt = f"{color}{level_fmt}{self.RESET}"

        record.asctime = self.formatTime(record, "%H:%M:%S")

        # uvicorn access args: (client_addr, method, full_path, http_version, status_code)
        if record.name == "uvicorn.access" and record.args and len(record.args) == 5:
            client_addr, method, full_path, http_version, status_code = record.args

            status_code_num = int(cast(Any, status_code))
            if status_code_num < 400:
                status_code_fmt = f"{self.GREEN}{status_code}{self.RESET}"
            elif status_code_num < 500:
                status_code_fmt = f"{self.YELLOW}{status_code}{self.RESET}"
            else:
                status_code_fmt = f"{self.RED}{status_code}{self.RESET}"

            method_fmt = f"\x1b[1m{method}\x1b[0m"
            message = f'{client_addr} - "{method_fmt} {full_path} HTTP/{http_version}" {status_code_fmt}'
            return f"{record.asctime} {level_fmt} {record.name} - {message}"

        message = f"{record.asctime} {level_fmt} {record.name} - {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def configure_uvicorn_logging() -> None:
    """
    Configure uvicorn loggers to use our standard colored formatting.
    This ensures uvicorn logs (access, error) match the application log style.
    """
    formatter = ColoredConsoleFormatter()

    main_logger = logging.getLogger("uvicorn")
    main_logger.handlers = []
    main_logger.setLevel(logging.INFO)

    for name in ("uvicorn.access", "uvicorn.error"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers = []
        uv_logger.setLevel(logging.INFO)
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        uv_logger.addHandler(handler)
        uv_logger.propagate = False


def setup_logging(name: str = "deepsearch", debug: bool | None = None) -> logging.Logger:
    """
    Set up logging with console and JSON error handlers.

    Args:
        name: Logger name
        debug: Enable debug logging (overrides DEBUG env var)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)  # Capture all, filter at handler level
    logger.handlers = []

    if debug is None:
        debug = os.getenv("DEBUG", "false").lower() in ("true", "1", "yes")

    # --- Console Handler (Human-readable) ---
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    console_handler.setFormatter(ColoredConsoleFormatter())
    logger.addHandler(console_handler)

    # --- Error Log Handler (JSON) ---
    log_dir = PROJECT_ROOT / "logs"
    log_dir.mkdir(exist_ok=True)

    error_handler = logging.handlers.RotatingFileHandler(
        log_dir / "errors.jsonl",
        maxBytes=LOG_MAX_SIZE,
        backupCount=LOG_BACKUP_COUNT_ERRORS,
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.addFilter(ErrorFilter())
    error_handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(timestamp)s %(levelname)s %(name)s %(message)s %(request_id)s",
            timestamp=True,
        )
    )
    logger.addHandler(error_handler)

    return logger


def redact(text: str) -> str:
    """Redact PII from text using defined patterns."""
    if not text:
        return text
    redacted = text
    for pattern, replacement in REDACTION_PATTERNS:
        redacted = re.sub(pattern, replacement, redacted)
    return redacted


def preview(text: str, length: int = LOG_PREVIEW_LENGTH) -> str:
    """Single-line, redacted, truncated preview of user-supplied text."""
    flat = redact(text.replace("\n", " "))
    if len(flat) > length:
        return flat[:length] + "..."
    return flat


class ChatLogger:
    """
    High-level logging interface for DeepSearch.
    Wraps standard Python logging and enriches records with request context.
    """

    def __init__(self, name: str = "deepsearch"):
        self.logger = setup_logging(name)

    def _enrich_context(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        """Enrich log arguments with request context."""
        if ctx := get_request_context():
            kwargs.update(ctx.to_log_context())
        return kwargs

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, extra=self._enrich_context(kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, extra=self._enrich_context(kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(message, extra=self._enrich_context(kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        """Error level logging with optional exception info"""
        self.logger.error(message, extra=self._enrich_context(kwargs), exc_info=exc_info)

    def log_tool_call(self, tool_name: str, tool_call_id: str, status: str, duration_ms: float) -> None:
        """Log a completed tool invocation (metadata only)."""
        self.info(
            f"Tool {tool_name} [{tool_call_id}] -> {status} [{duration_ms:.0f}ms]",
            tool=tool_name,
            tool_call_id=tool_call_id,
            status=status,
            ms=int(duration_ms),
        )


# Global logger instance
logger = ChatLogger()
