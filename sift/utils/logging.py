"""Structured logging configuration for the Sift service."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Record attributes copied into the JSON payload when a caller passes them via ``extra``.
CONTEXT_FIELDS = (
    "request_id",
    "endpoint",
    "method",
    "status_code",
    "duration_ms",
    "client_ip",
    "message_type",
    "domain",
    "url",
    "strategy",
    "count",
    "error",
)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class StructuredLogger:
    """Wrapper for structured logging with request context."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self._request_id: Optional[str] = None

    def set_request_id(self, request_id: Optional[str]) -> None:
        """Set request ID attached to every following record."""
        self._request_id = request_id

    def _log_with_context(
        self,
        level: int,
        message: str,
        *args,
        extra: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> None:
        log_extra = dict(extra or {})
        if self._request_id:
            log_extra["request_id"] = self._request_id
        self.logger.log(level, message, *args, extra=log_extra, **kwargs)

    def debug(self, message: str, *args, **kwargs) -> None:
        extra = kwargs.pop("extra", {})
        self._log_with_context(logging.DEBUG, message, *args, extra=extra, **kwargs)

    def info(self, message: str, *args, **kwargs) -> None:
        extra = kwargs.pop("extra", {})
        self._log_with_context(logging.INFO, message, *args, extra=extra, **kwargs)

    def warning(self, message: str, *args, **kwargs) -> None:
        extra = kwargs.pop("extra", {})
        self._log_with_context(logging.WARNING, message, *args, extra=extra, **kwargs)

    def error(self, message: str, *args, **kwargs) -> None:
        extra = kwargs.pop("extra", {})
        self._log_with_context(logging.ERROR, message, *args, extra=extra, **kwargs)

    def log(self, level: int, message: str, *args, **kwargs) -> None:
        extra = kwargs.pop("extra", {})
        self._log_with_context(level, message, *args, extra=extra, **kwargs)

    def exception(self, message: str, *args, **kwargs) -> None:
        """Log exception with traceback."""
        extra = kwargs.pop("extra", {})
        self._log_with_context(logging.ERROR, message, *args, extra=extra, exc_info=True, **kwargs)


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None,
) -> None:
    """
    Set up structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON formatting (True) or plain text (False)
        log_file: Optional file path to write logs to
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)

    if json_format:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Quiet third-party loggers
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)
