"""Structured JSON logging for leasehold processes.

Provides:
- JSON-formatted logs for log aggregation systems (ELK, Loki, etc.)
- Claimant and lease context on every record
- Human-readable console format for local runs

Usage:
    from leasehold.observability.logging import LogContext, configure_logging

    configure_logging(json_format=True, level="INFO")

    with LogContext(claimant="pod-a", lease="default/scheduler"):
        logger.info("Waiting to be leader")  # Includes claimant and lease
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# Context variables for claim correlation
claimant_var: contextvars.ContextVar[str] = contextvars.ContextVar("claimant", default="")
lease_var: contextvars.ContextVar[str] = contextvars.ContextVar("lease", default="")

# Level names accepted on the command line, mapped to stdlib levels
LEVEL_ALIASES = {
    "trace": "DEBUG",
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "warning": "WARNING",
    "error": "ERROR",
    "critical": "CRITICAL",
}

_STANDARD_ATTRS = {
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "exc_info",
    "exc_text",
    "thread",
    "threadName",
    "taskName",
    "message",
}


def resolve_level(level: str) -> int:
    """Translate a level name (including ``trace`` and ``warn``) to a logging level.

    Raises:
        ValueError: Unknown level name
    """
    try:
        return getattr(logging, LEVEL_ALIASES[level.lower()])
    except KeyError:
        raise ValueError(f"Unknown log level: {level}") from None


class JsonFormatter(logging.Formatter):
    """JSON log formatter with claim context.

    Output format:
    {
        "timestamp": "2026-01-10T12:34:56.789Z",
        "level": "INFO",
        "logger": "leasehold.lease.machine",
        "message": "Acquired lease default/scheduler",
        "module": "machine",
        "function": "_claim",
        "line": 42,
        "claimant": "pod-a",
        "lease": "default/scheduler",
        "event": "claim_acquired"
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        claimant = claimant_var.get()
        if claimant:
            log_data["claimant"] = claimant

        lease = lease_var.get()
        if lease:
            log_data["lease"] = lease

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        # Extra fields passed via logger.info(..., extra={...})
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                try:
                    json.dumps(value)
                    log_data[key] = value
                except (TypeError, ValueError):
                    log_data[key] = str(value)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for development.

    Output format:
    2026-01-10 12:34:56 | INFO | leasehold.lease.machine | Acquired lease | claimant=pod-a
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname

        if self.use_colors:
            color = self.COLORS.get(level, "")
            level = f"{color}{level}{self.RESET}"

        message = record.getMessage()

        context_parts = []
        claimant = claimant_var.get()
        if claimant:
            context_parts.append(f"claimant={claimant}")
        event = getattr(record, "event", None)
        if event:
            context_parts.append(f"event={event}")

        context = f" | {' '.join(context_parts)}" if context_parts else ""

        result = f"{timestamp} | {level:8} | {record.name} | {message}{context}"

        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)

        return result


def configure_logging(
    json_format: bool = True,
    level: str = "INFO",
    use_colors: bool = True,
) -> None:
    """Configure process-wide logging.

    Args:
        json_format: Use JSON format (recommended for production)
        level: Log level (trace, debug, info, warn, error)
        use_colors: Use ANSI colors in console format
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(resolve_level(level))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)

    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(ConsoleFormatter(use_colors=use_colors))

    root_logger.addHandler(handler)

    # The redis client logs every connection at DEBUG
    logging.getLogger("redis").setLevel(logging.WARNING)


class LogContext:
    """Context manager for adding temporary log context.

    Usage:
        with LogContext(claimant="pod-a", lease="default/scheduler"):
            logger.info("Claiming")  # Includes claimant and lease
    """

    def __init__(self, **kwargs: Any) -> None:
        self.extra = kwargs
        self._tokens: dict[str, contextvars.Token[str]] = {}

    def __enter__(self) -> LogContext:
        if "claimant" in self.extra:
            self._tokens["claimant"] = claimant_var.set(self.extra["claimant"])
        if "lease" in self.extra:
            self._tokens["lease"] = lease_var.set(self.extra["lease"])
        return self

    def __exit__(self, *args: Any) -> None:
        for key, token in self._tokens.items():
            if key == "claimant":
                claimant_var.reset(token)
            elif key == "lease":
                lease_var.reset(token)
