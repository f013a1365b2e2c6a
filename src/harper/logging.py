"""
Harper Structured Logging

Configured stdlib logging for the Harper agent with structured context.

Usage:
    from harper.logging import get_logger

    logger = get_logger("harper.policy")
    logger.warning("Operation denied", extra={"session_id": "s-1", "violation": "metacharacter"})

For machine-readable output:
    from harper.logging import configure_logging
    configure_logging(json_output=True, level="DEBUG")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# Fields lifted from ``extra={...}`` into the structured record
CONTEXT_FIELDS = (
    "session_id",
    "sequence",
    "operation",
    "tool_name",
    "status",
    "violation",
    "approved",
    "exit_code",
    "duration_ms",
)


class HarperFormatter(logging.Formatter):
    """Structured log formatter for Harper.

    Outputs either human-readable or JSON format depending on configuration.
    """

    def __init__(self, json_output: bool = False):
        super().__init__()
        self._json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self._json_output:
            return json.dumps(log_data, default=str)

        extra_keys = {
            k: v
            for k, v in log_data.items()
            if k not in ("timestamp", "level", "logger", "message", "exception")
        }
        extra_str = ""
        if extra_keys:
            extra_str = " | " + " ".join(f"{k}={v}" for k, v in extra_keys.items())

        line = f"[{log_data['timestamp']}] {record.levelname:8s} {record.name}: {record.getMessage()}{extra_str}"
        if "exception" in log_data:
            line += "\n" + log_data["exception"]
        return line


def configure_logging(
    level: str = "WARNING",
    json_output: bool = False,
) -> None:
    """Configure Harper logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: If True, output one JSON object per line.
    """
    root_logger = logging.getLogger("harper")
    root_logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(HarperFormatter(json_output=json_output))
    root_logger.addHandler(handler)

    # Keep the interactive terminal free of duplicate lines
    root_logger.propagate = False


def get_logger(name: str = "harper") -> logging.Logger:
    """Get a Harper logger instance (usually the module path)."""
    return logging.getLogger(name)


configure_logging()
