"""Structured logging configuration for the application."""

from datetime import UTC, datetime
import json
import logging
import sys
from typing import Any

from georollup.core.config import settings


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_data = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add extra fields if present
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class StandardFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging() -> None:
    """Configure application logging based on environment."""
    # Determine log level
    log_level = logging.INFO
    if settings.ENVIRONMENT == "development":
        log_level = logging.DEBUG
    elif settings.ENVIRONMENT == "production":
        log_level = logging.WARNING

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)

    # Use JSON formatter in production, standard in development
    if settings.ENVIRONMENT == "production":
        formatter = JSONFormatter()
    else:
        formatter = StandardFormatter()

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Set specific log levels for noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("fastapi").setLevel(logging.INFO)
    logging.getLogger("asyncpg").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)


class AuditLogger:
    """Logger for access decisions and cache administration."""

    def __init__(self) -> None:
        self.logger = get_logger("audit")

    def log_scope_denied(
        self,
        user_id: str | None,
        assigned: dict[str, Any],
        requested: str,
        reason: str,
    ) -> None:
        """Log a request that fell outside the caller's assigned scope."""
        self.logger.warning(
            f"Scope denied for user {user_id}: requested '{requested}' ({reason})",
            extra={
                "extra_fields": {
                    "event_type": "scope_denied",
                    "user_id": user_id,
                    "assigned_scope": assigned,
                    "requested_scope": requested,
                    "reason": reason,
                }
            },
        )

    def log_cache_invalidated(
        self, user_id: str | None, key: str | None, entries_removed: int
    ) -> None:
        """Log a manual hierarchy cache invalidation."""
        self.logger.info(
            f"Hierarchy cache invalidated by {user_id}: key={key or '*'}, removed={entries_removed}",
            extra={
                "extra_fields": {
                    "event_type": "cache_invalidated",
                    "user_id": user_id,
                    "cache_key": key,
                    "entries_removed": entries_removed,
                }
            },
        )


class AlertLogger:
    """Logger for conditions that must page an operator."""

    def __init__(self) -> None:
        self.logger = get_logger("alerts")

    def log_invariant_violation(self, cache_key: str, detail: str) -> None:
        """Log a failed post-build consistency check."""
        self.logger.critical(
            f"Aggregation invariant violated for '{cache_key}': {detail}",
            extra={
                "extra_fields": {
                    "event_type": "merge_invariant_violation",
                    "cache_key": cache_key,
                    "detail": detail,
                }
            },
        )


# Global logger instances
audit_logger = AuditLogger()
alert_logger = AlertLogger()
