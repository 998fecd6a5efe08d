"""Structured logging setup for NARE."""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import orjson
import structlog
from structlog.types import Processor

from .config import get_settings


def setup_logging(level: str | None = None, format_type: str | None = None) -> None:
    """
    Set up structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Output format ('json' or 'text')
    """
    settings = get_settings()
    log_level = (level or settings.logging.level).upper()
    log_format = format_type or settings.logging.format

    log_file = Path(settings.logging.file).expanduser()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    # structlog output goes through stdlib logging so stdout and the rotating file both get it
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level),
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=settings.logging.max_size_mb * 1024 * 1024,
                backupCount=settings.logging.backup_count,
            ),
        ],
    )
    # aiohttp/httpx are chatty at INFO on every long poll
    logging.getLogger("httpx").setLevel(logging.WARNING)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=False),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, log_level)),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a logger instance.

    Args:
        name: Logger name (usually __name__ of the calling module)

    Returns:
        Configured structured logger
    """
    return structlog.get_logger(name)


class AuditLogger:
    """
    Separate audit logger for command decisions.

    Writes one JSON object per line to its own rotating file so the
    history of what the bot ran (or refused to run) survives log noise.
    """

    def __init__(self, audit_file: str | Path | None = None) -> None:
        settings = get_settings()
        path = Path(audit_file or settings.logging.audit_file).expanduser()

        self._logger = logging.getLogger("nare.audit")
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False

        if not self._logger.handlers:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                handler: logging.Handler = logging.handlers.RotatingFileHandler(
                    path,
                    maxBytes=settings.logging.max_size_mb * 1024 * 1024,
                    backupCount=settings.logging.backup_count,
                )
            except OSError:
                handler = logging.NullHandler()
            handler.setFormatter(logging.Formatter("%(message)s"))
            self._logger.addHandler(handler)

    def log(
        self,
        event: str,
        chat_id: str | None = None,
        command: str | None = None,
        status: str = "info",
        **details: Any,
    ) -> None:
        """
        Log an audit event.

        Args:
            event: Event name (e.g., "command_executed", "command_denied")
            chat_id: Conversation the event belongs to
            command: The shell command involved, if any
            status: Event status (info, warning, error)
            **details: Additional fields to include
        """
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "chat_id": chat_id,
            "command": command,
            "status": status,
            "details": details,
        }
        self._logger.info(orjson.dumps(entry).decode())

    def command_blocked(self, command: str, reason: str, chat_id: str | None = None) -> None:
        self.log("command_blocked", chat_id=chat_id, command=command, status="warning", reason=reason)

    def command_denied(self, command: str, category: str, chat_id: str | None = None) -> None:
        self.log("command_denied", chat_id=chat_id, command=command, status="warning", category=category)

    def command_executed(
        self,
        command: str,
        success: bool,
        duration_ms: float | None = None,
        chat_id: str | None = None,
    ) -> None:
        self.log(
            "command_executed",
            chat_id=chat_id,
            command=command,
            status="info" if success else "error",
            success=success,
            duration_ms=duration_ms,
        )

    def confirmation(self, outcome: str, command: str, label: str, chat_id: str | None = None) -> None:
        """Log a confirmation transition (requested, approved, denied, expired, refused)."""
        self.log(f"confirmation_{outcome}", chat_id=chat_id, command=command, label=label)


_audit_logger: AuditLogger | None = None


def get_audit_logger() -> AuditLogger:
    """Get the global audit logger instance."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger
