"""Logging utilities for mcpchain."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

import structlog


class JsonLogFormatter(logging.Formatter):
    """JSON formatter for log records to align with structlog JSON output."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


def setup_logging(level: str = "INFO", json_logs: bool = False):
    """Setup structured logging for the engine process."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    # Standard logging (httpx, openai) goes to the same stream
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    if json_logs:
        console_handler.setFormatter(JsonLogFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        )
    console_handler.setLevel(getattr(logging, level.upper()))
    root_logger.addHandler(console_handler)


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def bind_execution_context(
    task_id: str, user_id: str, conversation_id: Optional[str] = None
) -> None:
    """Attach task/user identifiers to every log line of the current run."""
    structlog.contextvars.bind_contextvars(task_id=task_id, user_id=user_id)
    if conversation_id:
        structlog.contextvars.bind_contextvars(conversation_id=conversation_id)


def clear_execution_context() -> None:
    structlog.contextvars.unbind_contextvars("task_id", "user_id", "conversation_id")
