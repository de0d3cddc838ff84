"""Structured logging configuration for the application."""

import hashlib
import json
import logging
import sys
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import structlog

from ..config import ConfigManager


def setup_logging(
    config: Optional[ConfigManager] = None,
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    json_format: bool = False,
) -> None:
    """Set up structured logging for the application.

    Args:
        config: Configuration manager instance.
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path to log file.
        json_format: Whether to use JSON format for logs.
    """
    if config:
        level = level or config.get("logging.level", "INFO")
        log_file = log_file or config.get("logging.file_path")
        json_format = json_format or config.get("logging.json_format", False)

    numeric_level = getattr(logging, level.upper() if level else "INFO", logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        shared_processors.append(structlog.processors.JSONRenderer())
    else:
        shared_processors.append(
            structlog.dev.ConsoleRenderer(colors=True, exception_formatter=structlog.dev.plain_traceback)
        )

    structlog.configure(
        processors=shared_processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )
    logging.getLogger().setLevel(numeric_level)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        logging.getLogger().addHandler(file_handler)

    for logger_name in ["sqlalchemy", "aiosqlite", "asyncio"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (usually __name__).

    Returns:
        Configured logger instance.
    """
    return structlog.get_logger(name)


@contextmanager
def experiment_context(experiment_id: str, **values: Any) -> Iterator[None]:
    """Bind experiment fields to every log record emitted inside the block."""
    with structlog.contextvars.bound_contextvars(experiment_id=experiment_id, **values):
        yield


class LoggerMixin:
    """Mixin class to add logging capabilities to any class."""

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        """Get logger for this class."""
        return get_logger(self.__class__.__module__ + "." + self.__class__.__name__)


def audit_log(
    action: str,
    user_id: str,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    """Log an audit event for an experiment lifecycle action.

    Args:
        action: The action performed (create, start, stop, complete).
        user_id: ID of the user or system component performing the action.
        resource_type: Type of resource being changed.
        resource_id: ID of the specific resource.
        metadata: Additional metadata about the action.

    Returns:
        The generated audit event ID.
    """
    event_id = str(uuid.uuid4())

    audit_record = {
        "event_id": event_id,
        "action": action,
        "user_id": user_id,
        "resource_type": resource_type,
        "resource_id": resource_id,
        "timestamp": datetime.now().isoformat(),
        **(metadata or {}),
    }

    record_str = json.dumps(audit_record, sort_keys=True, default=str)
    audit_record["integrity_hash"] = hashlib.sha256(record_str.encode()).hexdigest()

    get_logger("audit").info("Audit event", **audit_record)

    return event_id
