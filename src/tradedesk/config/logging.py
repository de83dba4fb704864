"""Structured logging configuration using structlog."""

import logging
import logging.handlers
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

AUDIT_LOGGER = "tradedesk.audit"

_SIZE_UNITS = {"KB": 1024, "MB": 1024**2, "GB": 1024**3}


def _decimals_as_strings(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Render Decimal amounts exactly instead of through repr or float."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def _renderer(format_type: str, file_enabled: bool) -> Processor:
    if format_type == "plain":
        return structlog.dev.ConsoleRenderer(colors=True)
    # JSON when lines also go to a file, so both sinks stay machine readable
    if file_enabled:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(
    level: str = "INFO",
    format_type: str = "structured",
    file_enabled: bool = True,
    file_path: str = "data/tradedesk.log",
    max_file_size: str = "10MB",
    backup_count: int = 5,
    audit_file_path: Optional[str] = None,
) -> None:
    """
    Set up application logging with structlog.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Log format ('structured' or 'plain')
        file_enabled: Whether to enable file logging
        file_path: Path to log file
        max_file_size: Maximum size of log file before rotation
        backup_count: Number of backup log files to keep
        audit_file_path: Separate file for money-movement audit events
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    processors: list[Processor] = [
        # request_id and user_id bound by the API layer
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        _decimals_as_strings,
        _renderer(format_type, file_enabled),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    if file_enabled:
        logging.getLogger().addHandler(
            _rotating_handler(file_path, max_file_size, backup_count, log_level)
        )
    if audit_file_path:
        # Audit lines go to the root sinks as well as their own file
        logging.getLogger(AUDIT_LOGGER).addHandler(
            _rotating_handler(audit_file_path, max_file_size, backup_count, logging.INFO)
        )


def _rotating_handler(
    file_path: str, max_file_size: str, backup_count: int, log_level: int
) -> logging.Handler:
    log_file = Path(file_path)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        filename=log_file,
        maxBytes=parse_file_size(max_file_size),
        backupCount=backup_count,
    )
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def parse_file_size(size_str: str) -> int:
    """Parse '512KB', '10MB', '1GB' or a plain byte count."""
    size_str = size_str.strip().upper()
    for suffix, multiplier in _SIZE_UNITS.items():
        if size_str.endswith(suffix):
            return int(size_str[: -len(suffix)]) * multiplier
    return int(size_str)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (defaults to calling module)
    """
    return structlog.get_logger(name)


def bind_request_context(**kwargs: Any) -> None:
    """Bind values to every log line emitted while handling the current request."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def log_audit_event(event: str, user_id: Optional[str] = None, **context: Any) -> None:
    """
    Record a balance-affecting operation on the audit logger.

    Args:
        event: What happened (deposit, trade_debit, position_closed, ...)
        user_id: Owner of the affected wallet
        **context: Amounts, order ids, symbols
    """
    get_logger(AUDIT_LOGGER).info(
        "Audit event",
        audit_event=event,
        user_id=user_id,
        **context,
    )
