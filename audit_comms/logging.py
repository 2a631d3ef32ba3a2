# audit_comms/logging.py
"""
Structured logging for audit comms evidence.

Every record becomes one JSON object:
- timestamp: record creation time, ISO 8601 UTC
- level, logger
- event: the event name passed at the call site
- context bound to the logger, then the call-site keyword fields

Usage:
    from audit_comms.logging import get_logger
    logger = get_logger(__name__)
    logger.info("composite_hash_computed", scope_label=label, row_count=3)

Identifier fields a regulator slice would mask are masked in log lines
as well (see MASKED_LOG_FIELDS).
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

# Field names whose values never reach a log line in clear
MASKED_LOG_FIELDS = frozenset({
    "key_value",
    "order_id",
    "shipment_id",
    "payment_id",
    "compliance_case_id",
    "governance_case_id",
    "provider_message_id",
    "provider_error_code",
})
LOG_MASK = "[masked]"

PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def mask_log_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        name: LOG_MASK if name in MASKED_LOG_FIELDS and value is not None else value
        for name, value in fields.items()
    }


class StructuredLogFormatter(logging.Formatter):
    """Formats a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        entry.update(mask_log_fields(getattr(record, "structured_data", {})))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if record.levelno >= logging.ERROR:
            entry["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(entry, default=str)


class StructuredLogger:
    """
    Stdlib logger wrapper that attaches keyword fields to each record.

    Context bound at construction or through bind() is merged into every
    record; call-site fields win on a name clash.

    Example:
        logger = get_source_logger("CHAT_PLATFORM")
        logger.info("evidence_rows_fetched", count=5)
    """

    def __init__(self, name: str, context: Optional[Dict[str, Any]] = None):
        self._logger = logging.getLogger(name)
        self.context = dict(context or {})

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **fields) -> "StructuredLogger":
        """New logger with extra bound context."""
        return StructuredLogger(self._logger.name, {**self.context, **fields})

    def _log(self, level: int, event: str, exc_info: bool = False, **fields):
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(
            level,
            event,
            exc_info=exc_info,
            extra={"structured_data": {**self.context, **fields}},
        )

    def debug(self, event: str, **fields):
        self._log(logging.DEBUG, event, **fields)

    def info(self, event: str, **fields):
        self._log(logging.INFO, event, **fields)

    def warning(self, event: str, **fields):
        self._log(logging.WARNING, event, **fields)

    def error(self, event: str, exc_info: bool = False, **fields):
        self._log(logging.ERROR, event, exc_info=exc_info, **fields)


_configured = False


def configure_logging(
    level: Optional[str] = None,
    json_output: Optional[bool] = None,
    log_file: Optional[str] = None,
):
    """
    Install handlers on the root logger. Only the first call has an effect.

    Args:
        level: Log level name (default: settings.log_level)
        json_output: JSON lines or plain text (default: settings.log_json)
        log_file: Optional file that always receives JSON lines
    """
    global _configured
    if _configured:
        return
    _configured = True

    from .settings import settings
    level = (level or settings.log_level).upper()
    if json_output is None:
        json_output = settings.log_json

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(StructuredLogFormatter() if json_output else logging.Formatter(PLAIN_FORMAT))
    handlers: List[logging.Handler] = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredLogFormatter())
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)

    # Bound SQL parameters carry correlation identifiers
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger, configuring logging on first use.

    Args:
        name: Logger name (typically __name__)
    """
    if not _configured:
        configure_logging()
    return StructuredLogger(name)


def get_source_logger(channel: str) -> StructuredLogger:
    """Logger for a channel evidence source, bound to that channel."""
    return get_logger(f"audit_comms.sources.{channel.lower()}").bind(channel=channel)
