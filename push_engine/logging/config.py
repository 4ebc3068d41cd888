"""Root logger configuration for the delivery engine.

Two output formats are supported:

- ``json``: one JSON object per line, for log shippers
- ``key-value``: ``timestamp [LEVEL] logger: message key=value ...`` for humans

Every record passes two filters before formatting: one that adds static
service metadata plus the active log context, and one that shortens device
registration identifiers so full tokens never reach log storage.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Literal

from .context import get_log_context

LogFormat = Literal["json", "key-value"]

SERVICE_NAME = "push-delivery-engine"

# LogRecord attributes that are part of the record itself, not user fields
_RECORD_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName", "levelname",
        "levelno", "lineno", "module", "msecs", "message", "pathname", "process",
        "processName", "relativeCreated", "thread", "threadName", "asctime",
        "exc_info", "exc_text", "stack_info", "taskName",
    }
)

# Fields that may carry a raw registration identifier
MASKED_FIELDS = ("registration_id", "canonical_id", "recipient", "old_id", "new_id")

MASK_VISIBLE_CHARS = 10


def mask_identifier(value: Any) -> Any:
    """Shorten a registration identifier to its first characters.

    Non-string values and identifiers already short enough are returned as-is.

    Example:
        >>> mask_identifier("dGVzdC10b2tlbi0xMjM0NTY3ODkw")
        'dGVzdC10b2...'
    """
    if not isinstance(value, str) or len(value) <= MASK_VISIBLE_CHARS:
        return value
    return value[:MASK_VISIBLE_CHARS] + "..."


class ContextFilter(logging.Filter):
    """Adds service, environment and the bound log context to each record."""

    def __init__(self, service: str = SERVICE_NAME, environment: str = "local"):
        super().__init__()
        self.service = service
        self.environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service
        record.environment = self.environment
        for key, value in get_log_context().items():
            # Explicit extra= fields take precedence over context
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class RegistrationMaskingFilter(logging.Filter):
    """Masks registration identifiers found in well-known record fields."""

    def __init__(self, fields: Iterable[str] = MASKED_FIELDS):
        super().__init__()
        self.fields = tuple(fields)

    def filter(self, record: logging.LogRecord) -> bool:
        for field in self.fields:
            value = getattr(record, field, None)
            if isinstance(value, str):
                setattr(record, field, mask_identifier(value))
            elif isinstance(value, (list, tuple)):
                setattr(record, field, [mask_identifier(v) for v in value])
        return True


def _user_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """Single-line JSON output with stable top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self._timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in _user_fields(record).items():
            payload[key] = self._jsonable(value)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)

    @staticmethod
    def _timestamp(created: float) -> str:
        dt = datetime.fromtimestamp(created, tz=timezone.utc)
        return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

    @staticmethod
    def _jsonable(value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, (str, int, float, bool, type(None), list, dict)):
            return value
        return str(value)


class KeyValueFormatter(logging.Formatter):
    """Human-readable output: base line followed by sorted key=value pairs."""

    HIDDEN_FIELDS = frozenset({"service", "environment"})

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        pairs = [
            f"{key}={self._render(value)}"
            for key, value in sorted(_user_fields(record).items())
            if key not in self.HIDDEN_FIELDS
        ]
        return f"{line} {' '.join(pairs)}" if pairs else line

    @staticmethod
    def _render(value: Any) -> str:
        if value is None:
            return "null"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, datetime):
            return value.isoformat()
        text = str(value)
        if any(ch in text for ch in ' =,"'):
            return '"' + text.replace('"', '\\"') + '"'
        return text


def configure_logging(
    level: str = "INFO",
    format_type: LogFormat = "key-value",
    environment: str = "local",
) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: ``json`` or ``key-value``
        environment: Environment label stamped on each record

    Raises:
        ValueError: If level or format_type is not recognised
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    if format_type == "json":
        formatter: logging.Formatter = JSONFormatter()
    elif format_type == "key-value":
        formatter = KeyValueFormatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        raise ValueError(f"Invalid log format: {format_type}. Must be 'json' or 'key-value'")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter(environment=environment))
    handler.addFilter(RegistrationMaskingFilter())

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()
    root.addHandler(handler)

    # urllib3 logs every pooled connection at DEBUG
    logging.getLogger("urllib3").setLevel(max(numeric_level, logging.INFO))

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={
            "event": "logging.configured",
            "component": "logging",
            "log_level": level.upper(),
            "log_format": format_type,
        },
    )
