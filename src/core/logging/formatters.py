"""Log formatters for JSON and console output."""

import json
import logging
import sys
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable

from core.logging.context import CONTEXT_FIELDS, get_log_context


def json_serializer(obj: Any) -> Any:
    """``default=`` hook for json.dumps: dates to ISO 8601, Decimal to float, Enum to value."""
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


def _as(caster: Callable[[Any], Any]) -> Callable[[Any], Any]:
    def coerce(value: Any) -> Any:
        try:
            return caster(value)
        except (TypeError, ValueError):
            return None

    return coerce


def _keep(value: Any) -> Any:
    return value


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    Only the record attributes named in ``FIELDS`` are emitted, each passed
    through its coercer, so a retry dashboard can group by ``failure_kind``
    or sum ``delay_seconds`` without parsing messages. Attributes set on the
    record take precedence over the ambient log context.
    """

    FIELDS: dict[str, Callable[[Any], Any]] = {
        # job identity
        "job_id": _keep,
        "job_name": _keep,
        "correlation_key": _keep,
        "source_event": _keep,
        "idempotency_key": _keep,
        "handler_name": _keep,
        # failures and decisions
        "failure_kind": _keep,
        "failure_reason": _keep,
        "entity": _keep,
        "error_category": _keep,
        "error_message": _keep,
        "error_type": _keep,
        "error": _keep,
        "decision": _keep,
        "reason": _keep,
        # retry scheduling
        "retry_count": _as(int),
        "attempt": _as(int),
        "max_attempts": _as(int),
        "delay_seconds": _as(float),
        "retry_at": _keep,
        # lifecycle and queue
        "from_state": _keep,
        "to_state": _keep,
        "operation": _keep,
        "duration_ms": _as(float),
        "queue_size": _as(int),
        "jobs_claimed": _as(int),
        "cancelled_count": _as(int),
        "concurrency": _as(int),
        # persistence
        "file": _keep,
        "log_file": _keep,
        "restored_count": _as(int),
        "overdue_count": _as(int),
    }

    LOCATED_LEVELS = frozenset({logging.DEBUG, logging.ERROR, logging.CRITICAL})

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = get_log_context()
        entry.update((name, context[name]) for name in CONTEXT_FIELDS if context.get(name))

        if record.levelno in self.LOCATED_LEVELS:
            entry["source"] = f"{record.filename}:{record.lineno}"

        for name, coerce in self.FIELDS.items():
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = coerce(value)

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "stacktrace": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=json_serializer, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    ``time - LEVEL - [worker] - [stage] - [job:..] [key:..] [kind] message``

    Level names are colored only when stdout is a TTY.
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.colorize = sys.stdout.isatty()

    def _level(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno) if self.colorize else None
        return f"{color}{record.levelname}{self.RESET}" if color else record.levelname

    @staticmethod
    def _job_tags(record: logging.LogRecord, context: dict[str, str]) -> str:
        job_id = getattr(record, "job_id", None) or context["job_id"]
        key = getattr(record, "correlation_key", None) or context["correlation_key"]
        kind = getattr(record, "failure_kind", None)

        tags = []
        if job_id:
            tags.append(f"[job:{job_id[:8]}]")
        if key:
            tags.append(f"[key:{key}]")
        if kind:
            tags.append(f"[{kind}]")
        return " ".join(tags)

    def format(self, record: logging.LogRecord) -> str:
        context = get_log_context()

        segments = [datetime.now().strftime("%Y-%m-%d %H:%M:%S"), self._level(record)]
        segments.extend(f"[{context[name]}]" for name in ("worker_id", "stage") if context[name])

        body = record.getMessage()
        tags = self._job_tags(record, context)
        if tags:
            body = f"{tags} {body}"
        if record.exc_info:
            body = f"{body}\n{self.formatException(record.exc_info)}"
        segments.append(body)

        return " - ".join(segments)
