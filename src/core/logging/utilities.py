"""Helpers for emitting structured log records."""

import logging
from typing import Any, Mapping

# Attribute names LogRecord already owns; passing one in ``extra`` raises KeyError.
_RESERVED_LOG_KEYS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

MAX_LOGGED_MESSAGE = 500


def safe_extra(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Drop keys that would collide with LogRecord attributes."""
    return {key: value for key, value in fields.items() if key not in _RESERVED_LOG_KEYS}


def exception_fields(exc: BaseException, max_length: int = MAX_LOGGED_MESSAGE) -> dict[str, Any]:
    """
    Describe an exception as discrete log fields.

    RetryableFailure contributes kind, correlation key and source event via
    ``log_fields()``. JobError subclasses contribute ``error_category``.
    The message is cut to ``max_length`` characters including the ellipsis.
    """
    own_fields = getattr(exc, "log_fields", None)
    fields: dict[str, Any] = dict(own_fields()) if callable(own_fields) else {}

    message = str(exc)
    if len(message) > max_length:
        message = message[: max_length - 3] + "..."
    fields["error_message"] = message
    fields["error_type"] = type(exc).__name__

    category = getattr(exc, "category", None)
    if category is not None:
        fields["error_category"] = getattr(category, "value", str(category))
    return fields


def log_with_context(logger: logging.Logger, level: int, msg: str, **fields: Any) -> None:
    """
    Log ``msg`` with ``fields`` attached as record attributes.

    ``exc_info`` is forwarded to the logger rather than treated as a field.
    """
    exc_info = fields.pop("exc_info", None)
    logger.log(level, msg, exc_info=exc_info, extra=safe_extra(fields))


def log_exception(
    logger: logging.Logger,
    exc: BaseException,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **fields: Any,
) -> None:
    """
    Log an exception as structured fields, optionally with its traceback.

    Fields passed by the caller override the ones derived from ``exc``.

    Example:
        except Exception as e:
            log_exception(logger, e, "Handler raised", job_id=job.job_id)
    """
    record_fields = {**exception_fields(exc), **fields}
    logger.log(
        level,
        msg,
        exc_info=exc if include_traceback else None,
        extra=safe_extra(record_fields),
    )
