"""
Unified exception hierarchy for webhook job processing.

Provides typed exceptions with retry classification so the job queue can tell
"retry me later" apart from "this job is broken" without parsing messages.
"""

from typing import Any

# Import enums from canonical source to avoid duplicate enum issues
# (comparing enums from different classes always returns False)
from core.types import ErrorCategory, FailureKind


class JobError(Exception):
    """
    Base exception for all job processing errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category == ErrorCategory.TRANSIENT

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Category Bases
# =============================================================================


class TransientError(JobError):
    """Base class for transient/retriable errors."""

    category = ErrorCategory.TRANSIENT


class PermanentError(JobError):
    """Base class for permanent/non-retriable errors."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# Permanent Errors
# =============================================================================


class MalformedFailureError(PermanentError):
    """A RetryableFailure was constructed with missing or unknown fields."""


class InvalidTransitionError(PermanentError):
    """A job was asked to move between states the lifecycle does not allow."""

    def __init__(self, job_id: str, current: Any, target: Any):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        super().__init__(
            f"Invalid job transition {current_value} -> {target_value} for job {job_id}",
            context={"job_id": job_id, "from_state": current_value, "to_state": target_value},
        )
        self.job_id = job_id
        self.current = current
        self.target = target


class UnknownJobError(PermanentError):
    """No handler is registered for the job name."""

    def __init__(self, job_name: str):
        super().__init__(f"No handler registered for job: {job_name}", context={"job_name": job_name})
        self.job_name = job_name


# =============================================================================
# Retryable Failure Signal
# =============================================================================

_MESSAGE_TEMPLATES = {
    FailureKind.ENTITY_NOT_FOUND_YET: "{entity} not found for {key} (Event: {event}). Will retry.",
    FailureKind.OUT_OF_SEQUENCE: (
        "Webhook out of sequence for {key} (Event: {event}). Reason: {reason}. Will retry."
    ),
    FailureKind.UPSTREAM_UNAVAILABLE: (
        "{entity} lookup unavailable for {key} (Event: {event}). Will retry."
    ),
    FailureKind.LOCK_CONFLICT: "{entity} locked for {key} (Event: {event}). Will retry.",
}


def _require_text(field_name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise MalformedFailureError(
            f"RetryableFailure.{field_name} must be a non-empty string, got {value!r}",
            context={"field": field_name},
        )
    return value


def _coerce_kind(kind: Any) -> FailureKind:
    if isinstance(kind, FailureKind):
        return kind
    try:
        return FailureKind(kind)
    except ValueError:
        raise MalformedFailureError(
            f"Unknown failure kind: {kind!r}. "
            f"Expected one of {[k.value for k in FailureKind]}",
            context={"field": "kind"},
        ) from None


class RetryableFailure(TransientError):
    """
    Signal raised by a job handler when the job should be retried later.

    The failure is a tagged value: the queue decides what to do by looking at
    ``kind``, never at the exception type or the message text. It carries no
    attempt counter; the queue owns that.

    Fields are validated at construction and read-only afterwards.

    Example:
        >>> failure = RetryableFailure(
        ...     FailureKind.ENTITY_NOT_FOUND_YET, "TX-001", "payment.confirmed"
        ... )
        >>> failure.message
        'Transaction not found for TX-001 (Event: payment.confirmed). Will retry.'
    """

    def __init__(
        self,
        kind: FailureKind | str,
        correlation_key: str,
        source_event: str,
        entity: str = "Transaction",
        reason: str | None = None,
    ):
        self._kind = _coerce_kind(kind)
        self._correlation_key = _require_text("correlation_key", correlation_key)
        self._source_event = _require_text("source_event", source_event)
        self._entity = _require_text("entity", entity)
        if self._kind == FailureKind.OUT_OF_SEQUENCE:
            self._reason = _require_text("reason", reason)
        else:
            self._reason = reason if isinstance(reason, str) and reason.strip() else None

        self._message = _MESSAGE_TEMPLATES[self._kind].format(
            entity=self._entity,
            key=self._correlation_key,
            event=self._source_event,
            reason=self._reason,
        )
        # JobError.__init__ assigns the fields exposed here as read-only properties
        Exception.__init__(self, self._message)

    @property
    def kind(self) -> FailureKind:
        return self._kind

    @property
    def correlation_key(self) -> str:
        return self._correlation_key

    @property
    def source_event(self) -> str:
        return self._source_event

    @property
    def entity(self) -> str:
        return self._entity

    @property
    def reason(self) -> str | None:
        return self._reason

    @property
    def message(self) -> str:
        return self._message

    @property
    def cause(self) -> None:
        return None

    @property
    def context(self) -> dict[str, Any]:
        return self.log_fields()

    def log_fields(self) -> dict[str, Any]:
        """Discrete fields for log records and metric labels."""
        fields = {
            "failure_kind": self._kind.value,
            "correlation_key": self._correlation_key,
            "source_event": self._source_event,
            "entity": self._entity,
            "error_message": self._message,
        }
        if self._reason is not None:
            fields["failure_reason"] = self._reason
        return fields

    def __reduce__(self):
        return (
            self.__class__,
            (self._kind, self._correlation_key, self._source_event, self._entity, self._reason),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RetryableFailure):
            return NotImplemented
        return self.__reduce__()[1] == other.__reduce__()[1]

    def __hash__(self) -> int:
        return hash(self.__reduce__()[1])

    def __repr__(self) -> str:
        return (
            f"RetryableFailure(kind={self._kind.value!r}, "
            f"correlation_key={self._correlation_key!r}, "
            f"source_event={self._source_event!r})"
        )


# =============================================================================
# Error Classification Utilities
# =============================================================================

TRANSIENT_ERROR_MARKERS = frozenset(
    {
        "429",
        "503",
        "502",
        "504",
        "timeout",
        "timed out",
        "connection",
        "temporarily unavailable",
        "service unavailable",
    }
)

PERMANENT_ERROR_MARKERS = frozenset(
    {
        "400",
        "403",
        "404",
        "422",
        "not found",
        "forbidden",
        "invalid",
    }
)


def is_transient_error(exc: Exception) -> bool:
    """Check if exception is transient (may succeed on retry)."""
    return classify_exception(exc) == ErrorCategory.TRANSIENT


def is_retryable_failure(exc: Exception) -> bool:
    """Check if exception is the typed retry signal the job queue acts on."""
    return isinstance(exc, RetryableFailure)


def classify_exception(exc: Exception) -> ErrorCategory:
    """
    Classify an exception into an error category.

    Typed errors report their own category. Anything else is matched on its
    type name and message. A generic "not found" is PERMANENT: only a handler
    that constructs a RetryableFailure can ask for a not-found retry.
    """
    if isinstance(exc, JobError):
        return exc.category

    exc_type = type(exc).__name__.lower()
    exc_str = str(exc).lower()

    if isinstance(exc, (ValueError, TypeError, KeyError)):
        return ErrorCategory.PERMANENT

    if "timeout" in exc_type or "connection" in exc_type:
        return ErrorCategory.TRANSIENT

    if any(marker in exc_str for marker in TRANSIENT_ERROR_MARKERS):
        return ErrorCategory.TRANSIENT

    if any(marker in exc_str for marker in PERMANENT_ERROR_MARKERS):
        return ErrorCategory.PERMANENT

    return ErrorCategory.UNKNOWN


def wrap_exception(
    exc: Exception,
    context: dict | None = None,
) -> JobError:
    """Wrap a generic exception in the JobError subclass matching its category."""
    if isinstance(exc, RetryableFailure):
        return exc

    if isinstance(exc, JobError):
        if context:
            exc.context.update(context)
        return exc

    category = classify_exception(exc)
    context = dict(context or {})
    context["error_type"] = type(exc).__name__

    if category == ErrorCategory.TRANSIENT:
        return TransientError(str(exc), cause=exc, context=context)
    if category == ErrorCategory.PERMANENT:
        return PermanentError(str(exc), cause=exc, context=context)
    return JobError(str(exc), cause=exc, context=context)


__all__ = [
    "ErrorCategory",
    "FailureKind",
    "JobError",
    "TransientError",
    "PermanentError",
    "MalformedFailureError",
    "InvalidTransitionError",
    "UnknownJobError",
    "RetryableFailure",
    "is_transient_error",
    "is_retryable_failure",
    "classify_exception",
    "wrap_exception",
]
