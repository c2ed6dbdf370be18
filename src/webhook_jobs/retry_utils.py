"""
Utility functions for retry handling in the job queue.

Keeps the logging and timestamp arithmetic around a retry decision in one
place so the queue itself stays about state.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from core.errors.exceptions import RetryableFailure, classify_exception
from core.resilience.retry import Fail, Retry, RetryDecision
from webhook_jobs.schemas import WebhookJob

logger = logging.getLogger(__name__)


def calculate_retry_timestamp(now: datetime, delay_seconds: float) -> datetime:
    """When a job rescheduled at ``now`` becomes due again."""
    return now + timedelta(seconds=delay_seconds)


def truncate_error_message(error: BaseException, max_length: int = 500) -> str:
    """
    Truncate error message to keep log records and dead-letter lines small.

    Args:
        error: Exception to extract message from
        max_length: Maximum length of error message

    Returns:
        Truncated error message with ellipsis if needed
    """
    error_message = str(error)
    if len(error_message) > max_length:
        return error_message[: max_length - 3] + "..."
    return error_message


def failure_log_fields(error: BaseException) -> dict[str, Any]:
    """
    Structured fields describing a job failure.

    RetryableFailure contributes its own discrete fields. Other errors are
    described by type and heuristic category only.
    """
    if isinstance(error, RetryableFailure):
        fields = error.log_fields()
    else:
        fields = {"error_message": truncate_error_message(error)}
    fields["error_type"] = type(error).__name__
    fields["error_category"] = classify_exception(error).value
    return fields


def log_retry_decision(
    decision: RetryDecision,
    job: WebhookJob,
    retry_count: int,
    error: BaseException,
    retry_at: datetime | None = None,
) -> None:
    """
    Log a retry routing decision with consistent format.

    Args:
        decision: Retry or Fail returned by the classifier
        job: Job that failed
        retry_count: Retries already scheduled before this failure
        error: Exception raised by the handler
        retry_at: When the job runs again, for Retry decisions
    """
    log_context = {
        "job_id": job.job_id,
        "job_name": job.job_name,
        "correlation_key": job.correlation_key,
        "source_event": job.source_event,
        "retry_count": retry_count,
        **failure_log_fields(error),
    }

    if isinstance(decision, Retry):
        logger.warning(
            "Retryable failure, scheduling retry",
            extra={
                **log_context,
                "decision": "retry",
                "attempt": decision.attempt,
                "max_attempts": decision.max_attempts,
                "delay_seconds": decision.delay,
                "retry_at": retry_at.isoformat() if retry_at else None,
            },
        )
    elif isinstance(decision, Fail):
        logger.error(
            "Job failed, sending to dead-letter",
            extra={
                **log_context,
                "decision": "dead_letter",
                "reason": decision.reason.value,
            },
        )


__all__ = [
    "calculate_retry_timestamp",
    "failure_log_fields",
    "log_retry_decision",
    "truncate_error_message",
]
