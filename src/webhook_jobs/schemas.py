"""
Webhook job schemas.

Contains Pydantic models for jobs enqueued from inbound webhooks and for the
records written when a job is dead-lettered.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from core.errors.exceptions import RetryableFailure


class WebhookJob(BaseModel):
    """Schema for a job created from one inbound webhook.

    The job carries what the handler needs to find its entity again. It holds
    no retry state; the queue tracks attempts per job_id.

    Attributes:
        job_id: Unique identifier of the job
        job_name: Handler routing key (e.g. "transaction.webhook")
        source_event: Webhook event name (e.g. "PIX_CASH_IN_WAS_CLEARED")
        correlation_key: Business key of the entity (e.g. authentication code)
        payload: Raw webhook payload for the handler
        idempotency_key: Provider idempotency key; duplicates are not enqueued
        enqueued_at: When the job was created

    Example:
        >>> job = WebhookJob(
        ...     job_name="transaction.webhook",
        ...     source_event="payment.confirmed",
        ...     correlation_key="TX-001",
        ... )
        >>> job.dedup_key == job.job_id
        True
    """

    model_config = {"frozen": True}

    job_id: str = Field(
        default_factory=lambda: uuid4().hex,
        description="Unique job identifier",
        min_length=1,
    )
    job_name: str = Field(..., description="Handler routing key", min_length=1)
    source_event: str = Field(..., description="Webhook event name", min_length=1)
    correlation_key: str = Field(
        ..., description="Business key of the entity the webhook refers to", min_length=1
    )
    payload: dict[str, Any] = Field(default_factory=dict, description="Raw webhook payload")
    idempotency_key: str | None = Field(
        default=None, description="Provider idempotency key used for deduplication"
    )
    enqueued_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Timestamp when the job was created",
    )

    @field_validator("job_id", "job_name", "source_event", "correlation_key")
    @classmethod
    def validate_non_empty_strings(cls, v: str, info) -> str:
        """Ensure string fields are not empty or whitespace-only."""
        if not v or not v.strip():
            raise ValueError(f"{info.field_name} cannot be empty or whitespace")
        return v.strip()

    @field_validator("idempotency_key")
    @classmethod
    def blank_idempotency_key_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()

    @property
    def dedup_key(self) -> str:
        return self.idempotency_key or self.job_id


class DeadLetterRecord(BaseModel):
    """Schema for a job that will not be retried again.

    Keeps the discrete failure fields so operators can find and replay the
    webhook without parsing messages.

    Attributes:
        job_id: Job that failed
        job_name: Handler routing key
        correlation_key: Business key of the entity
        source_event: Webhook event name
        failure_kind: FailureKind value for retryable failures, None otherwise
        message: Final error message
        reason: "exhausted" or "non_retryable"
        attempts: Number of times the job ran, the failing run included
        error_type: Exception class name
        failed_at: When the job was dead-lettered
        payload: Original webhook payload
    """

    job_id: str = Field(..., min_length=1)
    job_name: str = Field(..., min_length=1)
    correlation_key: str = Field(..., min_length=1)
    source_event: str = Field(..., min_length=1)
    failure_kind: str | None = Field(default=None)
    message: str = Field(..., description="Final error message")
    reason: str = Field(..., description="Why the job was dead-lettered")
    attempts: int = Field(..., ge=1)
    error_type: str = Field(..., min_length=1)
    failed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_failure(
        cls,
        job: WebhookJob,
        error: BaseException,
        reason: str,
        attempts: int,
        failed_at: datetime | None = None,
    ) -> "DeadLetterRecord":
        failure_kind = None
        message = str(error)
        if isinstance(error, RetryableFailure):
            failure_kind = error.kind.value
            message = error.message

        return cls(
            job_id=job.job_id,
            job_name=job.job_name,
            correlation_key=job.correlation_key,
            source_event=job.source_event,
            failure_kind=failure_kind,
            message=message or type(error).__name__,
            reason=reason,
            attempts=attempts,
            error_type=type(error).__name__,
            failed_at=failed_at or datetime.now(UTC),
            payload=dict(job.payload),
        )


__all__ = ["DeadLetterRecord", "WebhookJob"]
