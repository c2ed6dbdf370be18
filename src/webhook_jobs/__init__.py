"""
Webhook job processing with typed retry classification.

A handler that cannot find its entity yet raises RetryableFailure; the
JobQueue asks the RetryClassifier whether to retry with backoff or
dead-letter the job.

Components:
    - WebhookJob / DeadLetterRecord: Job and dead-letter schemas
    - JobQueue: In-process queue owning job state and attempt counts
    - WorkerPool: Runs due jobs concurrently through their handlers
    - TransactionWebhookHandler: Applies webhook events to transactions
    - check_sequence: Webhook event ordering rules
    - InMemoryDeadLetterSink / JsonlDeadLetterSink: Dead-letter destinations
"""

from webhook_jobs.dlq import InMemoryDeadLetterSink, JsonlDeadLetterSink, read_dead_letters
from webhook_jobs.handlers import (
    HandlerRegistry,
    HandlerResult,
    InMemoryTransactionLedger,
    JobHandler,
    TransactionLedger,
    TransactionWebhookHandler,
)
from webhook_jobs.queue import JobQueue, JobRecord
from webhook_jobs.schemas import DeadLetterRecord, WebhookJob
from webhook_jobs.sequence import SequenceCheck, check_sequence
from webhook_jobs.states import JobState
from webhook_jobs.worker import JobOutcome, WorkerPool

__all__ = [
    # Schemas
    "WebhookJob",
    "DeadLetterRecord",
    # Queue
    "JobQueue",
    "JobRecord",
    "JobState",
    # Workers
    "WorkerPool",
    "JobOutcome",
    # Handlers
    "JobHandler",
    "HandlerRegistry",
    "HandlerResult",
    "TransactionLedger",
    "InMemoryTransactionLedger",
    "TransactionWebhookHandler",
    # Sequencing
    "SequenceCheck",
    "check_sequence",
    # Dead letters
    "InMemoryDeadLetterSink",
    "JsonlDeadLetterSink",
    "read_dead_letters",
]
