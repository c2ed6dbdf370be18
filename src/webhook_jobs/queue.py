"""
In-process job queue with delayed retries.

Owns job state and attempt counts. Handler failures are handed to
``fail()``, which asks the RetryClassifier what to do and either reschedules
the job on the delay queue or publishes it to the dead-letter sink.

Jobs are deduplicated on their idempotency key (falling back to job_id), so
a webhook delivered twice by the provider produces one job.
"""

import logging
import threading
from collections import Counter
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from core.errors.exceptions import RetryableFailure
from core.resilience.retry import Fail, Retry, RetryClassifier, RetryDecision
from webhook_jobs import metrics
from webhook_jobs.delay_queue import DelayedJob, DelayQueue
from webhook_jobs.dlq import DeadLetterSink, InMemoryDeadLetterSink
from webhook_jobs.retry_utils import (
    calculate_retry_timestamp,
    log_retry_decision,
    truncate_error_message,
)
from webhook_jobs.schemas import DeadLetterRecord, WebhookJob
from webhook_jobs.states import SCHEDULED_STATES, JobState, ensure_transition, is_terminal

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

DEFAULT_REDELIVERY_DELAY = 30.0


def utc_now() -> datetime:
    return datetime.now(UTC)


class JobRecord:
    """A job and everything the queue knows about its progress."""

    def __init__(self, job: WebhookJob, run_at: datetime, retry_count: int = 0):
        self.job = job
        self.state = JobState.PENDING if retry_count == 0 else JobState.AWAITING_RETRY
        self.retry_count = retry_count
        self.run_at = run_at
        self.updated_at = run_at
        self.last_error: str | None = None
        self.failure_kind: str | None = None
        self.result: Any = None

    @property
    def job_id(self) -> str:
        return self.job.job_id

    def transition(self, target: JobState, now: datetime) -> None:
        ensure_transition(self.job_id, self.state, target)
        logger.debug(
            "Job state transition",
            extra={
                "job_id": self.job_id,
                "from_state": self.state.value,
                "to_state": target.value,
            },
        )
        self.state = target
        self.updated_at = now

    def to_delayed(self, scheduled_time: datetime | None = None) -> DelayedJob:
        return DelayedJob(
            scheduled_time=scheduled_time or self.run_at,
            job_id=self.job_id,
            retry_count=self.retry_count,
            job=self.job.model_dump(mode="json"),
        )

    def __repr__(self) -> str:
        return (
            f"JobRecord(job_id={self.job_id!r}, state={self.state.value}, "
            f"retry_count={self.retry_count})"
        )


class JobQueue:
    """
    Thread-safe in-process job queue.

    Args:
        classifier: Decides retry vs dead-letter for failed jobs
        dead_letter_sink: Receives a DeadLetterRecord for every dead-lettered job
        clock: Returns the current UTC time; injectable for tests
        persistence_file: Where the delay queue is snapshotted, None disables it
        name: Queue name, checked when restoring a snapshot
        redelivery_delay: Seconds before a job whose dead-letter record could
            not be published is run again

    Usage:
        queue = JobQueue(classifier=RetryClassifier())
        queue.enqueue(WebhookJob(job_name="transaction.webhook", ...))
        for record in queue.claim_ready():
            try:
                result = await handler.handle(record.job)
            except Exception as e:
                queue.fail(record.job_id, e)
            else:
                queue.complete(record.job_id, result)
    """

    def __init__(
        self,
        classifier: RetryClassifier | None = None,
        dead_letter_sink: DeadLetterSink | None = None,
        clock: Clock | None = None,
        persistence_file: Path | None = None,
        name: str = "webhook-jobs",
        redelivery_delay: float = DEFAULT_REDELIVERY_DELAY,
    ):
        self.classifier = classifier or RetryClassifier()
        self.dead_letter_sink = (
            dead_letter_sink if dead_letter_sink is not None else InMemoryDeadLetterSink()
        )
        self.redelivery_delay = redelivery_delay
        self._clock = clock or utc_now
        self._delay_queue = DelayQueue(name, persistence_file)
        self._records: dict[str, JobRecord] = {}
        self._dedup_index: dict[str, str] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config,
        dead_letter_sink: DeadLetterSink | None = None,
        clock: Clock | None = None,
    ) -> "JobQueue":
        """Build a queue from WebhookJobsConfig (classifier and persistence file)."""
        from webhook_jobs.dlq import JsonlDeadLetterSink

        persistence_file = (
            Path(config.queue_persistence_file) if config.queue_persistence_file else None
        )
        return cls(
            classifier=config.build_classifier(),
            dead_letter_sink=(
                dead_letter_sink
                if dead_letter_sink is not None
                else JsonlDeadLetterSink(config.dead_letter_path)
            ),
            clock=clock,
            persistence_file=persistence_file,
        )

    def now(self) -> datetime:
        return self._clock()

    # =========================================================================
    # Producer side
    # =========================================================================

    def enqueue(self, job: WebhookJob, delay: float = 0.0) -> JobRecord:
        """
        Add a job to the queue.

        A job whose idempotency key (or job_id) was seen before is not added
        again; the existing record is returned instead.
        """
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got {delay}")

        with self._lock:
            existing_id = self._dedup_index.get(job.dedup_key)
            if existing_id is not None:
                existing = self._records[existing_id]
                logger.info(
                    "Duplicate job ignored",
                    extra={
                        "job_id": existing.job_id,
                        "idempotency_key": job.dedup_key,
                        "source_event": job.source_event,
                        "correlation_key": job.correlation_key,
                    },
                )
                return existing

            if job.job_id in self._records:
                raise ValueError(f"job_id already enqueued: {job.job_id}")

            now = self.now()
            record = JobRecord(job, run_at=now + timedelta(seconds=delay))
            record.updated_at = now
            self._records[job.job_id] = record
            self._dedup_index[job.dedup_key] = job.job_id
            self._delay_queue.push(record.to_delayed())

        logger.debug(
            "Job enqueued",
            extra={
                "job_id": job.job_id,
                "job_name": job.job_name,
                "correlation_key": job.correlation_key,
                "source_event": job.source_event,
            },
        )
        return record

    def cancel(self, correlation_key: str, reason: str = "") -> list[JobRecord]:
        """
        Cancel every scheduled job for a correlation key.

        Jobs already running are left to finish; terminal jobs are untouched.
        """
        with self._lock:
            now = self.now()
            cancelled = [
                record
                for record in self._records.values()
                if record.job.correlation_key == correlation_key
                and record.state in SCHEDULED_STATES
            ]
            self._delay_queue.remove(record.job_id for record in cancelled)
            for record in cancelled:
                record.transition(JobState.CANCELLED, now)
                record.last_error = reason or None

        by_event = Counter(record.job.source_event for record in cancelled)
        for source_event, count in by_event.items():
            metrics.record_cancelled(source_event, count)

        if cancelled:
            logger.info(
                "Cancelled scheduled jobs",
                extra={
                    "correlation_key": correlation_key,
                    "cancelled_count": len(cancelled),
                    "reason": reason or None,
                },
            )
        return cancelled

    # =========================================================================
    # Worker side
    # =========================================================================

    def claim_ready(self, limit: int | None = None) -> list[JobRecord]:
        """Move due jobs to PROCESSING and return them, earliest first."""
        claimed = []
        with self._lock:
            now = self.now()
            for entry in self._delay_queue.pop_ready(now, limit=limit):
                record = self._records.get(entry.job_id)
                if record is None or record.state not in SCHEDULED_STATES:
                    continue
                record.transition(JobState.PROCESSING, now)
                claimed.append(record)

        if claimed:
            logger.debug("Claimed ready jobs", extra={"jobs_claimed": len(claimed)})
        return claimed

    def complete(self, job_id: str, result: Any = None) -> JobRecord:
        with self._lock:
            record = self._get_record(job_id)
            record.transition(JobState.SUCCEEDED, self.now())
            record.result = result

        metrics.record_success(record.job.job_name)
        logger.info(
            "Job succeeded",
            extra={
                "job_id": job_id,
                "job_name": record.job.job_name,
                "retry_count": record.retry_count,
            },
        )
        return record

    def fail(self, job_id: str, error: BaseException) -> RetryDecision:
        """
        Record a handler failure and reschedule or dead-letter the job.

        A job only becomes DEAD_LETTERED once its record is in the sink. If
        the sink raises, the job is rescheduled after ``redelivery_delay``
        with its retry count unchanged and the sink's error propagates.

        Returns:
            The classifier's decision for this failure
        """
        with self._lock:
            record = self._get_record(job_id)
            retry_count = record.retry_count
            decision = self.classifier.classify_error(error, retry_count)
            now = self.now()

            retry_at = None
            dead_letter = None
            if isinstance(decision, Retry):
                record.transition(JobState.AWAITING_RETRY, now)
                self._note_failure(record, error)
                record.retry_count = retry_count + 1
                retry_at = calculate_retry_timestamp(now, decision.delay)
                record.run_at = retry_at
                self._delay_queue.push(record.to_delayed())
            else:
                ensure_transition(job_id, record.state, JobState.DEAD_LETTERED)
                dead_letter = DeadLetterRecord.from_failure(
                    record.job,
                    error,
                    reason=decision.reason.value,
                    attempts=retry_count + 1,
                    failed_at=now,
                )

        if dead_letter is not None:
            try:
                self.dead_letter_sink.publish(dead_letter)
            except Exception:
                self._hold_for_redelivery(record, error)
                raise
            with self._lock:
                record.transition(JobState.DEAD_LETTERED, self.now())
                self._note_failure(record, error)

        log_retry_decision(decision, record.job, retry_count, error, retry_at=retry_at)

        if isinstance(decision, Retry):
            metrics.record_retry(error.kind.value, record.job.source_event)
        elif isinstance(decision, Fail):
            metrics.record_dead_letter(
                decision.reason.value, record.failure_kind, record.job.source_event
            )

        return decision

    def _hold_for_redelivery(self, record: JobRecord, error: BaseException) -> None:
        with self._lock:
            now = self.now()
            record.transition(JobState.AWAITING_RETRY, now)
            self._note_failure(record, error)
            record.run_at = calculate_retry_timestamp(now, self.redelivery_delay)
            self._delay_queue.push(record.to_delayed())

        logger.error(
            "Dead-letter publish failed, job held for redelivery",
            extra={
                "job_id": record.job_id,
                "job_name": record.job.job_name,
                "correlation_key": record.job.correlation_key,
                "retry_count": record.retry_count,
                "retry_at": record.run_at.isoformat(),
            },
            exc_info=True,
        )

    @staticmethod
    def _note_failure(record: JobRecord, error: BaseException) -> None:
        if isinstance(error, RetryableFailure):
            record.failure_kind = error.kind.value
        record.last_error = truncate_error_message(error)

    # =========================================================================
    # Inspection
    # =========================================================================

    def get(self, job_id: str) -> JobRecord | None:
        with self._lock:
            return self._records.get(job_id)

    def jobs_for(self, correlation_key: str) -> list[JobRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.job.correlation_key == correlation_key]

    def stats(self) -> dict[str, int]:
        """Number of jobs per state, every state included."""
        with self._lock:
            counts = Counter(record.state for record in self._records.values())
        return {state.value: counts.get(state, 0) for state in JobState}

    @property
    def next_run_at(self) -> datetime | None:
        with self._lock:
            return self._delay_queue.next_scheduled_time

    def __len__(self) -> int:
        """Number of jobs not yet in a terminal state."""
        with self._lock:
            return sum(1 for record in self._records.values() if not is_terminal(record.state))

    # =========================================================================
    # Persistence
    # =========================================================================

    def persist(self) -> None:
        """Snapshot scheduled and running jobs for crash recovery."""
        with self._lock:
            now = self.now()
            in_flight = [
                record.to_delayed(scheduled_time=now)
                for record in self._records.values()
                if record.state == JobState.PROCESSING
            ]
            self._delay_queue.persist_to_disk(in_flight=in_flight)

    def restore(self) -> int:
        """Reload a snapshot written by persist(). Returns jobs restored."""
        with self._lock:
            restored = self._delay_queue.restore_from_disk(now=self.now())
            for entry in restored:
                job = WebhookJob.model_validate(entry.job)
                record = JobRecord(job, run_at=entry.scheduled_time, retry_count=entry.retry_count)
                self._records[job.job_id] = record
                self._dedup_index[job.dedup_key] = job.job_id
        return len(restored)

    def _get_record(self, job_id: str) -> JobRecord:
        record = self._records.get(job_id)
        if record is None:
            raise KeyError(f"Unknown job_id: {job_id}")
        return record


__all__ = ["JobQueue", "JobRecord", "utc_now"]
