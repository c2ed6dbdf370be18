"""Scoped log context and timed operations."""

import logging
import time
from typing import Any

from core.logging.context import get_log_context, set_log_context
from core.logging.utilities import log_exception, log_with_context


class JobLogContext:
    """
    Bind job fields to the log context for the duration of a block.

    Only the fields given a value are touched, and exactly those are put back
    on exit, so nested blocks unwind cleanly:

        with JobLogContext.for_job(job, worker_id=pool.worker_id):
            await handler.handle(job)
    """

    def __init__(
        self,
        worker_id: str | None = None,
        stage: str | None = None,
        job_id: str | None = None,
        correlation_key: str | None = None,
        source_event: str | None = None,
    ):
        bound = {
            "worker_id": worker_id,
            "stage": stage,
            "job_id": job_id,
            "correlation_key": correlation_key,
            "source_event": source_event,
        }
        self.fields = {name: value for name, value in bound.items() if value is not None}
        self._saved: dict[str, str] = {}

    @classmethod
    def for_job(cls, job: Any, worker_id: str | None = None, stage: str | None = None) -> "JobLogContext":
        return cls(
            worker_id=worker_id,
            stage=stage,
            job_id=job.job_id,
            correlation_key=job.correlation_key,
            source_event=job.source_event,
        )

    def __enter__(self) -> "JobLogContext":
        current = get_log_context()
        self._saved = {name: current[name] for name in self.fields}
        set_log_context(**self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        set_log_context(**self._saved)
        return False


class OperationContext:
    """
    Time a block and log how it ended.

    Completion is logged at ``level``, raised to INFO once the block runs past
    ``slow_threshold_ms``. A raised exception is logged as "<operation> failed"
    without traceback: WARNING for retryable errors, ERROR for the rest. The
    exception always propagates; the caller owns the traceback.
    """

    def __init__(
        self,
        logger: logging.Logger,
        operation: str,
        level: int = logging.DEBUG,
        slow_threshold_ms: float | None = 1000.0,
        **fields: Any,
    ):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.slow_threshold_ms = slow_threshold_ms
        self.fields = fields
        self.duration_ms: float | None = None
        self._started = 0.0

    def __enter__(self) -> "OperationContext":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = round((time.perf_counter() - self._started) * 1000, 2)
        fields = {"operation": self.operation, "duration_ms": self.duration_ms, **self.fields}

        if exc_val is None:
            log_with_context(self.logger, self._completion_level(), f"{self.operation} completed", **fields)
        elif isinstance(exc_val, Exception):
            retryable = getattr(exc_val, "is_retryable", False)
            log_exception(
                self.logger,
                exc_val,
                f"{self.operation} failed",
                level=logging.WARNING if retryable else logging.ERROR,
                include_traceback=False,
                **fields,
            )
        return False

    def _completion_level(self) -> int:
        if self.slow_threshold_ms is not None and self.duration_ms > self.slow_threshold_ms:
            return max(self.level, logging.INFO)
        return self.level

    def add_fields(self, **fields: Any) -> None:
        """Attach fields learned inside the block to the closing record."""
        self.fields.update(fields)
