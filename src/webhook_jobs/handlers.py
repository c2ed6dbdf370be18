"""Base handler classes, registry and the transaction webhook handler."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Protocol

from core.errors.exceptions import RetryableFailure, UnknownJobError
from core.logging.context_managers import OperationContext
from core.types import FailureKind
from webhook_jobs.schemas import WebhookJob
from webhook_jobs.sequence import check_sequence

logger = logging.getLogger(__name__)

TRANSACTION_WEBHOOK_JOB = "transaction.webhook"


class HandlerResult:
    """Result from handling a single job."""

    def __init__(
        self,
        handler_name: str,
        applied: bool,
        skipped_reason: str | None = None,
        data: dict[str, Any] | None = None,
    ):
        self.handler_name = handler_name
        self.applied = applied
        self.skipped_reason = skipped_reason
        self.data = data or {}

    def __repr__(self) -> str:
        return (
            f"HandlerResult(handler_name={self.handler_name!r}, applied={self.applied}, "
            f"skipped_reason={self.skipped_reason!r})"
        )


class JobHandler(ABC):
    """Base class for webhook job handlers.

    A handler raises RetryableFailure when the job should run again later.
    Any other exception is treated as permanent by the queue. Handlers may
    run more than once for the same job, so they must be idempotent per
    correlation key.
    """

    job_names: list[str] = []

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    async def handle(self, job: WebhookJob) -> Any:
        pass


class HandlerRegistry:
    """Routes job names to handlers."""

    def __init__(self):
        self._handlers: dict[str, JobHandler] = {}

    def register(self, handler: JobHandler) -> None:
        if not handler.job_names:
            raise ValueError(f"{handler.name} declares no job_names")
        for job_name in handler.job_names:
            existing = self._handlers.get(job_name)
            if existing is not None and existing is not handler:
                raise ValueError(
                    f"Job {job_name} already handled by {existing.name}, "
                    f"cannot register {handler.name}"
                )
        for job_name in handler.job_names:
            self._handlers[job_name] = handler

    def get(self, job_name: str) -> JobHandler:
        handler = self._handlers.get(job_name)
        if handler is None:
            raise UnknownJobError(job_name)
        return handler

    def __contains__(self, job_name: str) -> bool:
        return job_name in self._handlers

    @property
    def job_names(self) -> list[str]:
        return sorted(self._handlers)


class TransactionLedger(Protocol):
    """Read/write access to the transactions webhooks refer to."""

    async def get_transaction(self, correlation_key: str) -> Any | None: ...

    async def last_event(self, correlation_key: str) -> str | None: ...

    async def apply_event(
        self, correlation_key: str, event: str, payload: dict[str, Any]
    ) -> None: ...


class InMemoryTransactionLedger:
    """Dict-backed TransactionLedger for tests and local runs."""

    def __init__(self):
        self._transactions: dict[str, dict[str, Any]] = {}
        self._events: dict[str, list[str]] = {}
        self._lock = asyncio.Lock()

    def add_transaction(self, correlation_key: str, **fields: Any) -> None:
        self._transactions[correlation_key] = {"correlation_key": correlation_key, **fields}

    def events_for(self, correlation_key: str) -> list[str]:
        return list(self._events.get(correlation_key, []))

    async def get_transaction(self, correlation_key: str) -> dict[str, Any] | None:
        return self._transactions.get(correlation_key)

    async def last_event(self, correlation_key: str) -> str | None:
        events = self._events.get(correlation_key)
        return events[-1] if events else None

    async def apply_event(
        self, correlation_key: str, event: str, payload: dict[str, Any]
    ) -> None:
        async with self._lock:
            self._events.setdefault(correlation_key, []).append(event)
            self._transactions[correlation_key].update(payload)


class TransactionWebhookHandler(JobHandler):
    """
    Applies a webhook event to the transaction it refers to.

    The ledger may not show a transaction yet when its webhook arrives
    (replication or commit lag). That case, and an event that arrives ahead
    of its predecessor, raise RetryableFailure so the queue retries with
    backoff. Errors raised by the ledger itself propagate unchanged and are
    not retried.
    """

    job_names = [TRANSACTION_WEBHOOK_JOB]

    def __init__(
        self,
        ledger: TransactionLedger,
        entity: str = "Transaction",
        job_names: list[str] | None = None,
    ):
        self.ledger = ledger
        self.entity = entity
        if job_names is not None:
            self.job_names = list(job_names)

    async def handle(self, job: WebhookJob) -> HandlerResult:
        key = job.correlation_key
        event = job.source_event

        transaction = await self.ledger.get_transaction(key)
        if transaction is None:
            logger.warning(
                "%s not found, will retry",
                self.entity,
                extra={"job_id": job.job_id, "correlation_key": key, "source_event": event},
            )
            raise RetryableFailure(
                FailureKind.ENTITY_NOT_FOUND_YET, key, event, entity=self.entity
            )

        last_event = await self.ledger.last_event(key)
        if last_event == event:
            logger.info(
                "Event already applied, skipping",
                extra={"job_id": job.job_id, "correlation_key": key, "source_event": event},
            )
            return HandlerResult(self.name, applied=False, skipped_reason="already_applied")

        check = check_sequence(last_event, event)
        if not check.allowed:
            logger.warning(
                "Out of sequence, will retry",
                extra={
                    "job_id": job.job_id,
                    "correlation_key": key,
                    "source_event": event,
                    "reason": check.reason,
                },
            )
            raise RetryableFailure(
                FailureKind.OUT_OF_SEQUENCE,
                key,
                event,
                entity=self.entity,
                reason=check.reason or "Unknown reason",
            )

        with OperationContext(logger, "apply_event", correlation_key=key, source_event=event):
            await self.ledger.apply_event(key, event, job.payload)
        logger.info(
            "Webhook event applied",
            extra={"job_id": job.job_id, "correlation_key": key, "source_event": event},
        )
        return HandlerResult(self.name, applied=True)


__all__ = [
    "HandlerRegistry",
    "HandlerResult",
    "InMemoryTransactionLedger",
    "JobHandler",
    "TRANSACTION_WEBHOOK_JOB",
    "TransactionLedger",
    "TransactionWebhookHandler",
]
