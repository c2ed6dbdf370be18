"""
Async worker pool that runs due jobs through their handlers.

Each job runs inside its own log context (job_id, correlation_key,
source_event). Handler success goes to JobQueue.complete(), any exception
goes to JobQueue.fail(), which decides between retry and dead-letter. The
pool never retries on its own.
"""

import asyncio
import logging
import signal
import time

from core.errors.exceptions import RetryableFailure
from core.logging.context_managers import JobLogContext
from core.logging.setup import log_worker_startup
from core.logging.utilities import log_exception
from core.resilience.retry import RetryDecision
from core.utils.worker_id import generate_worker_id
from webhook_jobs.handlers import HandlerRegistry
from webhook_jobs.queue import JobQueue, JobRecord
from webhook_jobs.states import JobState

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class JobOutcome:
    """What happened to one job during a processing pass."""

    def __init__(
        self,
        job_id: str,
        job_name: str,
        state: JobState,
        decision: RetryDecision | None = None,
        error: str | None = None,
        duration_ms: float = 0.0,
    ):
        self.job_id = job_id
        self.job_name = job_name
        self.state = state
        self.decision = decision
        self.error = error
        self.duration_ms = duration_ms

    @property
    def succeeded(self) -> bool:
        return self.state == JobState.SUCCEEDED

    def __repr__(self) -> str:
        return f"JobOutcome(job_id={self.job_id!r}, state={self.state.value})"


class WorkerPool:
    """
    Runs claimed jobs concurrently, bounded by ``concurrency``.

    Args:
        queue: Source of jobs and owner of their state
        registry: Maps job names to handlers
        concurrency: Maximum handlers running at once
        worker_id: Identifier used in log context (generated if omitted)

    Usage:
        pool = WorkerPool(queue, registry, concurrency=4)
        await pool.run(poll_interval=1.0)   # until SIGTERM/SIGINT or stop()
    """

    def __init__(
        self,
        queue: JobQueue,
        registry: HandlerRegistry,
        concurrency: int = 4,
        worker_id: str | None = None,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self.queue = queue
        self.registry = registry
        self.concurrency = concurrency
        self.worker_id = worker_id or generate_worker_id()
        self._semaphore = asyncio.Semaphore(concurrency)
        self._shutdown_event = asyncio.Event()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def process_ready(self, limit: int | None = None) -> list[JobOutcome]:
        """Claim every due job (up to ``limit``) and run them to an outcome."""
        records = self.queue.claim_ready(limit=limit)
        if not records:
            return []
        return list(await asyncio.gather(*(self._run_job(record) for record in records)))

    async def _run_job(self, record: JobRecord) -> JobOutcome:
        job = record.job
        async with self._semaphore:
            with JobLogContext.for_job(job, worker_id=self.worker_id):
                start = time.perf_counter()
                try:
                    handler = self.registry.get(job.job_name)
                    result = await handler.handle(job)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    duration_ms = round((time.perf_counter() - start) * 1000, 2)
                    if not isinstance(e, RetryableFailure):
                        log_exception(
                            logger,
                            e,
                            "Handler raised non-retryable error",
                            job_id=job.job_id,
                            job_name=job.job_name,
                            duration_ms=duration_ms,
                        )
                    try:
                        decision = self.queue.fail(job.job_id, e)
                    except Exception as record_error:
                        logger.warning(
                            "Could not record job failure",
                            extra={"job_id": job.job_id, "error": str(record_error)},
                        )
                        decision = None
                    return JobOutcome(
                        job_id=job.job_id,
                        job_name=job.job_name,
                        state=self.queue.get(job.job_id).state,
                        decision=decision,
                        error=str(e),
                        duration_ms=duration_ms,
                    )

                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                self.queue.complete(job.job_id, result)
                return JobOutcome(
                    job_id=job.job_id,
                    job_name=job.job_name,
                    state=JobState.SUCCEEDED,
                    duration_ms=duration_ms,
                )

    async def run(self, poll_interval: float = 1.0, install_signal_handlers: bool = True) -> None:
        """
        Process jobs until stop() is called or a shutdown signal arrives.

        The queue is persisted on the way out so scheduled retries survive
        a restart.
        """
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {poll_interval}")

        log_worker_startup(
            logger,
            f"webhook job worker {self.worker_id}",
            concurrency=self.concurrency,
            extra_config={"Handlers": ", ".join(self.registry.job_names) or "none"},
        )

        self._shutdown_event.clear()
        self._running = True
        if install_signal_handlers:
            self._install_signal_handlers()

        try:
            while not self._shutdown_event.is_set():
                outcomes = await self.process_ready()
                if outcomes:
                    continue
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=poll_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            if install_signal_handlers:
                self._remove_signal_handlers()
            self.queue.persist()
            logger.info("Worker stopped", extra={"queue_size": len(self.queue)})

    def stop(self) -> None:
        """Ask run() to exit after the current pass."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    def _install_signal_handlers(self) -> None:
        # Unix uses the loop; Windows only has signal.signal()
        loop = asyncio.get_running_loop()
        try:
            for sig in SHUTDOWN_SIGNALS:
                loop.add_signal_handler(sig, self.stop)
        except NotImplementedError:
            def _handler(signum, frame):
                logger.info("Received signal %s, initiating shutdown", signum)
                loop.call_soon_threadsafe(self.stop)

            for sig in SHUTDOWN_SIGNALS:
                signal.signal(sig, _handler)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            for sig in SHUTDOWN_SIGNALS:
                loop.remove_signal_handler(sig)
        except NotImplementedError:
            signal.signal(signal.SIGTERM, signal.SIG_DFL)
            signal.signal(signal.SIGINT, signal.default_int_handler)


__all__ = ["JobOutcome", "WorkerPool"]
