"""Wiring for running a webhook job worker from configuration.

Builds the queue, handler registry and worker pool the same way for every
entry point:
- Logging configured from the logging section
- Classifier and persistence from the retry and queue sections
- Scheduled retries restored from the previous run
"""

import logging
from pathlib import Path

from config.config import WebhookJobsConfig, get_config
from core.logging.setup import setup_logging
from webhook_jobs.dlq import DeadLetterSink
from webhook_jobs.handlers import HandlerRegistry, TransactionLedger, TransactionWebhookHandler
from webhook_jobs.queue import Clock, JobQueue
from webhook_jobs.worker import WorkerPool

logger = logging.getLogger(__name__)


def configure_logging(config: WebhookJobsConfig, worker_id: str | None = None) -> logging.Logger:
    level = logging.getLevelName(config.log_level.upper())
    return setup_logging(
        name="webhook_jobs",
        log_dir=Path(config.log_dir),
        json_format=config.json_format,
        console_level=level,
        worker_id=worker_id,
    )


def build_worker_pool(
    ledger: TransactionLedger,
    config: WebhookJobsConfig | None = None,
    dead_letter_sink: DeadLetterSink | None = None,
    clock: Clock | None = None,
    restore: bool = True,
) -> WorkerPool:
    """
    Build a worker pool with the transaction webhook handler registered.

    Args:
        ledger: Where transactions are looked up and events applied
        config: Configuration (default: get_config())
        dead_letter_sink: Override for the configured JSON lines sink
        clock: Injectable clock for the queue
        restore: Reload jobs persisted by a previous run

    Returns:
        WorkerPool ready for run()
    """
    config = config or get_config()
    queue = JobQueue.from_config(config, dead_letter_sink=dead_letter_sink, clock=clock)
    if restore:
        restored = queue.restore()
        if restored:
            logger.info("Restored scheduled jobs", extra={"restored_count": restored})

    registry = HandlerRegistry()
    registry.register(TransactionWebhookHandler(ledger))
    return WorkerPool(queue, registry, concurrency=config.worker_concurrency)


async def run_worker(
    ledger: TransactionLedger,
    config: WebhookJobsConfig | None = None,
) -> None:
    """Configure logging, build the pool and process jobs until shutdown."""
    config = config or get_config()
    pool = build_worker_pool(ledger, config=config)
    configure_logging(config, worker_id=pool.worker_id)
    await pool.run(poll_interval=config.poll_interval_seconds)


__all__ = ["build_worker_pool", "configure_logging", "run_worker"]
