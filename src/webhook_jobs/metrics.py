"""
Prometheus metrics for webhook job monitoring.

Focused on the retry contract:
- Retries scheduled, by failure kind and source event
- Jobs dead-lettered, by reason
- Jobs succeeded and cancelled

Labels come from discrete failure fields, never from message text. Metrics are
registered on a dedicated registry so tests and embedding processes do not
collide with the global default registry.
"""

import logging

from prometheus_client import CollectorRegistry, Counter, generate_latest

logger = logging.getLogger(__name__)

REGISTRY = CollectorRegistry(auto_describe=True)

# Value used for labels that do not apply (e.g. failure_kind of a generic error)
NO_LABEL = "none"


# =============================================================================
# Job Outcome Metrics
# =============================================================================

retries_total = Counter(
    "webhook_jobs_retries_total",
    "Total retries scheduled for webhook jobs",
    labelnames=["failure_kind", "source_event"],
    registry=REGISTRY,
)

dead_lettered_total = Counter(
    "webhook_jobs_dead_lettered_total",
    "Total webhook jobs routed to dead-letter handling",
    labelnames=["reason", "failure_kind", "source_event"],
    registry=REGISTRY,
)

succeeded_total = Counter(
    "webhook_jobs_succeeded_total",
    "Total webhook jobs completed successfully",
    labelnames=["job_name"],
    registry=REGISTRY,
)

cancelled_total = Counter(
    "webhook_jobs_cancelled_total",
    "Total webhook jobs cancelled before running",
    labelnames=["source_event"],
    registry=REGISTRY,
)


# =============================================================================
# Helper Functions
# =============================================================================


def record_retry(failure_kind: str, source_event: str) -> None:
    retries_total.labels(failure_kind=failure_kind, source_event=source_event).inc()


def record_dead_letter(reason: str, failure_kind: str | None, source_event: str) -> None:
    dead_lettered_total.labels(
        reason=reason,
        failure_kind=failure_kind or NO_LABEL,
        source_event=source_event,
    ).inc()


def record_success(job_name: str) -> None:
    succeeded_total.labels(job_name=job_name).inc()


def record_cancelled(source_event: str, count: int = 1) -> None:
    if count > 0:
        cancelled_total.labels(source_event=source_event).inc(count)


def get_sample_value(name: str, labels: dict[str, str]) -> float:
    """Current value of a sample, 0.0 if the label set was never recorded."""
    value = REGISTRY.get_sample_value(name, labels)
    return value if value is not None else 0.0


def get_metrics_text() -> bytes:
    """Exposition-format snapshot of every job metric."""
    return generate_latest(REGISTRY)


__all__ = [
    "REGISTRY",
    "cancelled_total",
    "dead_lettered_total",
    "get_metrics_text",
    "get_sample_value",
    "record_cancelled",
    "record_dead_letter",
    "record_retry",
    "record_success",
    "retries_total",
    "succeeded_total",
]
