"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Dict, Optional

_worker_id: ContextVar[str] = ContextVar("worker_id", default="")
_stage_name: ContextVar[str] = ContextVar("stage_name", default="")
_job_id: ContextVar[str] = ContextVar("job_id", default="")
_correlation_key: ContextVar[str] = ContextVar("correlation_key", default="")
_source_event: ContextVar[str] = ContextVar("source_event", default="")

CONTEXT_FIELDS = ("worker_id", "stage", "job_id", "correlation_key", "source_event")


def set_log_context(
    worker_id: Optional[str] = None,
    stage: Optional[str] = None,
    job_id: Optional[str] = None,
    correlation_key: Optional[str] = None,
    source_event: Optional[str] = None,
) -> None:
    if worker_id is not None:
        _worker_id.set(worker_id)
    if stage is not None:
        _stage_name.set(stage)
    if job_id is not None:
        _job_id.set(job_id)
    if correlation_key is not None:
        _correlation_key.set(correlation_key)
    if source_event is not None:
        _source_event.set(source_event)


def get_log_context() -> Dict[str, str]:
    return {
        "worker_id": _worker_id.get(),
        "stage": _stage_name.get(),
        "job_id": _job_id.get(),
        "correlation_key": _correlation_key.get(),
        "source_event": _source_event.get(),
    }


def clear_log_context() -> None:
    _worker_id.set("")
    _stage_name.set("")
    _job_id.set("")
    _correlation_key.set("")
    _source_event.set("")
