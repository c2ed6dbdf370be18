"""Job lifecycle states and allowed transitions."""

from enum import Enum

from core.errors.exceptions import InvalidTransitionError


class JobState(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    AWAITING_RETRY = "awaiting_retry"
    DEAD_LETTERED = "dead_lettered"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {JobState.SUCCEEDED, JobState.DEAD_LETTERED, JobState.CANCELLED}
)

# States a job may still be claimed or cancelled from
SCHEDULED_STATES = frozenset({JobState.PENDING, JobState.AWAITING_RETRY})

ALLOWED_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.PENDING: frozenset({JobState.PROCESSING, JobState.CANCELLED}),
    JobState.PROCESSING: frozenset(
        {JobState.SUCCEEDED, JobState.AWAITING_RETRY, JobState.DEAD_LETTERED}
    ),
    JobState.AWAITING_RETRY: frozenset({JobState.PROCESSING, JobState.CANCELLED}),
    JobState.SUCCEEDED: frozenset(),
    JobState.DEAD_LETTERED: frozenset(),
    JobState.CANCELLED: frozenset(),
}


def is_terminal(state: JobState) -> bool:
    return state in TERMINAL_STATES


def can_transition(current: JobState, target: JobState) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(job_id: str, current: JobState, target: JobState) -> None:
    """Raise InvalidTransitionError unless current -> target is allowed."""
    if not can_transition(current, target):
        raise InvalidTransitionError(job_id, current, target)


__all__ = [
    "ALLOWED_TRANSITIONS",
    "JobState",
    "SCHEDULED_STATES",
    "TERMINAL_STATES",
    "can_transition",
    "ensure_transition",
    "is_terminal",
]
