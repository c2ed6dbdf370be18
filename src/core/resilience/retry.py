"""
Retry classification with exception-aware backoff.

Turns a job failure into a scheduling decision for the job queue:
- RetryableFailure under its attempt budget: retry with exponential backoff
- RetryableFailure over its attempt budget: fail as exhausted
- Any other exception: fail as non-retryable

Classification is a pure function of (failure kind, attempt count) and the
policies handed to the classifier at construction. It never sleeps, never
logs and keeps no state, so any number of workers may share one instance.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from core.errors.exceptions import RetryableFailure
from core.types import FailureKind


class FailReason(Enum):
    """Why a job is routed to dead-letter handling."""

    EXHAUSTED = "exhausted"
    NON_RETRYABLE = "non_retryable"


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff configuration for one failure kind."""

    base_delay: float = 2.0
    multiplier: float = 2.0
    max_delay: float = 60.0
    max_attempts: int = 5

    def __post_init__(self):
        """Ensure proper types from YAML/env vars, then validate."""
        object.__setattr__(self, "base_delay", float(self.base_delay))
        object.__setattr__(self, "multiplier", float(self.multiplier))
        object.__setattr__(self, "max_delay", float(self.max_delay))
        object.__setattr__(self, "max_attempts", int(self.max_attempts))

        if self.base_delay <= 0:
            raise ValueError(f"base_delay must be > 0, got {self.base_delay}")
        if self.multiplier <= 1:
            raise ValueError(f"multiplier must be > 1, got {self.multiplier}")
        if self.max_delay < self.base_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= base_delay ({self.base_delay})"
            )
        if self.max_attempts < 0:
            raise ValueError(f"max_attempts must be >= 0, got {self.max_attempts}")

    def delay_for(self, attempt_count: int) -> float:
        """
        Calculate the backoff delay before the next run.

        Args:
            attempt_count: 0-indexed number of retries already scheduled

        Returns:
            Delay in seconds, capped at max_delay
        """
        _check_attempt_count(attempt_count)
        try:
            delay = self.base_delay * (self.multiplier**attempt_count)
        except OverflowError:
            return self.max_delay
        return min(delay, self.max_delay)

    @classmethod
    def from_dict(cls, data: Mapping | None) -> "BackoffPolicy":
        data = dict(data or {})
        unknown = set(data) - {"base_delay", "multiplier", "max_delay", "max_attempts"}
        if unknown:
            raise ValueError(f"Unknown backoff settings: {sorted(unknown)}")
        return cls(**data)


@dataclass(frozen=True)
class Retry:
    """Reschedule the job after ``delay`` seconds."""

    delay: float
    max_attempts: int
    attempt: int  # 1-based number of the retry being scheduled


@dataclass(frozen=True)
class Fail:
    """Route the job to dead-letter handling."""

    reason: FailReason
    detail: str = ""


RetryDecision = Union[Retry, Fail]


def _check_attempt_count(attempt_count: int) -> None:
    if isinstance(attempt_count, bool) or not isinstance(attempt_count, int):
        raise ValueError(f"attempt_count must be an int, got {attempt_count!r}")
    if attempt_count < 0:
        raise ValueError(f"attempt_count must be >= 0, got {attempt_count}")


DEFAULT_BACKOFF = BackoffPolicy()


@dataclass(frozen=True)
class RetryClassifier:
    """
    Decide whether a failed job is retried or dead-lettered.

    Args:
        default_policy: Backoff applied to every kind without an override
        policies: Per-kind overrides

    Usage:
        classifier = RetryClassifier(
            policies={FailureKind.OUT_OF_SEQUENCE: BackoffPolicy(base_delay=5)}
        )
        decision = classifier.classify(failure, attempt_count=job.retry_count)
    """

    default_policy: BackoffPolicy = DEFAULT_BACKOFF
    policies: Mapping[FailureKind, BackoffPolicy] = field(default_factory=dict)

    def __post_init__(self):
        for kind in self.policies:
            if not isinstance(kind, FailureKind):
                raise ValueError(f"Policy key must be a FailureKind, got {kind!r}")
        # Snapshot so later mutation of the caller's dict cannot change decisions
        object.__setattr__(self, "policies", dict(self.policies))

    def policy_for(self, kind: FailureKind) -> BackoffPolicy:
        return self.policies.get(kind, self.default_policy)

    def classify(self, failure: RetryableFailure, attempt_count: int) -> RetryDecision:
        """
        Classify a retryable failure.

        Args:
            failure: The failure raised by the job handler
            attempt_count: 0-indexed number of retries already scheduled for
                the job (0 on its first failure)

        Returns:
            Retry while attempt_count < max_attempts, Fail(EXHAUSTED) after
        """
        _check_attempt_count(attempt_count)
        policy = self.policy_for(failure.kind)

        if attempt_count >= policy.max_attempts:
            return Fail(
                reason=FailReason.EXHAUSTED,
                detail=f"{failure.kind.value} exhausted after {attempt_count} retries",
            )

        return Retry(
            delay=policy.delay_for(attempt_count),
            max_attempts=policy.max_attempts,
            attempt=attempt_count + 1,
        )

    def classify_error(self, error: BaseException, attempt_count: int) -> RetryDecision:
        """
        Classify any exception raised by a job handler.

        Only RetryableFailure is retried. Generic errors, including lookup
        errors such as network failures, are not retried by this mechanism.
        """
        if isinstance(error, RetryableFailure):
            return self.classify(error, attempt_count)

        _check_attempt_count(attempt_count)
        return Fail(
            reason=FailReason.NON_RETRYABLE,
            detail=f"{type(error).__name__}: {str(error)[:200]}",
        )

    def schedule(self, kind: FailureKind) -> list[float]:
        """All retry delays a job of this kind can go through, in order."""
        policy = self.policy_for(kind)
        return [policy.delay_for(n) for n in range(policy.max_attempts)]


__all__ = [
    "BackoffPolicy",
    "DEFAULT_BACKOFF",
    "Fail",
    "FailReason",
    "Retry",
    "RetryClassifier",
    "RetryDecision",
]
