"""
Resilience patterns module.

Components:
    - BackoffPolicy: Exponential backoff configuration per failure kind
    - RetryClassifier: Pure retry/dead-letter decision for failed jobs
    - Retry / Fail: Scheduling decisions returned by the classifier
"""

from .retry import (
    DEFAULT_BACKOFF,
    BackoffPolicy,
    Fail,
    FailReason,
    Retry,
    RetryClassifier,
    RetryDecision,
)

__all__ = [
    "BackoffPolicy",
    "DEFAULT_BACKOFF",
    "Fail",
    "FailReason",
    "Retry",
    "RetryClassifier",
    "RetryDecision",
]
