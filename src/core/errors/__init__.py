"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory and FailureKind enums for classifying errors
- JobError hierarchy for typed exceptions
- RetryableFailure, the typed "retry this job later" signal
- Classification utilities for generic exceptions
"""

from core.errors.exceptions import (
    # Enums
    ErrorCategory,
    FailureKind,
    InvalidTransitionError,
    # Base classes
    JobError,
    MalformedFailureError,
    PermanentError,
    RetryableFailure,
    TransientError,
    UnknownJobError,
    # Classification utilities
    classify_exception,
    is_retryable_failure,
    is_transient_error,
    wrap_exception,
)

__all__ = [
    # Enums
    "ErrorCategory",
    "FailureKind",
    # Base classes
    "JobError",
    "TransientError",
    "PermanentError",
    # Specific errors
    "MalformedFailureError",
    "InvalidTransitionError",
    "UnknownJobError",
    "RetryableFailure",
    # Classification utilities
    "is_transient_error",
    "is_retryable_failure",
    "classify_exception",
    "wrap_exception",
]
