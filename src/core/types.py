"""
Core types used across modules.

This module provides the enums shared by the error hierarchy, the retry
classifier and the job queue so that every layer compares the same members.
"""

from enum import Enum


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that should retry with backoff
                   (e.g., entity not visible yet, upstream timeouts)
        PERMANENT: Non-retriable failures that won't succeed on retry
                   (e.g., malformed jobs, unknown handlers)
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class FailureKind(Enum):
    """
    Closed set of retryable failure kinds a job handler may signal.

    Kinds:
        ENTITY_NOT_FOUND_YET: The referenced record is expected to exist but is
                              not visible yet (replication or commit lag)
        OUT_OF_SEQUENCE: The webhook arrived before its predecessor was applied
        UPSTREAM_UNAVAILABLE: The ledger answered with a temporary unavailability
        LOCK_CONFLICT: The record is locked by a concurrent writer
    """

    ENTITY_NOT_FOUND_YET = "entity_not_found_yet"
    OUT_OF_SEQUENCE = "out_of_sequence"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    LOCK_CONFLICT = "lock_conflict"


__all__ = [
    "ErrorCategory",
    "FailureKind",
]
