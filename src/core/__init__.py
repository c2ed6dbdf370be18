"""
Core library: reusable, infrastructure-agnostic components.

Modules:
    errors      - Exception hierarchy and RetryableFailure signal
    resilience  - Backoff policies and retry classification
    logging     - Structured JSON logging with job context
    utils       - Worker id generation

Design Principles:
    - No dependencies on a specific queue or storage backend
    - All modules are independently testable
"""

from .types import ErrorCategory, FailureKind

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
    "FailureKind",
]
