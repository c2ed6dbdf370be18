"""
Tests for exception hierarchy, RetryableFailure and error classification.
"""

import copy
import pickle

import pytest

from core.errors.exceptions import (
    ErrorCategory,
    FailureKind,
    InvalidTransitionError,
    JobError,
    MalformedFailureError,
    PermanentError,
    RetryableFailure,
    TransientError,
    UnknownJobError,
    classify_exception,
    is_retryable_failure,
    is_transient_error,
    wrap_exception,
)


class TestJobError:
    """Test base JobError class."""

    def test_basic_creation(self):
        """Can create with just message."""
        err = JobError("something failed")
        assert str(err) == "something failed"
        assert err.message == "something failed"
        assert err.cause is None
        assert err.context == {}

    def test_with_cause(self):
        """Cause is included in string representation."""
        cause = ValueError("root cause")
        err = JobError("wrapper error", cause=cause)
        assert err.cause is cause
        assert "Caused by: root cause" in str(err)

    def test_with_context(self):
        err = JobError("failed", context={"job_id": "abc"})
        assert err.context == {"job_id": "abc"}

    def test_default_category_is_unknown(self):
        assert JobError("test").category == ErrorCategory.UNKNOWN
        assert JobError("test").is_retryable is False


class TestCategoryBases:
    def test_transient_is_retryable(self):
        assert TransientError("x").category == ErrorCategory.TRANSIENT
        assert TransientError("x").is_retryable is True

    def test_permanent_is_not_retryable(self):
        assert PermanentError("x").category == ErrorCategory.PERMANENT
        assert PermanentError("x").is_retryable is False

    def test_malformed_failure_is_permanent(self):
        assert issubclass(MalformedFailureError, PermanentError)

    def test_invalid_transition_carries_states(self):
        err = InvalidTransitionError("job-1", "succeeded", "processing")
        assert "succeeded -> processing" in str(err)
        assert err.context == {
            "job_id": "job-1",
            "from_state": "succeeded",
            "to_state": "processing",
        }

    def test_unknown_job_names_job(self):
        err = UnknownJobError("refund.webhook")
        assert str(err) == "No handler registered for job: refund.webhook"
        assert err.job_name == "refund.webhook"
        assert err.category == ErrorCategory.PERMANENT


class TestRetryableFailureConstruction:
    """RetryableFailure is validated at construction."""

    def test_entity_not_found_message(self):
        failure = RetryableFailure(FailureKind.ENTITY_NOT_FOUND_YET, "TX-001", "payment.confirmed")
        assert failure.message == (
            "Transaction not found for TX-001 (Event: payment.confirmed). Will retry."
        )
        assert str(failure) == failure.message

    def test_custom_entity(self):
        failure = RetryableFailure(
            FailureKind.ENTITY_NOT_FOUND_YET, "AUTH-9", "PIX_CASH_IN_WAS_CLEARED", entity="PixCashIn"
        )
        assert failure.message.startswith("PixCashIn not found for AUTH-9")

    def test_out_of_sequence_message_includes_reason(self):
        failure = RetryableFailure(
            FailureKind.OUT_OF_SEQUENCE,
            "TX-001",
            "PIX_CASH_IN_WAS_CLEARED",
            reason="Event PIX_CASH_IN_WAS_CLEARED requires a previous state",
        )
        assert failure.message == (
            "Webhook out of sequence for TX-001 (Event: PIX_CASH_IN_WAS_CLEARED). "
            "Reason: Event PIX_CASH_IN_WAS_CLEARED requires a previous state. Will retry."
        )

    def test_kind_accepted_by_value(self):
        failure = RetryableFailure("lock_conflict", "TX-001", "payment.confirmed")
        assert failure.kind is FailureKind.LOCK_CONFLICT
        assert "locked for TX-001" in failure.message

    def test_upstream_unavailable_message(self):
        failure = RetryableFailure(FailureKind.UPSTREAM_UNAVAILABLE, "TX-001", "payment.confirmed")
        assert failure.message == (
            "Transaction lookup unavailable for TX-001 (Event: payment.confirmed). Will retry."
        )

    @pytest.mark.parametrize("bad_key", ["", "   ", None, 42])
    def test_rejects_bad_correlation_key(self, bad_key):
        with pytest.raises(MalformedFailureError, match="correlation_key"):
            RetryableFailure(FailureKind.ENTITY_NOT_FOUND_YET, bad_key, "payment.confirmed")

    def test_rejects_blank_source_event(self):
        with pytest.raises(MalformedFailureError, match="source_event"):
            RetryableFailure(FailureKind.ENTITY_NOT_FOUND_YET, "TX-001", "  ")

    def test_rejects_blank_entity(self):
        with pytest.raises(MalformedFailureError, match="entity"):
            RetryableFailure(FailureKind.ENTITY_NOT_FOUND_YET, "TX-001", "e", entity="")

    def test_rejects_unknown_kind(self):
        with pytest.raises(MalformedFailureError, match="Unknown failure kind"):
            RetryableFailure("not_a_kind", "TX-001", "payment.confirmed")

    def test_out_of_sequence_requires_reason(self):
        with pytest.raises(MalformedFailureError, match="reason"):
            RetryableFailure(FailureKind.OUT_OF_SEQUENCE, "TX-001", "payment.confirmed")

    def test_correlation_key_kept_verbatim(self):
        """Keys are validated, not normalised."""
        failure = RetryableFailure(FailureKind.ENTITY_NOT_FOUND_YET, " TX-001", "e")
        assert failure.correlation_key == " TX-001"

    def test_malformed_error_is_not_retryable_failure(self):
        with pytest.raises(MalformedFailureError) as exc_info:
            RetryableFailure(FailureKind.ENTITY_NOT_FOUND_YET, "", "e")
        assert not is_retryable_failure(exc_info.value)


class TestRetryableFailureValue:
    """RetryableFailure behaves as an immutable value."""

    @pytest.fixture
    def failure(self):
        return RetryableFailure(FailureKind.ENTITY_NOT_FOUND_YET, "TX-001", "payment.confirmed")

    @pytest.mark.parametrize(
        "field", ["kind", "correlation_key", "source_event", "entity", "reason", "message"]
    )
    def test_fields_are_read_only(self, failure, field):
        with pytest.raises(AttributeError):
            setattr(failure, field, "changed")

    def test_is_transient(self, failure):
        assert isinstance(failure, TransientError)
        assert failure.category == ErrorCategory.TRANSIENT
        assert failure.is_retryable is True
        assert is_retryable_failure(failure)

    def test_carries_no_attempt_counter(self, failure):
        assert not hasattr(failure, "attempt_count")
        assert not hasattr(failure, "retry_count")

    def test_equality_by_fields(self, failure):
        same = RetryableFailure(FailureKind.ENTITY_NOT_FOUND_YET, "TX-001", "payment.confirmed")
        other = RetryableFailure(FailureKind.ENTITY_NOT_FOUND_YET, "TX-002", "payment.confirmed")
        assert failure == same
        assert hash(failure) == hash(same)
        assert failure != other

    def test_pickle_preserves_fields(self):
        failure = RetryableFailure(
            FailureKind.OUT_OF_SEQUENCE, "TX-001", "payment.confirmed", reason="too early"
        )
        restored = pickle.loads(pickle.dumps(failure))
        assert restored == failure
        assert restored.reason == "too early"
        assert restored.message == failure.message

    def test_deepcopy(self, failure):
        assert copy.deepcopy(failure) == failure

    def test_log_fields(self, failure):
        assert failure.log_fields() == {
            "failure_kind": "entity_not_found_yet",
            "correlation_key": "TX-001",
            "source_event": "payment.confirmed",
            "entity": "Transaction",
            "error_message": failure.message,
        }

    def test_log_fields_include_reason(self):
        failure = RetryableFailure(
            FailureKind.OUT_OF_SEQUENCE, "TX-001", "payment.confirmed", reason="too early"
        )
        assert failure.log_fields()["failure_reason"] == "too early"

    def test_context_mirrors_log_fields(self, failure):
        assert failure.context == failure.log_fields()
        assert failure.cause is None


class TestClassifyException:
    """Test classify_exception for generic errors."""

    def test_job_errors_keep_category(self):
        assert classify_exception(TransientError("x")) == ErrorCategory.TRANSIENT
        assert classify_exception(PermanentError("x")) == ErrorCategory.PERMANENT

    def test_retryable_failure_is_transient(self):
        failure = RetryableFailure(FailureKind.ENTITY_NOT_FOUND_YET, "TX-001", "e")
        assert classify_exception(failure) == ErrorCategory.TRANSIENT

    def test_value_errors_are_permanent(self):
        assert classify_exception(ValueError("bad")) == ErrorCategory.PERMANENT
        assert classify_exception(KeyError("k")) == ErrorCategory.PERMANENT

    def test_timeout_type_is_transient(self):
        assert classify_exception(TimeoutError("slow")) == ErrorCategory.TRANSIENT
        assert classify_exception(ConnectionResetError("reset")) == ErrorCategory.TRANSIENT

    def test_generic_not_found_is_permanent(self):
        """A generic "not found" must never look like a not-found-yet retry."""
        assert classify_exception(RuntimeError("row not found")) == ErrorCategory.PERMANENT

    def test_transient_marker_in_message(self):
        assert classify_exception(RuntimeError("HTTP 503 from ledger")) == ErrorCategory.TRANSIENT

    def test_unknown(self):
        assert classify_exception(RuntimeError("boom")) == ErrorCategory.UNKNOWN

    def test_is_transient_error(self):
        assert is_transient_error(TimeoutError()) is True
        assert is_transient_error(ValueError()) is False


class TestWrapException:
    def test_retryable_failure_returned_as_is(self):
        failure = RetryableFailure(FailureKind.ENTITY_NOT_FOUND_YET, "TX-001", "e")
        assert wrap_exception(failure) is failure

    def test_job_error_gains_context(self):
        err = PermanentError("bad", context={"a": 1})
        wrapped = wrap_exception(err, context={"b": 2})
        assert wrapped is err
        assert err.context == {"a": 1, "b": 2}

    def test_wraps_by_category(self):
        wrapped = wrap_exception(TimeoutError("slow"), context={"job_id": "j1"})
        assert isinstance(wrapped, TransientError)
        assert wrapped.context == {"job_id": "j1", "error_type": "TimeoutError"}

        wrapped = wrap_exception(ValueError("bad"))
        assert isinstance(wrapped, PermanentError)

        wrapped = wrap_exception(RuntimeError("boom"))
        assert type(wrapped) is JobError
        assert isinstance(wrapped.cause, RuntimeError)
