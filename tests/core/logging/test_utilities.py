"""Tests for logging utility functions."""

import logging
from unittest.mock import MagicMock

from core.errors.exceptions import FailureKind, PermanentError, RetryableFailure
from core.logging.utilities import (
    _RESERVED_LOG_KEYS,
    exception_fields,
    log_exception,
    log_with_context,
    safe_extra,
)


class TestSafeExtra:

    def test_drops_record_attributes(self):
        assert safe_extra({"name": "x", "lineno": 3, "job_id": "job-1"}) == {"job_id": "job-1"}

    def test_reserved_keys_cover_formatted_fields(self):
        assert {"message", "asctime", "msg", "exc_info"} <= _RESERVED_LOG_KEYS


class TestExceptionFields:

    def test_plain_exception(self):
        assert exception_fields(ValueError("bad payload")) == {
            "error_message": "bad payload",
            "error_type": "ValueError",
        }

    def test_job_error_category(self):
        assert exception_fields(PermanentError("broken"))["error_category"] == "permanent"

    def test_retryable_failure_fields(self):
        failure = RetryableFailure(
            FailureKind.OUT_OF_SEQUENCE, "TX-001", "payment.settled", reason="too early"
        )
        fields = exception_fields(failure)
        assert fields["failure_kind"] == "out_of_sequence"
        assert fields["correlation_key"] == "TX-001"
        assert fields["source_event"] == "payment.settled"
        assert fields["failure_reason"] == "too early"
        assert fields["error_category"] == "transient"

    def test_truncates_long_messages(self):
        message = exception_fields(RuntimeError("x" * 600))["error_message"]
        assert message == "x" * 497 + "..."
        assert len(message) == 500

    def test_custom_max_length(self):
        assert exception_fields(RuntimeError("abcdefghij"), max_length=8)["error_message"] == "abcde..."


class TestLogWithContext:

    def test_logs_message_at_given_level(self):
        logger = MagicMock()
        log_with_context(logger, logging.INFO, "test message")

        logger.log.assert_called_once_with(
            logging.INFO, "test message", exc_info=None, extra={}
        )

    def test_passes_extra_fields(self):
        logger = MagicMock()
        log_with_context(logger, logging.WARNING, "slow job", job_id="job-1", duration_ms=500)

        logger.log.assert_called_once_with(
            logging.WARNING, "slow job",
            exc_info=None,
            extra={"job_id": "job-1", "duration_ms": 500},
        )

    def test_handles_exc_info_separately(self):
        logger = MagicMock()
        log_with_context(logger, logging.ERROR, "failed", exc_info=True, job_id="job-2")

        logger.log.assert_called_once_with(
            logging.ERROR, "failed",
            exc_info=True,
            extra={"job_id": "job-2"},
        )

    def test_filters_reserved_keys(self):
        logger = MagicMock()
        log_with_context(
            logger, logging.INFO, "test",
            module="x", threadName="y", message="z", custom_field="kept",
        )

        _, kwargs = logger.log.call_args
        assert kwargs["extra"] == {"custom_field": "kept"}


class TestLogException:

    def test_includes_traceback_by_default(self):
        logger = MagicMock()
        exc = ValueError("bad payload")
        log_exception(logger, exc, "Job failed", job_id="job-1")

        args, kwargs = logger.log.call_args
        assert args == (logging.ERROR, "Job failed")
        assert kwargs["exc_info"] is exc
        assert kwargs["extra"] == {
            "job_id": "job-1",
            "error_message": "bad payload",
            "error_type": "ValueError",
        }

    def test_without_traceback(self):
        logger = MagicMock()
        log_exception(logger, ValueError("x"), "Job failed", include_traceback=False)

        _, kwargs = logger.log.call_args
        assert kwargs["exc_info"] is None

    def test_caller_fields_win(self):
        logger = MagicMock()
        log_exception(logger, PermanentError("broken"), "Job failed", error_category="custom")

        _, kwargs = logger.log.call_args
        assert kwargs["extra"]["error_category"] == "custom"

    def test_failure_fields_at_given_level(self):
        logger = MagicMock()
        failure = RetryableFailure(FailureKind.ENTITY_NOT_FOUND_YET, "TX-001", "payment.confirmed")
        log_exception(logger, failure, "Retry scheduled", level=logging.WARNING)

        args, kwargs = logger.log.call_args
        assert args[0] == logging.WARNING
        assert kwargs["extra"]["failure_kind"] == "entity_not_found_yet"
        assert kwargs["extra"]["entity"] == "Transaction"
