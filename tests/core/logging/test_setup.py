"""Tests for logging setup and configuration."""

import logging
from pathlib import Path
from unittest.mock import MagicMock, call

import pytest

from core.logging.context import get_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter
from core.logging.setup import (
    NOISY_LOGGERS,
    ArchivingTimedRotatingFileHandler,
    get_log_file_path,
    get_logger,
    log_worker_startup,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """setup_logging replaces root handlers; put the originals back."""
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level
    yield
    for handler in root.handlers:
        if handler not in original_handlers:
            handler.close()
    root.handlers[:] = original_handlers
    root.setLevel(original_level)


class TestGetLogFilePath:

    def test_builds_dated_path(self):
        path = get_log_file_path(Path("logs"), "webhook_jobs")

        assert path.parent.parent == Path("logs")
        assert path.name.startswith("webhook_jobs_")
        assert path.suffix == ".log"

    def test_includes_worker_id(self):
        path = get_log_file_path(Path("logs"), "webhook_jobs", worker_id="happy-tiger")
        assert path.stem.endswith("_happy-tiger")


class TestSetupLogging:

    def test_file_and_console_handlers(self, tmp_path):
        logger = setup_logging(log_dir=tmp_path)

        root = logging.getLogger()
        file_handlers = [
            h for h in root.handlers if isinstance(h, ArchivingTimedRotatingFileHandler)
        ]
        assert len(root.handlers) == 2
        assert len(file_handlers) == 1
        assert isinstance(file_handlers[0].formatter, JSONFormatter)
        assert file_handlers[0].baseFilename.startswith(str(tmp_path))
        assert logger.name == "webhook_jobs"

    def test_plain_file_format(self, tmp_path):
        setup_logging(log_dir=tmp_path, json_format=False)

        file_handler = next(
            h
            for h in logging.getLogger().handlers
            if isinstance(h, ArchivingTimedRotatingFileHandler)
        )
        assert not isinstance(file_handler.formatter, JSONFormatter)

    def test_stdout_only_mode(self, tmp_path):
        setup_logging(log_dir=tmp_path, log_to_stdout=True)

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert not any(tmp_path.iterdir())

    def test_stdout_console_format(self, tmp_path):
        setup_logging(log_dir=tmp_path, log_to_stdout=True, json_format=False)
        assert isinstance(logging.getLogger().handlers[0].formatter, ConsoleFormatter)

    def test_repeated_setup_does_not_duplicate_handlers(self, tmp_path):
        setup_logging(log_dir=tmp_path, log_to_stdout=True)
        setup_logging(log_dir=tmp_path, log_to_stdout=True)
        assert len(logging.getLogger().handlers) == 1

    def test_sets_worker_and_stage_context(self, tmp_path):
        setup_logging(log_dir=tmp_path, log_to_stdout=True, worker_id="w1", stage="worker")

        ctx = get_log_context()
        assert ctx["worker_id"] == "w1"
        assert ctx["stage"] == "worker"

    def test_suppresses_noisy_loggers(self, tmp_path):
        setup_logging(log_dir=tmp_path, log_to_stdout=True)
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_writes_json_to_file(self, tmp_path):
        logger = setup_logging(log_dir=tmp_path, console_level=logging.CRITICAL)
        logger.info("hello", extra={"job_id": "job-1"})

        root = logging.getLogger()
        file_handler = next(
            h for h in root.handlers if isinstance(h, ArchivingTimedRotatingFileHandler)
        )
        file_handler.flush()
        content = Path(file_handler.baseFilename).read_text(encoding="utf-8")
        assert '"job_id": "job-1"' in content


class TestArchivingHandler:

    def test_creates_archive_dir(self, tmp_path):
        archive = tmp_path / "archive"
        handler = ArchivingTimedRotatingFileHandler(
            tmp_path / "app.log", archive_dir=archive, delay=True
        )
        try:
            assert archive.is_dir()
        finally:
            handler.close()

    def test_rollover_moves_rotated_files(self, tmp_path):
        archive = tmp_path / "archive"
        handler = ArchivingTimedRotatingFileHandler(
            tmp_path / "app.log", backupCount=3, archive_dir=archive
        )
        try:
            handler.emit(logging.makeLogRecord({"msg": "first"}))
            handler.doRollover()
        finally:
            handler.close()

        assert (tmp_path / "app.log").exists()
        assert len(list(archive.glob("app.log.*"))) == 1
        assert not list(tmp_path.glob("app.log.*"))

    def test_rollover_prunes_archive_to_backup_count(self, tmp_path):
        archive = tmp_path / "archive"
        archive.mkdir()
        (archive / "app.log.2000-01-01").write_text("old")
        (archive / "app.log.2000-01-02").write_text("older than today")
        handler = ArchivingTimedRotatingFileHandler(
            tmp_path / "app.log", backupCount=1, archive_dir=archive
        )
        try:
            handler.emit(logging.makeLogRecord({"msg": "first"}))
            handler.doRollover()
        finally:
            handler.close()

        remaining = list(archive.glob("app.log.*"))
        assert len(remaining) == 1
        assert remaining[0].name != "app.log.2000-01-02"


class TestHelpers:

    def test_get_logger(self):
        assert get_logger("webhook_jobs.queue") is logging.getLogger("webhook_jobs.queue")

    def test_log_worker_startup(self):
        logger = MagicMock(spec=logging.Logger)
        log_worker_startup(logger, "webhook-worker", concurrency=4, extra_config={"poll": 1.0})

        assert call("Starting %s", "webhook-worker") in logger.info.call_args_list
        assert call("%s: %s", "concurrency", 4) in logger.info.call_args_list
        assert call("%s: %s", "poll", 1.0) in logger.info.call_args_list
