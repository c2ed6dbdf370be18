"""Root logger configuration for worker processes."""

import io
import logging
import sys
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from core.logging.context import set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter

DEFAULT_LOG_DIR = Path("logs")
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

PLAIN_FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"

NOISY_LOGGERS = ("asyncio",)

_BANNER = "-" * 60


class ArchivingTimedRotatingFileHandler(TimedRotatingFileHandler):
    """
    Timed rotating handler whose rotated files land in an archive directory.

    The live file stays where it was opened; each rotation renames it straight
    into ``archive_dir`` and prunes the archive down to ``backupCount`` files.
    """

    def __init__(self, filename, when="midnight", interval=1, backupCount=0,
                 encoding=None, delay=False, utc=False, archive_dir=None):
        super().__init__(filename, when, interval, backupCount, encoding, delay, utc)
        base = Path(self.baseFilename)
        self.archive_dir = Path(archive_dir) if archive_dir else base.parent / "archive"
        self.archive_dir.mkdir(parents=True, exist_ok=True)

    def rotation_filename(self, default_name):
        return str(self.archive_dir / Path(default_name).name)

    def doRollover(self):
        super().doRollover()
        self._prune_archive()

    def _prune_archive(self):
        if self.backupCount <= 0:
            return
        rotated = sorted(self.archive_dir.glob(f"{Path(self.baseFilename).name}.*"))
        for stale in rotated[: -self.backupCount]:
            stale.unlink(missing_ok=True)


def get_log_file_path(log_dir: Path, name: str, worker_id: str | None = None) -> Path:
    """Return ``{log_dir}/{YYYY-MM-DD}/{name}_{MMDD}_{HHMM}[_{worker_id}].log``."""
    now = datetime.now()
    parts = [name, now.strftime("%m%d"), now.strftime("%H%M")]
    if worker_id:
        parts.append(worker_id)
    return log_dir / now.strftime("%Y-%m-%d") / ("_".join(parts) + ".log")


def _console_stream():
    # Windows consoles choke on non-cp1252 payload text
    if sys.platform == "win32":
        return io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
    return sys.stdout


def _build_console_handler(level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(_console_stream())
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _build_file_handler(
    log_file: Path,
    level: int,
    json_format: bool,
    rotation_when: str,
    rotation_interval: int,
    backup_count: int,
) -> ArchivingTimedRotatingFileHandler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = ArchivingTimedRotatingFileHandler(
        log_file,
        when=rotation_when,
        interval=rotation_interval,
        backupCount=backup_count,
        encoding="utf-8",
        archive_dir=log_file.parent / "archive",
    )
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(PLAIN_FILE_FORMAT))
    return handler


def setup_logging(
    name: str = "webhook_jobs",
    stage: str | None = None,
    log_dir: Path | None = None,
    json_format: bool = True,
    console_level: int = DEFAULT_CONSOLE_LEVEL,
    file_level: int = DEFAULT_FILE_LEVEL,
    rotation_when: str = "midnight",
    rotation_interval: int = 1,
    backup_count: int = 7,
    suppress_noisy: bool = True,
    worker_id: str | None = None,
    log_to_stdout: bool = False,
) -> logging.Logger:
    """
    Replace the root logger's handlers and return the ``name`` logger.

    By default the console gets human-readable lines at ``console_level`` and
    a dated file under ``log_dir`` gets everything from ``file_level`` up.
    With ``log_to_stdout`` no file is written: stdout alone receives records
    from ``file_level`` up, as JSON unless ``json_format`` is off.

    ``worker_id`` and ``stage`` are bound to the log context so every record
    from this process carries them.
    """
    set_log_context(worker_id=worker_id or None, stage=stage or None)

    handlers: list[logging.Handler] = []
    log_file = None
    if log_to_stdout:
        formatter = JSONFormatter() if json_format else ConsoleFormatter()
        handlers.append(_build_console_handler(file_level, formatter))
    else:
        log_file = get_log_file_path(log_dir or DEFAULT_LOG_DIR, name, worker_id=worker_id)
        handlers.append(
            _build_file_handler(
                log_file, file_level, json_format, rotation_when, rotation_interval, backup_count
            )
        )
        handlers.append(_build_console_handler(console_level, ConsoleFormatter()))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)
    for handler in handlers:
        root.addHandler(handler)

    if suppress_noisy:
        for noisy in NOISY_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug(
        "Logging initialized",
        extra={"log_file": str(log_file) if log_file else None, "json_format": json_format},
    )
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_worker_startup(
    logger: logging.Logger,
    worker_name: str,
    concurrency: int | None = None,
    extra_config: dict | None = None,
) -> None:
    """Log a startup banner followed by one ``key: value`` line per setting."""
    settings = {}
    if concurrency is not None:
        settings["concurrency"] = concurrency
    settings.update(extra_config or {})

    logger.info(_BANNER)
    logger.info("Starting %s", worker_name)
    for key, value in settings.items():
        logger.info("%s: %s", key, value)
    logger.info(_BANNER)
