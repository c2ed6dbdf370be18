"""Dead-letter sinks for webhook jobs that will not be retried again."""

import logging
import threading
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from webhook_jobs.schemas import DeadLetterRecord

logger = logging.getLogger(__name__)


class DeadLetterSink(Protocol):
    def publish(self, record: DeadLetterRecord) -> None: ...


class InMemoryDeadLetterSink:
    """Keeps dead-letter records in a list. Used by tests and local runs."""

    def __init__(self):
        self._records: list[DeadLetterRecord] = []
        self._lock = threading.Lock()

    def publish(self, record: DeadLetterRecord) -> None:
        with self._lock:
            self._records.append(record)

    @property
    def records(self) -> list[DeadLetterRecord]:
        with self._lock:
            return list(self._records)

    def for_correlation_key(self, correlation_key: str) -> list[DeadLetterRecord]:
        with self._lock:
            return [r for r in self._records if r.correlation_key == correlation_key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class JsonlDeadLetterSink:
    """
    Appends dead-letter records to a JSON lines file.

    One record per line, so the file can be tailed, grepped and read back
    with read_dead_letters().
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._lock = threading.Lock()

    def publish(self, record: DeadLetterRecord) -> None:
        line = record.model_dump_json()
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

        logger.debug(
            "Dead-letter record written",
            extra={"job_id": record.job_id, "file": str(self.path)},
        )


def read_dead_letters(path: Path | str) -> list[DeadLetterRecord]:
    """Read every record from a JSON lines dead-letter file.

    Lines that do not parse are logged and skipped. A missing file reads as
    an empty list.
    """
    path = Path(path)
    if not path.exists():
        return []

    records = []
    with open(path, encoding="utf-8") as f:
        for line_number, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(DeadLetterRecord.model_validate_json(line))
            except ValidationError as e:
                logger.warning(
                    "Skipping malformed dead-letter line %s",
                    line_number,
                    extra={"file": str(path), "error": str(e)[:200]},
                )
    return records


__all__ = [
    "DeadLetterSink",
    "InMemoryDeadLetterSink",
    "JsonlDeadLetterSink",
    "read_dead_letters",
]
