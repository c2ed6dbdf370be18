"""In-memory delay queue with disk persistence for job scheduling."""

import heapq
import itertools
import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

PERSISTENCE_VERSION = 1

# Restored jobs further past due than this are logged as overdue
OVERDUE_WARNING_SECONDS = 300

_sequence = itertools.count()


@dataclass
class DelayedJob:
    """In-memory representation of a job waiting for its run time."""

    scheduled_time: datetime
    job_id: str
    retry_count: int
    job: dict[str, Any]  # WebhookJob in JSON mode, so it survives persistence
    sequence: int = field(default_factory=lambda: next(_sequence))

    def __lt__(self, other: "DelayedJob") -> bool:
        """Compare by scheduled_time, then insertion order, for heap ordering."""
        return (self.scheduled_time, self.sequence) < (other.scheduled_time, other.sequence)


class DelayQueue:
    """Min-heap delay queue with JSON disk persistence.

    Jobs are ordered by scheduled_time; ties run in insertion order. The
    queue itself is not thread-safe, callers hold their own lock.
    """

    def __init__(self, name: str, persistence_file: Path | None = None):
        self._name = name
        self._persistence_file = persistence_file
        self._heap: list[DelayedJob] = []

    def __len__(self) -> int:
        return len(self._heap)

    def __contains__(self, job_id: str) -> bool:
        return any(entry.job_id == job_id for entry in self._heap)

    @property
    def next_scheduled_time(self) -> datetime | None:
        if not self._heap:
            return None
        return self._heap[0].scheduled_time

    def push(self, entry: DelayedJob) -> None:
        heapq.heappush(self._heap, entry)

    def pop_ready(self, now: datetime, limit: int | None = None) -> list[DelayedJob]:
        """Pop jobs whose scheduled_time <= now, earliest first."""
        ready = []
        while self._heap and self._heap[0].scheduled_time <= now:
            if limit is not None and len(ready) >= limit:
                break
            ready.append(heapq.heappop(self._heap))
        return ready

    def remove(self, job_ids: Iterable[str]) -> int:
        """Drop the given jobs from the schedule. Returns how many were removed."""
        job_ids = set(job_ids)
        kept = [entry for entry in self._heap if entry.job_id not in job_ids]
        removed = len(self._heap) - len(kept)
        if removed:
            heapq.heapify(kept)
            self._heap = kept
        return removed

    def snapshot(self) -> list[DelayedJob]:
        """Scheduled jobs in run order, without popping them."""
        return sorted(self._heap)

    def persist_to_disk(self, in_flight: Iterable[DelayedJob] = ()) -> None:
        """
        Persist the queue to disk as JSON.

        Jobs in ``in_flight`` are running and not in the heap; they are
        written too so a crash before they finish runs them again.
        An empty queue removes any stale file instead of writing one.
        """
        if self._persistence_file is None:
            return

        entries = list(self._heap) + list(in_flight)
        if not entries:
            if self._persistence_file.exists():
                self._persistence_file.unlink()
            logger.debug("Delay queue empty, skipping persistence")
            return

        data = {
            "version": PERSISTENCE_VERSION,
            "name": self._name,
            "last_persisted": datetime.now(UTC).isoformat(),
            "jobs": [
                {
                    "scheduled_time": entry.scheduled_time.isoformat(),
                    "job_id": entry.job_id,
                    "retry_count": entry.retry_count,
                    "job": entry.job,
                }
                for entry in sorted(entries)
            ],
        }

        # Write atomically (write to temp file, then rename)
        self._persistence_file.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self._persistence_file.with_suffix(".tmp")
        with open(temp_file, "w") as f:
            json.dump(data, f, indent=2)
        temp_file.replace(self._persistence_file)

        logger.debug(
            "Persisted delay queue to disk",
            extra={"queue_size": len(entries), "file": str(self._persistence_file)},
        )

    def restore_from_disk(self, now: datetime | None = None) -> list[DelayedJob]:
        """Restore queue from disk. Returns the restored entries.

        The file is deleted after a successful restore. Files from another
        queue or an unknown version are ignored and left in place.
        """
        if self._persistence_file is None or not self._persistence_file.exists():
            logger.debug(
                "No persistence file found, starting with empty queue",
                extra={"file": str(self._persistence_file)},
            )
            return []

        with open(self._persistence_file) as f:
            data = json.load(f)

        if data.get("version") != PERSISTENCE_VERSION:
            logger.warning(
                "Unknown persistence file version, ignoring",
                extra={"file": str(self._persistence_file)},
            )
            return []

        if data.get("name") != self._name:
            logger.warning(
                "Persistence file belongs to queue %s, ignoring",
                data.get("name"),
                extra={"file": str(self._persistence_file)},
            )
            return []

        now = now or datetime.now(UTC)
        restored = []
        overdue_count = 0

        for job_data in data.get("jobs", []):
            scheduled_time = datetime.fromisoformat(job_data["scheduled_time"])
            if (now - scheduled_time).total_seconds() > OVERDUE_WARNING_SECONDS:
                overdue_count += 1

            entry = DelayedJob(
                scheduled_time=scheduled_time,
                job_id=job_data["job_id"],
                retry_count=int(job_data["retry_count"]),
                job=job_data["job"],
            )
            heapq.heappush(self._heap, entry)
            restored.append(entry)

        log = logger.warning if overdue_count else logger.info
        log(
            "Restored delay queue from disk",
            extra={
                "restored_count": len(restored),
                "overdue_count": overdue_count,
                "file": str(self._persistence_file),
            },
        )

        self._persistence_file.unlink()
        return restored


__all__ = ["DelayQueue", "DelayedJob"]
