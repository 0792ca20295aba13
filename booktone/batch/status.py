"""
Live progress of batches currently being processed.

The cache is authoritative only while a batch is running in this process.
Entries are created when the worker picks a batch up and removed as soon as it
reaches a terminal state, after which the BatchJob row is the only source.
"""
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, List, Optional

from booktone.models.batch import BatchJob, BatchStatus

TERMINAL_STATUSES = frozenset({BatchStatus.COMPLETED, BatchStatus.FAILED})


@dataclass
class BatchProcessingStatus:
    batch_id: str
    status: BatchStatus
    total_books: int = 0
    processed_books: int = 0
    failed_books: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_found(self) -> bool:
        return self.status != BatchStatus.NOT_FOUND

    @classmethod
    def not_found(cls, batch_id: str) -> "BatchProcessingStatus":
        return cls(batch_id=batch_id, status=BatchStatus.NOT_FOUND)

    @classmethod
    def from_record(cls, job: BatchJob) -> "BatchProcessingStatus":
        """Translate a stored BatchJob; batches never started report created_at."""
        return cls(
            batch_id=job.batch_id,
            status=BatchStatus(job.status),
            total_books=job.total_books,
            processed_books=job.processed_books,
            failed_books=job.failed_books,
            started_at=job.started_at or job.created_at,
            completed_at=job.completed_at,
            error_message=job.error_message,
        )


class StatusCache:
    """
    Thread-safe map of batch id to live status.

    Written only by the worker; read by any number of request handlers.
    Reads return copies so callers can never mutate a live entry.
    """

    def __init__(self):
        self._entries: Dict[str, BatchProcessingStatus] = {}
        self._lock = threading.Lock()

    def create(self, batch_id: str, total_books: int, started_at: datetime) -> BatchProcessingStatus:
        entry = BatchProcessingStatus(
            batch_id=batch_id,
            status=BatchStatus.PROCESSING,
            total_books=total_books,
            started_at=started_at,
        )
        with self._lock:
            self._entries[batch_id] = entry
            return replace(entry)

    def get(self, batch_id: str) -> Optional[BatchProcessingStatus]:
        with self._lock:
            entry = self._entries.get(batch_id)
            return replace(entry) if entry is not None else None

    def update(self, batch_id: str, **changes) -> None:
        with self._lock:
            entry = self._entries.get(batch_id)
            if entry is None:
                return
            for field, value in changes.items():
                setattr(entry, field, value)

    def increment(self, batch_id: str, field: str) -> None:
        with self._lock:
            entry = self._entries.get(batch_id)
            if entry is not None:
                setattr(entry, field, getattr(entry, field) + 1)

    def remove(self, batch_id: str) -> None:
        with self._lock:
            self._entries.pop(batch_id, None)

    def active_ids(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, batch_id: str) -> bool:
        with self._lock:
            return batch_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
