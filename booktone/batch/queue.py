"""
In-memory FIFO of submitted batches waiting for the worker.

Entries carry only the batch id and its size; the book ids are always
reloaded from the store when the batch is dequeued.
"""
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional


@dataclass(frozen=True)
class QueuedBatch:
    batch_id: str
    total_books: int


class JobQueue:
    """
    Unbounded FIFO safe for concurrent producers and the single consumer.

    deque.append and deque.popleft are atomic, so no extra locking is needed
    between request threads enqueuing and the worker draining.
    """

    def __init__(self):
        self._items: Deque[QueuedBatch] = deque()

    def enqueue(self, batch: QueuedBatch) -> None:
        self._items.append(batch)

    def try_dequeue(self) -> Optional[QueuedBatch]:
        """Remove and return the oldest entry, or None when empty. Never blocks."""
        try:
            return self._items.popleft()
        except IndexError:
            return None

    def __len__(self) -> int:
        return len(self._items)
