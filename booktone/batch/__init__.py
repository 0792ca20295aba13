"""
Batch engine: queue, status cache, job store, item processor and worker.
"""
from booktone.batch.queue import JobQueue, QueuedBatch
from booktone.batch.status import BatchProcessingStatus, StatusCache
from booktone.batch.store import JobStore
from booktone.batch.processor import ItemOutcome, ItemProcessor
from booktone.batch.service import BatchProcessingService

__all__ = [
    "JobQueue",
    "QueuedBatch",
    "BatchProcessingStatus",
    "StatusCache",
    "JobStore",
    "ItemOutcome",
    "ItemProcessor",
    "BatchProcessingService",
]
