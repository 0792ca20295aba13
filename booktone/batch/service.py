"""
Batch processing service.

Accepts batches of book ids, persists and queues them, and runs a single
background worker that processes one batch at a time while callers poll for
progress.

Status has two sources: the in-memory StatusCache while a batch is running
in this process, and the BatchJob row otherwise (queued, finished, or after a
restart). The cache entry is removed exactly when the batch reaches a
terminal state, after the row has been updated.

Known gap: a batch interrupted by shutdown or a crash stays in Processing and
nothing resumes it.
"""
import asyncio
import logging
import uuid
from contextlib import suppress
from typing import List, Optional, Sequence

from booktone.batch.processor import ItemProcessor, MetricsSampler, Recommender
from booktone.batch.queue import JobQueue, QueuedBatch
from booktone.batch.status import BatchProcessingStatus, StatusCache
from booktone.batch.store import JobStore
from booktone.core.exceptions import ValidationException
from booktone.models import BatchProcessingLog, BatchStatus, ResourceMetrics, utcnow

logger = logging.getLogger(__name__)


class BatchProcessingService:
    """
    Queue, worker loop and status tracking for tone recommendation batches.

    Usage:
        service = BatchProcessingService(store, recommender.generate_for_book, monitor)
        await service.start()
        batch_id = await service.submit_batch([101, 102])
        status = await service.get_status(batch_id)
        await service.stop()
    """

    def __init__(
        self,
        store: JobStore,
        recommender: Recommender,
        metrics: Optional[MetricsSampler] = None,
        *,
        poll_interval: float = 1.0,
        error_backoff: float = 5.0,
        shutdown_grace: float = 30.0,
        max_concurrent_batches: int = 1,
    ):
        self.store = store
        self.queue = JobQueue()
        self.cache = StatusCache()
        self.processor = ItemProcessor(store, self.cache, recommender, metrics)
        self.poll_interval = poll_interval
        self.error_backoff = error_backoff
        self.shutdown_grace = shutdown_grace
        # Worker pool of size max_concurrent_batches; the single loop below
        # already serializes batches, the gate keeps that true if more loops
        # are ever added.
        self._gate = asyncio.Semaphore(max_concurrent_batches)
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    # =========================================================================
    # Submission & queries
    # =========================================================================
    async def submit_batch(self, book_ids: Sequence[int]) -> str:
        """Persist a new batch, queue it and return its id without waiting."""
        book_ids = list(book_ids)
        if not book_ids:
            raise ValidationException("At least one book ID is required")

        batch_id = uuid.uuid4().hex
        await asyncio.to_thread(self.store.create_batch, batch_id, book_ids)
        self.queue.enqueue(QueuedBatch(batch_id=batch_id, total_books=len(book_ids)))

        logger.info(f"Queued batch job {batch_id} with {len(book_ids)} books")
        return batch_id

    async def get_status(self, batch_id: str) -> BatchProcessingStatus:
        """Live cache entry first, stored record second, NotFound last."""
        status = self.cache.get(batch_id)
        if status is not None:
            return status

        job = await asyncio.to_thread(self.store.get_batch, batch_id)
        if job is None:
            return BatchProcessingStatus.not_found(batch_id)
        return BatchProcessingStatus.from_record(job)

    async def get_logs(self, batch_id: str) -> List[BatchProcessingLog]:
        return await asyncio.to_thread(self.store.get_logs, batch_id)

    async def get_metrics(self, batch_id: str) -> List[ResourceMetrics]:
        return await asyncio.to_thread(self.store.get_metrics, batch_id)

    # =========================================================================
    # Lifecycle
    # =========================================================================
    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def queue_depth(self) -> int:
        return len(self.queue)

    @property
    def active_batches(self) -> List[str]:
        return self.cache.active_ids()

    async def start(self) -> None:
        """Start the worker. Calling it again while running does nothing."""
        if self.is_running:
            return
        logger.info("Batch processing service starting")
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="batch-worker")

    async def stop(self) -> None:
        """
        Signal the worker and wait for the current batch, at most
        shutdown_grace seconds. After that the worker is cancelled and the
        interrupted batch keeps whatever state was last persisted.
        """
        logger.info("Batch processing service stopping")
        self._stopping.set()

        task, self._task = self._task, None
        if task is None:
            return

        done, _ = await asyncio.wait({task}, timeout=self.shutdown_grace)
        if not done:
            logger.warning(
                f"Shutdown grace period of {self.shutdown_grace}s elapsed, "
                f"abandoning batches {self.cache.active_ids()}"
            )
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    # =========================================================================
    # Worker loop
    # =========================================================================
    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                queued = self.queue.try_dequeue()
                if queued is None:
                    await self._pause(self.poll_interval)
                    continue

                result = await self.process_batch(queued)
                if result is not None and result.status == BatchStatus.FAILED:
                    await self._pause(self.error_backoff)
            except Exception:
                logger.exception("Error in batch processing loop")
                await self._pause(self.error_backoff)

        logger.info("Batch worker stopped")

    async def _pause(self, seconds: float) -> None:
        """Sleep, waking early when stop is requested."""
        with suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)

    async def process_batch(self, queued: QueuedBatch) -> Optional[BatchProcessingStatus]:
        """
        Run one dequeued batch to completion.

        Returns the final status, or None when the batch was abandoned
        (missing record, or stop requested before the last book).
        """
        batch_id = queued.batch_id

        async with self._gate:
            logger.info(f"🚀 Starting batch job {batch_id} with {queued.total_books} books")
            started_at = utcnow()
            self.cache.create(batch_id, queued.total_books, started_at)

            try:
                job = await asyncio.to_thread(self.store.mark_processing, batch_id, started_at)
                if job is None:
                    logger.error(f"❌ Batch job {batch_id} not found in database")
                    return None

                # The queue entry carries no book ids; the store is the source
                book_ids = await asyncio.to_thread(self.store.get_book_ids, batch_id)

                last = len(book_ids) - 1
                for index, book_id in enumerate(book_ids):
                    if self._stopping.is_set():
                        logger.warning(
                            f"Stop requested, leaving batch {batch_id} unfinished "
                            f"before book {book_id}"
                        )
                        return None
                    # The last book closes the batch in the same write as its counter
                    await self.processor.process(batch_id, book_id, final=index == last)

                if not book_ids:
                    completed_at = utcnow()
                    await asyncio.to_thread(self.store.mark_completed, batch_id, completed_at)
                    self.cache.update(batch_id, status=BatchStatus.COMPLETED, completed_at=completed_at)

                done = self.cache.get(batch_id)
                logger.info(
                    f"✅ Completed batch job {batch_id}: {done.processed_books}/{done.total_books} "
                    f"books processed, {done.failed_books} failed"
                )
                return done

            except Exception as e:
                logger.exception(f"❌ Batch job {batch_id} failed: {e}")
                message = str(e) or type(e).__name__
                completed_at = utcnow()
                self.cache.update(
                    batch_id,
                    status=BatchStatus.FAILED,
                    error_message=message,
                    completed_at=completed_at,
                )
                failed = self.cache.get(batch_id)
                try:
                    await asyncio.to_thread(self.store.mark_failed, batch_id, message, completed_at)
                except Exception:
                    logger.exception(f"Could not record failure of batch {batch_id}")
                return failed

            finally:
                self.cache.remove(batch_id)
