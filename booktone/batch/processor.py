"""
Per-book orchestration inside an active batch.

A failure while generating tones for one book is recorded and counted, never
propagated: one bad book does not abort its batch. A failure while
persisting the outcome is a store problem and does propagate, turning into a
batch-level failure.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Protocol

from booktone.batch.status import StatusCache
from booktone.batch.store import JobStore
from booktone.models import BatchJob, BatchStatus, LogStatus

logger = logging.getLogger(__name__)

Recommender = Callable[[int], Awaitable[List[str]]]


class MetricsSampler(Protocol):
    async def sample_and_record(self, batch_id: str, book_id: Optional[int] = None) -> None:
        ...


@dataclass
class ItemOutcome:
    book_id: int
    succeeded: bool
    tone_count: int = 0
    error: Optional[BaseException] = None


class ItemProcessor:
    def __init__(
        self,
        store: JobStore,
        cache: StatusCache,
        recommender: Recommender,
        metrics: Optional[MetricsSampler] = None,
    ):
        self.store = store
        self.cache = cache
        self.recommender = recommender
        self.metrics = metrics

    async def process(self, batch_id: str, book_id: int, final: bool = False) -> ItemOutcome:
        """
        Generate and persist tones for one book, recording progress.

        Progress is committed after every book (not batched) so pollers see
        it as soon as each long-running recommendation call returns. For the
        last book of a batch (final=True) the batch is marked Completed in the
        same write as its counter, in the store and in the cache.
        """
        await asyncio.to_thread(
            self.store.append_log,
            batch_id,
            book_id,
            LogStatus.STARTED,
            "Beginning request to generate tone recommendations",
        )
        await self._sample(batch_id, book_id)

        try:
            tones = await self.recommender(book_id)
        except Exception as e:
            logger.error(f"Failed to process book {book_id} in batch {batch_id}: {e}")
            job = await asyncio.to_thread(
                self.store.record_item_failure, batch_id, book_id, e, final=final
            )
            self._mirror(batch_id, job, "failed_books", final)
            outcome = ItemOutcome(book_id=book_id, succeeded=False, error=e)
        else:
            job = await asyncio.to_thread(
                self.store.record_item_success, batch_id, book_id, tones, final=final
            )
            self._mirror(batch_id, job, "processed_books", final)
            outcome = ItemOutcome(book_id=book_id, succeeded=True, tone_count=len(tones))

        await self._sample(batch_id, book_id)

        logger.info(
            f"Batch {batch_id}: processed {job.processed_books}/{job.total_books} books "
            f"({job.failed_books} failed)"
        )
        return outcome

    def _mirror(self, batch_id: str, job: BatchJob, counter: str, final: bool) -> None:
        if not final:
            self.cache.increment(batch_id, counter)
            return
        self.cache.update(
            batch_id,
            status=BatchStatus.COMPLETED,
            processed_books=job.processed_books,
            failed_books=job.failed_books,
            completed_at=job.completed_at,
        )

    async def _sample(self, batch_id: str, book_id: int) -> None:
        if self.metrics is None:
            return
        try:
            await self.metrics.sample_and_record(batch_id, book_id)
        except Exception as e:
            logger.warning(f"Resource sampling failed for batch {batch_id}, book {book_id}: {e}")
