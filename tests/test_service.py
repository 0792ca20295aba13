"""
Tests for the batch processing service: submission, status lookup, the
worker loop and shutdown.
"""
import asyncio

import pytest

from booktone.batch import BatchProcessingService, QueuedBatch
from booktone.core.exceptions import RecommendationError, ValidationException
from booktone.models import BatchJob, BatchStatus, LogStatus

from tests.conftest import FakeRecommender, wait_until


async def status_of(service, batch_id):
    return (await service.get_status(batch_id)).status


class TestSubmission:

    @pytest.mark.asyncio
    async def test_submit_persists_and_queues(self, service, store):
        batch_id = await service.submit_batch([101, 102])

        assert service.queue_depth == 1
        job = store.get_batch(batch_id)
        assert job.status == BatchStatus.QUEUED.value
        assert job.total_books == 2
        assert store.get_book_ids(batch_id) == [101, 102]

    @pytest.mark.asyncio
    async def test_batch_ids_are_unique(self, service):
        first = await service.submit_batch([1])
        second = await service.submit_batch([1])
        assert first != second

    @pytest.mark.asyncio
    async def test_empty_submission_rejected(self, service, session_factory):
        with pytest.raises(ValidationException):
            await service.submit_batch([])

        assert service.queue_depth == 0
        with session_factory() as db:
            assert db.query(BatchJob).count() == 0

    @pytest.mark.asyncio
    async def test_queued_status_comes_from_store(self, service):
        batch_id = await service.submit_batch([101])

        status = await service.get_status(batch_id)
        assert status.status == BatchStatus.QUEUED
        assert status.total_books == 1
        assert status.started_at is not None

    @pytest.mark.asyncio
    async def test_unknown_batch_is_not_found(self, service):
        status = await service.get_status("does-not-exist")
        assert status.status == BatchStatus.NOT_FOUND
        assert not status.is_found


class TestProcessBatch:

    @pytest.mark.asyncio
    async def test_partial_failure_completes_batch(self, service, store):
        batch_id = await service.submit_batch([101, 102])

        result = await service.process_batch(service.queue.try_dequeue())

        assert result.status == BatchStatus.COMPLETED
        assert result.processed_books == 1
        assert result.failed_books == 1

        job = store.get_batch(batch_id)
        assert job.status == BatchStatus.COMPLETED.value
        assert job.processed_books == 1
        assert job.failed_books == 1
        assert job.started_at is not None
        assert job.completed_at is not None

        logs = store.get_logs(batch_id)
        assert [(log.book_id, log.status) for log in logs] == [
            (101, LogStatus.STARTED.value),
            (101, LogStatus.COMPLETED.value),
            (102, LogStatus.STARTED.value),
            (102, LogStatus.FAILED.value),
        ]
        assert [e.book_id for e in store.get_errors(batch_id)] == [102]

    @pytest.mark.asyncio
    async def test_every_book_processed_in_order(self, service, store, recommender):
        batch_id = await service.submit_batch([3, 1, 2])

        await service.process_batch(service.queue.try_dequeue())

        assert recommender.calls == [3, 1, 2]
        job = store.get_batch(batch_id)
        assert job.processed_books + job.failed_books == job.total_books

    @pytest.mark.asyncio
    async def test_all_books_failing_still_completes(self, store):
        service = BatchProcessingService(store, FakeRecommender(failing={1, 2, 3}))
        batch_id = await service.submit_batch([1, 2, 3])

        result = await service.process_batch(service.queue.try_dequeue())

        assert result.status == BatchStatus.COMPLETED
        assert result.processed_books == 0
        assert result.failed_books == 3
        assert store.get_batch(batch_id).status == BatchStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_cache_entry_removed_after_completion(self, service):
        batch_id = await service.submit_batch([101])

        await service.process_batch(service.queue.try_dequeue())

        assert service.active_batches == []
        status = await service.get_status(batch_id)
        assert status.status == BatchStatus.COMPLETED
        assert status.processed_books == 1

    @pytest.mark.asyncio
    async def test_missing_record_is_skipped(self, service):
        result = await service.process_batch(QueuedBatch("ghost", 2))

        assert result is None
        assert service.active_batches == []

    @pytest.mark.asyncio
    async def test_store_error_fails_batch(self, service, store, monkeypatch):
        batch_id = await service.submit_batch([101])

        def broken(batch_id):
            raise RuntimeError("database went away")

        monkeypatch.setattr(store, "get_book_ids", broken)

        result = await service.process_batch(service.queue.try_dequeue())

        assert result.status == BatchStatus.FAILED
        assert result.error_message == "database went away"
        assert service.active_batches == []

        job = store.get_batch(batch_id)
        assert job.status == BatchStatus.FAILED.value
        assert job.error_message == "database went away"
        assert job.completed_at is not None


class TestWorker:

    @pytest.mark.asyncio
    async def test_worker_processes_submitted_batch(self, service):
        await service.start()
        assert service.is_running

        batch_id = await service.submit_batch([101, 102])

        await wait_until(lambda: _is(service, batch_id, BatchStatus.COMPLETED))
        status = await service.get_status(batch_id)
        assert status.processed_books == 1
        assert status.failed_books == 1

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, service):
        await service.start()
        task = service._task
        await service.start()
        assert service._task is task

    @pytest.mark.asyncio
    async def test_live_progress_from_cache(self, store):
        recommender = FakeRecommender(blocking={2})
        service = BatchProcessingService(store, recommender, poll_interval=0.01)
        await service.start()
        try:
            batch_id = await service.submit_batch([1, 2, 3])
            await wait_until(lambda: 2 in recommender.calls)

            status = await service.get_status(batch_id)
            assert status.status == BatchStatus.PROCESSING
            assert status.processed_books == 1
            assert status.failed_books == 0
            assert service.active_batches == [batch_id]

            recommender.release.set()
            await wait_until(lambda: _is(service, batch_id, BatchStatus.COMPLETED))
            assert service.active_batches == []
        finally:
            recommender.release.set()
            await service.stop()

    @pytest.mark.asyncio
    async def test_one_batch_processing_at_a_time(self, store):
        recommender = FakeRecommender(blocking={1})
        service = BatchProcessingService(store, recommender, poll_interval=0.01)
        await service.start()
        try:
            first = await service.submit_batch([1])
            second = await service.submit_batch([5])
            await wait_until(lambda: 1 in recommender.calls)

            assert await status_of(service, first) == BatchStatus.PROCESSING
            assert await status_of(service, second) == BatchStatus.QUEUED
            assert service.queue_depth == 1

            recommender.release.set()
            await wait_until(lambda: _is(service, second, BatchStatus.COMPLETED))
            assert await status_of(service, first) == BatchStatus.COMPLETED
            assert recommender.calls == [1, 5]
        finally:
            recommender.release.set()
            await service.stop()

    @pytest.mark.asyncio
    async def test_worker_continues_after_failed_batch(self, store, monkeypatch):
        service = BatchProcessingService(
            store, FakeRecommender(), poll_interval=0.01, error_backoff=0.05
        )
        real_get_book_ids = store.get_book_ids
        broken_ids = set()

        def flaky(batch_id):
            if batch_id in broken_ids:
                raise RuntimeError("transient")
            return real_get_book_ids(batch_id)

        monkeypatch.setattr(store, "get_book_ids", flaky)

        first = await service.submit_batch([1])
        broken_ids.add(first)
        second = await service.submit_batch([2])

        await service.start()
        try:
            await wait_until(lambda: _is(service, second, BatchStatus.COMPLETED))
            assert await status_of(service, first) == BatchStatus.FAILED
        finally:
            await service.stop()

    @pytest.mark.asyncio
    async def test_stop_leaves_unfinished_batch_processing(self, store):
        recommender = FakeRecommender(blocking={1})
        service = BatchProcessingService(store, recommender, poll_interval=0.01, shutdown_grace=2.0)
        await service.start()

        batch_id = await service.submit_batch([1, 2])
        await wait_until(lambda: 1 in recommender.calls)

        stopping = asyncio.create_task(service.stop())
        await asyncio.sleep(0.05)
        recommender.release.set()
        await stopping

        assert not service.is_running
        assert recommender.calls == [1]
        job = store.get_batch(batch_id)
        assert job.status == BatchStatus.PROCESSING.value
        assert job.processed_books == 1
        assert service.active_batches == []

    @pytest.mark.asyncio
    async def test_stop_cancels_after_grace_period(self, store):
        recommender = FakeRecommender(blocking={1})
        service = BatchProcessingService(store, recommender, poll_interval=0.01, shutdown_grace=0.05)
        await service.start()

        batch_id = await service.submit_batch([1])
        await wait_until(lambda: 1 in recommender.calls)

        await service.stop()

        assert not service.is_running
        job = store.get_batch(batch_id)
        assert job.status == BatchStatus.PROCESSING.value
        assert job.processed_books == 0
        assert service.active_batches == []

    @pytest.mark.asyncio
    async def test_stop_without_start(self, store):
        service = BatchProcessingService(store, FakeRecommender())
        await service.stop()
        assert not service.is_running


class ProgressWatcher:
    """
    Recommender and metrics sampler in one: every call the engine makes out
    snapshots the live status and the stored row of the running batch.
    """

    def __init__(self, store, failing=()):
        self.store = store
        self.failing = set(failing)
        self.service = None
        self.batch_id = None
        self.snapshots = []

    async def _snapshot(self):
        live = await self.service.get_status(self.batch_id)
        row = await asyncio.to_thread(self.store.get_batch, self.batch_id)
        self.snapshots.append(
            ("live", live.status, live.processed_books + live.failed_books, live.total_books)
        )
        self.snapshots.append(
            ("row", BatchStatus(row.status), row.processed_books + row.failed_books, row.total_books)
        )

    async def sample_and_record(self, batch_id, book_id=None):
        self.batch_id = batch_id
        await self._snapshot()

    async def __call__(self, book_id):
        await self._snapshot()
        if book_id in self.failing:
            raise RecommendationError(book_id, "model unavailable")
        return ["Cozy"]


class TestProgressInvariants:

    @pytest.mark.asyncio
    async def test_counts_stay_below_total_while_processing(self, store):
        watcher = ProgressWatcher(store, failing={2})
        service = BatchProcessingService(store, watcher, watcher)
        watcher.service = service
        await service.submit_batch([1, 2, 3])

        result = await service.process_batch(service.queue.try_dequeue())

        assert result.status == BatchStatus.COMPLETED
        # Started sample, recommender call and finished sample for each book
        assert len(watcher.snapshots) == 3 * 3 * 2
        for source, status, done, total in watcher.snapshots:
            if status == BatchStatus.PROCESSING:
                assert done < total, (source, done, total)
            if done == total:
                assert status == BatchStatus.COMPLETED, source
        assert watcher.snapshots[-2:] == [
            ("live", BatchStatus.COMPLETED, 3, 3),
            ("row", BatchStatus.COMPLETED, 3, 3),
        ]

    @pytest.mark.asyncio
    async def test_single_book_batch_completes_with_its_counter(self, store):
        watcher = ProgressWatcher(store, failing={7})
        service = BatchProcessingService(store, watcher, watcher)
        watcher.service = service
        batch_id = await service.submit_batch([7])

        await service.process_batch(service.queue.try_dequeue())

        assert ("live", BatchStatus.PROCESSING, 1, 1) not in watcher.snapshots
        assert ("row", BatchStatus.PROCESSING, 1, 1) not in watcher.snapshots
        job = store.get_batch(batch_id)
        assert job.status == BatchStatus.COMPLETED.value
        assert job.failed_books == 1
        assert job.completed_at is not None

    @pytest.mark.asyncio
    async def test_only_one_batch_active_across_many_submissions(self, store):
        batch_ids = []
        active_seen = []
        processing_seen = []
        polled = []

        async def recommender(book_id):
            active_seen.append(service.active_batches)
            statuses = [await status_of(service, batch_id) for batch_id in list(batch_ids)]
            processing_seen.append(statuses.count(BatchStatus.PROCESSING))
            await asyncio.sleep(0)
            return ["Cozy"]

        async def poll_active():
            while True:
                polled.append(len(service.active_batches))
                await asyncio.sleep(0.001)

        service = BatchProcessingService(store, recommender, poll_interval=0.01)
        await service.start()
        poller = asyncio.create_task(poll_active())
        try:
            batch_ids.extend(await asyncio.gather(
                *(service.submit_batch([n, n + 100]) for n in range(6))
            ))
            await wait_until(lambda: _all_completed(service, batch_ids))
        finally:
            poller.cancel()
            await service.stop()

        assert len(active_seen) == 12
        assert all(len(active) == 1 for active in active_seen)
        assert max(processing_seen) <= 1
        assert max(polled) <= 1


async def _all_completed(service, batch_ids):
    for batch_id in batch_ids:
        if await status_of(service, batch_id) != BatchStatus.COMPLETED:
            return False
    return True


async def _is(service, batch_id, expected):
    return await status_of(service, batch_id) == expected
