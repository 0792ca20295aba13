"""
Persistent job store.

Every operation opens its own short-lived session, so a connection failure
while recording one book cannot poison the sessions used for the rest of the
batch. All methods are synchronous; the worker calls them through
``asyncio.to_thread``.
"""
import logging
import traceback
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional, Sequence

from sqlalchemy.orm import Session, sessionmaker

from booktone.models import (
    BatchJob,
    BatchJobDetail,
    BatchProcessingLog,
    BatchStatus,
    BookToneRecommendation,
    ErrorLog,
    LogStatus,
    ResourceMetrics,
    utcnow,
)

logger = logging.getLogger(__name__)

ERROR_SOURCE = "BatchProcessing"


class JobStore:
    """Durable access to batch jobs, their details, audit logs and results."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Commit on success, roll back on error, always close."""
        db = self.session_factory()
        # Rows are handed back to callers after the session is closed
        db.expire_on_commit = False
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _load_job(db: Session, batch_id: str) -> Optional[BatchJob]:
        return db.query(BatchJob).filter(BatchJob.batch_id == batch_id).first()

    def _require_job(self, db: Session, batch_id: str) -> BatchJob:
        job = self._load_job(db, batch_id)
        if job is None:
            raise LookupError(f"Batch job {batch_id} not found")
        return job

    # =========================================================================
    # Batch jobs
    # =========================================================================
    def create_batch(self, batch_id: str, book_ids: Sequence[int]) -> BatchJob:
        """Persist the job row and its book ids in one transaction."""
        now = utcnow()
        with self.session_scope() as db:
            job = BatchJob(
                batch_id=batch_id,
                status=BatchStatus.QUEUED.value,
                total_books=len(book_ids),
                processed_books=0,
                failed_books=0,
                created_at=now,
            )
            db.add(job)
            db.add_all([
                BatchJobDetail(batch_id=batch_id, book_id=book_id, created_at=now)
                for book_id in book_ids
            ])
        return job

    def get_batch(self, batch_id: str) -> Optional[BatchJob]:
        with self.session_scope() as db:
            return self._load_job(db, batch_id)

    def get_book_ids(self, batch_id: str) -> List[int]:
        with self.session_scope() as db:
            rows = (
                db.query(BatchJobDetail.book_id)
                .filter(BatchJobDetail.batch_id == batch_id)
                .order_by(BatchJobDetail.id)
                .all()
            )
            return [row.book_id for row in rows]

    def mark_processing(self, batch_id: str, started_at: datetime) -> Optional[BatchJob]:
        with self.session_scope() as db:
            job = self._load_job(db, batch_id)
            if job is None:
                return None
            job.status = BatchStatus.PROCESSING.value
            job.started_at = started_at
            return job

    def mark_completed(self, batch_id: str, completed_at: datetime) -> BatchJob:
        with self.session_scope() as db:
            job = self._require_job(db, batch_id)
            self._complete(job, completed_at)
            return job

    def mark_failed(self, batch_id: str, error_message: str, completed_at: datetime) -> Optional[BatchJob]:
        with self.session_scope() as db:
            job = self._load_job(db, batch_id)
            if job is None:
                return None
            job.status = BatchStatus.FAILED.value
            job.error_message = error_message[:1000]
            job.completed_at = completed_at
            return job

    # =========================================================================
    # Per-book progress
    # =========================================================================
    def append_log(
        self,
        batch_id: str,
        book_id: int,
        status: LogStatus,
        message: str,
        completed_at: Optional[datetime] = None,
    ) -> BatchProcessingLog:
        with self.session_scope() as db:
            entry = BatchProcessingLog(
                batch_id=batch_id,
                book_id=book_id,
                status=status.value,
                message=message[:1000],
                created_at=utcnow(),
                completed_at=completed_at,
            )
            db.add(entry)
            return entry

    @staticmethod
    def _complete(job: BatchJob, completed_at: datetime) -> None:
        job.status = BatchStatus.COMPLETED.value
        job.completed_at = completed_at

    def record_item_success(
        self,
        batch_id: str,
        book_id: int,
        tones: Sequence[str],
        final: bool = False,
    ) -> BatchJob:
        """
        Completed log row, generated tones and processed_books += 1, atomically.

        With final=True the same transaction also marks the batch Completed,
        so the counters never reach total_books while it is still Processing.
        """
        now = utcnow()
        with self.session_scope() as db:
            job = self._require_job(db, batch_id)
            db.add(BatchProcessingLog(
                batch_id=batch_id,
                book_id=book_id,
                status=LogStatus.COMPLETED.value,
                message=f"Successfully generated {len(tones)} recommendations",
                created_at=now,
                completed_at=now,
            ))
            db.add_all([
                BookToneRecommendation(book_id=book_id, tone=tone, feedback=0, created_at=now)
                for tone in tones
            ])
            job.processed_books += 1
            if final:
                self._complete(job, now)
            return job

    def record_item_failure(
        self,
        batch_id: str,
        book_id: int,
        exc: BaseException,
        source: str = ERROR_SOURCE,
        final: bool = False,
    ) -> BatchJob:
        """
        Failed log row, ErrorLog row and failed_books += 1, atomically.

        final behaves as in record_item_success.
        """
        now = utcnow()
        message = str(exc) or type(exc).__name__
        with self.session_scope() as db:
            job = self._require_job(db, batch_id)
            db.add(BatchProcessingLog(
                batch_id=batch_id,
                book_id=book_id,
                status=LogStatus.FAILED.value,
                message=f"Failed to generate recommendations: {message}"[:1000],
                created_at=now,
                completed_at=now,
            ))
            db.add(ErrorLog(
                source=source,
                error_type=type(exc).__name__,
                error_message=message,
                stack_trace="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                book_id=book_id,
                batch_id=batch_id,
                created_at=now,
            ))
            job.failed_books += 1
            if final:
                self._complete(job, now)
            return job

    def get_logs(self, batch_id: str) -> List[BatchProcessingLog]:
        with self.session_scope() as db:
            return (
                db.query(BatchProcessingLog)
                .filter(BatchProcessingLog.batch_id == batch_id)
                .order_by(BatchProcessingLog.created_at, BatchProcessingLog.id)
                .all()
            )

    def get_errors(self, batch_id: str) -> List[ErrorLog]:
        with self.session_scope() as db:
            return (
                db.query(ErrorLog)
                .filter(ErrorLog.batch_id == batch_id)
                .order_by(ErrorLog.id)
                .all()
            )

    # =========================================================================
    # Resource metrics
    # =========================================================================
    def add_metrics(self, metrics: ResourceMetrics) -> ResourceMetrics:
        with self.session_scope() as db:
            if metrics.created_at is None:
                metrics.created_at = utcnow()
            db.add(metrics)
            return metrics

    def get_metrics(self, batch_id: str) -> List[ResourceMetrics]:
        with self.session_scope() as db:
            return (
                db.query(ResourceMetrics)
                .filter(ResourceMetrics.batch_id == batch_id)
                .order_by(ResourceMetrics.created_at, ResourceMetrics.id)
                .all()
            )

