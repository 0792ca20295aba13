"""
Batch Models.

Durable records of the batch engine:
- BatchJob: one row per submitted batch, mutated only by the worker
- BatchJobDetail: the book ids of a batch, written once at submission
- BatchProcessingLog: append-only per-book audit trail
- ErrorLog: append-only record of item-level exceptions
- ResourceMetrics: CPU/memory samples taken around each book
"""
from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import String, Text, Integer, Float, BigInteger, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from booktone.models.base import Base, CreatedAtMixin


class BatchStatus(str, PyEnum):
    """Batch status enumeration."""
    QUEUED = "Queued"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"
    # Only ever returned by status queries, never stored
    NOT_FOUND = "NotFound"


class LogStatus(str, PyEnum):
    """Audit log event enumeration."""
    STARTED = "Started"
    COMPLETED = "Completed"
    FAILED = "Failed"


class BatchJob(Base, CreatedAtMixin):
    """
    Batch job.

    Table: batch_jobs

    Invariant: processed_books + failed_books <= total_books, with equality
    only once status is Completed or Failed.
    """

    batch_id: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=BatchStatus.QUEUED.value, nullable=False)
    total_books: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_books: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_books: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    def __repr__(self) -> str:
        return f"<BatchJob(batch_id={self.batch_id}, status={self.status})>"


class BatchJobDetail(Base, CreatedAtMixin):
    """One book id of a batch. Table: batch_job_details"""

    batch_id: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    book_id: Mapped[int] = mapped_column(Integer, nullable=False)


class BatchProcessingLog(Base, CreatedAtMixin):
    """Audit row for one book lifecycle event. Table: batch_processing_logs"""

    batch_id: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    book_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    message: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class ErrorLog(Base, CreatedAtMixin):
    """
    Item-level exception record.

    Table: error_logs

    Used for post-hoc diagnosis only; the engine never reads it.
    """

    source: Mapped[str] = mapped_column(String(100), nullable=False)
    error_type: Mapped[str] = mapped_column(String(500), nullable=False)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    stack_trace: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    book_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    batch_id: Mapped[Optional[str]] = mapped_column(String(50), index=True, nullable=True)


class ResourceMetrics(Base, CreatedAtMixin):
    """Process resource sample. Table: resource_metrics"""

    __tablename__ = "resource_metrics"

    batch_id: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    book_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cpu_usage_percent: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    memory_usage_bytes: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    available_memory_bytes: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    memory_usage_percent: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
