"""
Batch Schemas.

Pydantic schemas for batch submission, status, audit logs and metrics.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from booktone.batch.status import BatchProcessingStatus
from booktone.models.batch import BatchStatus
from booktone.schemas.base import BaseSchema


class BatchCreateRequest(BaseSchema):
    """Schema for submitting a batch of books."""
    book_ids: List[int] = Field(..., min_length=1, examples=[[101, 102]])


class BatchCreateResponse(BaseSchema):
    batch_id: str


class BatchStatusResponse(BaseSchema):
    """Live or stored progress of one batch."""
    batch_id: str
    status: BatchStatus
    total_books: int
    processed_books: int
    failed_books: int
    progress_percent: float = 0.0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @classmethod
    def from_status(cls, status: BatchProcessingStatus) -> "BatchStatusResponse":
        done = status.processed_books + status.failed_books
        progress = 0.0
        if status.total_books > 0:
            progress = round(done / status.total_books * 100, 1)
        return cls(
            batch_id=status.batch_id,
            status=status.status,
            total_books=status.total_books,
            processed_books=status.processed_books,
            failed_books=status.failed_books,
            progress_percent=progress,
            started_at=status.started_at,
            completed_at=status.completed_at,
            error_message=status.error_message,
        )


class BatchLogResponse(BaseSchema):
    id: int
    batch_id: str
    book_id: int
    status: str
    message: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class ResourceMetricsResponse(BaseSchema):
    id: int
    batch_id: str
    book_id: Optional[int] = None
    cpu_usage_percent: float
    memory_usage_bytes: int
    available_memory_bytes: int
    memory_usage_percent: float
    created_at: datetime
