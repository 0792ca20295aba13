"""
Database Models.

Export all models from this package for easy imports:
    from booktone.models import BatchJob, BookToneRecommendation
"""
from booktone.models.base import Base, CreatedAtMixin, utcnow
from booktone.models.batch import (
    BatchStatus,
    LogStatus,
    BatchJob,
    BatchJobDetail,
    BatchProcessingLog,
    ErrorLog,
    ResourceMetrics,
)
from booktone.models.recommendation import BookToneRecommendation

__all__ = [
    "Base",
    "CreatedAtMixin",
    "utcnow",
    "BatchStatus",
    "LogStatus",
    "BatchJob",
    "BatchJobDetail",
    "BatchProcessingLog",
    "ErrorLog",
    "ResourceMetrics",
    "BookToneRecommendation",
]
