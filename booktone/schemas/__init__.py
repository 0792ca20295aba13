"""
Pydantic Schemas.

Export all schemas for easy imports:
    from booktone.schemas import BatchCreateRequest, BatchStatusResponse
"""
from booktone.schemas.base import BaseSchema, ErrorDetail, ErrorResponse
from booktone.schemas.batch import (
    BatchCreateRequest,
    BatchCreateResponse,
    BatchStatusResponse,
    BatchLogResponse,
    ResourceMetricsResponse,
)
from booktone.schemas.recommendation import (
    RecommendationItem,
    RecommendationsResponse,
    FeedbackUpdate,
)

__all__ = [
    # Base
    "BaseSchema",
    "ErrorDetail",
    "ErrorResponse",
    # Batch
    "BatchCreateRequest",
    "BatchCreateResponse",
    "BatchStatusResponse",
    "BatchLogResponse",
    "ResourceMetricsResponse",
    # Recommendation
    "RecommendationItem",
    "RecommendationsResponse",
    "FeedbackUpdate",
]
