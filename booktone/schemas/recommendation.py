"""
Recommendation Schemas.
"""
from typing import List

from pydantic import Field

from booktone.schemas.base import BaseSchema


class RecommendationItem(BaseSchema):
    recommendation_id: int
    book_id: int
    tone: str


class RecommendationsResponse(BaseSchema):
    recommendations: List[RecommendationItem]


class FeedbackUpdate(BaseSchema):
    """Reader feedback on one recommendation: -1, 0 or 1."""
    feedback: int = Field(..., ge=-1, le=1)
