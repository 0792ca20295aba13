"""
Book tone recommendation endpoints: batch submission, progress polling,
audit logs, resource metrics, generated tones and reader feedback.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from booktone.batch import BatchProcessingService
from booktone.core.exceptions import BatchNotFoundException, NotFoundException, RecommendationNotFoundException
from booktone.db.session import get_db
from booktone.dependencies import get_batch_service
from booktone.models import BookToneRecommendation
from booktone.schemas import (
    BatchCreateRequest,
    BatchCreateResponse,
    BatchLogResponse,
    BatchStatusResponse,
    ErrorResponse,
    FeedbackUpdate,
    RecommendationItem,
    RecommendationsResponse,
    ResourceMetricsResponse,
)
from booktone.services.recommender import format_tone

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/recommendations",
    tags=["Recommendations"],
    responses={404: {"model": ErrorResponse}},
)


@router.post(
    "/batch",
    response_model=BatchCreateResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit a batch",
    description="Queue tone generation for a list of books and return the batch id immediately."
)
async def submit_batch(
    request: BatchCreateRequest,
    service: BatchProcessingService = Depends(get_batch_service),
):
    batch_id = await service.submit_batch(request.book_ids)
    logger.info(f"Started batch processing job {batch_id} for {len(request.book_ids)} books")
    return BatchCreateResponse(batch_id=batch_id)


@router.get(
    "/batch/{batch_id}/status",
    response_model=BatchStatusResponse,
    summary="Batch status",
    description="Live progress while the batch runs, stored record afterwards."
)
async def get_batch_status(
    batch_id: str,
    service: BatchProcessingService = Depends(get_batch_service),
):
    batch_status = await service.get_status(batch_id)
    if not batch_status.is_found:
        raise BatchNotFoundException()
    return BatchStatusResponse.from_status(batch_status)


@router.get(
    "/batch/{batch_id}/logs",
    response_model=List[BatchLogResponse],
    summary="Batch audit log"
)
async def get_batch_logs(
    batch_id: str,
    service: BatchProcessingService = Depends(get_batch_service),
):
    return await service.get_logs(batch_id)


@router.get(
    "/batch/{batch_id}/metrics",
    response_model=List[ResourceMetricsResponse],
    summary="Batch resource metrics"
)
async def get_batch_metrics(
    batch_id: str,
    service: BatchProcessingService = Depends(get_batch_service),
):
    return await service.get_metrics(batch_id)


@router.get(
    "/{book_id}",
    response_model=RecommendationsResponse,
    summary="Tones for a book"
)
def get_book_recommendations(book_id: int, db: Session = Depends(get_db)):
    recommendations = (
        db.query(BookToneRecommendation)
        .filter(BookToneRecommendation.book_id == book_id)
        .order_by(BookToneRecommendation.id)
        .all()
    )
    if not recommendations:
        raise NotFoundException(f"No recommendations for book {book_id}")

    return RecommendationsResponse(
        recommendations=[
            RecommendationItem(
                recommendation_id=r.id,
                book_id=r.book_id,
                tone=format_tone(r.tone),
            )
            for r in recommendations
        ]
    )


@router.put(
    "/{recommendation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Record feedback"
)
def update_recommendation_feedback(
    recommendation_id: int,
    update: FeedbackUpdate,
    db: Session = Depends(get_db),
):
    recommendation = db.get(BookToneRecommendation, recommendation_id)
    if recommendation is None:
        raise RecommendationNotFoundException()

    recommendation.feedback = update.feedback
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
