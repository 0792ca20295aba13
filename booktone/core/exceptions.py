"""
Exceptions.

APIException and its subclasses are rendered by the handlers in
booktone.main as {"error": {"code", "message", "details"}}.

RecommendationError is different: it is raised by the recommendation
collaborator for a single book, and the batch engine records it against that
book instead of surfacing it over HTTP.
"""
from typing import Any, Optional


class APIException(Exception):
    """
    Error with an HTTP status and a machine-readable code.

    Usage:
        raise APIException(
            status_code=409,
            error_code="BATCH_ALREADY_RUNNING",
            message="Batch is already being processed",
        )
    """

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[Any] = None
    ):
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationException(APIException):
    """400: the request parsed but its content is unacceptable."""

    def __init__(self, message: str = "Validation error", details: Optional[Any] = None):
        super().__init__(400, "VALIDATION_ERROR", message, details)


class NotFoundException(APIException):
    """404 for a generic resource."""

    def __init__(
        self,
        message: str = "Resource not found",
        error_code: str = "NOT_FOUND",
        details: Optional[Any] = None
    ):
        super().__init__(404, error_code, message, details)


class BatchNotFoundException(NotFoundException):
    def __init__(self, message: str = "Batch job not found"):
        super().__init__(message, error_code="BATCH_NOT_FOUND")


class RecommendationNotFoundException(NotFoundException):
    def __init__(self, message: str = "Recommendation not found"):
        super().__init__(message, error_code="RECOMMENDATION_NOT_FOUND")


class ServiceUnavailableException(APIException):
    """503: the batch service is not running (startup failed or shutting down)."""

    def __init__(self, message: str = "Service temporarily unavailable", details: Optional[Any] = None):
        super().__init__(503, "SERVICE_UNAVAILABLE", message, details)


class RecommendationError(Exception):
    """Tone generation failed for a single book."""

    def __init__(self, book_id: int, message: str):
        self.book_id = book_id
        self.message = message
        super().__init__(f"Book {book_id}: {message}")
