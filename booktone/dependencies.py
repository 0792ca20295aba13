"""
Service wiring and FastAPI dependencies.

The batch service lives on ``app.state`` for the lifetime of the process:
one queue, one status cache and one worker shared by every request.
"""
import httpx
from fastapi import Request

from booktone.batch import BatchProcessingService, JobStore
from booktone.config import Settings
from booktone.core.exceptions import ServiceUnavailableException
from booktone.services.book_data import BookDataClient
from booktone.services.recommender import RecommenderService
from booktone.services.resource_monitor import ResourceMonitor


def build_batch_service(settings: Settings, session_factory, http_client: httpx.AsyncClient) -> BatchProcessingService:
    store = JobStore(session_factory)
    recommender = RecommenderService(
        client=http_client,
        book_data=BookDataClient(http_client, settings.BOOK_DATA_API_URL),
        ollama_url=settings.OLLAMA_URL,
        model=settings.OLLAMA_MODEL,
        max_tones=settings.MAX_TONES,
    )
    monitor = ResourceMonitor(store, enabled=settings.RESOURCE_METRICS_ENABLED)
    return BatchProcessingService(
        store,
        recommender.generate_for_book,
        monitor,
        poll_interval=settings.BATCH_POLL_INTERVAL_SECONDS,
        error_backoff=settings.BATCH_ERROR_BACKOFF_SECONDS,
        shutdown_grace=settings.BATCH_SHUTDOWN_GRACE_SECONDS,
        max_concurrent_batches=settings.BATCH_MAX_CONCURRENT,
    )


def get_batch_service(request: Request) -> BatchProcessingService:
    service = getattr(request.app.state, "batch_service", None)
    if service is None:
        raise ServiceUnavailableException("Batch processing service is not running")
    return service
