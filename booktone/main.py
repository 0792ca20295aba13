"""
FastAPI Application Entry Point.

This module initializes the FastAPI application with:
- SQLAlchemy tables
- The batch processing service and its background worker
- CORS and request logging middleware
- Exception handlers
- API routers
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from booktone.api.v1.router import api_router
from booktone.config import settings
from booktone.core.exceptions import APIException
from booktone.core.middleware import RequestLoggingMiddleware
from booktone.db.session import SessionLocal, create_tables, engine
from booktone.dependencies import build_batch_service
from booktone.schemas import ErrorDetail, ErrorResponse

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# =============================================================================
# Lifespan Events (Startup/Shutdown)
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Startup:
        - Create tables
        - Start the batch worker (a service already placed on app.state is
          used as is)

    Shutdown:
        - Stop the worker, waiting for the current batch up to the grace period
        - Close HTTP and database connections
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    create_tables()
    logger.info("Database ready.")

    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(max(settings.OLLAMA_TIMEOUT_SECONDS, settings.BOOK_DATA_TIMEOUT_SECONDS))
    )
    service = getattr(app.state, "batch_service", None)
    if service is None:
        service = build_batch_service(settings, SessionLocal, http_client)
        app.state.batch_service = service
    await service.start()

    yield

    logger.info("Shutting down resources...")
    await service.stop()
    await http_client.aclose()
    engine.dispose()


# =============================================================================
# FastAPI Application
# =============================================================================
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url=settings.DOCS_URL if settings.DEBUG else None,
    openapi_url=settings.OPENAPI_URL if settings.DEBUG else None,
    lifespan=lifespan,
)


# =============================================================================
# Middleware
# =============================================================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.cors_methods_list,
    allow_headers=["*"] if settings.CORS_ALLOW_HEADERS == "*" else settings.CORS_ALLOW_HEADERS.split(","),
)

app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Exception Handlers
# =============================================================================
def error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, details=details))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    return error_response(exc.status_code, exc.error_code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "VALIDATION_ERROR", "Request validation failed", errors
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    message = str(exc) if settings.DEBUG else "An unexpected error occurred"
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", message)


# =============================================================================
# Include API Routers
# =============================================================================
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/health", tags=["Health"])
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "booktone"}


def run():
    import uvicorn
    uvicorn.run(
        "booktone.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD
    )


# =============================================================================
# Development Server
# =============================================================================
if __name__ == "__main__":
    run()
