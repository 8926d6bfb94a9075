"""
EventHub API - Main Application Entry Point

An event-management service demonstrating:
- A moderated event lifecycle (review, publication, rejection)
- Capacity-safe participation admission under concurrent load
- View statistics merged from an external hit counter
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from eventhub.core.config import get_settings
from eventhub.core.exceptions import AppError, ConflictError, ValidationError
from eventhub.core.logging import setup_logging, get_logger
from eventhub.core.metrics import metrics_endpoint
from eventhub.api.router import api_router
from eventhub.api.middleware import RequestLoggingMiddleware
from eventhub.infrastructure import close_redis, close_stats_client
from eventhub.schemas.common import ApiError
from eventhub.services.strategy_factory import get_admission

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        admission_strategy=get_admission().name,
        stats_server=settings.STATS_SERVER_URL,
    )

    yield

    await close_stats_client()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Event management API with moderated publication and capacity-safe admission",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

# Routes
app.include_router(api_router)


def _error_response(error: AppError, errors: Optional[list[str]] = None) -> JSONResponse:
    body = ApiError(
        status=error.status_label,
        reason=error.reason,
        message=error.message,
        errors=errors or [],
    )
    return JSONResponse(status_code=error.status_code, content=body.model_dump())


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    logger.info("request_rejected", error=type(exc).__name__, message=exc.message)
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))
        errors.append(f"Field: {field}. Error: {error.get('msg')}")

    message = errors[0] if errors else "Request validation failed"
    logger.info("request_invalid", errors=errors)
    return _error_response(ValidationError(message), errors)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("integrity_violation", error=str(exc.orig))
    return _error_response(ConflictError("Integrity constraint has been violated"))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", error=str(exc))
    error = AppError("Internal server error")
    return _error_response(error)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "admission_strategy": get_admission().name,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()
