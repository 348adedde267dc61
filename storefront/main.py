"""
FastAPI application entry point with health endpoints and service routing.

This module provides the main FastAPI application instance with CORS configuration,
rate limiting, request correlation, domain error mapping, health check endpoints
and the v1 routers. Startup verifies database connectivity; shutdown disposes
of the engine.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from storefront.api.v1 import cart_router, orders_router, payments_router, webhooks_router
from storefront.core.config import get_settings
from storefront.core.exceptions import (
    AuthorizationFailure,
    ExternalServiceFailure,
    NotFoundFailure,
    PersistenceFailure,
    StorefrontError,
    ValidationFailure,
    WebhookSignatureError,
)
from storefront.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from storefront.database.connection import (
    check_database_health,
    close_database_connections,
    initialize_database,
)

# Configure logging before application initialization
configure_logging()
logger = get_logger(__name__)

settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    enabled=not settings.is_testing,
)

# Most specific first; the first matching class decides the status code
ERROR_STATUS_CODES: list[tuple[type[StorefrontError], int]] = [
    (WebhookSignatureError, status.HTTP_400_BAD_REQUEST),
    (ValidationFailure, status.HTTP_400_BAD_REQUEST),
    (NotFoundFailure, status.HTTP_404_NOT_FOUND),
    (AuthorizationFailure, status.HTTP_403_FORBIDDEN),
    (ExternalServiceFailure, status.HTTP_502_BAD_GATEWAY),
    (PersistenceFailure, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_code_for(exc: StorefrontError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _jsonable(context: dict) -> dict:
    return {
        key: value if isinstance(value, (str, int, float, bool, list, type(None))) else str(value)
        for key, value in context.items()
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan context manager for startup and shutdown events.

    Args:
        app: FastAPI application instance

    Yields:
        None during application runtime
    """
    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        version=settings.app_version,
    )

    with log_performance(logger, "application_startup"):
        await initialize_database()

    yield

    logger.info("Application shutting down")
    with log_performance(logger, "application_shutdown"):
        await close_database_connections()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Order lifecycle and checkout API",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    debug=settings.debug,
)

# Configure rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """
    Middleware for request logging and correlation ID management.

    Sets request ID for correlation, logs request details, and measures
    response time. Clears context after request processing.

    Args:
        request: Incoming HTTP request
        call_next: Next middleware or route handler

    Returns:
        HTTP response with X-Request-ID header
    """
    request_id = set_request_id(request.headers.get("X-Request-ID"))

    logger.info(
        "Request received",
        method=request.method,
        path=request.url.path,
        client_host=request.client.host if request.client else None,
    )

    try:
        with log_performance(
            logger,
            "request_processing",
            method=request.method,
            path=request.url.path,
        ):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )
        return response
    except Exception as e:
        logger.error(
            "Request failed",
            method=request.method,
            path=request.url.path,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        clear_context()


@app.exception_handler(StorefrontError)
async def storefront_exception_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """
    Translate domain errors into structured error responses.

    Args:
        request: HTTP request that raised the error
        exc: Domain error

    Returns:
        JSON response ``{"error": {"code", "message", "details"}}``
    """
    status_code = status_code_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "Request failed with domain error",
        method=request.method,
        path=request.url.path,
        status_code=status_code,
        error_code=exc.code,
        error=exc.message,
    )

    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                "details": _jsonable(exc.context),
            },
            "request_id": get_request_id(),
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle request validation errors with structured error response.

    Args:
        request: HTTP request that caused validation error
        exc: Validation exception with error details

    Returns:
        JSON response with validation error details
    """
    logger.warning(
        "Request validation failed",
        method=request.method,
        path=request.url.path,
        errors=exc.errors(),
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "code": "REQUEST_VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": {"errors": [str(error.get("msg")) for error in exc.errors()]},
            },
            "request_id": get_request_id(),
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions with structured error response.

    Logs error with full context and returns generic error message
    to avoid exposing internal details.
    """
    logger.error(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": {},
            },
            "request_id": get_request_id(),
        },
    )


@app.get(
    "/health",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Health check endpoint",
)
async def health_check() -> dict[str, str]:
    """
    Basic health check endpoint.

    Always returns 200 OK if application is running.
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@app.get(
    "/ready",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Readiness check endpoint",
)
async def readiness_check():
    """
    Readiness check endpoint for orchestration.

    Returns 503 while the database is unreachable.
    """
    if not await check_database_health(max_retries=1):
        logger.warning("Readiness check failed", dependencies_ready=False)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "service": settings.app_name,
                "dependencies_ready": False,
                "database": "unhealthy",
            },
        )

    return {
        "status": "ready",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "dependencies_ready": True,
        "database": "healthy",
    }


@app.get(
    "/live",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Liveness check endpoint",
)
async def liveness_check() -> dict[str, str]:
    return {
        "status": "alive",
        "service": settings.app_name,
        "version": settings.app_version,
    }


app.include_router(orders_router, prefix=settings.api_v1_prefix)
app.include_router(cart_router, prefix=settings.api_v1_prefix)
app.include_router(payments_router, prefix=settings.api_v1_prefix)
app.include_router(webhooks_router, prefix=settings.api_v1_prefix)
