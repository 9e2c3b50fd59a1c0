"""
Main FastAPI application.
"""
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from skillgate.api.v1.api import api_router
from skillgate.core.analytics import AnalyticsTracker
from skillgate.core.config import settings
from skillgate.core.db_error_handling import DatabaseOperationError
from skillgate.core.error_responses import ErrorMessages
from skillgate.core.error_tracking import error_tracker
from skillgate.core.errors import ServiceError
from skillgate.core.logging_config import setup_logging
from skillgate.middleware import RequestLoggingMiddleware

# Initialize logging configuration at startup
setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan event handler.

    - On startup: Initializes Sentry when SENTRY_DSN is configured
    - On shutdown: Flushes pending error reports
    """
    error_tracker.init()
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} starting ({settings.ENV})")

    yield

    error_tracker.shutdown()
    logger.info("Application shutting down")


# OpenAPI tags metadata
tags_metadata = [
    {
        "name": "health",
        "description": "Health check endpoints for monitoring application status",
    },
    {
        "name": "test-types",
        "description": "Catalogue of available tests",
    },
    {
        "name": "access",
        "description": "Code redemption, access requests and the caller's entitlements",
    },
    {
        "name": "tests",
        "description": "Test session lifecycle: start, progress, pause, resume, complete",
    },
]


def create_application() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        description=(
            "**SkillGate API** - access control and session management for "
            "skills assessments.\n\n"
            "This API provides:\n"
            "* Per-test access levels granted by admins, approvals or one-time codes\n"
            "* Access requests and their review\n"
            "* Timed test sessions with pause/resume and live typing statistics\n"
            "* Scored results and an admin audit log\n\n"
            "## Authentication\n\n"
            "All endpoints except health require a JWT Bearer token. "
            "Admin endpoints additionally require the ADMIN role."
        ),
        docs_url=f"{settings.API_V1_PREFIX}/docs",
        redoc_url=f"{settings.API_V1_PREFIX}/redoc",
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        openapi_tags=tags_metadata,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )

    # Configure Request Logging
    app.add_middleware(RequestLoggingMiddleware)

    # Include API router
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        """
        Map business-rule failures to their status code and error body.

        Body: {"detail": message, "error": kind, ...extra}
        """
        logger.info(
            f"{exc.kind.value} on {request.method} {request.url.path}: {exc.message}",
            extra={"error_kind": exc.kind.value, "status_code": exc.status_code},
        )
        AnalyticsTracker.track_api_error(
            method=request.method,
            path=str(request.url.path),
            error_type=exc.kind.value,
            error_message=exc.message,
            user_id=getattr(request.state, "user_id", None),
        )
        if exc.status_code >= 500:
            error_tracker.capture_error(
                exc,
                context={"path": str(request.url.path), "method": request.method},
                tags={"error_type": exc.kind.value},
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(DatabaseOperationError)
    async def database_error_handler(request: Request, exc: DatabaseOperationError):
        """
        Report a failed transaction without leaking database details.

        Nothing from the failed operation was committed.
        """
        error_id = str(uuid.uuid4())
        logger.error(
            f"Database operation failed [error_id={error_id}]: {exc.message}",
            extra={"error_id": error_id},
        )
        AnalyticsTracker.track_api_error(
            method=request.method,
            path=str(request.url.path),
            error_type="DatabaseOperationError",
            error_message=exc.operation_name,
            user_id=getattr(request.state, "user_id", None),
        )
        error_tracker.capture_error(
            exc.original_error,
            context={
                "path": str(request.url.path),
                "method": request.method,
                "operation": exc.operation_name,
                "error_id": error_id,
            },
            tags={"error_type": "DatabaseOperationError"},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": ErrorMessages.DATABASE_ERROR, "error_id": error_id},
        )

    # Exception handlers for error tracking
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """
        Handle HTTP exceptions and track them in analytics.
        """
        if exc.status_code >= 400:
            AnalyticsTracker.track_api_error(
                method=request.method,
                path=str(request.url.path),
                error_type="HTTPException",
                error_message=str(exc.detail),
                user_id=getattr(request.state, "user_id", None),
            )

        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        """
        Handle request validation errors.
        """
        errors = [
            {
                "loc": list(error.get("loc", [])),
                "msg": str(error.get("msg", "")),
                "type": str(error.get("type", "")),
            }
            for error in exc.errors()
        ]

        AnalyticsTracker.track_api_error(
            method=request.method,
            path=str(request.url.path),
            error_type="ValidationError",
            error_message=str(errors),
            user_id=getattr(request.state, "user_id", None),
        )

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": errors},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """
        Handle unexpected exceptions and track them.

        Generates a unique error_id (UUID) for each exception so a specific
        failure can be traced in the logs. The error_id is included in the
        response body and logged with the full exception.
        """
        error_id = str(uuid.uuid4())

        logger.exception(
            f"Unhandled exception [error_id={error_id}]: {exc}",
            extra={"error_id": error_id},
        )

        AnalyticsTracker.track_api_error(
            method=request.method,
            path=str(request.url.path),
            error_type=exc.__class__.__name__,
            error_message=str(exc),
            user_id=getattr(request.state, "user_id", None),
        )

        error_tracker.capture_error(
            exc,
            context={
                "path": str(request.url.path),
                "method": request.method,
                "error_id": error_id,
            },
            tags={"error_type": exc.__class__.__name__},
        )

        # Don't leak internal details
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "error_id": error_id,
            },
        )

    return app


app = create_application()


@app.get("/")
async def root():
    """
    Root endpoint.
    """
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": f"{settings.API_V1_PREFIX}/docs",
    }
