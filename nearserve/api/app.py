"""
FastAPI application entry point with health check route.
"""
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from nearserve.api.routes import auth, users, services, bookings, reviews, notifications, providers
from nearserve.api.middleware.error_handler import (
    AppException,
    app_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
)
from nearserve.jobs.notification_sweep import register_notification_sweep
from nearserve.jobs.scheduler import get_scheduler
from nearserve.lib.db import init_db
from nearserve.lib.logging import get_logger, set_correlation_id
from nearserve.lib.settings import settings
from nearserve.services.auth_service import Authenticator
from nearserve.services.identity_provider import GoogleIdentityProvider
from nearserve.services.notification_service import NotificationDispatcher

logger = get_logger(__name__)


# Correlation ID middleware
class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add correlation_id to all requests for distributed tracing.
    Accepts X-Correlation-ID from incoming requests or generates a new one.
    """

    async def dispatch(self, request: Request, call_next):
        # Get correlation ID from header or generate new one
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))

        # Store in request state for handlers, and in the context var for log lines
        request.state.correlation_id = correlation_id
        set_correlation_id(correlation_id)

        logger.info(
            "Incoming request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "client": request.client.host if request.client else None,
            }
        )

        response = await call_next(request)

        response.headers["X-Correlation-ID"] = correlation_id

        logger.info(
            "Response sent",
            extra={
                "status_code": response.status_code,
            }
        )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup/shutdown events.
    """
    # Startup
    logger.info(f"{settings.app_name} starting up...")
    init_db()

    scheduler = None
    if settings.notification_sweep_enabled:
        scheduler = get_scheduler()
        register_notification_sweep(scheduler, settings.notification_sweep_interval_minutes)
        scheduler.start()

    yield

    # Shutdown
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    logger.info(f"{settings.app_name} shutting down...")


def create_app() -> FastAPI:
    """
    Build the application with its collaborators attached to app.state.
    """
    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        description="Local services marketplace: catalog, availability, bookings, reviews and notifications",
        lifespan=lifespan,
    )

    app.state.authenticator = Authenticator()
    app.state.identity_provider = GoogleIdentityProvider.from_settings()
    app.state.dispatcher = NotificationDispatcher()

    # CORS middleware - configure allowed origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware
    app.add_middleware(CorrelationIdMiddleware)

    # Register exception handlers
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Include routers
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(services.router)
    app.include_router(bookings.router)
    app.include_router(reviews.router)
    app.include_router(notifications.router)
    app.include_router(providers.router)

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    return app


app = create_app()
