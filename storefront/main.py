"""
Storefront Orders API.

Run with:
    uvicorn storefront.main:create_app --factory
"""
from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from storefront.api.v1.router import api_router
from storefront.config import Settings, get_settings
from storefront.core.context import AppContext, build_context
from storefront.core.errors import (
    InsufficientStockError,
    OrderDecodeError,
    OrderNotFoundError,
    OrderServiceError,
    OrderValidationError,
    PersistenceError,
    ProductNotFoundError,
)
from storefront.database import init_db
from storefront.jobs.scheduler import create_scheduler, get_job_status, start_scheduler, shutdown_scheduler


logger = logging.getLogger(__name__)

# Most specific first
ERROR_STATUS_CODES = [
    (OrderNotFoundError, 404),
    (ProductNotFoundError, 404),
    (InsufficientStockError, 409),
    (OrderValidationError, 422),
    (PersistenceError, 503),
    (OrderDecodeError, 500),
]


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def status_code_for(exc: OrderServiceError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 400


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create missing tables
    - Start background scheduler

    Shutdown:
    - Stop scheduler and dispose the engine
    """
    context: AppContext = app.state.context
    settings = context.settings
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    await init_db(context.engine)

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = create_scheduler(context)
        start_scheduler(scheduler)
    app.state.scheduler = scheduler

    yield

    # Shutdown
    if scheduler is not None:
        shutdown_scheduler(scheduler)
    await context.close()
    logger.info("Shutting down...")


def create_app(
    settings: Optional[Settings] = None,
    context: Optional[AppContext] = None,
) -> FastAPI:
    """Build the application around an explicit context."""
    if context is None:
        settings = settings or get_settings()
        context = build_context(settings)
    settings = context.settings

    configure_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Order lifecycle and inventory reconciliation for the storefront",
        lifespan=lifespan,
    )
    app.state.context = context
    app.state.scheduler = None

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    @app.exception_handler(OrderServiceError)
    async def order_service_exception_handler(request: Request, exc: OrderServiceError):
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            status_code=status_code,
            content={
                "detail": exc.message,
                "type": type(exc).__name__,
                "details": exc.details,
            },
        )

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Health check with a database round trip."""
        health = {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "database": "connected",
        }
        try:
            async with context.session_factory() as session:
                await session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"Health check database error: {e}")
            health["status"] = "unhealthy"
            health["database"] = "unavailable"
            return JSONResponse(status_code=503, content=health)

        scheduler = request.app.state.scheduler
        if scheduler is not None:
            health["jobs"] = get_job_status(scheduler)
        return health

    return app
