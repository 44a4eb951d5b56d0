"""
FastAPI application entry point with application factory pattern.
"""
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from meterdash.core.config import settings
from meterdash.core.database import Database
from meterdash.core.logging import setup_logging, get_logger
from meterdash.core.sentry import init_sentry, capture_exception
from meterdash.api.health import router as health_router

setup_logging()
logger = get_logger(__name__)

if init_sentry(dsn=settings.SENTRY_DSN):
    logger.info("Sentry error tracking initialized")


def create_app(database: Optional[Database] = None) -> FastAPI:
    """
    Application factory function.

    Args:
        database: Reading store handle; built from settings at startup when
            omitted. A supplied handle is left open on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
        logger.info(f"Environment: {settings.ENVIRONMENT}")

        owns_database = database is None
        app.state.database = database or Database.from_settings(settings)

        # Create database tables (in production, use migrations)
        if owns_database and settings.ENVIRONMENT == "local":
            await app.state.database.create_all()

        yield

        logger.info("Shutting down application")
        if owns_database:
            await app.state.database.dispose()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Electricity meter readings dashboard API",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    if database is not None:
        app.state.database = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled exception: {exc}",
            extra={"request": {"path": request.url.path, "method": request.method}},
        )
        capture_exception(exc, {"request": {"path": request.url.path, "method": request.method}})
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "health": "/health",
            "api_v1": settings.API_V1_PREFIX,
        }

    app.include_router(health_router, tags=["Health"])

    from meterdash.api.v1.metrics import router as metrics_router
    app.include_router(metrics_router)

    from meterdash.api.v1 import readings_router, metering_points_router
    app.include_router(readings_router, prefix=settings.API_V1_PREFIX)
    app.include_router(metering_points_router, prefix=settings.API_V1_PREFIX)

    from meterdash.middleware.logging import LoggingMiddleware
    from meterdash.middleware.metrics import MetricsMiddleware

    if settings.ENABLE_METRICS:
        app.add_middleware(MetricsMiddleware)

    app.add_middleware(LoggingMiddleware)

    return app


app = create_app()
