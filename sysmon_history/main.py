"""
System Monitor History Store - FastAPI Application.

Local HTTP surface over the historical metrics store, consumed by the
monitoring dashboard.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sysmon_history import __version__
from sysmon_history.api.v1 import api_router
from sysmon_history.core.config import Settings, get_settings
from sysmon_history.core.exceptions import MetricsStoreException
from sysmon_history.core.logging import get_logger, setup_logging
from sysmon_history.domain.services.store import HistoricalMetricsStore
from sysmon_history.infrastructure.tasks.scheduler import RetentionScheduler

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[HistoricalMetricsStore] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use (defaults to the cached environment settings)
        store: Pre-built store to serve; one is created from settings otherwise

    Returns:
        Configured application; the store is opened and closed by its lifespan
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Handles startup and shutdown events for the application.
        """
        setup_logging(settings)
        logger.info(
            "Starting history store",
            version=__version__,
            environment=settings.app_env,
        )

        app_store = store or HistoricalMetricsStore(settings)
        app_store.init()
        scheduler = RetentionScheduler(app_store, settings)
        scheduler.start()

        app.state.store = app_store
        app.state.scheduler = scheduler
        logger.info("Application startup completed successfully")

        try:
            yield
        finally:
            logger.info("Shutting down history store")
            scheduler.stop()
            app_store.close()
            app.state.store = None
            app.state.scheduler = None
            logger.info("Application shutdown completed successfully")

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        description="Historical system metrics store: range queries, CSV export and retention.",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MetricsStoreException)
    async def store_exception_handler(
        request: Request, exc: MetricsStoreException
    ) -> JSONResponse:
        """
        Handle store exceptions.

        Returns standardized error response with appropriate HTTP status code.
        """
        logger.warning(
            f"Application exception: {exc.__class__.__name__}",
            error=exc.message,
            path=request.url.path,
            status_code=exc.status_code,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """
        Handle Pydantic validation errors.

        Returns detailed validation error information.
        """
        errors = [
            {key: value for key, value in error.items() if key in ("loc", "msg", "type")}
            for error in exc.errors()
        ]
        logger.warning("Validation error", errors=errors, path=request.url.path)

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": "ValidationError",
                "message": "Request validation failed",
                "details": {"errors": errors},
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Handle unexpected exceptions.

        Returns generic error response and logs exception details.
        """
        logger.error(
            "Unexpected exception",
            error=str(exc),
            type=type(exc).__name__,
            path=request.url.path,
            exc_info=True,
        )

        error_message = str(exc) if settings.debug else "Internal server error"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "InternalServerError",
                "message": error_message,
                "details": {},
            },
        )

    app.include_router(api_router, prefix=settings.api_v1_prefix)

    @app.get("/", tags=["root"], summary="Root endpoint", description="Get API information")
    async def root():
        return {
            "name": settings.app_name,
            "version": __version__,
            "environment": settings.app_env,
        }

    return app


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
