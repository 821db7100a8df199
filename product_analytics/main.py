"""
Product Analytics - FastAPI Application

Read API over synced products, cached analytics and the job queues.
Background workers and the optional auto-sync scheduler run inside the
same process unless disabled.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry import trace

from .api.endpoints.cache import router as cache_router
from .api.endpoints.health import router as health_router
from .api.endpoints.jobs import router as jobs_router
from .api.endpoints.products import router as products_router
from .constants import APP_NAME, APP_VERSION
from .core.config import get_settings
from .core.exceptions import ServiceException, ServiceHTTPException
from .core.logging import configure_logging
from .services.container import ServiceContainer

logger = structlog.get_logger()


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the application.

    Args:
        container: Pre-built services; built from settings at startup if omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = container is None
        services = container or await ServiceContainer.build()
        app.state.container = services

        if owned and services.settings.RUN_WORKERS:
            await services.start_background()

        logger.info("Product Analytics API started", version=APP_VERSION)
        try:
            yield
        finally:
            if owned:
                await services.close()
            logger.info("Product Analytics API stopped")

    app = FastAPI(title=APP_NAME, version=APP_VERSION, lifespan=lifespan)

    if container is not None:
        app.state.container = container

    @app.exception_handler(ServiceException)
    async def service_exception_handler(request: Request, exc: ServiceException):
        http_exc = ServiceHTTPException(exc)
        span = trace.get_current_span()
        span.set_attribute("error.type", type(exc).__name__)
        span.set_attribute("error.code", exc.error_code)

        if http_exc.status_code >= 500:
            logger.error(
                "Request failed",
                path=request.url.path,
                error_code=exc.error_code,
                error=exc.message,
            )
        return JSONResponse(status_code=http_exc.status_code, content=http_exc.detail)

    app.include_router(health_router, prefix="/api")
    app.include_router(products_router, prefix="/api")
    app.include_router(cache_router, prefix="/api")
    app.include_router(jobs_router, prefix="/api")

    return app


def build_app() -> FastAPI:
    """Entry point for ``uvicorn --factory product_analytics.main:build_app``."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
    return create_app()


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    uvicorn.run(build_app, factory=True, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
