"""
FastAPI Production Application

Main entry point for the EcoTrack sustainability sync service: Shopify
webhooks in, Prometheus gauges out, plus the admin API for the editor,
bulk import and catalog reconciliation.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
import structlog

from ecotrack.config import get_settings
from ecotrack.config.logging import configure_logging
from ecotrack.core.errors import EcoTrackError, ExternalApiError, NotFound
from ecotrack.database.connection import close_database, get_db, get_session_factory, init_database
from ecotrack.database.models import Store
from ecotrack.serving.api.dependencies import require_admin
from ecotrack.serving.api.middleware import (
    RequestLoggingMiddleware,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
)
from ecotrack.serving.api.routes import (
    health_router,
    metrics_router,
    webhooks_router,
    stores_router,
    products_router,
    sync_router,
    orders_router,
    reports_router,
)
from ecotrack.serving.services import AppServices, build_services

settings = get_settings()
logger = structlog.get_logger(__name__)


async def republish_all_stores(services: AppServices) -> int:
    """Rebuild the gauges of every mirrored product; the registry is empty after a restart."""
    async with get_db() as db:
        store_ids = (await db.execute(select(Store.id))).scalars().all()
        total = 0
        for store_id in store_ids:
            total += await services.reconciliation.republish_store(db, store_id)
    logger.info("Gauges republished", stores=len(store_ids), products=total)
    return total


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()

    logger.info("Starting EcoTrack", environment=settings.app_env)

    await init_database(create_tables=settings.app_env in ("development", "testing"))

    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(get_session_factory())

    try:
        await republish_all_stores(app.state.services)
    except SQLAlchemyError as e:
        logger.warning("Gauge republish failed", error=str(e))

    yield

    logger.info("Shutting down...")
    await close_database()


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content=exc.to_dict())


async def external_api_error_handler(request: Request, exc: ExternalApiError) -> JSONResponse:
    logger.warning("Shopify request failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=502, content=exc.to_dict())


async def domain_error_handler(request: Request, exc: EcoTrackError) -> JSONResponse:
    return JSONResponse(status_code=400, content=exc.to_dict())


# =============================================================================
# APPLICATION
# =============================================================================

def create_app(services: Optional[AppServices] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        services: Pre-built service graph; the lifespan builds one when omitted
    """
    app = FastAPI(
        title="EcoTrack Sustainability API",
        description="Shopify sustainability metafields mirrored into Prometheus gauges",
        version=settings.version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_exception_handler(NotFound, not_found_handler)
    app.add_exception_handler(ExternalApiError, external_api_error_handler)
    app.add_exception_handler(EcoTrackError, domain_error_handler)

    # CORS Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Compression
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Custom middleware
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.security.rate_limit_requests,
        window_seconds=settings.security.rate_limit_window_seconds,
    )

    admin = [Depends(require_admin)]

    # Shopify and Prometheus facing
    app.include_router(metrics_router, tags=["Metrics"])
    app.include_router(webhooks_router, tags=["Webhooks"])

    # API routes
    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(stores_router, prefix="/api/v1/stores", tags=["Stores"], dependencies=admin)
    app.include_router(
        products_router, prefix="/api/v1/stores/{shop}/products", tags=["Products"], dependencies=admin
    )
    app.include_router(sync_router, prefix="/api/v1/stores/{shop}/sync", tags=["Sync"], dependencies=admin)
    app.include_router(orders_router, prefix="/api/v1/stores/{shop}/orders", tags=["Orders"], dependencies=admin)
    app.include_router(reports_router, prefix="/api/v1/stores/{shop}/report", tags=["Reports"], dependencies=admin)

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": "EcoTrack Sustainability API",
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
