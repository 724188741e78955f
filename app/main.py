"""
Tunelink: short links and music smart links with visit attribution.
Main application entry point.
"""

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.analytics import router as analytics_router
from app.api.enrichment import router as enrichment_router
from app.api.redirect import router as redirect_router
from app.api.releases import router as releases_router
from app.config import Settings, get_settings
from app.core.enrichment import EnrichmentJob
from app.core.geolocation import GeoResolver
from app.core.ingest import IngestionPipeline
from app.log import configure_logging
from app.middleware.security import SecurityHeadersMiddleware
from app.store.base import RecordStore
from app.store.factory import build_store

import structlog

logger = structlog.get_logger()

VERSION = "0.3.0"


def create_app(
    settings: Settings | None = None,
    store: RecordStore | None = None,
    resolver: GeoResolver | None = None,
) -> FastAPI:
    """
    Build the app. Collaborators are created in the lifespan, not here;
    tests pass their own store / resolver in.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned_store = store is None
        app_store = store or build_store(settings)

        http_client = None
        app_resolver = resolver
        if app_resolver is None:
            http_client = httpx.AsyncClient()
            app_resolver = GeoResolver.from_settings(settings, client=http_client)

        pipeline = IngestionPipeline.from_settings(settings, app_store, app_resolver)
        app.state.store = app_store
        app.state.pipeline = pipeline
        app.state.enrichment_job = EnrichmentJob.from_settings(settings, app_store, app_resolver)

        logger.info("tunelink_starting", base_url=settings.base_url, store=type(app_store).__name__,
                    geo_strategy=app_resolver.strategy)
        yield
        logger.info("tunelink_shutting_down", pending_tasks=pipeline.pending_tasks)

        await pipeline.drain()
        if http_client is not None:
            await http_client.aclose()
        if owned_store:
            await app_store.close()

    app = FastAPI(
        title=settings.app_name,
        description="Short links and music smart links, with per-visit attribution.",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    app.state.settings = settings

    # Security headers on every response
    app.add_middleware(SecurityHeadersMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [settings.base_url],
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Admin-Token"],
    )

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": settings.app_name.lower(), "version": VERSION}

    # --- Routes ---
    app.include_router(analytics_router)
    app.include_router(enrichment_router)
    app.include_router(releases_router)
    # Catch-all /{slug}, must stay last
    app.include_router(redirect_router)

    return app


app = create_app()
