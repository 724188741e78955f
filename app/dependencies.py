"""FastAPI dependencies: collaborators built in the lifespan, read from app.state."""

import secrets

from fastapi import Depends, Header, HTTPException, Request

from app.config import Settings
from app.core.enrichment import EnrichmentJob
from app.core.ingest import IngestionPipeline
from app.store.base import RecordStore


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.pipeline


def get_enrichment_job(request: Request) -> EnrichmentJob:
    return request.app.state.enrichment_job


def require_admin(
    x_admin_token: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """No-op when no admin token is configured."""
    if not settings.admin_token:
        return
    if not x_admin_token or not secrets.compare_digest(x_admin_token, settings.admin_token):
        raise HTTPException(status_code=403, detail="Forbidden")
