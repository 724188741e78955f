"""
Short-link redirect: /{slug}

Flow:
  1. Look up an active link by slug (404 otherwise)
  2. Build the destination (link UTM defaults + platform click ids)
  3. Hand the visit to the ingestion pipeline, bounded by its response budget
  4. 302 to the destination, whatever happened in step 3

Registered last in main.py so the catch-all never shadows other routes.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse

from app.core.ingest import IngestionPipeline, VisitContext
from app.core.param_injection import build_destination
from app.core.visit_record import ParentType, VisitKind
from app.dependencies import get_pipeline, get_store
from app.store.base import LINKS, RecordStore

import structlog

logger = structlog.get_logger()
router = APIRouter()


@router.get("/{slug}")
async def redirect_link(
    slug: str,
    request: Request,
    store: RecordStore = Depends(get_store),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    link = await store.find_by_slug(LINKS, slug)
    if not link or not link.get("is_active", True) or not link.get("destination_url"):
        raise HTTPException(status_code=404, detail="Not found")

    destination = build_destination(link["destination_url"], link, dict(request.query_params))

    context = VisitContext.from_request(
        request,
        parent_id=link["id"],
        parent_type=ParentType.LINK.value,
        kind=VisitKind.VIEW.value,
        target_url=destination,
    )
    await pipeline.dispatch(context)

    logger.info("link_redirected", slug=slug, link_id=link["id"])
    return RedirectResponse(url=destination, status_code=302)
