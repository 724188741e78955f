"""
Enrichment trigger: POST /v1/enrichment/locations

Runs one bounded enrichment batch and reports {updated, failed, total}.
Meant to be polled by a scheduler or hit by hand; re-running is harmless.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.core.enrichment import EnrichmentJob, EnrichmentScope
from app.core.visit_record import ParentType
from app.dependencies import get_enrichment_job, require_admin

router = APIRouter(prefix="/v1/enrichment", tags=["enrichment"])


class EnrichLocationsRequest(BaseModel):
    parent_type: ParentType | None = None
    parent_id: str | None = Field(default=None, max_length=64)
    batch_size: int | None = Field(default=None, ge=1)


@router.post("/locations", dependencies=[Depends(require_admin)])
async def enrich_locations(
    body: EnrichLocationsRequest | None = None,
    job: EnrichmentJob = Depends(get_enrichment_job),
):
    body = body or EnrichLocationsRequest()
    if body.parent_id and not body.parent_type:
        raise HTTPException(status_code=400, detail="parent_id requires parent_type")

    scope = EnrichmentScope(
        parent_type=body.parent_type.value if body.parent_type else None,
        parent_id=body.parent_id,
    )
    result = await job.enrich_batch(scope, body.batch_size)
    return {"success": True, **result.to_dict()}
