"""
Analytics API: aggregate views over one link's or release's visits.
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.aggregation import DIMENSIONS, aggregate_by, daily_series, summarize
from app.core.visit_record import ParentType
from app.dependencies import get_store
from app.store.base import VISITS, RecordStore

router = APIRouter(prefix="/v1/analytics", tags=["analytics"])

PARENT_TYPES = {p.value for p in ParentType}


async def _visits(store: RecordStore, parent_type: str, parent_id: str) -> list[dict]:
    if parent_type not in PARENT_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown parent type: {parent_type}")
    return await store.query(VISITS, {"parent_type": parent_type, "parent_id": parent_id})


@router.get("/{parent_type}/{parent_id}/summary")
async def analytics_summary(
    parent_type: str,
    parent_id: str,
    store: RecordStore = Depends(get_store),
):
    """Headline counts plus a chronological daily series."""
    visits = await _visits(store, parent_type, parent_id)
    return {
        "parent_type": parent_type,
        "parent_id": parent_id,
        "summary": summarize(visits),
        "daily": [asdict(row) for row in daily_series(visits)],
    }


@router.get("/{parent_type}/{parent_id}")
async def analytics_breakdown(
    parent_type: str,
    parent_id: str,
    dimension: str = Query("date"),
    top_n: int | None = Query(None, ge=1, le=100),
    store: RecordStore = Depends(get_store),
):
    if dimension not in DIMENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown dimension: {dimension}. Expected one of {sorted(DIMENSIONS)}",
        )
    visits = await _visits(store, parent_type, parent_id)
    rows = aggregate_by(visits, dimension, top_n=top_n)
    return {
        "parent_type": parent_type,
        "parent_id": parent_id,
        "dimension": dimension,
        "total": len(visits),
        "rows": [asdict(row) for row in rows],
    }
