"""
Deferred location enrichment.

Sweeps visits that have an IP but no country, resolves them in small
concurrent sub-batches (pausing between sub-batches to stay under provider
rate limits) and patches location fields in. Safe to run as often as you
like: resolved visits no longer match the sweep, and each miss bumps
enrichment_attempts until the visit is parked as "failed".
"""

import asyncio
from dataclasses import asdict, dataclass

from app.config import Settings
from app.core.geolocation import GeoResolver
from app.core.visit_record import EnrichmentStatus, LocationPatch
from app.store.base import VISITS, RecordStore

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class EnrichmentScope:
    """All visits, or only those of one link / release."""
    parent_type: str | None = None
    parent_id: str | None = None

    def filters(self) -> dict:
        filters = {}
        if self.parent_type:
            filters["parent_type"] = self.parent_type
        if self.parent_id:
            filters["parent_id"] = self.parent_id
        return filters


@dataclass
class EnrichmentResult:
    updated: int = 0
    failed: int = 0
    total: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class EnrichmentJob:
    def __init__(
        self,
        store: RecordStore,
        resolver: GeoResolver,
        default_batch_size: int = 50,
        max_batch_size: int = 500,
        sub_batch_size: int = 10,
        sub_batch_delay: float = 0.5,
        max_attempts: int = 5,
    ):
        self.store = store
        self.resolver = resolver
        self.default_batch_size = default_batch_size
        self.max_batch_size = max_batch_size
        self.sub_batch_size = max(1, sub_batch_size)
        self.sub_batch_delay = sub_batch_delay
        self.max_attempts = max_attempts

    @classmethod
    def from_settings(cls, settings: Settings, store: RecordStore, resolver: GeoResolver) -> "EnrichmentJob":
        return cls(
            store,
            resolver,
            default_batch_size=settings.enrichment_batch_size,
            max_batch_size=settings.enrichment_max_batch_size,
            sub_batch_size=settings.enrichment_sub_batch_size,
            sub_batch_delay=settings.enrichment_sub_batch_delay_seconds,
            max_attempts=settings.enrichment_max_attempts,
        )

    async def find_candidates(self, scope: EnrichmentScope, limit: int) -> list[dict]:
        return await self.store.query(
            VISITS,
            {**scope.filters(), "enrichment_status": EnrichmentStatus.PENDING.value},
            present=("ip_address",),
            absent=("country", "country_code"),
            limit=limit,
        )

    async def enrich_batch(self, scope: EnrichmentScope | None = None, batch_size: int | None = None) -> EnrichmentResult:
        """Resolve up to `batch_size` pending visits. Never raises."""
        scope = scope or EnrichmentScope()
        limit = min(max(batch_size or self.default_batch_size, 1), self.max_batch_size)
        log = logger.bind(**scope.filters(), batch_size=limit)

        try:
            candidates = await self.find_candidates(scope, limit)
        except Exception as e:
            log.error("enrichment_query_failed", error=str(e), error_type=type(e).__name__)
            return EnrichmentResult()

        result = EnrichmentResult(total=len(candidates))
        log.info("enrichment_batch_started", candidates=result.total)

        for start in range(0, len(candidates), self.sub_batch_size):
            if start and self.sub_batch_delay:
                await asyncio.sleep(self.sub_batch_delay)
            chunk = candidates[start:start + self.sub_batch_size]
            outcomes = await asyncio.gather(*(self._enrich_one(doc) for doc in chunk))
            resolved = sum(1 for ok in outcomes if ok)
            result.updated += resolved
            result.failed += len(outcomes) - resolved

        log.info("enrichment_batch_finished", **result.to_dict())
        return result

    async def _enrich_one(self, doc: dict) -> bool:
        record_id = doc.get("id")
        try:
            location = await self.resolver.resolve_location(doc.get("ip_address"))
            attempts = (doc.get("enrichment_attempts") or 0) + 1
            if location.has_country:
                patch = LocationPatch.resolved(location, attempts)
            else:
                patch = LocationPatch.unresolved(attempts, self.max_attempts)
            await self.store.update(VISITS, record_id, patch.to_update())
        except Exception as e:
            logger.warning("enrichment_record_failed", visit_id=record_id,
                           error=str(e), error_type=type(e).__name__)
            return False

        if patch.enrichment_status == EnrichmentStatus.FAILED.value:
            logger.info("enrichment_gave_up", visit_id=record_id, attempts=attempts)
        return location.has_country
