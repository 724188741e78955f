"""
Ingestion pipeline: one call per visit or interaction.

Stages for a single ingest():
  started → classified → attributed → (geolocated | geolocation_timed_out)
          → persisted → counter_updated → done

Rules:
  - classification + attribution are synchronous and pure
  - geolocation gets a short budget; on timeout the lookup task is
    detached (not cancelled) and its late result is logged and dropped.
    Only the enrichment job ever adds a location to a stored visit.
  - persistence failure aborts the counter update; nothing else aborts
  - ingest() never raises; every failure is logged with its stage

The parent counter (links.clicks / releases.views) is a plain
read-then-write. Concurrent views of the same parent can under-count.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Mapping

from starlette.requests import Request

from app.config import Settings
from app.core.attribution import query_params_from_url, resolve_attribution
from app.core.client_ip import extract_client_ip
from app.core.geolocation import EMPTY_LOCATION, GeoLocation, GeoResolver
from app.core.user_agent import classify
from app.core.visit_record import ParentType, VisitKind, VisitRecord, build_visit_record, utcnow
from app.store.base import LINKS, RELEASES, VISITS, RecordStore

import structlog

logger = structlog.get_logger()

# parent_type → (collection, counter field)
PARENT_COUNTERS = {
    ParentType.LINK.value: (LINKS, "clicks"),
    ParentType.RELEASE.value: (RELEASES, "views"),
}


@dataclass
class VisitContext:
    """Everything ingest() needs from the inbound request."""
    parent_id: str
    parent_type: str
    kind: str = VisitKind.VIEW.value
    headers: Mapping[str, str] = field(default_factory=dict)
    page_url: str | None = None
    query_params: dict[str, str] = field(default_factory=dict)
    peer: str | None = None
    referrer: str | None = None
    target_url: str | None = None
    platform: str | None = None
    button_label: str | None = None

    @property
    def user_agent(self) -> str | None:
        return self.headers.get("user-agent")

    @classmethod
    def from_request(
        cls,
        request: Request,
        *,
        parent_id: str,
        parent_type: str,
        kind: str = VisitKind.VIEW.value,
        page_url: str | None = None,
        referrer: str | None = None,
        **interaction,
    ) -> "VisitContext":
        """
        Build from a Starlette request.

        Client-reported events pass the browser's own page_url and
        document.referrer; otherwise the request URL and Referer header are used.
        """
        headers = {k.lower(): v for k, v in request.headers.items()}
        if page_url:
            query_params = query_params_from_url(page_url)
        else:
            page_url = str(request.url)
            query_params = dict(request.query_params)
        return cls(
            parent_id=parent_id,
            parent_type=parent_type,
            kind=kind,
            headers=headers,
            page_url=page_url,
            query_params=query_params,
            peer=request.client.host if request.client else None,
            referrer=referrer if referrer is not None else headers.get("referer"),
            **interaction,
        )


class IngestionPipeline:
    def __init__(
        self,
        store: RecordStore,
        resolver: GeoResolver,
        geo_budget: float = 0.25,
        response_budget: float = 0.5,
    ):
        self.store = store
        self.resolver = resolver
        self.geo_budget = geo_budget
        self.response_budget = response_budget
        # Strong refs so detached tasks aren't garbage collected mid-flight
        self._background: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Settings, store: RecordStore, resolver: GeoResolver) -> "IngestionPipeline":
        return cls(
            store,
            resolver,
            geo_budget=settings.ingest_geo_budget_seconds,
            response_budget=settings.ingest_response_budget_seconds,
        )

    @property
    def pending_tasks(self) -> int:
        return len(self._background)

    async def ingest(self, context: VisitContext) -> VisitRecord | None:
        log = logger.bind(parent_type=context.parent_type, parent_id=context.parent_id, kind=context.kind)
        try:
            return await self._ingest(context, log)
        except Exception as e:
            log.error("ingest_failed", stage="started", error=str(e), error_type=type(e).__name__)
            return None

    async def _ingest(self, context: VisitContext, log) -> VisitRecord | None:
        ip = extract_client_ip(context.headers, context.peer)

        classification = classify(context.user_agent)
        log.debug("visit_classified", device=classification.device_class, is_bot=classification.is_bot)

        attribution = resolve_attribution(context.referrer, context.query_params)
        log.debug("visit_attributed", social_source=attribution.social_source)

        location = await self._locate(ip, log)

        record = build_visit_record(
            parent_id=context.parent_id,
            parent_type=context.parent_type,
            kind=context.kind,
            classification=classification,
            attribution=attribution,
            location=location,
            ip_address=ip or None,
            user_agent=context.user_agent,
            referrer=context.referrer,
            page_url=context.page_url,
            target_url=context.target_url,
            platform=context.platform,
            button_label=context.button_label,
        )

        try:
            await self.store.create(VISITS, record.to_document())
        except Exception as e:
            log.error("visit_persist_failed", stage="persisted", visit_id=record.id,
                      error=str(e), error_type=type(e).__name__)
            return None

        log.info("visit_ingested", visit_id=record.id, enrichment_status=record.enrichment_status,
                 social_source=record.social_source, is_bot=record.is_bot)

        if record.kind == VisitKind.VIEW.value:
            await self._increment_counter(context, log)
        return record

    async def _locate(self, ip: str, log) -> GeoLocation:
        if not ip:
            log.debug("geolocation_skipped", reason="no_ip")
            return EMPTY_LOCATION

        task = asyncio.create_task(self.resolver.resolve_location(ip))
        done, _ = await asyncio.wait({task}, timeout=self.geo_budget)
        if task not in done:
            log.info("geolocation_timed_out", stage="geolocation_timed_out", budget=self.geo_budget)
            self._detach(task)
            return EMPTY_LOCATION

        try:
            location = task.result()
        except Exception as e:
            log.warning("geolocation_failed", stage="geolocated", error=str(e), error_type=type(e).__name__)
            return EMPTY_LOCATION
        log.debug("visit_geolocated", country=location.country_code)
        return location

    def _detach(self, task: asyncio.Task) -> None:
        self._background.add(task)
        task.add_done_callback(self._discard_late_location)

    def _discard_late_location(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("late_geolocation_failed", error=str(error), error_type=type(error).__name__)
            return
        logger.debug("late_geolocation_discarded", resolved=task.result().has_country)

    async def _increment_counter(self, context: VisitContext, log) -> None:
        collection, counter = PARENT_COUNTERS[context.parent_type]
        try:
            parent = await self.store.get(collection, context.parent_id)
            if parent is None:
                log.warning("counter_parent_missing", stage="counter_updated")
                return
            await self.store.update(collection, context.parent_id, {
                counter: (parent.get(counter) or 0) + 1,
                "updated_at": utcnow(),
            })
        except Exception as e:
            log.error("counter_update_failed", stage="counter_updated", error=str(e), error_type=type(e).__name__)

    async def dispatch(self, context: VisitContext) -> None:
        """
        Start ingest() and wait at most `response_budget` for it.

        Whatever is still running afterwards finishes in the background.
        """
        task = asyncio.create_task(self.ingest(context))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        await asyncio.wait({task}, timeout=self.response_budget)

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait for background work before shutdown."""
        if not self._background:
            return
        _, still_running = await asyncio.wait(set(self._background), timeout=timeout)
        if still_running:
            logger.warning("ingest_drain_incomplete", remaining=len(still_running))
