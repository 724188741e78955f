"""
VisitRecord: one document per view or click, sparse by construction.

Undetermined values are never written: no None, no "" and no "Unknown"
placeholders. The enrichment job's "needs a location" query (has
ip_address, lacks country and country_code) relies on that.
"""

import datetime
from dataclasses import dataclass, field, fields
from enum import Enum
from uuid import uuid4

from app.core.attribution import Attribution
from app.core.geolocation import EMPTY_LOCATION, GeoLocation
from app.core.user_agent import UNKNOWN, UAClassification


class ParentType(str, Enum):
    LINK = "link"
    RELEASE = "release"


class VisitKind(str, Enum):
    VIEW = "view"
    PLATFORM_CLICK = "platform_click"
    BUTTON_CLICK = "button_click"


class EnrichmentStatus(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


# Written even when falsy
REQUIRED_FIELDS = frozenset({
    "id", "parent_id", "parent_type", "timestamp", "kind",
    "enrichment_status", "enrichment_attempts",
})

LOCATION_FIELDS = ("country", "country_code", "region", "city", "timezone")


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _is_determined(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip()) and value != UNKNOWN
    return True


@dataclass
class VisitRecord:
    parent_id: str
    parent_type: str
    kind: str = VisitKind.VIEW.value
    id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: datetime.datetime = field(default_factory=utcnow)
    enrichment_status: str = EnrichmentStatus.PENDING.value
    enrichment_attempts: int = 0

    # --- Raw inputs, kept for audit ---
    ip_address: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    page_url: str | None = None
    target_url: str | None = None

    # --- Device ---
    device_class: str | None = None
    device_model: str | None = None
    browser: str | None = None
    os: str | None = None
    is_bot: bool | None = None
    bot_label: str | None = None

    # --- Location ---
    country: str | None = None
    country_code: str | None = None
    region: str | None = None
    city: str | None = None
    timezone: str | None = None

    # --- Attribution ---
    social_source: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_content: str | None = None
    utm_term: str | None = None
    click_id: str | None = None
    click_id_param: str | None = None

    # --- Interaction ---
    platform: str | None = None
    button_label: str | None = None

    def to_document(self) -> dict:
        """Sparse dict for the store. Undetermined fields are left out."""
        doc = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            if f.name in REQUIRED_FIELDS or _is_determined(value):
                doc[f.name] = value
        return doc

    @classmethod
    def from_document(cls, doc: dict) -> "VisitRecord":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in doc.items() if k in known}
        ts = kwargs.get("timestamp")
        if isinstance(ts, str):
            kwargs["timestamp"] = datetime.datetime.fromisoformat(ts)
        return cls(**kwargs)


@dataclass(frozen=True)
class LocationPatch:
    """
    The only update the enrichment job ever writes to a visit.

    Touches location fields plus enrichment bookkeeping, nothing else.
    """
    enrichment_status: str
    enrichment_attempts: int
    location: GeoLocation = EMPTY_LOCATION

    @classmethod
    def resolved(cls, location: GeoLocation, attempts: int) -> "LocationPatch":
        return cls(EnrichmentStatus.COMPLETE.value, attempts, location)

    @classmethod
    def unresolved(cls, attempts: int, max_attempts: int) -> "LocationPatch":
        status = EnrichmentStatus.FAILED if attempts >= max_attempts else EnrichmentStatus.PENDING
        return cls(status.value, attempts)

    def to_update(self) -> dict:
        return {
            **self.location.to_dict(),
            "enrichment_status": self.enrichment_status,
            "enrichment_attempts": self.enrichment_attempts,
        }


def build_visit_record(
    *,
    parent_id: str,
    parent_type: str,
    kind: str,
    classification: UAClassification,
    attribution: Attribution,
    location: GeoLocation = EMPTY_LOCATION,
    ip_address: str | None = None,
    user_agent: str | None = None,
    referrer: str | None = None,
    page_url: str | None = None,
    target_url: str | None = None,
    platform: str | None = None,
    button_label: str | None = None,
    timestamp: datetime.datetime | None = None,
) -> VisitRecord:
    """Combine classifier, attribution and geolocation output into one record."""
    # A known link-preview referrer is a bot whatever the UA claims
    is_bot = classification.is_bot or bool(attribution.preview_bot_label)
    bot_label = classification.bot_label if classification.is_bot else attribution.preview_bot_label

    located = location.has_country
    record = VisitRecord(
        parent_id=parent_id,
        parent_type=ParentType(parent_type).value,
        kind=VisitKind(kind).value,
        timestamp=timestamp or utcnow(),
        enrichment_status=(EnrichmentStatus.COMPLETE if located else EnrichmentStatus.PENDING).value,
        enrichment_attempts=0,
        ip_address=ip_address,
        user_agent=user_agent,
        referrer=referrer,
        page_url=page_url,
        target_url=target_url,
        device_class=classification.device_class,
        device_model=classification.device_model,
        browser=classification.browser,
        os=classification.os,
        is_bot=is_bot,
        bot_label=bot_label if is_bot else None,
        social_source=attribution.social_source,
        utm_source=attribution.utm_source,
        utm_medium=attribution.utm_medium,
        utm_campaign=attribution.utm_campaign,
        utm_content=attribution.utm_content,
        utm_term=attribution.utm_term,
        click_id=attribution.click_id,
        click_id_param=attribution.click_id_param,
        platform=platform,
        button_label=button_label,
    )
    if located:
        for name in LOCATION_FIELDS:
            setattr(record, name, getattr(location, name))
    return record
