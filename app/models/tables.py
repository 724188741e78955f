"""
Database models: the "truth layer."

Design principles:
  - Visits are append-only; only the enrichment job patches location fields
  - Links and releases are mutable (counters, is_active)
  - Every optional visit column is nullable; NULL means "not determined"
  - Portable types only (String ids, generic JSON) so sqlite works in tests
"""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    JSON,
    func,
)
from sqlalchemy.orm import DeclarativeBase


def _new_id() -> str:
    return uuid4().hex


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Parent entities
# ---------------------------------------------------------------------------

class ShortLink(Base):
    __tablename__ = "links"

    id = Column(String(32), primary_key=True, default=_new_id)
    slug = Column(String(100), nullable=False, unique=True, index=True)
    title = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    destination_url = Column(Text, nullable=False)
    music_links = Column(JSON, nullable=True)

    # Internal UTM defaults appended to the destination
    utm_source = Column(String(100), nullable=True)
    utm_medium = Column(String(100), nullable=True)
    utm_campaign = Column(String(100), nullable=True)

    clicks = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)


class ReleasePage(Base):
    __tablename__ = "releases"

    id = Column(String(32), primary_key=True, default=_new_id)
    slug = Column(String(100), nullable=False, unique=True, index=True)
    artist_name = Column(String(255), nullable=True)
    release_name = Column(String(255), nullable=True)
    release_type = Column(String(20), nullable=True)         # single, ep, album
    artwork_url = Column(Text, nullable=True)
    music_links = Column(JSON, nullable=True)                # [{platform, url, title?}]

    views = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Visit records
# ---------------------------------------------------------------------------

class Visit(Base):
    """
    One row per view / platform click / button click.
    Location columns may be filled in later by the enrichment job.
    """
    __tablename__ = "visits"

    id = Column(String(32), primary_key=True, default=_new_id)
    parent_id = Column(String(32), nullable=False)
    parent_type = Column(String(10), nullable=False)          # link, release
    kind = Column(String(20), nullable=False)                 # view, platform_click, button_click
    timestamp = Column(DateTime(timezone=True), nullable=False)
    enrichment_status = Column(String(10), nullable=False, default="pending")
    enrichment_attempts = Column(Integer, nullable=False, default=0)

    # --- Raw inputs ---
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    referrer = Column(Text, nullable=True)
    page_url = Column(Text, nullable=True)
    target_url = Column(Text, nullable=True)

    # --- Device ---
    device_class = Column(String(20), nullable=True)
    device_model = Column(String(50), nullable=True)
    browser = Column(String(50), nullable=True)
    os = Column(String(50), nullable=True)
    is_bot = Column(Boolean, nullable=True)
    bot_label = Column(String(100), nullable=True)

    # --- Geo ---
    country = Column(String(100), nullable=True)
    country_code = Column(String(8), nullable=True)
    region = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
    timezone = Column(String(64), nullable=True)

    # --- Attribution ---
    social_source = Column(Text, nullable=True)
    utm_source = Column(Text, nullable=True)
    utm_medium = Column(Text, nullable=True)
    utm_campaign = Column(Text, nullable=True)
    utm_content = Column(Text, nullable=True)
    utm_term = Column(Text, nullable=True)
    click_id = Column(Text, nullable=True)
    click_id_param = Column(String(20), nullable=True)

    # --- Interaction ---
    platform = Column(Text, nullable=True)
    button_label = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_visits_parent_timestamp", "parent_type", "parent_id", "timestamp"),
        Index("ix_visits_enrichment", "enrichment_status", "country_code"),
    )


MODELS: dict[str, type[Base]] = {
    "links": ShortLink,
    "releases": ReleasePage,
    "visits": Visit,
}
