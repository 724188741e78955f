"""SqlRecordStore against in-memory sqlite (aiosqlite)."""

import asyncio
import datetime

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.attribution import resolve_attribution
from app.core.geolocation import GeoResolver
from app.core.ingest import IngestionPipeline, VisitContext
from app.core.user_agent import classify
from app.core.visit_record import build_visit_record
from app.models.database import build_session_maker
from app.store.base import RecordNotFoundError, StoreError, UnknownCollectionError
from app.store.sql import SqlRecordStore
from helpers import IPHONE_SAFARI_UA, MOUNTAIN_VIEW, StubProvider


async def _store() -> SqlRecordStore:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    store = SqlRecordStore(build_session_maker(engine), engine)
    await store.init_schema()
    return store


def _run(scenario):
    async def wrapped():
        store = await _store()
        try:
            return await scenario(store)
        finally:
            await store.close()

    return asyncio.run(wrapped())


class TestCrud:
    def test_create_get_update(self):
        async def scenario(store):
            link_id = await store.create("links", {"slug": "go", "destination_url": "https://x.test"})
            await store.update("links", link_id, {"clicks": 3, "title": "Hello"})
            return link_id, await store.get("links", link_id)

        link_id, doc = _run(scenario)
        assert doc["id"] == link_id
        assert doc["clicks"] == 3
        assert doc["title"] == "Hello"
        assert doc["is_active"] is True
        # NULL columns are dropped
        assert "description" not in doc

    def test_find_by_slug(self):
        async def scenario(store):
            await store.create("releases", {"id": "rel1", "slug": "drop"})
            return await store.find_by_slug("releases", "drop"), await store.find_by_slug("releases", "nope")

        found, missing = _run(scenario)
        assert found["id"] == "rel1"
        assert missing is None

    def test_get_missing(self):
        assert _run(lambda store: store.get("links", "nope")) is None

    def test_update_missing(self):
        with pytest.raises(RecordNotFoundError):
            _run(lambda store: store.update("links", "nope", {"clicks": 1}))

    def test_unknown_collection(self):
        with pytest.raises(UnknownCollectionError):
            _run(lambda store: store.get("artists", "a1"))

    def test_unknown_field_in_filter(self):
        with pytest.raises(StoreError):
            _run(lambda store: store.query("visits", {"shoe_size": 9}))

    def test_duplicate_slug(self):
        async def scenario(store):
            await store.create("links", {"slug": "go", "destination_url": "https://x.test"})
            await store.create("links", {"slug": "go", "destination_url": "https://y.test"})

        with pytest.raises(StoreError):
            _run(scenario)


class TestVisitDocuments:
    def test_sparse_round_trip(self):
        record = build_visit_record(
            parent_id="rel1",
            parent_type="release",
            kind="view",
            classification=classify(IPHONE_SAFARI_UA),
            attribution=resolve_attribution("https://l.instagram.com/", {"utm_campaign": "launch"}),
            location=MOUNTAIN_VIEW,
            ip_address="8.8.8.8",
            timestamp=datetime.datetime(2026, 3, 1, 12, 0, tzinfo=datetime.timezone.utc),
        )

        async def scenario(store):
            await store.create("visits", record.to_document())
            return await store.get("visits", record.id)

        doc = _run(scenario)
        expected = record.to_document()
        assert set(doc) == set(expected)
        for key, value in expected.items():
            if key != "timestamp":
                assert doc[key] == value
        assert doc["timestamp"].replace(tzinfo=None) == expected["timestamp"].replace(tzinfo=None)

    def test_values_trimmed_to_column_length(self):
        async def scenario(store):
            await store.create("visits", {
                "id": "v1", "parent_id": "rel1", "parent_type": "release", "kind": "view",
                "enrichment_status": "pending", "enrichment_attempts": 0,
                "timestamp": datetime.datetime(2026, 3, 1, tzinfo=datetime.timezone.utc),
                "device_model": "m" * 80,
                "utm_campaign": "c" * 300,
            })
            await store.update("visits", "v1", {"city": "x" * 150})
            return await store.get("visits", "v1")

        doc = _run(scenario)
        assert doc["device_model"] == "m" * 50
        assert doc["city"] == "x" * 100
        assert doc["utm_campaign"] == "c" * 300

    def test_enrichment_query(self):
        async def scenario(store):
            base = {"parent_type": "release", "kind": "view", "enrichment_attempts": 0,
                    "timestamp": datetime.datetime(2026, 3, 1, tzinfo=datetime.timezone.utc)}
            await store.create("visits", {**base, "id": "a", "parent_id": "rel1", "ip_address": "8.8.8.8",
                                          "enrichment_status": "pending"})
            await store.create("visits", {**base, "id": "b", "parent_id": "rel1", "ip_address": "",
                                          "enrichment_status": "pending"})
            await store.create("visits", {**base, "id": "c", "parent_id": "rel1", "ip_address": "1.1.1.1",
                                          "country_code": "CA", "enrichment_status": "complete"})
            await store.create("visits", {**base, "id": "d", "parent_id": "rel1",
                                          "enrichment_status": "pending"})
            return await store.query(
                "visits",
                {"parent_id": "rel1", "enrichment_status": "pending"},
                present=("ip_address",),
                absent=("country", "country_code"),
                limit=10,
            )

        assert [d["id"] for d in _run(scenario)] == ["a"]


def test_pipeline_on_sql_store():
    async def scenario(store):
        await store.create("links", {"id": "lnk1", "slug": "go", "destination_url": "https://x.test"})
        resolver = GeoResolver([StubProvider({"8.8.8.8": MOUNTAIN_VIEW})])
        pipeline = IngestionPipeline(store, resolver, geo_budget=0.5)
        record = await pipeline.ingest(VisitContext(
            parent_id="lnk1",
            parent_type="link",
            headers={"user-agent": IPHONE_SAFARI_UA, "x-forwarded-for": "8.8.8.8"},
        ))
        return record, await store.get("links", "lnk1"), await store.get("visits", record.id)

    record, link, visit = _run(scenario)
    assert link["clicks"] == 1
    assert link["updated_at"] is not None
    assert visit["country_code"] == "US"
    assert visit["enrichment_status"] == "complete"
