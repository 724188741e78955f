"""HTTP surface tests: TestClient against create_app with an in-memory store."""

import asyncio
from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.core.geolocation import GeoResolver
from app.main import create_app
from app.store.memory import MemoryRecordStore
from helpers import IPHONE_SAFARI_UA, MAC_CHROME_UA, MOUNTAIN_VIEW, StubProvider

ADMIN_TOKEN = "let-me-in"


def _settings(**overrides) -> Settings:
    values = dict(
        store_backend="memory",
        geo_providers=[],
        ingest_geo_budget_seconds=0.2,
        ingest_response_budget_seconds=1.0,
        enrichment_sub_batch_delay_seconds=0,
        admin_token=ADMIN_TOKEN,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def store():
    store = MemoryRecordStore()

    async def seed():
        await store.create("links", {
            "id": "lnk1", "slug": "go", "title": "New single",
            "destination_url": "https://open.spotify.com/track/123?si=abc",
            "utm_source": "tunelink", "clicks": 0, "is_active": True,
        })
        await store.create("links", {
            "id": "lnk2", "slug": "old", "destination_url": "https://x.test", "clicks": 0, "is_active": False,
        })
        await store.create("releases", {
            "id": "rel1", "slug": "drop", "artist_name": "The Band", "release_name": "First <Light>",
            "music_links": [
                {"platform": "spotify", "url": "https://open.spotify.com/album/1"},
                {"platform": "apple-music", "url": "https://music.apple.com/album/1", "title": "Deluxe"},
            ],
            "views": 0, "is_active": True,
        })

    asyncio.run(seed())
    return store


@pytest.fixture
def provider():
    return StubProvider({"8.8.8.8": MOUNTAIN_VIEW})


@pytest.fixture
def client(store, provider):
    app = create_app(_settings(), store=store, resolver=GeoResolver([provider], total_timeout=1))
    with TestClient(app) as c:
        yield c


def _visits(store, **filters):
    return asyncio.run(store.query("visits", filters))


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


class TestShortLinkRedirect:
    def test_redirects_and_records_view(self, client, store):
        resp = client.get(
            "/go?fbclid=IwAR9",
            headers={"user-agent": MAC_CHROME_UA, "referer": "https://www.facebook.com/"},
            follow_redirects=False,
        )
        assert resp.status_code == 302
        location = urlsplit(resp.headers["location"])
        assert location.netloc == "open.spotify.com"
        params = parse_qs(location.query)
        assert params["si"] == ["abc"]
        assert params["utm_source"] == ["tunelink"]
        assert params["fbclid"] == ["IwAR9"]
        assert "no-store" in resp.headers["cache-control"]

        visits = _visits(store, parent_id="lnk1")
        assert len(visits) == 1
        assert visits[0]["social_source"] == "Facebook"
        assert visits[0]["click_id"] == "IwAR9"
        assert visits[0]["kind"] == "view"
        assert asyncio.run(store.get("links", "lnk1"))["clicks"] == 1

    def test_forwarded_ip_is_geolocated(self, client, store):
        client.get("/go", headers={"user-agent": MAC_CHROME_UA, "x-forwarded-for": "8.8.8.8"},
                   follow_redirects=False)
        [visit] = _visits(store, parent_id="lnk1")
        assert visit["country_code"] == "US"
        assert visit["enrichment_status"] == "complete"

    def test_unknown_slug(self, client):
        assert client.get("/nope", follow_redirects=False).status_code == 404

    def test_inactive_link(self, client, store):
        assert client.get("/old", follow_redirects=False).status_code == 404
        assert _visits(store) == []


class TestReleasePage:
    def test_page_renders_and_counts_view(self, client, store):
        resp = client.get("/r/drop?utm_campaign=launch", headers={
            "user-agent": IPHONE_SAFARI_UA,
            "referer": "https://l.instagram.com/",
        })
        assert resp.status_code == 200
        assert "text/html" in resp.headers["content-type"]
        assert "First &lt;Light&gt;" in resp.text
        assert "Apple Music" in resp.text
        assert 'data-platform="spotify"' in resp.text
        assert "nonce-" in resp.headers["content-security-policy"]

        [visit] = _visits(store, parent_id="rel1")
        assert visit["device_model"] == "iPhone"
        assert visit["social_source"] == "Instagram"
        assert visit["utm_campaign"] == "launch"
        assert visit["enrichment_status"] == "pending"
        assert asyncio.run(store.get("releases", "rel1"))["views"] == 1

    def test_unknown_release(self, client):
        assert client.get("/r/nothing").status_code == 404

    def test_platform_click_event(self, client, store):
        resp = client.post("/r/drop/events", json={
            "kind": "platform_click",
            "platform": "spotify",
            "url": "https://open.spotify.com/album/1",
            "referrer": "https://www.tiktok.com/",
            "page_url": "https://tunelink.app/r/drop?utm_source=tt&utm_campaign=launch",
        }, headers={"user-agent": IPHONE_SAFARI_UA})
        assert resp.status_code == 204

        [visit] = _visits(store, parent_id="rel1")
        assert visit["kind"] == "platform_click"
        assert visit["platform"] == "spotify"
        assert visit["target_url"] == "https://open.spotify.com/album/1"
        assert visit["utm_source"] == "tt"
        assert visit["social_source"] == "TikTok"
        assert visit["page_url"].startswith("https://tunelink.app/r/drop")
        # clicks don't bump the view counter
        assert asyncio.run(store.get("releases", "rel1"))["views"] == 0

    def test_view_events_rejected(self, client):
        assert client.post("/r/drop/events", json={"kind": "view"}).status_code == 400

    def test_bad_kind(self, client):
        assert client.post("/r/drop/events", json={"kind": "hover"}).status_code == 422


class TestAnalytics:
    def _seed_visits(self, store):
        async def seed():
            for i in range(7):
                await store.create("visits", {"parent_id": "rel1", "parent_type": "release", "kind": "view",
                                              "country": "US", "enrichment_status": "complete",
                                              "enrichment_attempts": 0})
            for i in range(3):
                await store.create("visits", {"parent_id": "rel1", "parent_type": "release", "kind": "view",
                                              "country": "CA", "enrichment_status": "complete",
                                              "enrichment_attempts": 0})
            await store.create("visits", {"parent_id": "other", "parent_type": "release", "kind": "view",
                                          "country": "FR", "enrichment_status": "complete",
                                          "enrichment_attempts": 0})

        asyncio.run(seed())

    def test_country_breakdown(self, client, store):
        self._seed_visits(store)
        resp = client.get("/v1/analytics/release/rel1", params={"dimension": "country"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["total"] == 10
        assert body["rows"] == [{"key": "US", "count": 7}, {"key": "CA", "count": 3}]
        assert "no-store" in resp.headers["cache-control"]

    def test_top_n(self, client, store):
        self._seed_visits(store)
        resp = client.get("/v1/analytics/release/rel1", params={"dimension": "country", "top_n": 1})
        assert resp.json()["rows"] == [{"key": "US", "count": 7}]

    def test_unknown_dimension(self, client):
        assert client.get("/v1/analytics/release/rel1", params={"dimension": "shoe"}).status_code == 400

    def test_unknown_parent_type(self, client):
        assert client.get("/v1/analytics/artist/a1").status_code == 400

    def test_summary(self, client, store):
        self._seed_visits(store)
        body = client.get("/v1/analytics/release/rel1/summary").json()
        assert body["summary"]["views"] == 10
        assert body["summary"]["unique_countries"] == 2


class TestEnrichmentEndpoint:
    def _seed_pending(self, store):
        asyncio.run(store.create("visits", {
            "id": "v1", "parent_id": "rel1", "parent_type": "release", "kind": "view",
            "ip_address": "8.8.8.8", "enrichment_status": "pending", "enrichment_attempts": 0,
        }))

    def test_requires_token(self, client):
        assert client.post("/v1/enrichment/locations").status_code == 403
        resp = client.post("/v1/enrichment/locations", headers={"X-Admin-Token": "wrong"})
        assert resp.status_code == 403

    def test_runs_batch(self, client, store):
        self._seed_pending(store)
        resp = client.post(
            "/v1/enrichment/locations",
            json={"parent_type": "release", "parent_id": "rel1", "batch_size": 10},
            headers={"X-Admin-Token": ADMIN_TOKEN},
        )
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "updated": 1, "failed": 0, "total": 1}
        assert asyncio.run(store.get("visits", "v1"))["country"] == "United States"

    def test_parent_id_needs_type(self, client):
        resp = client.post("/v1/enrichment/locations", json={"parent_id": "rel1"},
                           headers={"X-Admin-Token": ADMIN_TOKEN})
        assert resp.status_code == 400

    def test_open_without_configured_token(self, store, provider):
        app = create_app(_settings(admin_token=""), store=store, resolver=GeoResolver([provider]))
        with TestClient(app) as c:
            assert c.post("/v1/enrichment/locations").json()["total"] == 0
