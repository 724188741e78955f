"""Shared test doubles."""

import asyncio

from app.core.geolocation import GeoLocation, GeoProvider

IPHONE_SAFARI_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)

MAC_CHROME_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

MOUNTAIN_VIEW = GeoLocation(
    country="United States",
    country_code="US",
    region="California",
    city="Mountain View",
    timezone="America/Los_Angeles",
)


class StubProvider(GeoProvider):
    """Answers from a dict keyed by IP, optionally slowly or by raising."""

    def __init__(self, answers=None, name="stub", delay=0.0, error=None, timeout=1.0):
        super().__init__(timeout=timeout)
        self.name = name
        self.answers = answers or {}
        self.delay = delay
        self.error = error
        self.calls: list[str] = []

    async def try_resolve(self, ip, client):
        self.calls.append(ip)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.answers.get(ip)
