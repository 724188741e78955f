"""
IP geolocation via third-party providers.

Every provider implements one interface, try_resolve(ip) → GeoLocation | None,
so the resolver can walk them in order (sequential) or fire them all at once
and keep the first usable answer (race).

Contract of GeoResolver.resolve_location():
  - reserved / private / loopback / malformed IPs → empty, no network call
  - "ip:port" and "[v6]:port" are normalised before lookup
  - a provider only counts if it returns a country; anything else → next
  - bounded: per-provider timeout + overall timeout
  - never raises; total failure is an empty GeoLocation
"""

import asyncio
import ipaddress
from dataclasses import asdict, dataclass

import httpx
import structlog

from app.config import Settings

logger = structlog.get_logger()

SEQUENTIAL = "sequential"
RACE = "race"


@dataclass(frozen=True)
class GeoLocation:
    country: str | None = None
    country_code: str | None = None
    region: str | None = None
    city: str | None = None
    timezone: str | None = None

    @property
    def has_country(self) -> bool:
        return bool(self.country or self.country_code)

    def to_dict(self) -> dict[str, str]:
        """Only the fields that were actually resolved."""
        return {k: v for k, v in asdict(self).items() if v}


EMPTY_LOCATION = GeoLocation()


def normalize_ip(raw: str | None) -> str | None:
    """Strip whitespace and port; unwrap IPv4-mapped IPv6. None if not an IP."""
    value = (raw or "").strip()
    if not value:
        return None

    if value.startswith("["):
        # [2001:db8::1]:443
        end = value.find("]")
        value = value[1:end] if end > 0 else value[1:]
    elif value.count(":") == 1:
        # 203.0.113.9:51234
        value = value.split(":", 1)[0]

    try:
        addr = ipaddress.ip_address(value)
    except ValueError:
        return None

    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped:
        addr = addr.ipv4_mapped
    return str(addr)


def is_public_ip(ip: str) -> bool:
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return not (
        addr.is_private
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_unspecified
        or addr.is_multicast
        or addr.is_reserved
    )


def _clean(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

class GeoProvider:
    """One third-party geo-IP API. Subclasses only describe URL + payload shape."""

    name: str = "base"
    url_template: str = ""

    def __init__(self, timeout: float = 3.0):
        self.timeout = timeout

    def build_url(self, ip: str) -> str:
        return self.url_template.format(ip=ip)

    def parse(self, payload: dict) -> GeoLocation | None:
        raise NotImplementedError

    async def try_resolve(self, ip: str, client: httpx.AsyncClient) -> GeoLocation | None:
        try:
            response = await client.get(self.build_url(ip), timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("geo_provider_failed", provider=self.name, ip=ip,
                           error=str(e), error_type=type(e).__name__)
            return None

        if not isinstance(payload, dict):
            return None

        try:
            location = self.parse(payload)
        except (AttributeError, KeyError, TypeError) as e:
            logger.warning("geo_provider_bad_payload", provider=self.name, ip=ip, error=str(e))
            return None

        if location is None or not location.has_country:
            logger.info("geo_provider_no_country", provider=self.name, ip=ip)
            return None
        return location


class IpWhoIsProvider(GeoProvider):
    name = "ipwho.is"
    url_template = "https://ipwho.is/{ip}"

    def parse(self, payload: dict) -> GeoLocation | None:
        if payload.get("success") is False:
            return None
        tz = payload.get("timezone")
        if isinstance(tz, dict):
            tz = tz.get("id")
        return GeoLocation(
            country=_clean(payload.get("country")),
            country_code=_clean(payload.get("country_code")),
            region=_clean(payload.get("region")),
            city=_clean(payload.get("city")),
            timezone=_clean(tz),
        )


class IpApiProvider(GeoProvider):
    name = "ip-api.com"
    url_template = "http://ip-api.com/json/{ip}?fields=status,message,country,countryCode,regionName,city,timezone"

    def parse(self, payload: dict) -> GeoLocation | None:
        if payload.get("status") != "success":
            return None
        return GeoLocation(
            country=_clean(payload.get("country")),
            country_code=_clean(payload.get("countryCode")),
            region=_clean(payload.get("regionName")),
            city=_clean(payload.get("city")),
            timezone=_clean(payload.get("timezone")),
        )


class IpApiCoProvider(GeoProvider):
    name = "ipapi.co"
    url_template = "https://ipapi.co/{ip}/json/"

    def parse(self, payload: dict) -> GeoLocation | None:
        if payload.get("error"):
            return None
        return GeoLocation(
            country=_clean(payload.get("country_name")),
            country_code=_clean(payload.get("country_code")),
            region=_clean(payload.get("region")),
            city=_clean(payload.get("city")),
            timezone=_clean(payload.get("timezone")),
        )


PROVIDERS: dict[str, type[GeoProvider]] = {
    IpWhoIsProvider.name: IpWhoIsProvider,
    IpApiProvider.name: IpApiProvider,
    IpApiCoProvider.name: IpApiCoProvider,
}


def build_providers(names: list[str], timeout: float) -> list[GeoProvider]:
    providers = []
    for name in names:
        provider_cls = PROVIDERS.get(name)
        if provider_cls is None:
            logger.warning("geo_provider_unknown", provider=name)
            continue
        providers.append(provider_cls(timeout=timeout))
    return providers


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class GeoResolver:
    def __init__(
        self,
        providers: list[GeoProvider],
        strategy: str = SEQUENTIAL,
        total_timeout: float = 8.0,
        client: httpx.AsyncClient | None = None,
    ):
        if strategy not in (SEQUENTIAL, RACE):
            raise ValueError(f"Unknown geo strategy: {strategy}")
        self.providers = providers
        self.strategy = strategy
        self.total_timeout = total_timeout
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient | None = None) -> "GeoResolver":
        return cls(
            providers=build_providers(settings.geo_providers, settings.geo_provider_timeout_seconds),
            strategy=settings.geo_strategy,
            total_timeout=settings.geo_total_timeout_seconds,
            client=client,
        )

    async def resolve_location(self, ip: str | None) -> GeoLocation:
        normalized = normalize_ip(ip)
        if normalized is None or not is_public_ip(normalized):
            return EMPTY_LOCATION

        try:
            return await asyncio.wait_for(self._resolve(normalized), timeout=self.total_timeout)
        except asyncio.TimeoutError:
            logger.warning("geo_lookup_timed_out", ip=normalized, timeout=self.total_timeout)
        except Exception as e:
            logger.error("geo_lookup_failed", ip=normalized, error=str(e), error_type=type(e).__name__)
        return EMPTY_LOCATION

    async def _resolve(self, ip: str) -> GeoLocation:
        if self.client is not None:
            return await self._dispatch(ip, self.client)
        async with httpx.AsyncClient() as client:
            return await self._dispatch(ip, client)

    async def _dispatch(self, ip: str, client: httpx.AsyncClient) -> GeoLocation:
        if self.strategy == RACE:
            return await self._race(ip, client)
        return await self._sequential(ip, client)

    async def _attempt(self, provider: GeoProvider, ip: str, client: httpx.AsyncClient) -> GeoLocation | None:
        try:
            return await asyncio.wait_for(provider.try_resolve(ip, client), timeout=provider.timeout)
        except asyncio.TimeoutError:
            logger.warning("geo_provider_timed_out", provider=provider.name, ip=ip)
        except Exception as e:
            logger.warning("geo_provider_failed", provider=provider.name, ip=ip,
                           error=str(e), error_type=type(e).__name__)
        return None

    async def _sequential(self, ip: str, client: httpx.AsyncClient) -> GeoLocation:
        for provider in self.providers:
            location = await self._attempt(provider, ip, client)
            if location is not None and location.has_country:
                logger.info("geo_resolved", provider=provider.name, ip=ip, country=location.country_code)
                return location
        return EMPTY_LOCATION

    async def _race(self, ip: str, client: httpx.AsyncClient) -> GeoLocation:
        tasks = [asyncio.create_task(self._attempt(p, ip, client)) for p in self.providers]
        try:
            for next_done in asyncio.as_completed(tasks):
                location = await next_done
                if location is not None and location.has_country:
                    logger.info("geo_resolved", strategy=RACE, ip=ip, country=location.country_code)
                    return location
            return EMPTY_LOCATION
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
