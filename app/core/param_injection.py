"""
Destination URL parameters for short-link redirects.

What WE author:
  1. The link's UTM defaults (utm_source / utm_medium / utm_campaign),
     only where the destination doesn't already set them.

What the PLATFORMS author (we just pass through):
  - fbclid, ttclid, gclid, ... as listed in attribution.CLICK_ID_PLATFORMS

Existing destination params are never overwritten.
"""

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from app.core.attribution import CLICK_ID_PLATFORMS

PASSTHROUGH_PARAMS = frozenset(name for name, _ in CLICK_ID_PLATFORMS)

LINK_UTM_FIELDS = ("utm_source", "utm_medium", "utm_campaign")


def extract_platform_params(query_params: dict) -> dict:
    """Platform click ids from the inbound request, keyed as received."""
    return {k: v for k, v in query_params.items() if k.lower() in PASSTHROUGH_PARAMS and v}


def build_destination(destination_url: str, link: dict, inbound_params: dict | None = None) -> str:
    try:
        parts = urlsplit(destination_url)
    except ValueError:
        return destination_url

    existing = parse_qsl(parts.query, keep_blank_values=True)
    present = {k for k, _ in existing}

    added = []
    for name in LINK_UTM_FIELDS:
        value = link.get(name)
        if value and name not in present:
            added.append((name, value))
            present.add(name)

    for name, value in extract_platform_params(inbound_params or {}).items():
        if name not in present:
            added.append((name, value))
            present.add(name)

    if not added:
        return destination_url
    return urlunsplit(parts._replace(query=urlencode(existing + added)))
