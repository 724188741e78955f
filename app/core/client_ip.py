"""Client IP extraction from proxy headers."""

from typing import Mapping

from app.core.geolocation import normalize_ip

# Checked in order after X-Forwarded-For; each holds a single address
SINGLE_IP_HEADERS = (
    "x-vercel-forwarded-for",
    "x-real-ip",
    "cf-connecting-ip",
    "true-client-ip",
)


def extract_client_ip(headers: Mapping[str, str], peer: str | None = None) -> str:
    """
    Best guess at the visitor's IP.

    X-Forwarded-For first entry (the original client), then platform
    headers, then the direct peer. Returns "" when nothing usable is found.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = normalize_ip(forwarded.split(",")[0])
        if first:
            return first

    for header in SINGLE_IP_HEADERS:
        value = headers.get(header)
        if value:
            ip = normalize_ip(value.split(",")[0])
            if ip:
                return ip

    return normalize_ip(peer) or ""
