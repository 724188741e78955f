"""
Aggregation views over already-stored visit documents.

Pure: no I/O, no mutation. Each dimension groups, counts and sorts by
count descending; ties keep first-seen order (sorted() is stable).
"""

import datetime
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Iterable

from app.core.visit_record import VisitKind

UNKNOWN = "Unknown"
UNKNOWN_BOT = "Unknown Bot"

KeyFn = Callable[[dict], str | None]


@dataclass(frozen=True)
class AggregateRow:
    key: str
    count: int


def _date_key(doc: dict) -> str | None:
    ts = doc.get("timestamp")
    if isinstance(ts, str):
        try:
            ts = datetime.datetime.fromisoformat(ts)
        except ValueError:
            return None
    if isinstance(ts, datetime.datetime):
        return ts.date().isoformat()
    return None


def _or_unknown(field: str) -> KeyFn:
    return lambda doc: doc.get(field) or UNKNOWN


def _if_present(field: str) -> KeyFn:
    return lambda doc: doc.get(field) or None


def _city_key(doc: dict) -> str | None:
    city = doc.get("city")
    if not city:
        return None
    country = doc.get("country")
    return f"{city}, {country}" if country else city


def _bot_key(doc: dict) -> str | None:
    if not doc.get("is_bot"):
        return None
    return doc.get("bot_label") or UNKNOWN_BOT


def _platform_key(doc: dict) -> str | None:
    if doc.get("kind") != VisitKind.PLATFORM_CLICK.value:
        return None
    return doc.get("platform") or UNKNOWN


# dimension → (key function, default top N). A key of None skips the record.
DIMENSIONS: dict[str, tuple[KeyFn, int | None]] = {
    "date": (_date_key, None),
    "device": (_or_unknown("device_class"), None),
    "browser": (_or_unknown("browser"), 5),
    "os": (_or_unknown("os"), None),
    "social_source": (_if_present("social_source"), None),
    "country": (_if_present("country"), 10),
    "city": (_city_key, 10),
    "utm_source": (_if_present("utm_source"), None),
    "bot_label": (_bot_key, None),
    "kind": (_if_present("kind"), None),
    "platform": (_platform_key, None),
}


def aggregate_by(records: Iterable[dict], dimension: str, top_n: int | None = None) -> list[AggregateRow]:
    """
    Group `records` by `dimension`, most frequent first.

    `top_n` overrides the dimension's default cap (browser 5, country and
    city 10). Raises KeyError for an unknown dimension.
    """
    key_fn, default_top = DIMENSIONS[dimension]
    counts: Counter[str] = Counter()
    for doc in records:
        key = key_fn(doc)
        if key is not None:
            counts[key] += 1

    # Counter preserves insertion order, so equal counts stay first-seen
    rows = sorted((AggregateRow(k, c) for k, c in counts.items()), key=lambda r: r.count, reverse=True)
    limit = top_n if top_n is not None else default_top
    return rows[:limit] if limit else rows


def daily_series(records: Iterable[dict]) -> list[AggregateRow]:
    """Per-day counts in chronological order, for charts."""
    rows = aggregate_by(records, "date")
    return sorted(rows, key=lambda r: r.key)


def summarize(records: Iterable[dict]) -> dict[str, int]:
    records = list(records)
    kinds = Counter(doc.get("kind") for doc in records)
    bots = sum(1 for doc in records if doc.get("is_bot"))
    return {
        "total": len(records),
        "views": kinds[VisitKind.VIEW.value],
        "platform_clicks": kinds[VisitKind.PLATFORM_CLICK.value],
        "button_clicks": kinds[VisitKind.BUTTON_CLICK.value],
        "bots": bots,
        "humans": len(records) - bots,
        "unique_countries": len({doc["country"] for doc in records if doc.get("country")}),
        "unique_cities": len({
            f"{doc['city']}, {doc.get('country') or UNKNOWN}" for doc in records if doc.get("city")
        }),
        "social_attributed": sum(1 for doc in records if doc.get("social_source")),
        "utm_attributed": sum(1 for doc in records if doc.get("utm_source")),
        "missing_location": sum(
            1 for doc in records
            if doc.get("ip_address") and not doc.get("country") and not doc.get("country_code")
        ),
    }
