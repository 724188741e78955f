"""
Referrer & attribution: where did this visit come from?

Inputs: the Referer header and the query params of the page being visited
(the short link / release page URL itself, not the referrer).

Per field, first success wins:
  UTM fields    1. current page (authoritative if it has utm_source)
                2. referrer URL's own query string
  Social source 1. utm_source via alias table (unknown values title-cased)
                2. referrer hostname, longest matching domain token wins
                3. platform click id (fbclid, ttclid, ...), last resort
  Preview flag  known link-preview referrers force a bot verdict later,
                whatever the UA claims

Everything is total: a malformed referrer is treated as absent and only
substring-matched against a short alias list.
"""

import re
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import parse_qs, urlsplit

UTM_FIELDS = ("utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term")

_HOSTNAME = re.compile(r"[a-z0-9._:\-]+")


@dataclass
class Attribution:
    social_source: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_content: str | None = None
    utm_term: str | None = None
    click_id: str | None = None
    click_id_param: str | None = None
    preview_bot_label: str | None = None


# --- utm_source aliases ---

UTM_SOURCE_ALIASES: dict[str, str] = {
    "fb": "Facebook",
    "facebook": "Facebook",
    "meta": "Facebook",
    "ig": "Instagram",
    "insta": "Instagram",
    "instagram": "Instagram",
    "tw": "Twitter",
    "twitter": "Twitter",
    "x": "Twitter",
    "tt": "TikTok",
    "tiktok": "TikTok",
    "yt": "YouTube",
    "youtube": "YouTube",
    "li": "LinkedIn",
    "linkedin": "LinkedIn",
    "sc": "Snapchat",
    "snap": "Snapchat",
    "snapchat": "Snapchat",
    "pin": "Pinterest",
    "pinterest": "Pinterest",
    "reddit": "Reddit",
    "threads": "Threads",
    "wa": "WhatsApp",
    "whatsapp": "WhatsApp",
    "tg": "Telegram",
    "telegram": "Telegram",
    "discord": "Discord",
    "twitch": "Twitch",
    "spotify": "Spotify",
    "soundcloud": "SoundCloud",
    "bandcamp": "Bandcamp",
    "linktree": "Linktree",
    "linktr.ee": "Linktree",
    "email": "Email",
    "newsletter": "Email",
    "mailchimp": "Email",
    "sms": "SMS",
    "google": "Google",
    "bing": "Bing",
}

# --- Referrer domains ---
# Dotted tokens match the host or any parent domain; bare tokens match a
# whole label anywhere in the host. The longest matching token wins.

SOCIAL_DOMAINS: dict[str, str] = {
    "instagram": "Instagram",
    "l.instagram.com": "Instagram",
    "com.instagram.android": "Instagram",
    "facebook": "Facebook",
    "fb.me": "Facebook",
    "fb.com": "Facebook",
    "messenger.com": "Messenger",
    "m.me": "Messenger",
    "twitter": "Twitter",
    "t.co": "Twitter",
    "x.com": "Twitter",
    "tiktok": "TikTok",
    "youtube": "YouTube",
    "youtu.be": "YouTube",
    "music.youtube.com": "YouTube Music",
    "linkedin": "LinkedIn",
    "lnkd.in": "LinkedIn",
    "reddit": "Reddit",
    "redd.it": "Reddit",
    "pinterest": "Pinterest",
    "pin.it": "Pinterest",
    "snapchat": "Snapchat",
    "threads.net": "Threads",
    "tumblr": "Tumblr",
    "discord": "Discord",
    "discordapp": "Discord",
    "t.me": "Telegram",
    "telegram": "Telegram",
    "wa.me": "WhatsApp",
    "whatsapp": "WhatsApp",
    "twitch": "Twitch",
    "vk.com": "VK",
    "spotify": "Spotify",
    "soundcloud": "SoundCloud",
    "music.apple.com": "Apple Music",
    "bandcamp": "Bandcamp",
    "linktr.ee": "Linktree",
    "google": "Google",
    "news.google.com": "Google News",
    "mail.google.com": "Gmail",
    "com.google.android.gm": "Gmail",
    "bing": "Bing",
    "duckduckgo": "DuckDuckGo",
    "yahoo": "Yahoo",
    "mail.yahoo.com": "Yahoo Mail",
    "outlook.live.com": "Outlook",
    "outlook.office.com": "Outlook",
}

# Used only when the referrer can't be parsed as a URL
FALLBACK_REFERRER_ALIASES: dict[str, str] = {
    "instagram": "Instagram",
    "facebook": "Facebook",
    "twitter": "Twitter",
    "tiktok": "TikTok",
    "youtube": "YouTube",
    "linkedin": "LinkedIn",
    "reddit": "Reddit",
    "snapchat": "Snapchat",
    "pinterest": "Pinterest",
    "spotify": "Spotify",
    "whatsapp": "WhatsApp",
    "telegram": "Telegram",
}

# --- Platform click ids (checked in this order) ---

CLICK_ID_PLATFORMS: list[tuple[str, str]] = [
    ("fbclid", "Facebook"),
    ("igshid", "Instagram"),
    ("ttclid", "TikTok"),
    ("twclid", "Twitter"),
    ("li_fat_id", "LinkedIn"),
    ("sccid", "Snapchat"),
    ("epik", "Pinterest"),
    ("rdt_cid", "Reddit"),
    ("gclid", "Google Ads"),
    ("gbraid", "Google Ads"),
    ("wbraid", "Google Ads"),
    ("dclid", "Google Ads"),
    ("msclkid", "Microsoft Ads"),
    ("yclid", "Yandex Ads"),
]

# --- Link-preview services that fetch with generic UAs ---

LINK_PREVIEW_REFERRERS: list[tuple[str, str]] = [
    ("developers.facebook.com/tools/debug", "Facebook Sharing Debugger"),
    ("cards-dev.twitter.com", "Twitter Card Validator"),
    ("cards-frame.twitter.com", "Twitter Card Preview"),
    ("linkedin.com/post-inspector", "LinkedIn Post Inspector"),
    ("iframe.ly", "Iframely Link Preview"),
    ("iframely.com", "Iframely Link Preview"),
    ("embed.ly", "Embedly Link Preview"),
    ("opengraph.xyz", "OpenGraph Preview"),
    ("metatags.io", "Meta Tags Preview"),
    ("socialsharepreview.com", "Social Share Preview"),
]


QueryParams = Mapping[str, Any]


def _param(params: QueryParams | None, name: str) -> str | None:
    """Single non-empty string value for `name` (lists → first value)."""
    if not params:
        return None
    value = params.get(name)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def query_params_from_url(url: str | None) -> dict[str, str]:
    """Parse a URL's query string into {name: first value}. Never raises."""
    if not url:
        return {}
    try:
        query = urlsplit(url).query
    except ValueError:
        return {}
    return {k: v[0] for k, v in parse_qs(query).items() if v}


def _split_referrer(referrer: str) -> tuple[str | None, dict[str, str]] | None:
    """Return (hostname, query params), or None if the referrer is malformed."""
    try:
        parts = urlsplit(referrer if "://" in referrer else f"//{referrer}")
        host = parts.hostname
        query = {k: v[0] for k, v in parse_qs(parts.query).items() if v}
    except ValueError:
        return None
    if not host or not _HOSTNAME.fullmatch(host):
        return None
    return host.lower(), query


def match_social_domain(host: str) -> str | None:
    """Longest-match-wins lookup of a hostname in SOCIAL_DOMAINS."""
    labels = host.split(".")
    best_token: str | None = None
    for token in SOCIAL_DOMAINS:
        if "." in token:
            hit = host == token or host.endswith("." + token)
        else:
            hit = token in labels
        if hit and (best_token is None or len(token) > len(best_token)):
            best_token = token
    return SOCIAL_DOMAINS[best_token] if best_token else None


def _match_fallback_alias(raw: str) -> str | None:
    lowered = raw.lower()
    for token, label in FALLBACK_REFERRER_ALIASES.items():
        if token in lowered:
            return label
    return None


def normalize_utm_source(utm_source: str) -> str:
    """Map a utm_source to a social label; unknown values are title-cased."""
    key = utm_source.strip().lower()
    return UTM_SOURCE_ALIASES.get(key) or utm_source.strip().title()


def _detect_click_id(*param_sets: dict[str, str]) -> tuple[str | None, str | None, str | None]:
    """(param name, value, platform label) of the first click id found."""
    for params in param_sets:
        lowered = {k.lower(): v for k, v in params.items()}
        for name, platform in CLICK_ID_PLATFORMS:
            value = _param(lowered, name)
            if value:
                return name, value, platform
    return None, None, None


def _detect_link_preview(referrer: str) -> str | None:
    lowered = referrer.lower()
    for pattern, label in LINK_PREVIEW_REFERRERS:
        if pattern in lowered:
            return label
    return None


def resolve_attribution(referrer: str | None, current_params: QueryParams | None = None) -> Attribution:
    """Derive social source, UTM and click-id attribution. Never raises."""
    result = Attribution()
    referrer = (referrer or "").strip()

    current: dict[str, str] = {}
    for key in current_params or {}:
        value = _param(current_params, key)
        if value:
            current[key] = value

    host: str | None = None
    referrer_query: dict[str, str] = {}
    referrer_malformed = False
    if referrer:
        split = _split_referrer(referrer)
        if split is None:
            referrer_malformed = True
        else:
            host, referrer_query = split
        result.preview_bot_label = _detect_link_preview(referrer)

    # --- UTM: current page wins; referrer only fills gaps ---
    if "utm_source" in current:
        utm = {f: current.get(f) for f in UTM_FIELDS}
    else:
        utm = {f: current.get(f) or referrer_query.get(f) for f in UTM_FIELDS}
    result.utm_source = utm["utm_source"]
    result.utm_medium = utm["utm_medium"]
    result.utm_campaign = utm["utm_campaign"]
    result.utm_content = utm["utm_content"]
    result.utm_term = utm["utm_term"]

    # --- Click ids: current page first ---
    click_param, click_value, click_platform = _detect_click_id(current, referrer_query)
    result.click_id = click_value
    result.click_id_param = click_param

    # --- Social source ---
    if result.utm_source:
        result.social_source = normalize_utm_source(result.utm_source)
    elif host:
        result.social_source = match_social_domain(host)
    elif referrer_malformed:
        result.social_source = _match_fallback_alias(referrer)

    if not result.social_source and click_platform:
        result.social_source = click_platform

    return result
