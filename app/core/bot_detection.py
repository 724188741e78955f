"""
Bot detection: labeled pattern groups over the User-Agent.

Groups are checked most specific first; the first hit wins and supplies a
human-readable label for the dashboards:
  1. Search engine crawlers   (Google Bot, Bing Bot, ...)
  2. Social / link previews   (Facebook Link Preview, Slack Link Preview, ...)
  3. Email clients            (Gmail Image Proxy, Outlook, ...)
  4. Monitoring / uptime      (UptimeRobot, Pingdom, ...)
  5. Security scanners        (Proofpoint, Mimecast, Nessus, ...)
  6. Generic                  (headless browsers, HTTP clients, crawler words)

Separately, an empty or very short UA is itself a bot signal with its own
label, never confused with a pattern hit.

Detection never blocks anything: a bot visit is still recorded, just flagged.
"""

import re
from dataclasses import dataclass

from user_agents import parse as parse_ua

SEARCH_ENGINE = "search_engine"
LINK_PREVIEW = "link_preview"
EMAIL_CLIENT = "email_client"
MONITORING = "monitoring"
SECURITY_SCANNER = "security_scanner"
GENERIC = "generic"
MALFORMED = "malformed"

EMPTY_UA_LABEL = "Empty User Agent"
SHORT_UA_LABEL = "Short User Agent"
GENERIC_BOT_LABEL = "Generic Bot"

# Anything shorter than this is not a real browser
MIN_UA_LENGTH = 10


@dataclass(frozen=True)
class BotRule:
    category: str
    label: str
    pattern: re.Pattern


def _rules(category: str, entries: list[tuple[str, str]]) -> list[BotRule]:
    return [BotRule(category, label, re.compile(p, re.IGNORECASE)) for p, label in entries]


BOT_RULES: list[BotRule] = [
    # --- 1. Search engines ---
    *_rules(SEARCH_ENGINE, [
        (r"Googlebot|Google-InspectionTool|AdsBot-Google|Mediapartners-Google", "Google Bot"),
        (r"bingbot|BingPreview|msnbot", "Bing Bot"),
        (r"Yahoo! Slurp|\bSlurp\b", "Yahoo Bot"),
        (r"DuckDuckBot|DuckDuckGo-Favicons-Bot", "DuckDuckGo Bot"),
        (r"Baiduspider", "Baidu Bot"),
        (r"YandexBot|YandexImages|YandexMobileBot", "Yandex Bot"),
        (r"Applebot", "Apple Bot"),
        (r"PetalBot", "Petal Bot"),
        (r"Sogou", "Sogou Bot"),
        (r"SeznamBot", "Seznam Bot"),
        (r"AhrefsBot", "Ahrefs Bot"),
        (r"SemrushBot", "Semrush Bot"),
        (r"GPTBot|ChatGPT-User|OAI-SearchBot", "OpenAI Bot"),
    ]),
    # --- 2. Social / link previews ---
    *_rules(LINK_PREVIEW, [
        (r"facebookexternalhit|Facebot|facebookcatalog", "Facebook Link Preview"),
        (r"meta-externalagent", "Meta Link Preview"),
        (r"Twitterbot", "Twitter Link Preview"),
        (r"LinkedInBot", "LinkedIn Link Preview"),
        (r"Slackbot|Slack-ImgProxy", "Slack Link Preview"),
        (r"Discordbot", "Discord Link Preview"),
        (r"TelegramBot", "Telegram Link Preview"),
        (r"WhatsApp", "WhatsApp Link Preview"),
        (r"SkypeUriPreview", "Skype Link Preview"),
        (r"Pinterestbot|Pinterest/0\.", "Pinterest Link Preview"),
        (r"redditbot", "Reddit Link Preview"),
        (r"Snapchat.*Preview|SnapchatAds", "Snapchat Link Preview"),
        (r"Iframely", "Iframely Link Preview"),
        (r"Embedly", "Embedly Link Preview"),
        (r"vkShare", "VK Link Preview"),
        (r"Tumblr", "Tumblr Link Preview"),
        (r"Google-PageRenderer|Google \(\+https://developers\.google\.com/\+/web/snippet/\)", "Google Link Preview"),
    ]),
    # --- 3. Email clients / image proxies ---
    *_rules(EMAIL_CLIENT, [
        (r"GoogleImageProxy", "Gmail Image Proxy"),
        (r"YahooMailProxy", "Yahoo Mail Proxy"),
        (r"Microsoft Office|ms-office|Outlook", "Outlook"),
        (r"Thunderbird", "Thunderbird"),
        (r"Superhuman", "Superhuman"),
    ]),
    # --- 4. Monitoring / uptime ---
    *_rules(MONITORING, [
        (r"UptimeRobot", "UptimeRobot"),
        (r"Pingdom", "Pingdom"),
        (r"StatusCake", "StatusCake"),
        (r"Site24x7", "Site24x7"),
        (r"NewRelicPinger", "New Relic"),
        (r"Datadog", "Datadog"),
        (r"Better ?Uptime|Better Stack", "Better Uptime"),
        (r"Freshping", "Freshping"),
        (r"Checkly", "Checkly"),
    ]),
    # --- 5. Security scanners (incl. email link scanners) ---
    *_rules(SECURITY_SCANNER, [
        (r"Proofpoint", "Proofpoint Scanner"),
        (r"Mimecast", "Mimecast Scanner"),
        (r"Barracuda", "Barracuda Scanner"),
        (r"Nessus", "Nessus Scanner"),
        (r"Nmap", "Nmap Scanner"),
        (r"sqlmap", "sqlmap Scanner"),
        (r"Nikto", "Nikto Scanner"),
        (r"zgrab", "ZGrab Scanner"),
        (r"masscan", "Masscan Scanner"),
        (r"CensysInspect", "Censys Scanner"),
        (r"Expanse", "Palo Alto Expanse Scanner"),
    ]),
    # --- 6. Generic ---
    *_rules(GENERIC, [
        (r"HeadlessChrome|PhantomJS|Puppeteer|Playwright|Selenium|webdriver", "Headless Browser"),
        (
            r"curl/|Wget/|python-requests|python-urllib|python-httpx|aiohttp|Go-http-client|"
            r"node-fetch|axios/|okhttp|Java/|Apache-HttpClient|libwww-perl|Scrapy|PostmanRuntime",
            "HTTP Client",
        ),
        # "bot" as a word or product token only; device brands like CUBOT end in it
        (r"\bbot\b|bot[/;_-]|robot|crawl|spider|scraper|fetcher|slurp|\+https?://", GENERIC_BOT_LABEL),
    ]),
]


@dataclass(frozen=True)
class BotVerdict:
    is_bot: bool
    label: str | None = None
    category: str | None = None


HUMAN = BotVerdict(is_bot=False)


def detect_bot(user_agent: str | None) -> BotVerdict:
    """Classify a UA as bot/human. First matching group wins."""
    ua_str = (user_agent or "").strip()

    if not ua_str:
        return BotVerdict(is_bot=True, label=EMPTY_UA_LABEL, category=MALFORMED)

    for rule in BOT_RULES:
        if rule.pattern.search(ua_str):
            return BotVerdict(is_bot=True, label=rule.label, category=rule.category)

    if len(ua_str) < MIN_UA_LENGTH:
        return BotVerdict(is_bot=True, label=SHORT_UA_LABEL, category=MALFORMED)

    # Last resort: the user-agents library's own crawler list
    if parse_ua(ua_str).is_bot:
        return BotVerdict(is_bot=True, label=GENERIC_BOT_LABEL, category=GENERIC)

    return HUMAN
