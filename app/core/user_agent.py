"""
User-Agent classification: device class, device model, OS, browser, bot.

Every decision is an ordered list of (predicate, label) rules evaluated top
to bottom against the lowercased UA; the first predicate that holds wins.
Precedence that matters is encoded by position, not by nesting:
  - Edge before Chrome       (Edge UAs carry a Chrome token)
  - Chrome before Safari     (Chrome UAs carry a Safari token)
  - Windows Phone before Android before Windows/Linux
  - iOS before macOS         (iOS UAs say "like Mac OS X")

classify() is total: unrecognised input yields "Unknown", never an error.
"""

from dataclasses import dataclass
from typing import Callable

from user_agents import parse as parse_ua

from app.core.bot_detection import detect_bot

UNKNOWN = "Unknown"

MOBILE = "mobile"
TABLET = "tablet"
DESKTOP = "desktop"

Predicate = Callable[[str], bool]
Rule = tuple[Predicate, str]


def _has(*tokens: str) -> Predicate:
    return lambda ua: any(t in ua for t in tokens)


def _has_all(*tokens: str) -> Predicate:
    return lambda ua: all(t in ua for t in tokens)


def _without(predicate: Predicate, *tokens: str) -> Predicate:
    return lambda ua: predicate(ua) and not any(t in ua for t in tokens)


def _first_match(rules: list[Rule], ua: str, default: str | None = UNKNOWN) -> str | None:
    for predicate, label in rules:
        if predicate(ua):
            return label
    return default


# --- Device class: phones, then tablets, else desktop ---

DEVICE_CLASS_RULES: list[Rule] = [
    (_has("iphone", "ipod"), MOBILE),
    (_has_all("android", "mobile"), MOBILE),
    (_has("windows phone", "iemobile"), MOBILE),
    (_has("blackberry", "bb10"), MOBILE),
    (_has("opera mini", "webos"), MOBILE),
    (_has("ipad"), TABLET),
    (_has("tablet", "kindle", "silk/", "playbook"), TABLET),
    (_has("android"), TABLET),  # Android without "mobile" is a tablet
]

# --- Device model, per branch ---

PHONE_MODEL_RULES: list[Rule] = [
    # Windows Phone UAs claim "like iPhone OS" and carry an Android token
    (_has("windows phone", "iemobile"), "Windows Phone"),
    (_has("iphone"), "iPhone"),
    (_has("ipod"), "iPod"),
    (_has("samsung", "sm-", "gt-"), "Samsung"),
    (_has("pixel"), "Google Pixel"),
    (_has("huawei", "honor"), "Huawei"),
    (_has("xiaomi", "redmi", "poco"), "Xiaomi"),
    (_has("oneplus"), "OnePlus"),
    (_has("oppo", "cph"), "Oppo"),
    (_has("vivo"), "Vivo"),
    (_has("motorola", "moto "), "Motorola"),
    (_has("lg-", "lm-"), "LG"),
    (_has("sony", "xperia"), "Sony"),
    (_has("nokia"), "Nokia"),
    (_has("blackberry", "bb10"), "BlackBerry"),
    (_has("android"), "Android Phone"),
]

TABLET_MODEL_RULES: list[Rule] = [
    (_has("ipad"), "iPad"),
    (_has("kindle", "silk/"), "Kindle"),
    (_has("samsung", "sm-t", "sm-x", "gt-p"), "Samsung Tablet"),
    (_has("lenovo"), "Lenovo Tablet"),
    (_has("huawei"), "Huawei Tablet"),
    (_has("android"), "Android Tablet"),
]

DESKTOP_MODEL_RULES: list[Rule] = [
    (_has("cros"), "Chromebook"),
    (_has("macintosh", "mac os x"), "Mac"),
    (_has("windows"), "Windows PC"),
    (_has("linux", "x11"), "Linux PC"),
]

# --- OS: first match wins ---

OS_RULES: list[Rule] = [
    (_has("windows phone", "iemobile"), "Windows Phone"),
    (_has("android"), "Android"),
    (_has("iphone", "ipad", "ipod"), "iOS"),
    (_has("cros"), "Chrome OS"),
    (_has("macintosh", "mac os x"), "macOS"),
    (_has("windows"), "Windows"),
    (_has("linux", "x11"), "Linux"),
]

# --- Browser: engine-spoofing overlap handled by order + exclusions ---

_EDGE = ("edg/", "edge/", "edga/", "edgios/")
_OPERA = ("opr/", "opera")
_CHROME = ("chrome/", "crios/")

BROWSER_RULES: list[Rule] = [
    # In-app webviews report no Safari/Chrome token of their own
    (_has("instagram"), "Instagram In-App"),
    (_has("fban/", "fbav/", "fb_iab"), "Facebook In-App"),
    (_has("bytedancewebview", "musical_ly", "tiktok"), "TikTok In-App"),
    (_has(*_EDGE), "Edge"),
    (_without(_has(*_CHROME), *_EDGE, *_OPERA, "samsungbrowser"), "Chrome"),
    (_without(_has("safari/"), *_CHROME, *_EDGE, *_OPERA, "fxios/", "android"), "Safari"),
    (_has("firefox/", "fxios/"), "Firefox"),
    (_has(*_OPERA), "Opera"),
    (_has("msie ", "trident/"), "Internet Explorer"),
    (_has("samsungbrowser"), "Samsung Internet"),
]


@dataclass(frozen=True)
class UAClassification:
    device_class: str = DESKTOP
    device_model: str = UNKNOWN
    browser: str = UNKNOWN
    os: str = UNKNOWN
    is_bot: bool = False
    bot_label: str | None = None


def _device_model(device_class: str, ua: str) -> str:
    if device_class == MOBILE:
        return _first_match(PHONE_MODEL_RULES, ua, default="Mobile Device")
    if device_class == TABLET:
        return _first_match(TABLET_MODEL_RULES, ua, default="Tablet")
    return _first_match(DESKTOP_MODEL_RULES, ua, default="Desktop")


def _library_family(ua_raw: str, attr: str) -> str | None:
    """Fallback to the user-agents parser when our rules draw a blank."""
    try:
        family = getattr(parse_ua(ua_raw), attr).family
    except Exception:
        return None
    if not family or family == "Other":
        return None
    return family


def classify(user_agent: str | None) -> UAClassification:
    """Classify a raw User-Agent string. Never raises."""
    ua_raw = (user_agent or "").strip()
    ua = ua_raw.lower()

    device_class = _first_match(DEVICE_CLASS_RULES, ua, default=DESKTOP)
    os_name = _first_match(OS_RULES, ua)
    browser = _first_match(BROWSER_RULES, ua)

    if ua_raw and os_name == UNKNOWN:
        os_name = _library_family(ua_raw, "os") or UNKNOWN
    if ua_raw and browser == UNKNOWN:
        browser = _library_family(ua_raw, "browser") or UNKNOWN

    verdict = detect_bot(ua_raw)

    return UAClassification(
        device_class=device_class,
        device_model=_device_model(device_class, ua),
        browser=browser,
        os=os_name,
        is_bot=verdict.is_bot,
        bot_label=verdict.label,
    )
