"""Tests for referrer / UTM / click-id attribution."""

import pytest

from app.core.attribution import (
    Attribution,
    match_social_domain,
    normalize_utm_source,
    query_params_from_url,
    resolve_attribution,
)


class TestUtmSource:
    def test_alias_from_current_page(self):
        a = resolve_attribution("", {"utm_source": "ig"})
        assert a.social_source == "Instagram"
        assert a.utm_source == "ig"

    @pytest.mark.parametrize("raw,expected", [
        ("fb", "Facebook"),
        ("X", "Twitter"),
        (" tiktok ", "TikTok"),
        ("newsletter", "Email"),
        ("podcast", "Podcast"),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_utm_source(raw) == expected

    def test_current_page_beats_referrer(self):
        a = resolve_attribution(
            "https://example.com/post?utm_source=newsletter&utm_campaign=old&utm_term=rock",
            {"utm_source": "tiktok", "utm_campaign": "launch"},
        )
        assert a.utm_source == "tiktok"
        assert a.utm_campaign == "launch"
        # current page is authoritative once it has utm_source
        assert a.utm_term is None
        assert a.social_source == "TikTok"

    def test_referrer_fills_gaps_without_current_source(self):
        a = resolve_attribution(
            "https://example.com/?utm_source=fb&utm_medium=paid",
            {"utm_campaign": "launch"},
        )
        assert a.utm_source == "fb"
        assert a.utm_medium == "paid"
        assert a.utm_campaign == "launch"
        assert a.social_source == "Facebook"

    def test_utm_source_beats_referrer_host(self):
        a = resolve_attribution("https://www.instagram.com/", {"utm_source": "twitter"})
        assert a.social_source == "Twitter"

    def test_list_values_take_first(self):
        a = resolve_attribution(None, {"utm_source": ["ig", "fb"]})
        assert a.utm_source == "ig"


class TestReferrerDomain:
    @pytest.mark.parametrize("referrer,expected", [
        ("https://l.instagram.com/?u=https%3A%2F%2Ftunelink.app", "Instagram"),
        ("https://www.facebook.com/", "Facebook"),
        ("https://t.co/abc123", "Twitter"),
        ("https://music.youtube.com/watch?v=1", "YouTube Music"),
        ("https://m.youtube.com/watch?v=1", "YouTube"),
        ("https://www.google.co.uk/", "Google"),
        ("android-app://com.google.android.gm/", "Gmail"),
        ("https://linktr.ee/someartist", "Linktree"),
    ])
    def test_known_hosts(self, referrer, expected):
        assert resolve_attribution(referrer).social_source == expected

    def test_unknown_host(self):
        a = resolve_attribution("https://someblog.example.org/review")
        assert a.social_source is None

    def test_longest_token_wins(self):
        assert match_social_domain("music.apple.com") == "Apple Music"

    def test_label_tokens_do_not_match_substrings(self):
        assert match_social_domain("notfacebookish.com") is None


class TestMalformedReferrer:
    def test_does_not_raise_and_falls_back(self):
        a = resolve_attribution("not a url but came from instagram")
        assert a.social_source == "Instagram"

    @pytest.mark.parametrize("referrer", ["http://[::1", "::::", "%%%", "\x00"])
    def test_garbage(self, referrer):
        assert isinstance(resolve_attribution(referrer), Attribution)

    def test_empty(self):
        assert resolve_attribution(None, None) == Attribution()


class TestClickIds:
    def test_click_id_is_last_resort(self):
        a = resolve_attribution("", {"fbclid": "IwAR123"})
        assert a.social_source == "Facebook"
        assert a.click_id == "IwAR123"
        assert a.click_id_param == "fbclid"

    def test_referrer_host_beats_click_id(self):
        a = resolve_attribution("https://www.tiktok.com/@artist", {"fbclid": "x"})
        assert a.social_source == "TikTok"
        assert a.click_id_param == "fbclid"

    def test_current_page_click_id_before_referrer(self):
        a = resolve_attribution("https://example.com/?gclid=ref", {"ttclid": "cur"})
        assert a.click_id == "cur"
        assert a.social_source == "TikTok"

    def test_click_id_from_referrer(self):
        a = resolve_attribution("https://example.com/?msclkid=abc", {})
        assert a.click_id_param == "msclkid"
        assert a.social_source == "Microsoft Ads"


class TestLinkPreview:
    def test_sharing_debugger(self):
        a = resolve_attribution("https://developers.facebook.com/tools/debug/?q=x")
        assert a.preview_bot_label == "Facebook Sharing Debugger"

    def test_normal_referrer_is_not_preview(self):
        assert resolve_attribution("https://www.facebook.com/").preview_bot_label is None


def test_query_params_from_url():
    assert query_params_from_url("https://tunelink.app/r/x?utm_campaign=launch&a=1&a=2") == {
        "utm_campaign": "launch",
        "a": "1",
    }
    assert query_params_from_url(None) == {}
