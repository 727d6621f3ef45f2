"""
Unit tests for URL helpers.
Tests that non-navigational hrefs are dropped and normalization is stable.
"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "apps" / "backend"))

from careerscan.core.urls import cache_key, get_domain, normalize_url, resolve_href


def test_resolve_href_skips_non_navigational():
    """Anchors, scripts, mail and phone links never become job links."""
    base = "https://northwind.example/careers"
    assert resolve_href("#openings", base) is None
    assert resolve_href("javascript:void(0)", base) is None
    assert resolve_href("mailto:talent@northwind.example", base) is None
    assert resolve_href("tel:+4930123", base) is None
    assert resolve_href("", base) is None
    assert resolve_href(None, base) is None


def test_resolve_href_relative():
    """Relative hrefs resolve against the page URL."""
    base = "https://northwind.example/careers/"
    assert resolve_href("/jobs/1042", base) == "https://northwind.example/jobs/1042"
    assert resolve_href("openings", base) == "https://northwind.example/careers/openings"


def test_normalize_url():
    """Tracking params, fragments and trailing slashes are dropped."""
    url = "HTTPS://Northwind.Example/jobs/1042/?utm_source=x&gh_src=abc&team=data#apply"
    assert normalize_url(url) == "https://northwind.example/jobs/1042?team=data"


def test_normalize_url_sorts_query():
    """Query order does not change the normalized form."""
    assert normalize_url("https://n.example/jobs?b=2&a=1") == normalize_url("https://n.example/jobs?a=1&b=2")


def test_cache_key_stable():
    """Equivalent URLs share a cache key."""
    assert cache_key("https://northwind.example/careers/") == cache_key("https://northwind.example/careers")
    assert cache_key("https://northwind.example/careers") != cache_key("https://northwind.example/jobs")
    assert len(cache_key("https://northwind.example/careers")) == 64


def test_get_domain():
    """A leading www. is stripped from the host."""
    assert get_domain("https://www.northwind.example/careers") == "northwind.example"
    assert get_domain("https://careers.www.northwind.example/") == "careers.www.northwind.example"
    assert get_domain("not a url") == ""
