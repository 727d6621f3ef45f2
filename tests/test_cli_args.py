"""
Unit tests for command line parsing.
"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "apps" / "backend"))

import pytest

from careerscan.cli import build_http_client, build_parser, main, read_urls
from careerscan.config import get_settings
from careerscan.core.net import HostThrottle


def test_defaults():
    """Bare URLs parse with default options."""
    args = build_parser().parse_args(["https://northwind.example/careers"])
    assert args.urls == ["https://northwind.example/careers"]
    assert args.job_titles == []
    assert args.concurrency == 3
    assert args.strict is False
    assert args.no_headless is False


def test_repeatable_filters():
    """--title and --location accumulate."""
    args = build_parser().parse_args([
        "https://northwind.example/careers",
        "--title", "backend engineer", "--title", "data analyst",
        "--location", "Berlin", "--strict", "--timeout-ms", "30000",
    ])
    assert args.job_titles == ["backend engineer", "data analyst"]
    assert args.locations == ["Berlin"]
    assert args.strict is True
    assert args.timeout_ms == 30000


def test_read_urls_from_file(tmp_path):
    """URL files skip blank lines and comments."""
    url_file = tmp_path / "urls.txt"
    url_file.write_text("# batch\nhttps://a.example/jobs\n\nhttps://b.example/careers\n", encoding="utf-8")
    args = build_parser().parse_args(["https://c.example/", "--file", str(url_file)])

    assert read_urls(args) == [
        "https://c.example/",
        "https://a.example/jobs",
        "https://b.example/careers",
    ]


def test_main_requires_urls():
    """Running without any URL is a usage error."""
    with pytest.raises(SystemExit):
        main([])


def test_rate_limit_flag_throttles_client(monkeypatch):
    """--rate-limit reaches the HTTP client and overrides the environment."""
    monkeypatch.setenv("CAREERSCAN_REQUESTS_PER_MINUTE", "120")
    args = build_parser().parse_args(["https://northwind.example/careers", "--rate-limit", "30"])

    client = build_http_client(args, get_settings())

    assert client.requests_per_minute == 30
    throttle = client.throttle_for("https://northwind.example/careers")
    assert isinstance(throttle, HostThrottle)
    assert throttle.interval == 2.0
    assert client.throttle_for("https://northwind.example/jobs/1") is throttle


def test_rate_limit_from_environment(monkeypatch):
    """Without the flag the CAREERSCAN_REQUESTS_PER_MINUTE setting applies."""
    monkeypatch.setenv("CAREERSCAN_REQUESTS_PER_MINUTE", "60")
    args = build_parser().parse_args(["https://northwind.example/careers"])

    assert build_http_client(args, get_settings()).requests_per_minute == 60


def test_rate_limit_zero_disables(monkeypatch):
    """A zero limit leaves requests unthrottled."""
    monkeypatch.delenv("CAREERSCAN_REQUESTS_PER_MINUTE", raising=False)
    args = build_parser().parse_args(["https://northwind.example/careers", "--rate-limit", "0"])

    client = build_http_client(args, get_settings())

    assert client.requests_per_minute is None
    assert client.throttle_for("https://northwind.example/careers") is None
