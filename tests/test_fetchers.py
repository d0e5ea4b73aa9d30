"""tests for the recurring feed fetchers."""

from unittest.mock import Mock, patch

import requests

from src.data.fetchers import FeedFetcher, JournalFetcher, build_url

RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
<channel>
<title>Photojournal</title>
<item>
<title>Jezero Crater Delta</title>
<link>https://photojournal.jpl.nasa.gov/catalog/PIA24000</link>
<description>&lt;img src="https://photojournal.jpl.nasa.gov/thumb/PIA24000.jpg"&gt; Delta seen from orbit.</description>
<pubDate>Tue, 02 Jan 2024 10:00:00 GMT</pubDate>
</item>
<item>
<title>Saturn Rings</title>
<link>https://photojournal.jpl.nasa.gov/catalog/PIA24001</link>
<description>Rings.</description>
</item>
</channel>
</rss>
"""


def test_fetcher_initialization(cache):
    """test fetcher initialization."""
    fetcher = FeedFetcher(cache=cache, timeout=15)
    assert fetcher.timeout == 15
    assert fetcher.session is not None
    assert "stargazers-sync" in fetcher.session.headers["User-Agent"]


def test_build_url_appends_params():
    assert build_url("https://api.example/feed", {"api_key": "k", "start_date": "2024-01-01"}) == (
        "https://api.example/feed?api_key=k&start_date=2024-01-01"
    )
    assert build_url("https://api.example/feed?x=1", {"y": "2"}) == "https://api.example/feed?x=1&y=2"
    assert build_url("https://api.example/feed") == "https://api.example/feed"


def test_fetch_json_uses_cache(cache, fake_response):
    fetcher = FeedFetcher(cache=cache)
    fetcher.session.get = Mock(return_value=fake_response(200, json_data=[{"id": 1}]))

    assert fetcher.fetch_json("https://api.example/feed", cache_seconds=60) == [{"id": 1}]
    assert fetcher.fetch_json("https://api.example/feed", cache_seconds=60) == [{"id": 1}]
    assert fetcher.session.get.call_count == 1


def test_cache_key_ignores_volatile_url(cache, fake_response):
    fetcher = FeedFetcher(cache=cache)
    fetcher.session.get = Mock(return_value=fake_response(200, json_data={"ok": True}))

    fetcher.fetch_json("https://api.example/feed?api_key=one", 60, cache_key="https://api.example/feed")
    fetcher.fetch_json("https://api.example/feed?api_key=two", 60, cache_key="https://api.example/feed")

    assert fetcher.session.get.call_count == 1


@patch("requests.Session.get")
def test_fetcher_handles_request_failure(mock_get, cache):
    """test that fetcher handles request failures gracefully."""
    mock_get.side_effect = requests.exceptions.ConnectionError("Connection failed")

    fetcher = FeedFetcher(cache=cache)
    assert fetcher.fetch_json("https://invalid-url-that-does-not-exist.com/data") is None


def test_non_200_and_bad_json_return_none(cache, fake_response):
    fetcher = FeedFetcher(cache=cache)
    fetcher.session.get = Mock(side_effect=[fake_response(503), fake_response(200, text="<html>")])

    assert fetcher.fetch_json("https://api.example/a") is None
    assert fetcher.fetch_json("https://api.example/b") is None
    # failures are never cached
    assert cache.load("https://api.example/b", 60) is None


def test_fetch_json_or_text(cache, fake_response):
    fetcher = FeedFetcher(cache=cache)
    fetcher.session.get = Mock(
        side_effect=[fake_response(200, json_data=[{"a": 1}]), fake_response(200, text=":Product: Alert\nbody")]
    )

    assert fetcher.fetch_json_or_text("https://noaa.example/alerts.json") == [{"a": 1}]
    assert fetcher.fetch_json_or_text("https://noaa.example/alerts.txt") == ":Product: Alert\nbody"


def test_journal_fetcher_parses_entries(cache, fake_response):
    fetcher = JournalFetcher(cache=cache)
    fetcher.session.get = Mock(return_value=fake_response(200, text=RSS))

    entries = fetcher.fetch_entries("https://photojournal.example/rss", max_items=1)

    assert len(entries) == 1
    assert entries[0]["title"] == "Jezero Crater Delta"
    assert entries[0]["link"] == "https://photojournal.jpl.nasa.gov/catalog/PIA24000"


def test_journal_fetcher_failure_returns_empty(cache, fake_response):
    fetcher = JournalFetcher(cache=cache)
    fetcher.session.get = Mock(return_value=fake_response(500))

    assert fetcher.fetch_entries("https://photojournal.example/rss") == []
