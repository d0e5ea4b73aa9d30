"""tests for the recurring per-feed sync manager."""

from unittest.mock import Mock

import pytest

from src.config import FeedConfig
from src.data.errors import ConfigurationError
from src.data.ingestion import DAILY_PHOTO_LOCK, FeedSyncManager

FEEDS = {
    "cme": {"endpoint": "https://api.example/DONKI/CME", "api_keys": ["donki-key"]},
    "flare": {"endpoint": "https://api.example/DONKI/FLR", "shared_keys": "cme"},
    "geomag": {"endpoint": "https://noaa.example/3-day-forecast.txt"},
    "space_weather": {"endpoint": "https://noaa.example/alerts.json"},
    "neo": {"endpoint": "https://api.example/neo/rest/v1/feed", "shared_keys": "cme"},
    "journal": {"feeds": [{"url": "https://photojournal.example/rss", "category": "Mars"}], "max_items": 5},
    "apod": {"endpoint": "https://api.example/planetary/apod", "shared_keys": "cme"},
}

CME_EVENT = {"activityID": "2024-01-02T10:00:00-CME-001", "startTime": "2024-01-02T10:00Z", "note": "Halo CME."}

FORECAST = ":Product: 3-Day Forecast\n:Issued: 2024 Jan 02 1230 UTC\nKp index 3"


@pytest.fixture(autouse=True)
def feed_config(monkeypatch):
    monkeypatch.setattr(FeedConfig, "FEEDS", FEEDS)
    for var in ("CME_API_KEYS", "FLARE_API_KEYS", "NEO_API_KEYS", "APOD_API_KEYS", "NASA_API_KEYS"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def fetcher():
    return Mock()


@pytest.fixture
def journal_fetcher():
    return Mock()


@pytest.fixture
def manager(store, fetcher, journal_fetcher, upserter):
    return FeedSyncManager(store=store, fetcher=fetcher, journal_fetcher=journal_fetcher, upserter=upserter)


def test_cme_inserted_then_updated(manager, fetcher, store):
    fetcher.fetch_json_or_text.return_value = [CME_EVENT]

    first = manager.sync_cme_alerts()
    fetcher.fetch_json_or_text.return_value = [{**CME_EVENT, "note": "Halo CME, revised."}]
    second = manager.sync_cme_alerts()

    assert first["records_inserted"] == 1
    assert second["records_updated"] == 1
    assert store.count("cme") == 1
    record = store.get(store.find_by_key("cme", CME_EVENT["activityID"]))
    assert record["body"] == "Halo CME, revised."


def test_donki_request_carries_key_but_cache_does_not(manager, fetcher):
    fetcher.fetch_json_or_text.return_value = []

    manager.sync_solar_flare()

    url, _ = fetcher.fetch_json_or_text.call_args.args
    cache_key = fetcher.fetch_json_or_text.call_args.kwargs["cache_key"]
    assert url.startswith("https://api.example/DONKI/FLR?")
    assert "api_key=donki-key" in url
    assert "startDate=" in url and "endDate=" in url
    assert "api_key" not in cache_key


def test_empty_donki_body_is_no_events(manager, fetcher):
    fetcher.fetch_json_or_text.return_value = ""

    stats = manager.sync_cme_alerts()

    assert stats["status"] == "success"
    assert stats["records_fetched"] == 0


def test_failed_fetch_is_logged_as_failure(manager, fetcher, store):
    fetcher.fetch_json_or_text.return_value = None

    stats = manager.sync_cme_alerts()

    assert stats["status"] == "failure"
    assert store.last_ingestion("cme")["status"] == "failure"


def test_missing_key_raises(manager, monkeypatch):
    monkeypatch.setattr(FeedConfig, "FEEDS", {**FEEDS, "cme": {"endpoint": FEEDS["cme"]["endpoint"]}})

    with pytest.raises(ConfigurationError):
        manager.sync_cme_alerts()


def test_geomagnetic_unchanged_text_is_skipped(manager, fetcher, store):
    fetcher.fetch_text.return_value = FORECAST

    first = manager.sync_geomagnetic()
    second = manager.sync_geomagnetic()
    fetcher.fetch_text.return_value = FORECAST + "\nKp index 5 expected"
    third = manager.sync_geomagnetic()

    assert first["records_inserted"] == 1
    assert second["records_skipped"] == 1
    assert third["records_inserted"] == 1
    assert store.count("geomag") == 2


def test_space_weather_json_alerts_keyed_by_hash(manager, fetcher, store):
    alerts = [
        {"product_id": "K04W", "issue_datetime": "2024-01-02 12:00:00.000", "message": "Kp 4 warning"},
        {"product_id": "K05A", "issue_datetime": "2024-01-02 13:00:00.000", "message": "Kp 5 alert"},
    ]
    fetcher.fetch_json_or_text.return_value = alerts

    first = manager.sync_space_weather()
    second = manager.sync_space_weather()

    assert first["records_inserted"] == 2
    assert second["records_skipped"] == 2
    assert store.count("space_weather") == 2


def test_space_weather_text_product(manager, fetcher, store):
    fetcher.fetch_json_or_text.return_value = ":Product: Alert\n:Issued: 2024 Jan 02\nG1 storm"

    stats = manager.sync_space_weather()

    assert stats["records_inserted"] == 1
    assert store.count("space_weather") == 1


def test_neo_feed_is_flattened(manager, fetcher, store):
    fetcher.fetch_json.return_value = {
        "element_count": 3,
        "near_earth_objects": {
            "2024-01-03": [{"id": "3", "name": "(2024 AC)", "close_approach_data": []}],
            "2024-01-02": [
                {"id": "1", "name": "(2024 AA)", "is_potentially_hazardous_asteroid": True},
                {"id": "2", "name": "(2024 AB)"},
            ],
        },
    }

    stats = manager.sync_neo()

    assert stats["records_fetched"] == 3
    assert stats["records_inserted"] == 3
    assert store.get_field(store.find_by_key("neo", "1"), "hazardous") == "yes"


def test_photo_journal_skips_known_links(manager, journal_fetcher, store):
    journal_fetcher.fetch_entries.return_value = [
        {"title": "Jezero Delta", "link": "https://photojournal.example/PIA1", "summary": "Delta."},
        {"title": "Gale Crater", "link": "https://photojournal.example/PIA2", "summary": "Crater."},
    ]

    first = manager.sync_photo_journal()
    second = manager.sync_photo_journal()

    assert first["records_inserted"] == 2
    assert second["records_skipped"] == 2
    journal_fetcher.fetch_entries.assert_called_with(
        "https://photojournal.example/rss", max_items=5, cache_seconds=86400
    )
    record_id = store.find_by_key("journal", "https://photojournal.example/PIA1")
    assert store.get_field(record_id, "journal_category") == "Mars"


def test_photo_journal_without_feeds(manager, monkeypatch):
    monkeypatch.setattr(FeedConfig, "FEEDS", {**FEEDS, "journal": {}})

    with pytest.raises(ConfigurationError):
        manager.sync_photo_journal()


def test_apod_sync(manager, fetcher, store, make_apod_payload):
    fetcher.fetch_json.return_value = make_apod_payload("2024-01-02", "Winter Hexagon")

    stats = manager.sync_apod()

    assert stats["records_inserted"] == 1
    assert store.count("apod") == 1


def test_apod_sync_yields_to_historical_run(manager, fetcher, store):
    store.acquire_lock(DAILY_PHOTO_LOCK, ttl_seconds=60, owner="historical_apod")

    stats = manager.sync_apod()

    assert stats["status"] == "skipped"
    fetcher.fetch_json.assert_not_called()
    assert store.last_ingestion("apod")["status"] == "skipped"


def test_sync_all_reports_unconfigured_feeds_as_skipped(manager, fetcher, journal_fetcher, monkeypatch):
    monkeypatch.setattr(FeedConfig, "FEEDS", {k: v for k, v in FEEDS.items() if k != "neo"})
    fetcher.fetch_json_or_text.return_value = []
    fetcher.fetch_text.return_value = FORECAST
    fetcher.fetch_json.return_value = None
    journal_fetcher.fetch_entries.return_value = []

    results = manager.sync_all()

    assert list(results) == ["cme", "flare", "geomag", "space_weather", "neo", "journal", "apod"]
    assert results["neo"]["status"] == "skipped"
    assert results["cme"]["status"] == "success"
    assert results["apod"]["status"] == "failure"


def test_status_rows(manager, fetcher):
    fetcher.fetch_json_or_text.return_value = [CME_EVENT]
    manager.sync_cme_alerts()

    rows = {row["feed"]: row for row in manager.status()}

    assert rows["cme"]["records"] == 1
    assert rows["cme"]["schedule"] == "hourly"
    assert rows["cme"]["last_status"] == "success"
    assert rows["neo"]["last_run"] == "never"


def test_apod_sync_counts_malformed_entries_as_failed(manager, fetcher, store, make_apod_payload):
    fetcher.fetch_json.return_value = [None, make_apod_payload("2024-01-02", "Winter Hexagon")]

    stats = manager.sync_apod()

    assert stats["status"] == "success"
    assert (stats["records_fetched"], stats["records_inserted"], stats["records_failed"]) == (2, 1, 1)
    assert store.count("apod") == 1
