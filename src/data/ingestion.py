"""recurring per-feed sync orchestration."""

import logging
import random
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from src.config import FeedConfig
from src.data.errors import ConfigurationError
from src.data.fetchers import FeedFetcher, JournalFetcher, build_url
from src.data.normalize import (
    CME,
    FLARE,
    GEOMAG,
    JOURNAL,
    NEO,
    SPACE_WEATHER,
    normalize_cme,
    normalize_flare,
    normalize_journal_entry,
    normalize_neo,
    normalize_space_weather,
    normalize_text_alert,
)
from src.data.persistence import ContentStore
from src.data.records import APOD, AlertRecord, ApodRecord, UpsertResult
from src.data.upsert import RecordUpserter

logger = logging.getLogger(__name__)

# advisory lock held by the historical backfill; the recurring photo sync yields to it
DAILY_PHOTO_LOCK = "daily_photo"

# interval the external scheduler runs each feed at
SYNC_SCHEDULE = {
    CME: "hourly",
    FLARE: "hourly",
    GEOMAG: "30min",
    SPACE_WEATHER: "30min",
    NEO: "twicedaily",
    JOURNAL: "daily",
    APOD: "daily",
}

# how far back the donki feeds are queried
DONKI_LOOKBACK_DAYS = 7
NEO_LOOKAHEAD_DAYS = 7


def _new_stats() -> Dict[str, Any]:
    return {
        "status": "success",
        "records_fetched": 0,
        "records_inserted": 0,
        "records_updated": 0,
        "records_skipped": 0,
        "records_failed": 0,
        "error_message": None,
    }


def _tally(stats: Dict[str, Any], result: UpsertResult):
    stats[f"records_{result.value}"] += 1


class FeedSyncManager:
    """runs the recurring sync for each alert family, the photo journal and the daily photo."""

    def __init__(
        self,
        store: Optional[ContentStore] = None,
        fetcher: Optional[FeedFetcher] = None,
        journal_fetcher: Optional[JournalFetcher] = None,
        upserter: Optional[RecordUpserter] = None,
    ):
        self.store = store or ContentStore()
        self.fetcher = fetcher or FeedFetcher()
        self.journal_fetcher = journal_fetcher or JournalFetcher(cache=self.fetcher.cache)
        self.upserter = upserter or RecordUpserter(self.store)

    def routines(self) -> Dict[str, Callable[[], Dict[str, Any]]]:
        """feed name -> sync entry point, in scheduling order."""
        return {
            CME: self.sync_cme_alerts,
            FLARE: self.sync_solar_flare,
            GEOMAG: self.sync_geomagnetic,
            SPACE_WEATHER: self.sync_space_weather,
            NEO: self.sync_neo,
            JOURNAL: self.sync_photo_journal,
            APOD: self.sync_apod,
        }

    # --- configuration ---------------------------------------------------

    def _endpoint(self, feed: str) -> str:
        endpoint = FeedConfig.endpoint(feed)
        if not endpoint:
            raise ConfigurationError(f"no endpoint configured for {feed}")
        return endpoint

    def _api_key(self, feed: str) -> str:
        keys = FeedConfig.get_api_keys(feed)
        if not keys:
            raise ConfigurationError(f"no api key configured for {feed}")
        return random.choice(keys)

    def _fetch_keyed(self, feed: str, params: Dict[str, Any], as_text: bool = False) -> Optional[Any]:
        """fetch a keyed endpoint; the cache entry ignores which key was used."""
        endpoint = self._endpoint(feed)
        url = build_url(endpoint, {"api_key": self._api_key(feed), **params})
        cache_key = build_url(endpoint, params)
        cache_seconds = FeedConfig.cache_seconds(feed)
        if as_text:
            return self.fetcher.fetch_json_or_text(url, cache_seconds, cache_key=cache_key)
        return self.fetcher.fetch_json(url, cache_seconds, cache_key=cache_key)

    # --- bookkeeping -----------------------------------------------------

    def _finish(self, feed: str, stats: Dict[str, Any], started: float) -> Dict[str, Any]:
        duration = time.time() - started
        self.store.log_ingestion(feed, duration=duration, **stats)
        logger.info(
            f"{feed} sync {stats['status']}: {stats['records_inserted']} inserted, "
            f"{stats['records_updated']} updated, {stats['records_skipped']} skipped, "
            f"{stats['records_failed']} failed ({duration:.1f}s)"
        )
        return stats

    def _upsert_records(
        self, stats: Dict[str, Any], items: Iterable[Any], normalize: Callable[[Any], Optional[AlertRecord]]
    ):
        for item in items:
            stats["records_fetched"] += 1
            record = normalize(item)
            if record is None:
                stats["records_failed"] += 1
                continue
            _tally(stats, self.upserter.upsert_alert(record))

    @staticmethod
    def _no_data(stats: Dict[str, Any], feed: str) -> Dict[str, Any]:
        stats["status"] = "failure"
        stats["error_message"] = f"no data returned from {feed} feed"
        logger.error(stats["error_message"])
        return stats

    @staticmethod
    def _as_list(data: Any) -> Optional[List[Any]]:
        # donki answers an empty body instead of [] when nothing happened
        if isinstance(data, list):
            return data
        if isinstance(data, str) and not data.strip():
            return []
        return None

    # --- alert families --------------------------------------------------

    def _sync_donki(self, feed: str, normalize: Callable[[Any], Optional[AlertRecord]]) -> Dict[str, Any]:
        started = time.time()
        end = datetime.utcnow().date()
        start = end - timedelta(days=DONKI_LOOKBACK_DAYS)
        data = self._fetch_keyed(
            feed, {"startDate": start.isoformat(), "endDate": end.isoformat()}, as_text=True
        )

        stats = _new_stats()
        events = self._as_list(data)
        if events is None:
            return self._finish(feed, self._no_data(stats, feed), started)

        self._upsert_records(stats, events, normalize)
        return self._finish(feed, stats, started)

    def sync_cme_alerts(self) -> Dict[str, Any]:
        """sync coronal mass ejections from donki, updated in place by activity id."""
        return self._sync_donki(CME, normalize_cme)

    def sync_solar_flare(self) -> Dict[str, Any]:
        """sync solar flares from donki, updated in place by flare id."""
        return self._sync_donki(FLARE, normalize_flare)

    def sync_geomagnetic(self) -> Dict[str, Any]:
        """sync the geomagnetic forecast bulletin. written only when its text changed."""
        started = time.time()
        endpoint = self._endpoint(GEOMAG)
        text = self.fetcher.fetch_text(endpoint, FeedConfig.cache_seconds(GEOMAG, 1800))

        stats = _new_stats()
        if text is None:
            return self._finish(GEOMAG, self._no_data(stats, GEOMAG), started)

        self._upsert_records(stats, [text], lambda body: normalize_text_alert(GEOMAG, body))
        return self._finish(GEOMAG, stats, started)

    def sync_space_weather(self) -> Dict[str, Any]:
        """
        sync space weather alerts.

        the endpoint may answer with a json list of alerts (each keyed by a hash
        of its payload) or a plain-text product (compared against the newest
        stored text).
        """
        started = time.time()
        endpoint = self._endpoint(SPACE_WEATHER)
        data = self.fetcher.fetch_json_or_text(endpoint, FeedConfig.cache_seconds(SPACE_WEATHER, 1800))

        stats = _new_stats()
        if data is None:
            return self._finish(SPACE_WEATHER, self._no_data(stats, SPACE_WEATHER), started)

        if isinstance(data, str):
            self._upsert_records(stats, [data], lambda body: normalize_text_alert(SPACE_WEATHER, body))
        else:
            alerts = data if isinstance(data, list) else [data]
            self._upsert_records(stats, alerts, normalize_space_weather)
        return self._finish(SPACE_WEATHER, stats, started)

    def sync_neo(self) -> Dict[str, Any]:
        """sync near-earth objects approaching from today through the next week."""
        started = time.time()
        start = datetime.utcnow().date()
        end = start + timedelta(days=NEO_LOOKAHEAD_DAYS)
        data = self._fetch_keyed(NEO, {"start_date": start.isoformat(), "end_date": end.isoformat()})

        stats = _new_stats()
        if not isinstance(data, dict):
            return self._finish(NEO, self._no_data(stats, NEO), started)

        by_day = data.get("near_earth_objects") or {}
        neos = [neo for day in sorted(by_day) for neo in by_day[day]]
        self._upsert_records(stats, neos, normalize_neo)
        return self._finish(NEO, stats, started)

    def sync_photo_journal(self) -> Dict[str, Any]:
        """sync every configured photo-journal rss feed. links already stored are skipped."""
        settings = FeedConfig.get(JOURNAL)
        feeds = settings.get("feeds") or []
        if not feeds:
            raise ConfigurationError("no photo journal feeds configured")

        started = time.time()
        max_items = int(settings.get("max_items", 20))
        cache_seconds = int(settings.get("cache_seconds", 86400))

        stats = _new_stats()
        errors = []
        for feed in feeds:
            url = feed.get("url")
            if not url:
                continue
            category = feed.get("category") or "General"
            entries = self.journal_fetcher.fetch_entries(url, max_items=max_items, cache_seconds=cache_seconds)
            if not entries:
                errors.append(f"no items from {url}")
                continue
            self._upsert_records(stats, entries, lambda entry: normalize_journal_entry(entry, category))

        if errors:
            stats["error_message"] = "; ".join(errors)
            if stats["records_fetched"] == 0:
                stats["status"] = "failure"
        return self._finish(JOURNAL, stats, started)

    # --- daily photo -----------------------------------------------------

    def sync_apod(self) -> Dict[str, Any]:
        """sync today's daily photo. yields to a running historical backfill."""
        started = time.time()
        stats = _new_stats()

        if self.store.is_locked(DAILY_PHOTO_LOCK):
            logger.info("historical daily photo sync in progress, skipping recurring sync")
            stats["status"] = "skipped"
            stats["error_message"] = "historical sync in progress"
            return self._finish(APOD, stats, started)

        data = self._fetch_keyed(APOD, {})
        if data is None:
            return self._finish(APOD, self._no_data(stats, APOD), started)

        for payload in data if isinstance(data, list) else [data]:
            stats["records_fetched"] += 1
            if not isinstance(payload, dict):
                logger.warning(f"skipping malformed daily photo entry: {payload!r}")
                stats["records_failed"] += 1
                continue
            _tally(stats, self.upserter.upsert_apod(ApodRecord.from_api(payload)))
        return self._finish(APOD, stats, started)

    # --- all feeds -------------------------------------------------------

    def sync_all(self) -> Dict[str, Dict[str, Any]]:
        """run every feed; a feed that is not configured is reported as skipped."""
        results = {}
        for feed, routine in self.routines().items():
            try:
                results[feed] = routine()
            except ConfigurationError as e:
                logger.warning(f"{feed} sync skipped: {e}")
                results[feed] = {**_new_stats(), "status": "skipped", "error_message": str(e)}
            except Exception as e:
                logger.error(f"{feed} sync failed: {e}")
                results[feed] = {**_new_stats(), "status": "failure", "error_message": str(e)}
        return results

    def status(self) -> List[Dict[str, Any]]:
        """per feed: schedule, stored record count and the last logged run."""
        counts = self.store.count_by_type()
        rows = []
        for feed in self.routines():
            last = self.store.last_ingestion(feed)
            rows.append(
                {
                    "feed": feed,
                    "schedule": SYNC_SCHEDULE[feed],
                    "records": counts.get(feed, 0),
                    "last_run": last["run_timestamp"].strftime("%Y-%m-%d %H:%M:%S") if last else "never",
                    "last_status": last["status"] if last else "-",
                }
            )
        return rows
