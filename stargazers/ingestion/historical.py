"""historical backfill of the daily-photo feed.

for each date chunk: gate on the hourly quota, request the chunk from the api,
upsert what comes back, and when the api fails for the chunk walk its days
against the html archive instead. every calendar day ticks the reporter
exactly once. a combined run then downloads imagery and cleans up duplicates.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Union

from src.config import DataConfig, FeedConfig, HistoricalConfig
from src.data.errors import ApiRequestError, ConfigurationError
from src.data.ingestion import DAILY_PHOTO_LOCK
from src.data.persistence import ContentStore
from src.data.records import APOD, ApodRecord, SyncOutcome
from src.data.upsert import RecordUpserter
from stargazers.ingestion.apod_client import DEFAULT_ENDPOINT, ApodClient
from stargazers.ingestion.archive_scraper import ArchiveScraper
from stargazers.ingestion.chunking import DateChunk, iter_date_chunks
from stargazers.ingestion.cleanup import CleanupCoordinator
from stargazers.ingestion.imagery import ImageryBackfill
from stargazers.ingestion.rate_limit import BatchPacer, RateGovernor
from stargazers.ingestion.reporting import SyncReporter

logger = logging.getLogger(__name__)

HISTORICAL_SOURCE = "historical_apod"

DateLike = Union[date, datetime, str]


def parse_date(value: DateLike) -> date:
    """accept a date, datetime or yyyy-mm-dd string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()


@dataclass
class BackfillRequest:
    """one historical run: an inclusive date range and the key pool to draw from."""

    start_date: date
    end_date: date
    api_keys: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.start_date > self.end_date:
            raise ValueError(f"start date {self.start_date} is after end date {self.end_date}")
        if not self.api_keys:
            raise ConfigurationError("no api key configured for the daily photo feed")

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    @classmethod
    def build(
        cls, start: DateLike, end: Optional[DateLike] = None, api_keys: Optional[List[str]] = None
    ) -> "BackfillRequest":
        """end defaults to today; keys default to the configured daily photo pool."""
        keys = FeedConfig.get_api_keys(APOD) if api_keys is None else [k for k in api_keys if k]
        return cls(parse_date(start), parse_date(end) if end else date.today(), keys)


class HistoricalSync:
    """
    historical sync service.

    construct one per invocation (cli handler, scheduler callback). it owns its
    run state (the rate governor window and the batch pacer counter), so
    independent instances never share pacing.
    """

    def __init__(
        self,
        store: Optional[ContentStore] = None,
        upserter: Optional[RecordUpserter] = None,
        client: Optional[ApodClient] = None,
        scraper: Optional[ArchiveScraper] = None,
        governor: Optional[RateGovernor] = None,
        pacer: Optional[BatchPacer] = None,
        reporter: Optional[SyncReporter] = None,
        cleanup: Optional[CleanupCoordinator] = None,
        imagery: Optional[ImageryBackfill] = None,
        days_per_request: int = HistoricalConfig.DAYS_PER_REQUEST,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store or ContentStore()
        self.upserter = upserter or RecordUpserter(self.store)
        self.governor = governor or RateGovernor(
            rate_limit=HistoricalConfig.RATE_LIMIT,
            window_seconds=HistoricalConfig.RATE_WINDOW_SECONDS,
            buffer_seconds=HistoricalConfig.RATE_WAIT_BUFFER_SECONDS,
            sleep=sleep,
        )
        self.pacer = pacer or BatchPacer(HistoricalConfig.BATCH_SIZE, HistoricalConfig.BATCH_PAUSE, sleep=sleep)
        self.client = client or ApodClient(
            endpoint=FeedConfig.endpoint(APOD) or DEFAULT_ENDPOINT,
            governor=self.governor,
            timeout=HistoricalConfig.REQUEST_TIMEOUT,
            max_redirects=HistoricalConfig.MAX_REDIRECTS,
            backoff=HistoricalConfig.RATE_LIMIT_BACKOFF,
            max_retries=HistoricalConfig.MAX_RATE_LIMIT_RETRIES,
            sleep=sleep,
            user_agent=HistoricalConfig.USER_AGENT,
        )
        self.scraper = scraper or ArchiveScraper(
            base_url=HistoricalConfig.ARCHIVE_BASE_URL,
            timeout=HistoricalConfig.ARCHIVE_TIMEOUT,
            delay=HistoricalConfig.ARCHIVE_DELAY,
            sleep=sleep,
        )
        self.reporter = reporter or SyncReporter()
        self.cleanup = cleanup or CleanupCoordinator(self.store)
        self.imagery = imagery or ImageryBackfill(self.store, DataConfig.MEDIA_DIR)
        self.days_per_request = days_per_request

    @property
    def run_state(self) -> Dict[str, Any]:
        return {
            "request_count": self.governor.request_count,
            "hour_window_start": self.governor.hour_window_start,
            "batch_count": self.pacer.batch_count,
        }

    # --- data phase ------------------------------------------------------

    def sync_historical_apod(
        self,
        start: DateLike,
        end: Optional[DateLike] = None,
        api_keys: Optional[List[str]] = None,
        run_cleanup: bool = True,
    ) -> SyncOutcome:
        """
        backfill the daily photo feed for [start, end].

        args:
            start: first day (inclusive)
            end: last day (inclusive, defaults to today)
            api_keys: key pool (defaults to the configured keys)
            run_cleanup: remove duplicates and optimize when the data phase ends

        returns:
            SyncOutcome tally

        raises:
            ConfigurationError: no api key available
            SyncInProgressError: another historical run holds the lock
        """
        request = BackfillRequest.build(start, end, api_keys)
        started = time.time()

        with self.store.sync_lock(DAILY_PHOTO_LOCK, HistoricalConfig.LOCK_TTL_SECONDS, owner=HISTORICAL_SOURCE):
            outcome = self._run(request)

        note = f"{outcome.chunks_failed} api chunks fell back to the archive" if outcome.chunks_failed else None
        self.store.log_ingestion(
            HISTORICAL_SOURCE,
            status="success",
            duration=time.time() - started,
            records_fetched=outcome.days_total,
            records_inserted=outcome.inserted,
            records_skipped=outcome.skipped,
            records_failed=outcome.failed,
            error_message=note,
        )

        if run_cleanup:
            self.reporter.summary(outcome, self.cleanup.run())
        return outcome

    def _run(self, request: BackfillRequest) -> SyncOutcome:
        # run state is per invocation
        self.governor.reset()
        self.pacer.reset()

        outcome = SyncOutcome(days_total=request.days)
        logger.info(
            f"starting historical daily photo sync {request.start_date} -> {request.end_date} "
            f"({request.days} days, {len(request.api_keys)} api keys)"
        )

        self.reporter.start(request.days, "daily photo backfill")
        try:
            for chunk in iter_date_chunks(request.start_date, request.end_date, self.days_per_request):
                self._sync_chunk(chunk, request, outcome)
        finally:
            self.reporter.finish()
        return outcome

    def _sync_chunk(self, chunk: DateChunk, request: BackfillRequest, outcome: SyncOutcome):
        api_key = random.choice(request.api_keys)
        entries = None
        try:
            entries = self.client.fetch_range(chunk.start, chunk.end, api_key)
        except ApiRequestError as e:
            outcome.chunks_failed += 1
            self.reporter.warning(f"api request failed for {chunk}: {e}; falling back to archive")

        outcome.requests_made += 1
        self.pacer.after_request()

        if entries is None:
            self._scrape_chunk(chunk, outcome)
            return

        ticks = 0
        for payload in entries:
            if isinstance(payload, dict):
                outcome.record(self.upserter.upsert_apod(ApodRecord.from_api(payload)))
            else:
                logger.warning(f"skipping malformed entry in {chunk}: {payload!r}")
                outcome.failed += 1
            if ticks < chunk.days:
                self.reporter.tick()
                ticks += 1

        # the api may omit days (no entry published); the bar still advances per day
        if ticks < chunk.days:
            self.reporter.tick(chunk.days - ticks)

    def _scrape_chunk(self, chunk: DateChunk, outcome: SyncOutcome):
        for day, fetched, record in self.scraper.scrape_chunk(chunk):
            if not fetched:
                outcome.failed += 1
            elif record is None:
                outcome.dropped += 1
            else:
                outcome.record(self.upserter.upsert_apod(record))
            self.reporter.tick()

    # --- imagery phase ---------------------------------------------------

    def sync_historical_imagery(self) -> Dict[str, int]:
        """download original images for stored daily photos that have none locally."""
        return self.imagery.run(self.reporter)

    # --- combined run ----------------------------------------------------

    def sync_both_historical(
        self, start: DateLike, end: Optional[DateLike] = None, api_keys: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """data phase, then imagery phase, then one cleanup pass over both."""
        outcome = self.sync_historical_apod(start, end, api_keys, run_cleanup=False)
        imagery = self.sync_historical_imagery()
        removed = self.cleanup.run()
        self.reporter.summary(outcome, removed)
        return {"data": outcome, "imagery": imagery, "removed": removed}
