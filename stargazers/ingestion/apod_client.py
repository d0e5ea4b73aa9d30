"""daily-photo api client for historical date ranges.

one GET per chunk, paced by the RateGovernor. a 429 answer sleeps, resets the
governor window and retries the same request, up to `max_retries` times.
every other failure is raised to the caller so the chunk can fall back to the
archive scraper.
"""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from src.data.errors import DecodeError, RateLimitError, TransportError, UpstreamError
from stargazers.ingestion.rate_limit import RateGovernor

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.nasa.gov/planetary/apod"


class ApodClient:
    """minimal client for the daily-photo range endpoint."""

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        governor: Optional[RateGovernor] = None,
        timeout: int = 60,
        max_redirects: int = 3,
        backoff: float = 60,
        max_retries: int = 10,
        sleep: Callable[[float], None] = time.sleep,
        session: Optional[requests.Session] = None,
        user_agent: Optional[str] = None,
    ):
        self.endpoint = endpoint
        self.governor = governor or RateGovernor()
        self.timeout = timeout
        self.backoff = backoff
        self.max_retries = max_retries
        self._sleep = sleep
        self.session = session or self._create_session(max_redirects, user_agent)

    def _create_session(self, max_redirects: int, user_agent: Optional[str]) -> requests.Session:
        session = requests.Session()
        session.max_redirects = max_redirects
        if user_agent:
            session.headers.update({"User-Agent": user_agent})

        # status handling (429 backoff, fallback on 5xx) is done here, not by urllib3
        adapter = HTTPAdapter(max_retries=Retry(total=0, redirect=max_redirects, raise_on_redirect=False))
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def fetch_range(self, start: date, end: date, api_key: str) -> List[Dict[str, Any]]:
        """
        fetch all daily-photo entries in [start, end].

        args:
            start: first day (inclusive)
            end: last day (inclusive)
            api_key: key for this request

        returns:
            decoded list of entry objects

        raises:
            TransportError: network failure or timeout
            RateLimitError: 429 persisted through every retry
            UpstreamError: any other non-200 status
            DecodeError: missing or invalid json body
        """
        params = {"api_key": api_key, "start_date": start.isoformat(), "end_date": end.isoformat()}
        window = f"{params['start_date']} -> {params['end_date']}"

        attempt = 0
        while True:
            self.governor.before_request()
            try:
                resp = self.session.get(self.endpoint, params=params, timeout=self.timeout)
            except requests.RequestException as e:
                # the attempt still counts against the hourly quota
                self.governor.record_request()
                raise TransportError(f"request failed for {window}: {e}") from e

            if resp.status_code != 429:
                break

            attempt += 1
            if attempt > self.max_retries:
                raise RateLimitError(f"still rate limited for {window} after {self.max_retries} retries")

            logger.warning(f"rate limited (429) for {window}, waiting {self.backoff:.0f}s before retry {attempt}")
            self._sleep(self.backoff)
            self.governor.reset()

        # one counted request per chunk, however many 429 retries it took
        self.governor.record_request()

        if resp.status_code != 200:
            raise UpstreamError(f"api returned status code {resp.status_code} for {window}", resp.status_code)

        if not resp.content:
            raise DecodeError(f"empty response body for {window}")

        try:
            data = resp.json()
        except ValueError as e:
            raise DecodeError(f"json decode error for {window}: {e}") from e

        # a single-day range may come back as a bare object
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise DecodeError(f"unexpected response shape for {window}: {type(data).__name__}")

        return data
