"""data fetchers for the recurring nasa/noaa feeds."""

import json
import logging
from typing import Any, Dict, List, Optional

import feedparser
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from src.data.cache import ResponseCache

logger = logging.getLogger(__name__)

USER_AGENT = "stargazers-sync/1.0 (recurring sync)"


def build_url(endpoint: str, params: Optional[Dict[str, Any]] = None) -> str:
    """append query parameters to an endpoint, preserving any it already has."""
    prepared = requests.PreparedRequest()
    prepared.prepare_url(endpoint, params or {})
    return prepared.url


class FeedFetcher:
    """base class for feed fetching with retry logic and a time-bound cache."""

    def __init__(self, cache: Optional[ResponseCache] = None, timeout: int = 30):
        """
        initialize fetcher with retry logic.

        args:
            cache: response cache (defaults to the configured cache directory)
            timeout: request timeout in seconds
        """
        self.cache = cache or ResponseCache()
        self.timeout = timeout
        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        """create requests session with retry logic."""
        session = requests.Session()
        session.headers.update({"User-Agent": USER_AGENT})

        # retry strategy
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def _get(self, url: str) -> Optional[requests.Response]:
        logger.info(f"making api request to: {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"api request failed for {url}: {e}")
            return None

        if response.status_code != 200:
            logger.error(f"api returned status code {response.status_code} for {url}")
            return None

        return response

    def fetch_json(self, url: str, cache_seconds: int = 3600, cache_key: Optional[str] = None) -> Optional[Any]:
        """
        fetch json data from url, served from cache when fresh.

        args:
            url: endpoint url (including query parameters)
            cache_seconds: how long a cached response stays valid
            cache_key: cache identity when the url carries volatile parts (api keys)

        returns:
            parsed json data or none if failed
        """
        cache_key = cache_key or url
        cached = self.cache.load(cache_key, cache_seconds)
        if cached is not None:
            return cached

        response = self._get(url)
        if response is None:
            return None

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"json decode error for {url}: {e}")
            return None

        self.cache.save(cache_key, data)
        return data

    def fetch_text(self, url: str, cache_seconds: int = 3600, cache_key: Optional[str] = None) -> Optional[str]:
        """fetch a plain-text payload, served from cache when fresh."""
        cache_key = cache_key or url
        cached = self.cache.load(cache_key, cache_seconds)
        if cached is not None:
            return cached

        response = self._get(url)
        if response is None:
            return None

        self.cache.save(cache_key, response.text)
        return response.text

    def fetch_json_or_text(
        self, url: str, cache_seconds: int = 3600, cache_key: Optional[str] = None
    ) -> Optional[Any]:
        """fetch a payload that may be json or plain text. json wins when it parses to a list or dict."""
        body = self.fetch_text(url, cache_seconds, cache_key=cache_key)
        if body is None:
            return None
        try:
            data = json.loads(body)
        except ValueError:
            return body
        return data if isinstance(data, (list, dict)) else body


class JournalFetcher(FeedFetcher):
    """fetcher for photo-journal rss feeds."""

    def fetch_entries(self, feed_url: str, max_items: int = 20, cache_seconds: int = 86400) -> List[Any]:
        """
        fetch and parse an rss feed.

        returns:
            up to max_items feedparser entries (empty list on failure)
        """
        body = self.fetch_text(feed_url, cache_seconds)
        if body is None:
            return []

        feed = feedparser.parse(body)
        if feed.bozo and not feed.entries:
            logger.error(f"failed to parse rss feed {feed_url}: {feed.get('bozo_exception')}")
            return []

        entries = list(feed.entries[:max_items])
        if not entries:
            logger.warning(f"no items in rss feed: {feed_url}")
        return entries
