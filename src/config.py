"""configuration management for the stargazers sync system."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote_plus

import yaml
from dotenv import load_dotenv

# load environment variables
load_dotenv()

# project root directory
PROJECT_ROOT = Path(__file__).parent.parent

logger = logging.getLogger(__name__)


def load_config() -> Dict[str, Any]:
    """
    load configuration from yaml file.

    returns default config if file not found (allows graceful degradation).
    raises ValueError if yaml is invalid.
    """
    config_path = PROJECT_ROOT / "config.yaml"
    try:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f)
            if config is None:
                logger.warning("config.yaml exists but is empty, using defaults")
                return _get_default_config()
            return config
    except FileNotFoundError:
        logger.warning(
            f"configuration file not found at {config_path}. "
            "using default configuration. feeds without endpoints will be skipped. "
            "please create config.yaml in the project root for full functionality."
        )
        return _get_default_config()
    except yaml.YAMLError as e:
        raise ValueError(f"invalid yaml in configuration file {config_path}: {e}")


def _get_default_config() -> Dict[str, Any]:
    """return minimal default configuration."""
    return {
        "data_ingestion": {
            "cache_dir": "data/cache",
            "media_dir": "data/media",
            "log_file": "logs/sgu-sync.log",
            "backfill_start_date": "2015-01-01",
        },
        "historical_sync": {},
        "database": {},
        "feeds": {},
    }


# configuration object
CONFIG = load_config()


def _section(name: str) -> Dict[str, Any]:
    return CONFIG.get(name) or {}


class DatabaseConfig:
    """database connection configuration."""

    URL = os.getenv("DATABASE_URL", _section("database").get("url"))
    HOST = os.getenv("DB_HOST", "localhost")
    PORT = int(os.getenv("DB_PORT", "5432"))
    NAME = os.getenv("DB_NAME", "stargazers")
    USER = os.getenv("DB_USER", "postgres")
    PASSWORD = os.getenv("DB_PASSWORD", "")

    @classmethod
    def get_connection_string(cls) -> str:
        """get sqlalchemy connection string."""
        if cls.URL:
            return cls.URL
        user = quote_plus(cls.USER)
        password = quote_plus(cls.PASSWORD)
        return f"postgresql://{user}:{password}@{cls.HOST}:{cls.PORT}/{cls.NAME}"


class DataConfig:
    """local data directories and run defaults."""

    CACHE_DIR = PROJECT_ROOT / os.getenv("SGU_CACHE_DIR", _section("data_ingestion").get("cache_dir", "data/cache"))
    MEDIA_DIR = PROJECT_ROOT / os.getenv("SGU_MEDIA_DIR", _section("data_ingestion").get("media_dir", "data/media"))
    LOG_FILE = PROJECT_ROOT / os.getenv(
        "SGU_LOG_FILE", _section("data_ingestion").get("log_file", "logs/sgu-sync.log")
    )
    BACKFILL_START = os.getenv(
        "BACKFILL_START_DATE", str(_section("data_ingestion").get("backfill_start_date", "2015-01-01"))
    )


class HistoricalConfig:
    """pacing and retry constants for the historical backfill."""

    RATE_LIMIT = int(_section("historical_sync").get("rate_limit", 1000))
    RATE_WINDOW_SECONDS = int(_section("historical_sync").get("rate_window_seconds", 3600))
    RATE_WAIT_BUFFER_SECONDS = int(_section("historical_sync").get("rate_wait_buffer_seconds", 10))
    BATCH_SIZE = int(_section("historical_sync").get("batch_size", 50))
    BATCH_PAUSE = float(_section("historical_sync").get("batch_pause_seconds", 5))
    DAYS_PER_REQUEST = int(_section("historical_sync").get("days_per_request", 50))
    REQUEST_TIMEOUT = int(_section("historical_sync").get("request_timeout", 60))
    MAX_REDIRECTS = int(_section("historical_sync").get("max_redirects", 3))
    RATE_LIMIT_BACKOFF = float(_section("historical_sync").get("rate_limit_backoff_seconds", 60))
    MAX_RATE_LIMIT_RETRIES = int(_section("historical_sync").get("max_rate_limit_retries", 10))
    ARCHIVE_BASE_URL = _section("historical_sync").get("archive_base_url", "https://apod.nasa.gov/apod/")
    ARCHIVE_TIMEOUT = int(_section("historical_sync").get("archive_timeout", 30))
    ARCHIVE_DELAY = float(_section("historical_sync").get("archive_delay_seconds", 0.1))
    LOCK_TTL_SECONDS = int(_section("historical_sync").get("lock_ttl_seconds", 6 * 3600))
    USER_AGENT = _section("historical_sync").get("user_agent", "stargazers-sync/1.0 (historical backfill)")


class FeedConfig:
    """per-feed endpoint and credential settings."""

    FEEDS: Dict[str, Dict[str, Any]] = _section("feeds")

    @classmethod
    def get(cls, feed: str) -> Dict[str, Any]:
        """return the settings block for a feed (empty dict if not configured)."""
        return dict(cls.FEEDS.get(feed) or {})

    @classmethod
    def endpoint(cls, feed: str) -> Optional[str]:
        return cls.get(feed).get("endpoint") or None

    @classmethod
    def cache_seconds(cls, feed: str, default: int = 3600) -> int:
        return int(cls.get(feed).get("cache_seconds", default))

    @classmethod
    def get_api_keys(cls, feed: str) -> List[str]:
        """
        resolve api keys for a feed.

        own keys win; feeds with a `shared_keys` entry fall back to that feed's
        pool (the DONKI/CME keys are shared by apod, flare and neo).
        """
        keys = _split_keys(os.getenv(f"{feed.upper()}_API_KEYS")) or _clean_keys(cls.get(feed).get("api_keys"))
        if keys:
            return keys

        shared = cls.get(feed).get("shared_keys")
        if shared and shared != feed:
            return cls.get_api_keys(shared)

        return _split_keys(os.getenv("NASA_API_KEYS"))


def _split_keys(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [k.strip() for k in raw.split(",") if k.strip()]


def _clean_keys(keys: Any) -> List[str]:
    if not keys:
        return []
    if isinstance(keys, str):
        return _split_keys(keys)
    return [str(k).strip() for k in keys if k and str(k).strip()]
