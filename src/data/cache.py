"""time-bound response cache for the recurring feed syncs."""

import hashlib
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

from src.config import DataConfig

logger = logging.getLogger(__name__)

CACHE_PREFIX = "sgu_api_"


class ResponseCache:
    """file-backed cache of decoded api responses, one json file per url."""

    def __init__(self, cache_dir: Optional[Union[str, Path]] = None):
        self.cache_dir = Path(cache_dir) if cache_dir else DataConfig.CACHE_DIR

    def _path(self, url: str) -> Path:
        digest = hashlib.md5(url.encode("utf-8")).hexdigest()
        return self.cache_dir / f"{CACHE_PREFIX}{digest}.json"

    def load(self, url: str, max_age_seconds: int) -> Optional[Any]:
        """
        load a cached response if fresh enough.

        args:
            url: request url the response was cached under
            max_age_seconds: maximum age of the cache entry

        returns:
            cached payload (json value or text) or none if expired/missing
        """
        cache_path = self._path(url)

        if not cache_path.exists():
            return None

        # check cache age
        cache_age = datetime.now().timestamp() - cache_path.stat().st_mtime

        if cache_age > max_age_seconds:
            logger.info(f"cache for {url} expired ({cache_age:.0f}s old)")
            return None

        try:
            with open(cache_path, "r", encoding="utf-8") as f:
                entry = json.load(f)
            logger.info(f"using cached response for: {url} ({cache_age:.0f}s old)")
            return entry["body"]
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"failed to load cache: {e}")
            return None

    def save(self, url: str, body: Any):
        """cache a decoded response body."""
        cache_path = self._path(url)
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            with open(cache_path, "w", encoding="utf-8") as f:
                json.dump({"url": url, "cached_at": datetime.utcnow().isoformat(), "body": body}, f)
        except (OSError, TypeError) as e:
            logger.error(f"failed to save cache: {e}")

    def clear(self) -> int:
        """remove every cached response. returns the number of entries removed."""
        if not self.cache_dir.exists():
            return 0

        removed = 0
        for cache_path in self.cache_dir.glob(f"{CACHE_PREFIX}*.json"):
            try:
                cache_path.unlink()
                removed += 1
            except OSError as e:
                logger.error(f"failed to remove cache file {cache_path}: {e}")
        logger.info(f"cleared {removed} api cache entries")
        return removed
