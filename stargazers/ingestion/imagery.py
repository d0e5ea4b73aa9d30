"""historical imagery backfill: download original images for stored daily photos."""

import logging
from pathlib import Path, PurePosixPath
from typing import Dict, Optional, Union
from urllib.parse import unquote, urlparse

import requests

from src.config import DataConfig
from src.data.errors import StoreError
from src.data.persistence import ContentStore
from src.data.records import APOD
from stargazers.ingestion.reporting import SyncReporter

logger = logging.getLogger(__name__)

LOCAL_MEDIA_FIELD = "local_media"
CHUNK_BYTES = 64 * 1024


class ImageryBackfill:
    """downloads images for records whose media type is image and whose local media is empty."""

    def __init__(
        self,
        store: Optional[ContentStore] = None,
        media_dir: Optional[Union[str, Path]] = None,
        session: Optional[requests.Session] = None,
        timeout: int = 90,
    ):
        self.store = store or ContentStore()
        self.media_dir = Path(media_dir) if media_dir else DataConfig.MEDIA_DIR
        self.session = session or requests.Session()
        self.timeout = timeout

    def target_path(self, url: str) -> Path:
        """local path mirroring the url path; same-named images in different directories stay apart."""
        path = unquote(urlparse(url).path)
        parts = [part for part in PurePosixPath(path).parts if part not in ("/", ".", "..")]
        if not parts or path.endswith("/"):
            raise ValueError(f"no file name in {url}")
        return self.media_dir.joinpath(*parts)

    def download(self, url: str) -> Path:
        """download one image (reusing an existing file). raises requests exceptions on failure."""
        path = self.target_path(url)
        if path.exists() and path.stat().st_size > 0:
            return path

        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".part")
        try:
            with self.session.get(url, timeout=self.timeout, stream=True) as resp:
                resp.raise_for_status()
                with open(tmp_path, "wb") as f:
                    for block in resp.iter_content(chunk_size=CHUNK_BYTES):
                        if block:
                            f.write(block)
            tmp_path.replace(path)
        except Exception:
            tmp_path.unlink(missing_ok=True)
            raise
        return path

    def run(self, reporter: Optional[SyncReporter] = None) -> Dict[str, int]:
        """
        download every pending image.

        returns:
            dict with total, downloaded and failed counts
        """
        reporter = reporter or SyncReporter()
        pending = self.store.records_missing_local_media(APOD)
        stats = {"total": len(pending), "downloaded": 0, "failed": 0}

        if not pending:
            logger.info("no daily photos without local imagery")
            return stats

        reporter.start(len(pending), "downloading imagery")
        for item in pending:
            url = item["original_media"]
            try:
                path = self.download(url)
                self.store.set_field(item["id"], LOCAL_MEDIA_FIELD, str(path))
                stats["downloaded"] += 1
            except (requests.RequestException, OSError, ValueError, StoreError) as e:
                reporter.warning(f"image download failed for record {item['id']} ({url}): {e}")
                stats["failed"] += 1
            reporter.tick()
        reporter.finish()

        logger.info(f"imagery backfill: {stats['downloaded']} downloaded, {stats['failed']} failed")
        return stats
