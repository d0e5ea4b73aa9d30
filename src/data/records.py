"""feed-agnostic record shapes produced by fetchers and the archive scraper."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional

import pandas as pd

APOD = "apod"
DEFAULT_COPYRIGHT = "NASA/JPL"


class UpsertResult(str, Enum):
    """classification of a single upsert."""

    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


class KeyPolicy(str, Enum):
    """what to do when a record's natural key already exists."""

    UPDATE = "update"  # overwrite the stored record in place
    SKIP_EXISTING = "skip_existing"  # stored record wins, new payload ignored
    LATEST_TEXT = "latest_text"  # compare against the newest stored text, write only on change


def slugify_title(title: str) -> str:
    """case and whitespace insensitive slug, accents folded to ascii."""
    if not title:
        return ""
    folded = unicodedata.normalize("NFKD", title).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", folded.lower())
    return slug.strip("-")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """parse api timestamps (Z suffix, offsets, bare dates) to naive utc."""
    if value is None or value == "":
        return None
    try:
        ts = pd.to_datetime(value, utc=True)
    except (ValueError, TypeError):
        return None
    if not isinstance(ts, pd.Timestamp) or pd.isna(ts):
        return None
    return ts.tz_convert("UTC").tz_localize(None).to_pydatetime()


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip()


@dataclass
class ApodRecord:
    """normalized daily-photo record (api payload or scraped archive page)."""

    date: Optional[date]
    title: str
    explanation: str = ""
    media_url: str = ""
    hd_media_url: str = ""
    media_type: str = "image"
    copyright: str = DEFAULT_COPYRIGHT

    @property
    def natural_key(self) -> str:
        return slugify_title(self.title)

    @property
    def original_media(self) -> str:
        """hd url when available, standard url otherwise."""
        return self.hd_media_url or self.media_url

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "ApodRecord":
        published = parse_timestamp(payload.get("date"))
        return cls(
            date=published.date() if published else None,
            title=_clean_text(payload.get("title")),
            explanation=_clean_text(payload.get("explanation")),
            media_url=(payload.get("url") or "").strip(),
            hd_media_url=(payload.get("hdurl") or "").strip(),
            media_type=(payload.get("media_type") or "image").strip().lower(),
            copyright=_clean_text(payload.get("copyright")) or DEFAULT_COPYRIGHT,
        )


@dataclass
class AlertRecord:
    """normalized alert-family record with its identity policy."""

    record_type: str
    natural_key: str
    title: str
    body: str = ""
    published_at: Optional[datetime] = None
    policy: KeyPolicy = KeyPolicy.UPDATE
    fields: Dict[str, Any] = field(default_factory=dict)
    # full text compared against the newest stored record under LATEST_TEXT
    content: Optional[str] = None


@dataclass
class SyncOutcome:
    """tally accumulated across one historical run."""

    inserted: int = 0
    skipped: int = 0
    failed: int = 0
    dropped: int = 0
    chunks_failed: int = 0
    requests_made: int = 0
    days_total: int = 0

    def record(self, result: UpsertResult):
        if result in (UpsertResult.INSERTED, UpsertResult.UPDATED):
            self.inserted += 1
        elif result == UpsertResult.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1

    def as_dict(self) -> Dict[str, int]:
        return {
            "inserted": self.inserted,
            "skipped": self.skipped,
            "failed": self.failed,
            "dropped": self.dropped,
            "chunks_failed": self.chunks_failed,
            "requests_made": self.requests_made,
            "days_total": self.days_total,
        }
