"""record upsert engine.

looks up an existing record by natural key, inserts or updates it, writes the
denormalized companion fields and classifies the outcome. identity policy is
per feed family:

- daily photo: found key is updated in place and still classified "inserted"
  (a successful re-sync, never "skipped").
- cme / solar flare / neo: found key is updated in place ("updated").
- space weather json / photo journal: found key is left alone ("skipped").
- geomagnetic and space weather text: compared against the newest stored text,
  written only when it changed.
"""

from __future__ import annotations

import logging
from datetime import datetime, time
from typing import Optional

from src.data.errors import StoreError
from src.data.persistence import ContentStore
from src.data.records import APOD, AlertRecord, ApodRecord, KeyPolicy, UpsertResult

logger = logging.getLogger(__name__)

CONTENT_FIELD = "alert_content"


class RecordUpserter:
    """upserts normalized records into the content store."""

    def __init__(self, store: Optional[ContentStore] = None):
        self.store = store or ContentStore()

    def upsert_apod(self, record: ApodRecord) -> UpsertResult:
        """
        upsert one daily-photo record keyed by its title slug.

        args:
            record: normalized record from the api or the archive scraper

        returns:
            INSERTED for both new and re-synced records, FAILED otherwise
        """
        key = record.natural_key
        if not key:
            logger.warning(f"daily photo for {record.date} has no title, not stored")
            return UpsertResult.FAILED

        payload = {
            "record_type": APOD,
            "natural_key": key,
            "title": record.title,
            "body": record.explanation,
            "published_at": datetime.combine(record.date, time()) if record.date else None,
        }

        try:
            existing_id = self.store.find_by_key(APOD, key)
            if existing_id is None:
                record_id = self.store.insert(payload)
            else:
                self.store.update(existing_id, payload)
                record_id = existing_id

            fields = {
                "media_type": record.media_type,
                "original_media": record.original_media,
                "copyright": record.copyright,
                "apod_date": record.date.isoformat() if record.date else "",
            }
            # only new records get the empty placeholder, so a re-sync never
            # discards media the imagery backfill already downloaded
            if existing_id is None:
                fields["local_media"] = ""
            self.store.set_fields(record_id, fields)

        except StoreError as e:
            logger.error(f"failed to store daily photo '{record.title}': {e}")
            return UpsertResult.FAILED

        return UpsertResult.INSERTED

    def upsert_alert(self, record: AlertRecord) -> UpsertResult:
        """upsert one alert-family record according to its key policy."""
        if not record.natural_key or not record.title:
            logger.warning(f"{record.record_type} record without identity, not stored")
            return UpsertResult.FAILED

        payload = {
            "record_type": record.record_type,
            "natural_key": record.natural_key,
            "title": record.title,
            "body": record.body,
            "published_at": record.published_at,
        }

        try:
            existing_id = None
            if record.policy == KeyPolicy.LATEST_TEXT:
                latest_id = self.store.latest(record.record_type)
                if latest_id is not None and self.store.get_field(latest_id, CONTENT_FIELD) == record.content:
                    logger.info(f"{record.record_type} data unchanged, skipping")
                    return UpsertResult.SKIPPED
            else:
                existing_id = self.store.find_by_key(record.record_type, record.natural_key)
                if existing_id is not None and record.policy == KeyPolicy.SKIP_EXISTING:
                    return UpsertResult.SKIPPED

            if existing_id is None:
                record_id = self.store.insert(payload)
                result = UpsertResult.INSERTED
            else:
                self.store.update(existing_id, payload)
                record_id = existing_id
                result = UpsertResult.UPDATED

            fields = dict(record.fields)
            if record.policy == KeyPolicy.LATEST_TEXT:
                fields[CONTENT_FIELD] = record.content
            if fields:
                self.store.set_fields(record_id, fields)

        except StoreError as e:
            logger.error(f"failed to store {record.record_type} record {record.natural_key}: {e}")
            return UpsertResult.FAILED

        return result
