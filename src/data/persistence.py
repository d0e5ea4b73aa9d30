"""content store: upsert-capable record storage keyed by natural identifier."""

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from src.data.database import Database, get_database
from src.data.errors import StoreError, SyncInProgressError
from src.data.schema import ContentRecord, DataIngestionLog, RecordField, SyncLock

logger = logging.getLogger(__name__)

# columns callers may set through insert()/update()
RECORD_COLUMNS = ("record_type", "natural_key", "title", "body", "published_at")

# deletes are issued in slices to keep IN (...) lists bounded
DELETE_BATCH_SIZE = 100


class ContentStore:
    """handles persistence of normalized records and their companion fields."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    # --- record identity -------------------------------------------------

    def find_by_key(self, record_type: str, natural_key: str) -> Optional[int]:
        """return the id of the oldest record with this natural key, or None."""
        try:
            with self.db.get_session() as session:
                return (
                    session.query(ContentRecord.id)
                    .filter(ContentRecord.record_type == record_type, ContentRecord.natural_key == natural_key)
                    .order_by(ContentRecord.id)
                    .limit(1)
                    .scalar()
                )
        except SQLAlchemyError as e:
            raise StoreError(f"lookup failed for {record_type}/{natural_key}: {e}") from e

    def insert(self, record: Dict[str, Any]) -> int:
        """insert a new record and return its id."""
        data = {k: record.get(k) for k in RECORD_COLUMNS}
        if not data["record_type"] or not data["natural_key"] or not data["title"]:
            raise StoreError("record_type, natural_key and title are required")

        try:
            with self.db.get_session() as session:
                row = ContentRecord(**data)
                session.add(row)
                session.flush()
                return row.id
        except SQLAlchemyError as e:
            raise StoreError(f"insert failed for {data['record_type']}/{data['natural_key']}: {e}") from e

    def update(self, record_id: int, record: Dict[str, Any]):
        """update mutable columns of an existing record in place."""
        try:
            with self.db.get_session() as session:
                row = session.get(ContentRecord, record_id)
                if row is None:
                    raise StoreError(f"record {record_id} does not exist")
                for key in RECORD_COLUMNS:
                    if key in record and key not in ("record_type", "natural_key"):
                        setattr(row, key, record[key])
                row.updated_at = datetime.utcnow()
        except SQLAlchemyError as e:
            raise StoreError(f"update failed for record {record_id}: {e}") from e

    # --- companion fields ------------------------------------------------

    def set_field(self, record_id: int, key: str, value: Any):
        """write one key/value attribute, replacing any previous value."""
        self.set_fields(record_id, {key: value})

    def set_fields(self, record_id: int, values: Dict[str, Any]):
        """write several key/value attributes in one session."""
        try:
            with self.db.get_session() as session:
                existing = {
                    f.key: f
                    for f in session.query(RecordField)
                    .filter(RecordField.record_id == record_id, RecordField.key.in_(list(values)))
                    .all()
                }
                for key, value in values.items():
                    value = None if value is None else str(value)
                    if key in existing:
                        existing[key].value = value
                    else:
                        session.add(RecordField(record_id=record_id, key=key, value=value))
        except SQLAlchemyError as e:
            raise StoreError(f"failed to set fields on record {record_id}: {e}") from e

    def get_field(self, record_id: int, key: str, default: Optional[str] = None) -> Optional[str]:
        with self.db.get_session() as session:
            field = (
                session.query(RecordField).filter(RecordField.record_id == record_id, RecordField.key == key).first()
            )
            return field.value if field is not None else default

    def get_fields(self, record_id: int) -> Dict[str, Optional[str]]:
        with self.db.get_session() as session:
            return {f.key: f.value for f in session.query(RecordField).filter(RecordField.record_id == record_id)}

    # --- queries ---------------------------------------------------------

    def get(self, record_id: int) -> Optional[Dict[str, Any]]:
        with self.db.get_session() as session:
            row = session.get(ContentRecord, record_id)
            if row is None:
                return None
            return {
                "id": row.id,
                "record_type": row.record_type,
                "natural_key": row.natural_key,
                "title": row.title,
                "body": row.body,
                "published_at": row.published_at,
            }

    def latest(self, record_type: str) -> Optional[int]:
        """id of the most recently created record of a type."""
        with self.db.get_session() as session:
            return (
                session.query(ContentRecord.id)
                .filter(ContentRecord.record_type == record_type)
                .order_by(ContentRecord.created_at.desc(), ContentRecord.id.desc())
                .limit(1)
                .scalar()
            )

    def count(self, record_type: Optional[str] = None) -> int:
        with self.db.get_session() as session:
            query = session.query(func.count(ContentRecord.id))
            if record_type:
                query = query.filter(ContentRecord.record_type == record_type)
            return query.scalar() or 0

    def count_by_type(self) -> Dict[str, int]:
        with self.db.get_session() as session:
            rows = (
                session.query(ContentRecord.record_type, func.count(ContentRecord.id))
                .group_by(ContentRecord.record_type)
                .all()
            )
            return {record_type: count for record_type, count in rows}

    def records_missing_local_media(self, record_type: str = "apod") -> List[Dict[str, Any]]:
        """
        records whose media type is image and whose local media field is empty.

        returns:
            list of dicts with id and original_media
        """
        with self.db.get_session() as session:
            rows = (
                session.query(RecordField.record_id, RecordField.key, RecordField.value)
                .join(ContentRecord, ContentRecord.id == RecordField.record_id)
                .filter(ContentRecord.record_type == record_type)
                .all()
            )

        by_record: Dict[int, Dict[str, Optional[str]]] = {}
        for record_id, key, value in rows:
            by_record.setdefault(record_id, {})[key] = value

        pending = []
        for record_id in sorted(by_record):
            fields = by_record[record_id]
            if fields.get("media_type") != "image":
                continue
            if fields.get("local_media"):
                continue
            if not fields.get("original_media"):
                continue
            pending.append({"id": record_id, "original_media": fields["original_media"]})
        return pending

    # --- maintenance -----------------------------------------------------

    def remove_duplicates(self) -> int:
        """
        delete all but the oldest record per (record_type, natural_key).

        companion fields of removed records go with them, and fields left
        without a record are purged afterwards.

        returns:
            number of records removed
        """
        with self.db.get_session() as session:
            keepers = {
                record_id
                for (record_id,) in session.query(func.min(ContentRecord.id))
                .group_by(ContentRecord.record_type, ContentRecord.natural_key)
                .all()
            }
            delete_ids = [
                record_id
                for (record_id,) in session.query(ContentRecord.id).order_by(ContentRecord.id).all()
                if record_id not in keepers
            ]

            for start in range(0, len(delete_ids), DELETE_BATCH_SIZE):
                batch = delete_ids[start : start + DELETE_BATCH_SIZE]
                session.query(RecordField).filter(RecordField.record_id.in_(batch)).delete(synchronize_session=False)
                session.query(ContentRecord).filter(ContentRecord.id.in_(batch)).delete(synchronize_session=False)

            orphans = (
                session.query(RecordField)
                .filter(~RecordField.record_id.in_(select(ContentRecord.id)))
                .delete(synchronize_session=False)
            )
            if orphans:
                logger.info(f"removed {orphans} orphaned record fields")

        if delete_ids:
            logger.info(f"removed {len(delete_ids)} duplicate records")
        return len(delete_ids)

    def optimize(self):
        """run the dialect's compaction/statistics pass outside a transaction."""
        dialect = self.db.dialect
        if dialect == "sqlite":
            statement = "VACUUM"
        elif dialect == "postgresql":
            statement = "VACUUM ANALYZE"
        elif dialect == "mysql":
            statement = f"OPTIMIZE TABLE {ContentRecord.__tablename__}, {RecordField.__tablename__}"
        else:
            logger.info(f"no optimize statement for dialect {dialect}, skipping")
            return

        with self.db.engine.connect() as conn:
            conn.execution_options(isolation_level="AUTOCOMMIT").execute(text(statement))
        logger.info(f"database optimized ({statement})")

    # --- run bookkeeping -------------------------------------------------

    def log_ingestion(
        self,
        source_name: str,
        status: str,
        duration: float,
        records_fetched: int = 0,
        records_inserted: int = 0,
        records_updated: int = 0,
        records_skipped: int = 0,
        records_failed: int = 0,
        error_message: Optional[str] = None,
        **_: Any,
    ):
        """log a sync run."""
        try:
            with self.db.get_session() as session:
                session.add(
                    DataIngestionLog(
                        source_name=source_name,
                        status=status,
                        records_fetched=records_fetched,
                        records_inserted=records_inserted,
                        records_updated=records_updated,
                        records_skipped=records_skipped,
                        records_failed=records_failed,
                        error_message=error_message[:500] if error_message else None,
                        duration_seconds=duration,
                    )
                )
        except Exception as e:
            logger.error(f"failed to log ingestion: {e}")

    def last_ingestion(self, source_name: str) -> Optional[Dict[str, Any]]:
        with self.db.get_session() as session:
            row = (
                session.query(DataIngestionLog)
                .filter(DataIngestionLog.source_name == source_name)
                .order_by(DataIngestionLog.run_timestamp.desc(), DataIngestionLog.id.desc())
                .first()
            )
            if row is None:
                return None
            return {"run_timestamp": row.run_timestamp, "status": row.status, "inserted": row.records_inserted}

    # --- advisory locking ------------------------------------------------

    def acquire_lock(self, name: str, ttl_seconds: int, owner: str = "") -> bool:
        """take the named lock unless a live one exists. expired locks are taken over."""
        now = datetime.utcnow()
        with self.db.get_session() as session:
            lock = session.get(SyncLock, name)
            if lock is not None and lock.expires_at > now:
                return False
            if lock is None:
                lock = SyncLock(name=name)
                session.add(lock)
            lock.owner = owner
            lock.acquired_at = now
            lock.expires_at = now + timedelta(seconds=ttl_seconds)
        return True

    def release_lock(self, name: str):
        with self.db.get_session() as session:
            session.query(SyncLock).filter(SyncLock.name == name).delete(synchronize_session=False)

    def is_locked(self, name: str) -> bool:
        with self.db.get_session() as session:
            lock = session.get(SyncLock, name)
            return lock is not None and lock.expires_at > datetime.utcnow()

    @contextmanager
    def sync_lock(self, name: str, ttl_seconds: int, owner: str = ""):
        """hold the named lock for the duration of the block."""
        if not self.acquire_lock(name, ttl_seconds, owner=owner):
            raise SyncInProgressError(f"a {name} sync is already in progress")
        try:
            yield
        finally:
            self.release_lock(name)
