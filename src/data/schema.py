"""database schema definitions for the stargazers content store."""

from datetime import datetime
from sqlalchemy import Column, Integer, Float, String, DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class ContentRecord(Base):  # type: ignore[misc,valid-type]
    """one stored item (daily photo, alert, neo, journal entry).

    natural_key is the feed-specific identity (title slug, activity id, flare id,
    payload hash, link). it is indexed but intentionally not unique: overlapping
    runs can race, and duplicates are reconciled by the cleanup pass.
    """

    __tablename__ = "sgu_content_records"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # identity
    record_type = Column(String(50), nullable=False, index=True)  # apod, cme, flare, geomag, ...
    natural_key = Column(String(255), nullable=False)

    # content
    title = Column(String(500), nullable=False)
    body = Column(Text, nullable=True)
    published_at = Column(DateTime, nullable=True, index=True)

    # audit
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    fields = relationship("RecordField", back_populates="record", cascade="all, delete-orphan")

    __table_args__ = (Index("ix_sgu_content_type_key", "record_type", "natural_key"),)

    def __repr__(self):
        return f"<ContentRecord(type={self.record_type}, key={self.natural_key}, id={self.id})>"


class RecordField(Base):  # type: ignore[misc,valid-type]
    """denormalized key/value attribute attached to a content record."""

    __tablename__ = "sgu_record_fields"

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(Integer, ForeignKey("sgu_content_records.id", ondelete="CASCADE"), nullable=False)
    key = Column(String(100), nullable=False)
    value = Column(Text, nullable=True)

    record = relationship("ContentRecord", back_populates="fields")

    __table_args__ = (Index("ix_sgu_record_fields_record_key", "record_id", "key"),)

    def __repr__(self):
        return f"<RecordField(record_id={self.record_id}, key={self.key})>"


class DataIngestionLog(Base):  # type: ignore[misc,valid-type]
    """log of sync runs for monitoring and debugging."""

    __tablename__ = "sgu_ingestion_log"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # run info
    run_timestamp = Column(DateTime, default=datetime.utcnow, index=True)
    source_name = Column(String(100), nullable=False)  # feed name or "historical_apod"

    # execution details
    status = Column(String(20), nullable=False)  # success, failure, skipped
    records_fetched = Column(Integer, default=0)
    records_inserted = Column(Integer, default=0)
    records_updated = Column(Integer, default=0)
    records_skipped = Column(Integer, default=0)
    records_failed = Column(Integer, default=0)

    # error tracking
    error_message = Column(String(500))

    # performance
    duration_seconds = Column(Float)

    def __repr__(self):
        return f"<DataIngestionLog(source={self.source_name}, status={self.status})>"


class SyncLock(Base):  # type: ignore[misc,valid-type]
    """advisory "sync in progress" flag with an expiry."""

    __tablename__ = "sgu_sync_locks"

    name = Column(String(100), primary_key=True)
    owner = Column(String(100))
    acquired_at = Column(DateTime, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<SyncLock(name={self.name}, expires_at={self.expires_at})>"
