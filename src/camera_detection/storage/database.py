"""
Event store - SQLAlchemy persistence for detection events and settings.

Each operation opens its own session, so the store is safe to share
between the detection loop, the purge engine, and management callers;
isolation is left to the database's own transactions.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    create_engine,
    func,
    text,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ..models import BoundingBox, DetectionEvent
from ..utils.constants import TOP_LABELS_LIMIT

logger = logging.getLogger(__name__)

Base = declarative_base()

SETTINGS_ROW_ID = "singleton"


def to_db_time(value: datetime) -> datetime:
    """Store times as naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_time(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc)


class DetectionEventRecord(Base):
    """Detection event table"""

    __tablename__ = "detection_event"

    id = Column(String(36), primary_key=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    label = Column(String(64), nullable=False, index=True)
    confidence = Column(Float, nullable=False)
    snapshot_filename = Column(Text, nullable=True)

    bbox_x = Column(Float, nullable=False)
    bbox_y = Column(Float, nullable=False)
    bbox_width = Column(Float, nullable=False)
    bbox_height = Column(Float, nullable=False)

    frame_width = Column(Integer, nullable=False, default=0)
    frame_height = Column(Integer, nullable=False, default=0)
    pinned = Column(Boolean, nullable=False, default=False, index=True)

    def to_event(self) -> DetectionEvent:
        return DetectionEvent(
            id=self.id,
            timestamp=from_db_time(self.timestamp),
            label=self.label,
            confidence=self.confidence,
            snapshot_filename=self.snapshot_filename,
            bbox=BoundingBox(
                x=self.bbox_x, y=self.bbox_y, width=self.bbox_width, height=self.bbox_height
            ),
            frame_width=self.frame_width,
            frame_height=self.frame_height,
            pinned=bool(self.pinned),
        )

    @classmethod
    def from_event(cls, event: DetectionEvent) -> "DetectionEventRecord":
        return cls(
            id=event.id,
            timestamp=to_db_time(event.timestamp),
            label=event.label,
            confidence=event.confidence,
            snapshot_filename=event.snapshot_filename,
            bbox_x=event.bbox.x,
            bbox_y=event.bbox.y,
            bbox_width=event.bbox.width,
            bbox_height=event.bbox.height,
            frame_width=event.frame_width,
            frame_height=event.frame_height,
            pinned=event.pinned,
        )


class DetectionSettingsRecord(Base):
    """Single-row table persisting user-configurable settings across restarts"""

    __tablename__ = "detection_settings"

    id = Column(String(16), primary_key=True, default=SETTINGS_ROW_ID)
    enabled_labels = Column(Text, nullable=False)  # JSON array
    retention_days = Column(Integer, nullable=False, default=7)


class EventStore:
    """Manages database operations for detection events"""

    def __init__(self, database_url: str = "sqlite:///camera.db"):
        self.database_url = database_url
        self.engine = None
        self.SessionLocal = None
        self._initialized = False

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def initialize(self) -> None:
        """Initialize database connection and create tables"""
        if self._initialized:
            return

        if self.database_url.startswith("sqlite:///"):
            db_path = self.database_url.replace("sqlite:///", "", 1)
            db_dir = os.path.dirname(db_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)

        self.engine = create_engine(
            self.database_url,
            connect_args={"check_same_thread": False} if self.is_sqlite else {},
        )
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        Base.metadata.create_all(bind=self.engine)

        self._initialized = True
        logger.info(f"Database initialized: {self._masked_url()}")

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self._initialized = False

    def get_session(self) -> Session:
        """Get database session"""
        if not self._initialized:
            self.initialize()
        return self.SessionLocal()

    # ── Events ──

    def insert_event(self, event: DetectionEvent) -> DetectionEvent:
        """Insert a new detection event"""
        session = self.get_session()
        try:
            record = DetectionEventRecord.from_event(event)
            session.add(record)
            session.commit()
            return record.to_event()
        except Exception as e:
            session.rollback()
            logger.error(f"Error saving detection event: {e}")
            raise
        finally:
            session.close()

    def get_event(self, event_id: str) -> DetectionEvent | None:
        session = self.get_session()
        try:
            record = session.get(DetectionEventRecord, event_id)
            return record.to_event() if record else None
        finally:
            session.close()

    def list_events(
        self,
        limit: int = 50,
        offset: int = 0,
        label: str | None = None,
        min_confidence: float | None = None,
        since: datetime | None = None,
    ) -> tuple[list[DetectionEvent], int]:
        """
        Get events newest first with optional filters.

        Returns:
            (page of events, total matching count)
        """
        session = self.get_session()
        try:
            query = session.query(DetectionEventRecord)

            if label:
                query = query.filter(DetectionEventRecord.label == label)
            if min_confidence is not None:
                query = query.filter(DetectionEventRecord.confidence >= min_confidence)
            if since is not None:
                query = query.filter(DetectionEventRecord.timestamp >= to_db_time(since))

            total = query.count()
            records = (
                query.order_by(DetectionEventRecord.timestamp.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [r.to_event() for r in records], total
        finally:
            session.close()

    def set_pinned(self, event_id: str, pinned: bool | None = None) -> DetectionEvent | None:
        """
        Set or flip the pinned flag.

        Args:
            event_id: Event to update
            pinned: New value, or None to toggle

        Returns:
            Updated event, or None if it does not exist
        """
        session = self.get_session()
        try:
            record = session.get(DetectionEventRecord, event_id)
            if record is None:
                return None
            record.pinned = (not record.pinned) if pinned is None else pinned
            session.commit()
            return record.to_event()
        except Exception as e:
            session.rollback()
            logger.error(f"Error updating pin on {event_id}: {e}")
            raise
        finally:
            session.close()

    def delete_event(self, event_id: str) -> DetectionEvent | None:
        """Delete one event; returns the deleted event or None if missing"""
        session = self.get_session()
        try:
            record = session.get(DetectionEventRecord, event_id)
            if record is None:
                return None
            event = record.to_event()
            session.delete(record)
            session.commit()
            return event
        except Exception as e:
            session.rollback()
            logger.error(f"Error deleting event {event_id}: {e}")
            raise
        finally:
            session.close()

    def get_stats(self, today_start: datetime) -> dict[str, Any]:
        """Total count, count since today_start, top labels, average confidence"""
        session = self.get_session()
        try:
            total = session.query(func.count(DetectionEventRecord.id)).scalar() or 0
            today = (
                session.query(func.count(DetectionEventRecord.id))
                .filter(DetectionEventRecord.timestamp >= to_db_time(today_start))
                .scalar()
                or 0
            )
            count_col = func.count(DetectionEventRecord.id).label("count")
            top_labels = (
                session.query(DetectionEventRecord.label, count_col)
                .group_by(DetectionEventRecord.label)
                .order_by(count_col.desc(), DetectionEventRecord.label)
                .limit(TOP_LABELS_LIMIT)
                .all()
            )
            average = session.query(func.avg(DetectionEventRecord.confidence)).scalar()

            return {
                "total_events": total,
                "today_events": today,
                "top_labels": [{"label": label, "count": count} for label, count in top_labels],
                "average_confidence": float(average or 0.0),
            }
        finally:
            session.close()

    # ── Retention ──

    def find_expired(self, cutoff: datetime) -> list[tuple[str, str | None]]:
        """(id, snapshot_filename) of every non-pinned event older than cutoff"""
        session = self.get_session()
        try:
            rows = (
                session.query(DetectionEventRecord.id, DetectionEventRecord.snapshot_filename)
                .filter(
                    DetectionEventRecord.pinned.is_(False),
                    DetectionEventRecord.timestamp < to_db_time(cutoff),
                )
                .order_by(DetectionEventRecord.timestamp)
                .all()
            )
            return [(row.id, row.snapshot_filename) for row in rows]
        finally:
            session.close()

    def delete_events(self, event_ids: list[str]) -> int:
        """Bulk delete non-pinned events by id; returns rows deleted"""
        if not event_ids:
            return 0
        session = self.get_session()
        try:
            deleted = (
                session.query(DetectionEventRecord)
                .filter(
                    DetectionEventRecord.id.in_(event_ids),
                    DetectionEventRecord.pinned.is_(False),
                )
                .delete(synchronize_session=False)
            )
            session.commit()
            return deleted
        except Exception as e:
            session.rollback()
            logger.error(f"Error deleting {len(event_ids)} events: {e}")
            raise
        finally:
            session.close()

    def referenced_snapshots(self) -> set[str]:
        """Snapshot filenames referenced by any stored event"""
        session = self.get_session()
        try:
            rows = (
                session.query(DetectionEventRecord.snapshot_filename)
                .filter(DetectionEventRecord.snapshot_filename.isnot(None))
                .all()
            )
            return {row.snapshot_filename for row in rows}
        finally:
            session.close()

    def compact(self) -> bool:
        """
        Reclaim free space after large deletions.

        Returns:
            True if compaction ran (SQLite VACUUM), False if unsupported
        """
        if not self.is_sqlite:
            logger.info("Storage compaction only supported on SQLite, skipping")
            return False
        if not self._initialized:
            self.initialize()
        with self.engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
            conn.execute(text("VACUUM"))
        logger.info("Database compacted")
        return True

    # ── Settings ──

    def load_settings(self) -> dict[str, Any] | None:
        """Persisted settings, or None if never saved"""
        session = self.get_session()
        try:
            record = session.get(DetectionSettingsRecord, SETTINGS_ROW_ID)
            if record is None:
                return None
            return {
                "enabled_labels": json.loads(record.enabled_labels),
                "retention_days": record.retention_days,
            }
        finally:
            session.close()

    def save_settings(self, enabled_labels: list[str], retention_days: int) -> None:
        session = self.get_session()
        try:
            record = session.get(DetectionSettingsRecord, SETTINGS_ROW_ID)
            if record is None:
                record = DetectionSettingsRecord(id=SETTINGS_ROW_ID)
                session.add(record)
            record.enabled_labels = json.dumps(sorted(enabled_labels))
            record.retention_days = retention_days
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Error saving settings: {e}")
            raise
        finally:
            session.close()

    def health_check(self) -> bool:
        try:
            session = self.get_session()
            try:
                session.execute(text("SELECT 1"))
            finally:
                session.close()
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def _masked_url(self) -> str:
        if "@" in self.database_url and "://" in self.database_url:
            scheme, rest = self.database_url.split("://", 1)
            return f"{scheme}://***@{rest.split('@', 1)[1]}"
        return self.database_url
