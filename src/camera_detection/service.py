"""
Management interface - settings, event queries, pinning, statistics.

Every call returns a ServiceResponse carrying an HTTP-style status and a
JSON-serializable body, so an HTTP layer can forward it unchanged.
Failures come back as explicit error bodies rather than exceptions.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from .config.settings import DetectionSettings
from .core.frame_saver import (
    delete_snapshot,
    list_snapshot_files,
    parse_snapshot_filename,
    snapshot_timestamp,
)
from .storage import EventStore
from .utils.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, MAX_RETENTION_DAYS, MIN_RETENTION_DAYS
from .utils.labels import COCO_LABELS, unknown_labels

logger = logging.getLogger(__name__)

EVENT_NOT_FOUND = "Detection event not found"


@dataclass
class ServiceResponse:
    status: int
    body: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def _error(status: int, message: str, **extra) -> ServiceResponse:
    return ServiceResponse(status, {"error": message, **extra})


def _validation_error(e: ValidationError) -> ServiceResponse:
    details = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
    return _error(400, "Invalid request", details=details)


class UpdateSettingsRequest(BaseModel):
    enabled_labels: list[str] | None = None
    retention_days: int | None = Field(default=None, ge=MIN_RETENTION_DAYS, le=MAX_RETENTION_DAYS)

    @field_validator("enabled_labels")
    @classmethod
    def validate_labels(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        unknown = unknown_labels(v)
        if unknown:
            raise ValueError(f"Unknown labels: {', '.join(unknown)}")
        return v


class EventQuery(BaseModel):
    limit: int = Field(default=DEFAULT_PAGE_SIZE, gt=0, le=MAX_PAGE_SIZE)
    offset: int = Field(default=0, ge=0)
    label: str | None = None
    min_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    since: datetime | None = None

    @field_validator("since")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class SnapshotQuery(BaseModel):
    limit: int = Field(default=DEFAULT_PAGE_SIZE, gt=0, le=MAX_PAGE_SIZE)
    offset: int = Field(default=0, ge=0)
    label: str | None = None


def local_midnight_utc(now: datetime | None = None) -> datetime:
    """Start of the current local day, as aware UTC."""
    local_now = (now or datetime.now(timezone.utc)).astimezone()
    midnight = datetime.combine(local_now.date(), time.min, tzinfo=local_now.tzinfo)
    return midnight.astimezone(timezone.utc)


class DetectionService:
    """Operations exposed to the management boundary (HTTP routes, CLI)."""

    def __init__(self, store: EventStore, settings: DetectionSettings, snapshot_dir: Path):
        self.store = store
        self.settings = settings
        self.snapshot_dir = Path(snapshot_dir)

    # ── Settings ──

    def get_settings(self) -> ServiceResponse:
        return ServiceResponse(200, self._settings_body())

    def update_settings(
        self,
        enabled_labels: list[str] | None = None,
        retention_days: int | None = None,
    ) -> ServiceResponse:
        """
        Replace enabled labels and/or retention days.

        Changes apply to the running pipeline from its next cycle and are
        persisted so they survive a restart.
        """
        try:
            request = UpdateSettingsRequest(
                enabled_labels=enabled_labels, retention_days=retention_days
            )
        except ValidationError as e:
            return _validation_error(e)

        new_labels = (
            frozenset(request.enabled_labels)
            if request.enabled_labels is not None
            else self.settings.enabled_labels
        )
        new_retention = (
            request.retention_days
            if request.retention_days is not None
            else self.settings.retention_days
        )

        try:
            self.store.save_settings(sorted(new_labels), new_retention)
        except Exception as e:
            logger.error(f"Failed to persist settings: {e}")
            return _error(500, "Failed to save settings")

        self.settings.enabled_labels = new_labels
        self.settings.retention_days = new_retention
        logger.info(
            f"Settings updated: labels={','.join(sorted(new_labels)) or '(none)'} "
            f"retention={new_retention}d"
        )
        return ServiceResponse(200, self._settings_body())

    def _settings_body(self) -> dict[str, Any]:
        return {
            "enabled_labels": sorted(self.settings.enabled_labels),
            "available_labels": list(COCO_LABELS),
            "retention_days": self.settings.retention_days,
            "confidence_threshold": self.settings.confidence_threshold,
            "target_fps": self.settings.target_fps,
        }

    # ── Events ──

    def list_events(
        self,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
        label: str | None = None,
        min_confidence: float | None = None,
        since: datetime | str | None = None,
    ) -> ServiceResponse:
        try:
            query = EventQuery(
                limit=limit,
                offset=offset,
                label=label,
                min_confidence=min_confidence,
                since=since,
            )
        except ValidationError as e:
            return _validation_error(e)

        try:
            events, total = self.store.list_events(
                limit=query.limit,
                offset=query.offset,
                label=query.label,
                min_confidence=query.min_confidence,
                since=query.since,
            )
        except Exception as e:
            logger.error(f"Failed to list events: {e}")
            return _error(500, "Failed to load detection events")

        return ServiceResponse(200, {"events": [e.to_dict() for e in events], "total": total})

    def get_event(self, event_id: str) -> ServiceResponse:
        try:
            event = self.store.get_event(event_id)
        except Exception as e:
            logger.error(f"Failed to load event {event_id}: {e}")
            return _error(500, "Failed to load detection event")
        if event is None:
            return _error(404, EVENT_NOT_FOUND)
        return ServiceResponse(200, event.to_dict())

    def toggle_pin(self, event_id: str) -> ServiceResponse:
        """Flip the pinned flag; pinned events are exempt from retention."""
        try:
            event = self.store.set_pinned(event_id)
        except Exception as e:
            logger.error(f"Failed to toggle pin on {event_id}: {e}")
            return _error(500, "Failed to update detection event")
        if event is None:
            return _error(404, EVENT_NOT_FOUND)
        logger.info(f"Event {event_id} {'pinned' if event.pinned else 'unpinned'}")
        return ServiceResponse(200, event.to_dict())

    def delete_event(self, event_id: str) -> ServiceResponse:
        """Delete an event (pinned or not) together with its snapshot file."""
        try:
            event = self.store.delete_event(event_id)
        except Exception as e:
            logger.error(f"Failed to delete event {event_id}: {e}")
            return _error(500, "Failed to delete detection event")
        if event is None:
            return _error(404, EVENT_NOT_FOUND)

        snapshot_deleted = False
        if event.snapshot_filename and not self._snapshot_shared(event.snapshot_filename):
            snapshot_deleted = delete_snapshot(self.snapshot_dir, event.snapshot_filename)
        return ServiceResponse(
            200, {"id": event_id, "deleted": True, "snapshot_deleted": snapshot_deleted}
        )

    def _snapshot_shared(self, filename: str) -> bool:
        """True if a remaining event still references the file (kept when unsure)."""
        try:
            return filename in self.store.referenced_snapshots()
        except Exception as e:
            logger.error(f"Failed to check references to {filename}, keeping it: {e}")
            return True

    def get_stats(self, now: datetime | None = None) -> ServiceResponse:
        try:
            stats = self.store.get_stats(local_midnight_utc(now))
        except Exception as e:
            logger.error(f"Failed to compute stats: {e}")
            return _error(500, "Failed to load detection statistics")
        return ServiceResponse(200, stats)

    # ── Snapshots ──

    def list_snapshots(
        self,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
        label: str | None = None,
    ) -> ServiceResponse:
        """Snapshot files newest first, with metadata read from the filename."""
        try:
            query = SnapshotQuery(limit=limit, offset=offset, label=label)
        except ValidationError as e:
            return _validation_error(e)

        entries = []
        for path in list_snapshot_files(self.snapshot_dir):
            parsed = parse_snapshot_filename(path.name)
            try:
                stat = path.stat()
                taken = snapshot_timestamp(path)
            except OSError:
                continue  # deleted while listing
            entry_label = parsed["label"] if parsed else "unknown"
            if query.label and entry_label.lower() != query.label.lower():
                continue
            entries.append(
                (
                    taken,
                    {
                        "filename": path.name,
                        "label": entry_label,
                        "confidence": parsed["confidence"] if parsed else 0.0,
                        "size": stat.st_size,
                        "created_at": taken.isoformat(),
                    },
                )
            )

        entries.sort(key=lambda item: item[0], reverse=True)
        page = [entry for _, entry in entries[query.offset : query.offset + query.limit]]
        return ServiceResponse(200, {"snapshots": page, "total": len(entries)})
