"""
Snapshot utilities - naming, saving, and listing detection snapshots.

Filenames follow <label>_<YYYY-MM-DDTHH-MM-SS-mmmZ>_<confidence%>.jpg.
The retention engine reads the embedded timestamp back to find orphaned
files, so the format must stay stable.
"""

import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path

from ..utils.constants import SNAPSHOT_EXTENSIONS

logger = logging.getLogger(__name__)

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"
_FILENAME_PATTERN = re.compile(
    r"^(?P<label>.+)_"
    r"(?P<timestamp>\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2})-(?P<millis>\d{3})Z_"
    r"(?P<confidence>\d{1,3})\.(?:jpe?g|png)$"
)


def format_snapshot_timestamp(timestamp: datetime) -> str:
    """ISO 8601 UTC with ':' and '.' replaced by '-' (e.g. 2026-10-19T08-30-00-123Z)."""
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc)
    millis = timestamp.microsecond // 1000
    return f"{timestamp.strftime(_TIMESTAMP_FORMAT)}-{millis:03d}Z"


def snapshot_filename(label: str, timestamp: datetime, confidence: float) -> str:
    """
    Build a snapshot filename.

    Args:
        label: Detector label
        timestamp: Detection time
        confidence: Confidence 0-1 (stored as integer percent)

    Returns:
        Filename such as person_2026-10-19T08-30-00-123Z_82.jpg
    """
    safe_label = label.replace("/", "-").replace(os.sep, "-")
    return f"{safe_label}_{format_snapshot_timestamp(timestamp)}_{round(confidence * 100)}.jpg"


def parse_snapshot_filename(filename: str) -> dict | None:
    """
    Parse label, timestamp (aware UTC) and confidence out of a snapshot filename.

    Returns:
        Dict with label/timestamp/confidence, or None if the name does not
        follow the convention
    """
    match = _FILENAME_PATTERN.match(filename)
    if not match:
        return None
    try:
        timestamp = datetime.strptime(match["timestamp"], _TIMESTAMP_FORMAT)
    except ValueError:
        return None
    timestamp = timestamp.replace(
        microsecond=int(match["millis"]) * 1000, tzinfo=timezone.utc
    )
    return {
        "label": match["label"],
        "timestamp": timestamp,
        "confidence": int(match["confidence"]) / 100,
    }


def snapshot_timestamp(path: Path) -> datetime:
    """
    Timestamp of a snapshot file: embedded in the name, else the file mtime.

    Raises:
        OSError: If the name is unparseable and the file cannot be stat'ed
    """
    parsed = parse_snapshot_filename(path.name)
    if parsed is not None:
        return parsed["timestamp"]
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def save_snapshot(frame_bytes: bytes, snapshot_dir: Path, filename: str) -> str | None:
    """
    Write encoded frame bytes to the snapshot directory.

    Args:
        frame_bytes: Encoded JPEG frame
        snapshot_dir: Destination directory (created if missing)
        filename: Target filename

    Returns:
        The filename if saved, None on I/O failure
    """
    try:
        snapshot_dir.mkdir(parents=True, exist_ok=True)
        (snapshot_dir / filename).write_bytes(frame_bytes)
        return filename
    except OSError as e:
        logger.error(f"Failed to save snapshot {filename}: {e}")
        return None


def resolve_snapshot_path(snapshot_dir: Path, filename: str) -> Path | None:
    """Resolve a filename inside the snapshot directory, rejecting traversal."""
    base = snapshot_dir.resolve()
    path = (snapshot_dir / filename).resolve()
    if path.parent != base:
        return None
    return path


def delete_snapshot(snapshot_dir: Path, filename: str) -> bool:
    """
    Delete a snapshot file.

    Returns:
        True if the file was removed (or was already gone)
    """
    path = resolve_snapshot_path(snapshot_dir, filename)
    if path is None:
        logger.warning(f"Refusing to delete snapshot outside directory: {filename}")
        return False
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.error(f"Failed to delete snapshot {filename}: {e}")
        return False


def list_snapshot_files(snapshot_dir: Path) -> list[Path]:
    """All image files in the snapshot directory, sorted by name."""
    if not snapshot_dir.is_dir():
        return []
    files = [
        p
        for p in snapshot_dir.iterdir()
        if p.is_file() and p.suffix.lower() in SNAPSHOT_EXTENSIONS
    ]
    return sorted(files, key=lambda p: p.name)
