"""
Pydantic schemas for configuration validation.

Provides type-safe, declarative validation with clear error messages.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..utils.constants import (
    DATABASE_FILENAME,
    DEFAULT_CONFIDENCE_THRESHOLD,
    DEFAULT_DATA_DIR,
    DEFAULT_FFMPEG_PATH,
    DEFAULT_IOU_THRESHOLD,
    DEFAULT_MODEL_FILE,
    DEFAULT_PURGE_INTERVAL,
    DEFAULT_RESTART_DELAY,
    DEFAULT_RETENTION_DAYS,
    DEFAULT_STALE_TIMEOUT,
    DEFAULT_STALL_TIMEOUT,
    DEFAULT_TARGET_FPS,
    DEFAULT_VACUUM_THRESHOLD,
    DEFAULT_WORKING_HEIGHT,
    DEFAULT_WORKING_WIDTH,
    MAX_RETENTION_DAYS,
    MIN_RETENTION_DAYS,
    SNAPSHOT_SUBDIR,
)
from ..utils.labels import DEFAULT_ENABLED_LABELS, unknown_labels


class StrictModel(BaseModel):
    """Base model that rejects unknown fields."""

    model_config = ConfigDict(extra="forbid")


class CameraConfig(BaseModel):
    """Camera / decoder settings."""

    url: str | None = Field(default=None, description="RTSP stream URL")
    ffmpeg_path: str = DEFAULT_FFMPEG_PATH
    restart_delay_seconds: float = Field(default=DEFAULT_RESTART_DELAY, ge=0)
    stall_timeout_seconds: float | None = Field(default=DEFAULT_STALL_TIMEOUT, gt=0)


class DetectionConfig(BaseModel):
    """Detection and tracking settings."""

    model_file: str = Field(default=DEFAULT_MODEL_FILE, description="YOLO model file (.pt)")
    confidence_threshold: float = Field(
        default=DEFAULT_CONFIDENCE_THRESHOLD, ge=0.0, le=1.0
    )
    target_fps: float = Field(default=DEFAULT_TARGET_FPS, gt=0, le=30)
    iou_threshold: float = Field(default=DEFAULT_IOU_THRESHOLD, gt=0.0, le=1.0)
    stale_timeout_seconds: float = Field(default=DEFAULT_STALE_TIMEOUT, gt=0)
    enabled_labels: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ENABLED_LABELS)
    )
    working_width: int = Field(default=DEFAULT_WORKING_WIDTH, gt=0)
    working_height: int = Field(default=DEFAULT_WORKING_HEIGHT, gt=0)

    @field_validator("model_file")
    @classmethod
    def validate_model_file(cls, v: str) -> str:
        if not v.endswith(".pt"):
            raise ValueError("Model file must be .pt format")
        return v

    @field_validator("enabled_labels")
    @classmethod
    def validate_labels(cls, v: list[str]) -> list[str]:
        unknown = unknown_labels(v)
        if unknown:
            raise ValueError(f"Unknown labels: {', '.join(unknown)}")
        return v


class StorageConfig(BaseModel):
    """Event store and snapshot locations."""

    data_dir: str = DEFAULT_DATA_DIR
    database_url: str | None = Field(
        default=None, description="SQLAlchemy URL (default: sqlite file in data_dir)"
    )

    @property
    def snapshot_dir(self) -> Path:
        return Path(self.data_dir) / SNAPSHOT_SUBDIR

    @property
    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{Path(self.data_dir) / DATABASE_FILENAME}"


class RetentionConfig(BaseModel):
    """Retention / purge settings."""

    days: int = Field(
        default=DEFAULT_RETENTION_DAYS, ge=MIN_RETENTION_DAYS, le=MAX_RETENTION_DAYS
    )
    purge_interval_seconds: float = Field(default=DEFAULT_PURGE_INTERVAL, gt=0)
    vacuum_threshold: int = Field(default=DEFAULT_VACUUM_THRESHOLD, ge=0)


class BroadcastConfig(BaseModel):
    """Live broadcast settings."""

    webhook_url: str | None = None
    include_frame_detections: bool = False
    timeout_seconds: float = Field(default=5.0, gt=0)
    queue_size: int = Field(default=100, gt=0)


class Config(StrictModel):
    """Complete configuration schema."""

    camera: CameraConfig = Field(default_factory=CameraConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    broadcast: BroadcastConfig = Field(default_factory=BroadcastConfig)

    @model_validator(mode="after")
    def validate_resolution(self):
        if self.detection.working_width < 32 or self.detection.working_height < 32:
            raise ValueError("working resolution must be at least 32x32")
        return self


def validate_config_pydantic(config: dict) -> Config:
    """
    Validate configuration using Pydantic.

    Args:
        config: Raw configuration dictionary

    Returns:
        Validated Config object

    Raises:
        pydantic.ValidationError: If validation fails
    """
    return Config(**config)
