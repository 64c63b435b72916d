"""Configuration models with per-camera retention overrides."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

from rtsp_recorder.models.enums import DurationField


class DefaultsConfig(BaseModel):
    """Fallback values for per-camera settings."""

    model_config = {"extra": "forbid"}

    retention: DurationField = timedelta(days=14)

    @field_validator("retention")
    @classmethod
    def _positive_retention(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("retention must be positive")
        return value


class CameraConfig(BaseModel):
    """One recorded stream."""

    model_config = {"extra": "forbid"}

    name: str = Field(min_length=1)
    url: str | None = None
    url_env: str | None = None
    retention: DurationField | None = None
    active_dir: str | None = None
    enabled: bool = True

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("camera name must not be blank")
        return cleaned

    @field_validator("retention")
    @classmethod
    def _positive_retention(cls, value: timedelta | None) -> timedelta | None:
        if value is not None and value <= timedelta(0):
            raise ValueError("retention must be positive")
        return value

    @model_validator(mode="after")
    def _require_url(self) -> CameraConfig:
        if not (self.url or self.url_env):
            raise ValueError(f"camera {self.name!r} requires url or url_env")
        return self


class StorageConfig(BaseModel):
    """Filesystem layout for active captures and the archive."""

    model_config = {"extra": "forbid"}

    root: str = "./recordings"
    active_root: str = "./temp_recordings"
    min_free_bytes: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _validate_roots(self) -> StorageConfig:
        root = Path(self.root).expanduser().resolve()
        active_root = Path(self.active_root).expanduser().resolve()
        if root == active_root:
            raise ValueError("storage.root and storage.active_root must differ")
        return self


class DatabaseConfig(BaseModel):
    """Metadata store connection."""

    model_config = {"extra": "forbid"}

    dsn_env: str | None = None
    dsn: str | None = None
    create_tables: bool = True


class FfmpegConfig(BaseModel):
    """Capture subprocess command and timeouts."""

    model_config = {"extra": "forbid"}

    binary: str = "ffmpeg"
    segment_time_s: int = Field(default=900, gt=0)
    segment_extension: str = "mp4"
    input_args: list[str] = Field(default_factory=lambda: ["-rtsp_transport", "tcp"])
    output_args: list[str] = Field(default_factory=lambda: ["-c", "copy", "-map", "0"])
    loglevel: str = "warning"
    startup_check_s: float = Field(default=0.5, ge=0.0)
    stop_timeout_s: float = Field(default=5.0, gt=0.0)
    kill_timeout_s: float = Field(default=2.0, gt=0.0)

    @field_validator("segment_extension")
    @classmethod
    def _normalize_extension(cls, value: str) -> str:
        cleaned = value.strip().lstrip(".").lower()
        if not cleaned:
            raise ValueError("segment_extension must not be empty")
        return cleaned


class WatchdogConfig(BaseModel):
    """Liveness policy for capture subprocesses."""

    model_config = {"extra": "forbid"}

    stale_after_s: float = Field(default=30.0, gt=0.0)


class TasksConfig(BaseModel):
    """Periods of the background tasks."""

    model_config = {"extra": "forbid"}

    watchdog_interval_s: float = Field(default=1.0, gt=0.0)
    move_interval_s: float = Field(default=300.0, gt=0.0)
    cleanup_interval_s: float = Field(default=1800.0, gt=0.0)
    shutdown_timeout_s: float = Field(default=10.0, gt=0.0)


class RetryConfig(BaseModel):
    """Retry configuration for transient metadata store failures."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_s: float = Field(default=0.5, ge=0.0)


class HealthConfig(BaseModel):
    """Health endpoint configuration."""

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8080


class Config(BaseModel):
    """Main configuration."""

    version: int = 1
    cameras: list[CameraConfig]
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    ffmpeg: FfmpegConfig = Field(default_factory=FfmpegConfig)
    watchdog: WatchdogConfig = Field(default_factory=WatchdogConfig)
    tasks: TasksConfig = Field(default_factory=TasksConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)

    @model_validator(mode="after")
    def _validate_cameras(self) -> Config:
        if not self.cameras:
            raise ValueError("cameras must include at least one camera")
        return self

    def retention_for(self, camera: CameraConfig) -> timedelta:
        """Get the effective retention for a camera."""
        if camera.retention is not None:
            return camera.retention
        return self.defaults.retention

    def active_dir_for(self, camera: CameraConfig) -> Path:
        """Get the directory the capture subprocess writes into."""
        from rtsp_recorder.storage_paths import sanitize_segment

        if camera.active_dir:
            return Path(camera.active_dir).expanduser().resolve()
        root = Path(self.storage.active_root).expanduser().resolve()
        return root / sanitize_segment(camera.name)
