"""Recorder data models."""

from rtsp_recorder.models.config import (
    CameraConfig,
    Config,
    DatabaseConfig,
    DefaultsConfig,
    FfmpegConfig,
    HealthConfig,
    RetryConfig,
    StorageConfig,
    TasksConfig,
    WatchdogConfig,
)
from rtsp_recorder.models.enums import DurationField, ProcessState
from rtsp_recorder.models.recording import RecordingRecord, SegmentFile

__all__ = [
    "CameraConfig",
    "Config",
    "DatabaseConfig",
    "DefaultsConfig",
    "DurationField",
    "FfmpegConfig",
    "HealthConfig",
    "ProcessState",
    "RecordingRecord",
    "RetryConfig",
    "SegmentFile",
    "StorageConfig",
    "TasksConfig",
    "WatchdogConfig",
]
