"""Continuous multi-camera RTSP recorder."""

__version__ = "0.1.0"

from rtsp_recorder.errors import RecorderError
from rtsp_recorder.models.recording import RecordingRecord, SegmentFile

__all__ = [
    "RecorderError",
    "RecordingRecord",
    "SegmentFile",
    "__version__",
]
