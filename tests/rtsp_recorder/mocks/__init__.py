"""Test doubles for recorder collaborators."""

from tests.rtsp_recorder.mocks.capture import FakeCaptureProcess, FakeLauncher
from tests.rtsp_recorder.mocks.clock import FakeClock
from tests.rtsp_recorder.mocks.recording_store import MockRecordingStore
from tests.rtsp_recorder.mocks.segments import build_camera, write_segment

__all__ = [
    "FakeCaptureProcess",
    "FakeClock",
    "FakeLauncher",
    "MockRecordingStore",
    "build_camera",
    "write_segment",
]
