"""Cameras and their capture subprocesses."""

from rtsp_recorder.cameras.camera import Camera
from rtsp_recorder.cameras.process import (
    CaptureLauncher,
    FfmpegLauncher,
    RecordingProcess,
    SubprocessLauncher,
    build_ffmpeg_command,
)
from rtsp_recorder.cameras.registry import CameraRegistry

__all__ = [
    "Camera",
    "CameraRegistry",
    "CaptureLauncher",
    "FfmpegLauncher",
    "RecordingProcess",
    "SubprocessLauncher",
    "build_ffmpeg_command",
]
