"""Background tasks: watchdog, archive mover, retention cleanup."""

from rtsp_recorder.tasks.base import PeriodicTask
from rtsp_recorder.tasks.cleanup_recordings import CleanupRecordingsTask
from rtsp_recorder.tasks.move_recordings import MoveRecordingsTask
from rtsp_recorder.tasks.watchdog import WatchdogTask

__all__ = [
    "CleanupRecordingsTask",
    "MoveRecordingsTask",
    "PeriodicTask",
    "WatchdogTask",
]
