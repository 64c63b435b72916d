"""Health check endpoint."""

from rtsp_recorder.health.server import HealthServer

__all__ = ["HealthServer"]
