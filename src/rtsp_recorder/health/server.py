"""Read-only HTTP /health endpoint for the recorder."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from aiohttp import web

if TYPE_CHECKING:
    from rtsp_recorder.cameras.registry import CameraRegistry
    from rtsp_recorder.interfaces import RecordingStore
    from rtsp_recorder.tasks.base import PeriodicTask

logger = logging.getLogger(__name__)


class HealthServer:
    """Serves GET /health with per-camera capture state and task counters.

    Status is "unhealthy" when no camera is recording, "degraded" when some
    camera is down or the store does not answer, otherwise "healthy".
    """

    def __init__(self, host: str = "0.0.0.0", port: int = 8080) -> None:
        self.host = host
        self.port = port
        self._store: RecordingStore | None = None
        self._registry: CameraRegistry | None = None
        self._tasks: list[PeriodicTask] = []
        self._runner: web.AppRunner | None = None

    def set_components(
        self,
        *,
        store: RecordingStore | None = None,
        registry: CameraRegistry | None = None,
        tasks: list[PeriodicTask] | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._tasks = list(tasks or [])

    async def start(self) -> None:
        app = web.Application()
        app.router.add_get("/health", self._health_handler)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        await web.TCPSite(self._runner, self.host, self.port).start()
        logger.info("Health endpoint listening on http://%s:%d/health", self.host, self.port)

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        logger.info("Health endpoint stopped")

    async def _health_handler(self, request: web.Request) -> web.Response:
        return web.json_response(await self.compute_health())

    async def compute_health(self) -> dict[str, Any]:
        cameras: dict[str, dict[str, object]] = {}
        if self._registry is not None:
            cameras = {camera.camera_id: camera.status() for camera in self._registry}
        recording = [bool(detail["healthy"]) for detail in cameras.values()]

        checks = {"db": await self._store_reachable(), "cameras": all(recording)}
        if recording and not any(recording):
            status = "unhealthy"
        elif not all(checks.values()):
            status = "degraded"
        else:
            status = "healthy"

        return {
            "status": status,
            "checks": checks,
            "cameras": cameras,
            "tasks": {task.name: _task_counters(task) for task in self._tasks},
        }

    async def _store_reachable(self) -> bool:
        if self._store is None:
            return True
        try:
            return await self._store.ping()
        except Exception as exc:
            logger.warning("Recording store ping failed: %s", exc, exc_info=True)
            return False


def _task_counters(task: PeriodicTask) -> dict[str, object]:
    return {
        "running": task.is_running(),
        "completed_runs": task.completed_runs,
        "failed_runs": task.failed_runs,
        "skipped_runs": task.skipped_runs,
    }
