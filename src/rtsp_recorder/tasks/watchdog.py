"""Restarts capture processes that crashed or stopped making progress."""

from __future__ import annotations

import asyncio
import logging

from rtsp_recorder.cameras.camera import Camera
from rtsp_recorder.cameras.registry import CameraRegistry
from rtsp_recorder.tasks.base import PeriodicTask

logger = logging.getLogger(__name__)


class WatchdogTask(PeriodicTask):
    """Checks every camera each tick; unhealthy ones get stop() then start().

    A restart runs as its own task, one at most per camera, and the tick does
    not wait for it. A camera whose stop hangs is skipped on later ticks until
    its restart finishes, while the other cameras keep being checked. A failed
    restart is simply retried on the next tick.
    """

    name = "watchdog"

    def __init__(
        self,
        registry: CameraRegistry,
        *,
        interval_s: float = 1.0,
        shutdown_event: asyncio.Event | None = None,
        shutdown_timeout_s: float = 10.0,
    ) -> None:
        super().__init__(
            interval_s=interval_s,
            shutdown_event=shutdown_event,
            shutdown_timeout_s=shutdown_timeout_s,
        )
        self._registry = registry
        self._restarting: dict[str, asyncio.Task[None]] = {}
        self.restarts = 0

    def restarting(self) -> list[str]:
        """Ids of cameras with a restart in flight."""
        return sorted(self._restarting)

    async def wait_for_restarts(self, timeout: float | None = None) -> bool:
        """Wait for in-flight restarts; False if some were still running at timeout."""
        pending = list(self._restarting.values())
        if not pending:
            return True
        _done, still_running = await asyncio.wait(pending, timeout=timeout)
        return not still_running

    async def shutdown(self, timeout: float | None = None) -> None:
        await super().shutdown(timeout)
        if not self._restarting:
            return
        limit = timeout if timeout is not None else self._shutdown_timeout_s
        if not await self.wait_for_restarts(limit):
            logger.warning("%s restarts still running at shutdown, cancelling", self.name)
        pending = list(self._restarting.values())
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._restarting.clear()

    async def _run(self) -> None:
        cameras = [
            camera
            for camera in self._registry
            if not camera.process.is_closed and camera.camera_id not in self._restarting
        ]
        results = await asyncio.gather(
            *(camera.process.check_health() for camera in cameras), return_exceptions=True
        )
        for camera, result in zip(cameras, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Watchdog check failed: %s",
                    result,
                    exc_info=result,
                    extra={"camera_name": camera.camera_id},
                )
            elif result is not None:
                self._schedule_restart(camera, result)

    def _schedule_restart(self, camera: Camera, problem: Exception) -> None:
        if self.is_stopping or camera.process.is_closed:
            return
        logger.warning(
            "Capture unhealthy (%s): %s",
            camera.process.state,
            problem,
            extra={"camera_name": camera.camera_id},
        )
        self.restarts += 1
        task = asyncio.create_task(
            self._restart(camera), name=f"{self.name}-restart-{camera.camera_id}"
        )
        self._restarting[camera.camera_id] = task
        task.add_done_callback(lambda _t, cid=camera.camera_id: self._restarting.pop(cid, None))

    async def _restart(self, camera: Camera) -> None:
        try:
            await camera.restart()
        except Exception as exc:
            logger.error(
                "Capture restart failed: %s",
                exc,
                exc_info=True,
                extra={"camera_name": camera.camera_id},
            )
