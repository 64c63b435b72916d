"""Registry of configured cameras."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Iterator

from rtsp_recorder.cameras.camera import Camera
from rtsp_recorder.cameras.process import CaptureLauncher, FfmpegLauncher, RecordingProcess
from rtsp_recorder.clock import Clock
from rtsp_recorder.config.loader import ConfigError, ConfigErrorCode, resolve_env_var
from rtsp_recorder.models.config import CameraConfig, Config

logger = logging.getLogger(__name__)


def _resolve_url(camera: CameraConfig) -> str:
    if camera.url_env:
        value = resolve_env_var(camera.url_env, required=camera.url is None)
        if value:
            return value
    if camera.url:
        return camera.url
    raise ConfigError(
        f"Camera {camera.name!r} has no stream url (${camera.url_env} is empty)",
        code=ConfigErrorCode.ENV_VAR_MISSING,
    )


class CameraRegistry:
    """Holds every enabled camera, keyed by camera id.

    The set of cameras is fixed at construction; lookups never mutate it.
    """

    def __init__(self, cameras: Iterable[Camera]) -> None:
        self._cameras: dict[str, Camera] = {}
        for camera in cameras:
            if camera.camera_id in self._cameras:
                raise ValueError(f"Duplicate camera id: {camera.camera_id}")
            self._cameras[camera.camera_id] = camera

    @classmethod
    def from_config(
        cls,
        config: Config,
        *,
        launcher: CaptureLauncher | None = None,
        clock: Clock | None = None,
    ) -> CameraRegistry:
        """Build cameras and their (stopped) capture processes from config.

        Raises:
            ConfigError: If a camera's url_env is not set
        """
        launcher = launcher or FfmpegLauncher(config.ffmpeg)
        cameras: list[Camera] = []
        for camera_cfg in config.cameras:
            if not camera_cfg.enabled:
                logger.info("Camera disabled in config: %s", camera_cfg.name)
                continue
            url = _resolve_url(camera_cfg)
            active_dir = config.active_dir_for(camera_cfg)
            process = RecordingProcess(
                camera_id=camera_cfg.name,
                url=url,
                active_dir=active_dir,
                launcher=launcher,
                segment_extension=config.ffmpeg.segment_extension,
                stale_after_s=config.watchdog.stale_after_s,
                startup_check_s=config.ffmpeg.startup_check_s,
                stop_timeout_s=config.ffmpeg.stop_timeout_s,
                kill_timeout_s=config.ffmpeg.kill_timeout_s,
                clock=clock,
            )
            cameras.append(
                Camera(
                    camera_id=camera_cfg.name,
                    url=url,
                    active_dir=active_dir,
                    retention=config.retention_for(camera_cfg),
                    process=process,
                )
            )
        return cls(cameras)

    def get(self, camera_id: str) -> Camera | None:
        return self._cameras.get(camera_id)

    @property
    def cameras(self) -> list[Camera]:
        return list(self._cameras.values())

    def __iter__(self) -> Iterator[Camera]:
        return iter(list(self._cameras.values()))

    def __len__(self) -> int:
        return len(self._cameras)

    async def start_all(self) -> dict[str, bool]:
        """Start every camera concurrently. A failed camera does not block the rest."""
        cameras = self.cameras
        results = await asyncio.gather(
            *(camera.start() for camera in cameras), return_exceptions=True
        )
        started: dict[str, bool] = {}
        for camera, result in zip(cameras, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Capture start raised: %s",
                    result,
                    exc_info=result,
                    extra={"camera_name": camera.camera_id},
                )
                started[camera.camera_id] = False
            else:
                started[camera.camera_id] = bool(result)
        return started

    async def shutdown_all(self) -> None:
        """Stop every capture process for good."""
        cameras = self.cameras
        results = await asyncio.gather(
            *(camera.shutdown() for camera in cameras), return_exceptions=True
        )
        for camera, result in zip(cameras, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Capture shutdown failed: %s",
                    result,
                    exc_info=result,
                    extra={"camera_name": camera.camera_id},
                )
