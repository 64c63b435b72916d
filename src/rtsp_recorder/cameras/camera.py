"""A configured camera and its capture process."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

from rtsp_recorder.cameras.process import RecordingProcess

logger = logging.getLogger(__name__)


@dataclass
class Camera:
    """Immutable camera identity plus the process recording it.

    `camera_id` is the configured camera name; it keys metadata records and
    the archive directory.
    """

    camera_id: str
    url: str
    active_dir: Path
    retention: timedelta
    process: RecordingProcess
    restart_count: int = field(default=0)

    async def start(self) -> bool:
        return await self.process.start()

    async def stop(self) -> None:
        await self.process.stop()

    async def restart(self) -> bool:
        """Stop then start the capture process, in that order."""
        self.restart_count += 1
        logger.info(
            "Restarting capture (restart #%d)",
            self.restart_count,
            extra={"camera_name": self.camera_id},
        )
        await self.process.stop()
        return await self.process.start()

    async def shutdown(self) -> None:
        await self.process.shutdown()

    def status(self) -> dict[str, object]:
        since_progress = self.process.seconds_since_progress()
        return {
            "state": str(self.process.state),
            "pid": self.process.pid,
            "healthy": self.process.is_healthy(),
            "restart_count": self.restart_count,
            "last_exit_code": self.process.last_exit_code,
            "last_error": str(self.process.last_error) if self.process.last_error else None,
            "seconds_since_progress": (
                round(since_progress, 1) if since_progress is not None else None
            ),
        }
