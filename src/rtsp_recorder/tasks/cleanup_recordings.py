"""Deletes recordings past their camera's retention."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from rtsp_recorder.cameras.camera import Camera
from rtsp_recorder.cameras.registry import CameraRegistry
from rtsp_recorder.clock import Clock, SystemClock
from rtsp_recorder.errors import FilesystemError, MetadataError
from rtsp_recorder.fileops import free_bytes, prune_empty_dirs, remove_file
from rtsp_recorder.interfaces import RecordingStore
from rtsp_recorder.models.recording import RecordingRecord
from rtsp_recorder.storage_paths import archive_camera_dir
from rtsp_recorder.tasks.base import PeriodicTask

logger = logging.getLogger(__name__)

_FREE_SPACE_BATCH = 50


class CleanupRecordingsTask(PeriodicTask):
    """Applies per-camera retention: file first, then its record.

    Deleting the file before the record means a crash in between leaves a
    record pointing at nothing, which the next pass removes. A record is only
    deleted after its file is gone.
    """

    name = "cleanup_recordings"

    def __init__(
        self,
        registry: CameraRegistry,
        store: RecordingStore,
        *,
        storage_root: Path,
        min_free_bytes: int | None = None,
        interval_s: float = 1800.0,
        clock: Clock | None = None,
        disk_free: Callable[[Path], int] = free_bytes,
        shutdown_event: asyncio.Event | None = None,
        shutdown_timeout_s: float = 10.0,
    ) -> None:
        super().__init__(
            interval_s=interval_s,
            shutdown_event=shutdown_event,
            shutdown_timeout_s=shutdown_timeout_s,
        )
        self._registry = registry
        self._store = store
        self._storage_root = storage_root
        self._min_free_bytes = min_free_bytes
        self._clock = clock or SystemClock()
        self._disk_free = disk_free
        self.deleted = 0

    async def _run(self) -> None:
        for camera in self._registry:
            if self.is_stopping:
                return
            await self._cleanup_camera(camera)

        if self._min_free_bytes is not None and not self.is_stopping:
            await self._ensure_free_space(self._min_free_bytes)

    async def _cleanup_camera(self, camera: Camera) -> None:
        cutoff = self._clock.utcnow() - camera.retention
        try:
            expired = await self._store.list_older_than(camera.camera_id, cutoff)
        except MetadataError as exc:
            logger.warning(
                "Retention query failed, skipping camera this pass: %s",
                exc,
                extra={"camera_name": camera.camera_id},
            )
            return

        if expired:
            logger.info(
                "Deleting %d recordings older than %s",
                len(expired),
                cutoff.isoformat(),
                extra={"camera_name": camera.camera_id},
            )
        for record in expired:
            if self.is_stopping:
                return
            await self._delete_recording(record)

        camera_dir = archive_camera_dir(self._storage_root, camera.camera_id)
        await asyncio.to_thread(prune_empty_dirs, camera_dir)

    async def _delete_recording(self, record: RecordingRecord) -> bool:
        """Delete the file, then the record. Returns True when both are gone."""
        path = Path(record.file_path)
        try:
            existed = await asyncio.to_thread(remove_file, path)
        except OSError as exc:
            error = FilesystemError("delete", path, exc, record.camera_id)
            logger.warning("%s", error, extra={"camera_name": record.camera_id})
            return False
        if not existed:
            logger.info(
                "Recording file already gone, removing record: %s",
                path,
                extra={"camera_name": record.camera_id},
            )

        try:
            await self._store.delete(record)
        except MetadataError as exc:
            logger.warning(
                "Record delete failed, will retry next pass: %s",
                exc,
                extra={"camera_name": record.camera_id},
            )
            return False
        self.deleted += 1
        return True

    async def _ensure_free_space(self, min_free_bytes: int) -> None:
        """Delete the oldest recordings across cameras until enough space is free."""
        free = await self._free_space()
        if free is None or free >= min_free_bytes:
            return
        logger.warning(
            "Free space %d below minimum %d; deleting oldest recordings",
            free,
            min_free_bytes,
        )
        while not self.is_stopping:
            try:
                oldest = await self._store.list_oldest(_FREE_SPACE_BATCH)
            except MetadataError as exc:
                logger.warning("Free space pass skipped: %s", exc)
                return
            if not oldest:
                logger.warning("No recordings left to delete; free space still low")
                return

            progressed = False
            for record in oldest:
                if self.is_stopping:
                    return
                if not await self._delete_recording(record):
                    continue
                progressed = True
                free = await self._free_space()
                if free is None or free >= min_free_bytes:
                    await self._prune_all()
                    return
            if not progressed:
                return
        await self._prune_all()

    async def _free_space(self) -> int | None:
        try:
            return await asyncio.to_thread(self._disk_free, self._storage_root)
        except OSError as exc:
            logger.warning("Free space check failed for %s: %s", self._storage_root, exc)
            return None

    async def _prune_all(self) -> None:
        for camera in self._registry:
            await asyncio.to_thread(
                prune_empty_dirs, archive_camera_dir(self._storage_root, camera.camera_id)
            )
