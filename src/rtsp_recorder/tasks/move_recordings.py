"""Archives finalized segments and records their metadata."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

from anyio import Path as AsyncPath

from rtsp_recorder.cameras.camera import Camera
from rtsp_recorder.cameras.registry import CameraRegistry
from rtsp_recorder.errors import FilesystemError, MetadataError
from rtsp_recorder.fileops import move_file, remove_file
from rtsp_recorder.interfaces import RecordingStore
from rtsp_recorder.models.enums import ProcessState
from rtsp_recorder.models.recording import RecordingRecord, SegmentFile
from rtsp_recorder.storage_paths import (
    archive_camera_dir,
    build_archive_path,
    parse_segment_start,
)
from rtsp_recorder.tasks.base import PeriodicTask

logger = logging.getLogger(__name__)


def _mtime_utc(mtime_ns: int) -> datetime:
    return datetime.fromtimestamp(mtime_ns / 1_000_000_000, tz=timezone.utc)


def _end_time(start_time: datetime, next_start: datetime | None, mtime_ns: int) -> datetime:
    end_time = next_start if next_start is not None else _mtime_utc(mtime_ns)
    return max(start_time, end_time)


class MoveRecordingsTask(PeriodicTask):
    """Moves finalized segments from active directories into the archive.

    A segment is finalized once a newer segment exists for the same camera.
    The newest segment is finalized only after its process has stopped and
    the file was seen unchanged on the previous scan. Metadata inserts that
    fail are kept in memory and retried at the start of the next pass; the
    first pass also indexes archived files that have no record yet.
    """

    name = "move_recordings"

    def __init__(
        self,
        registry: CameraRegistry,
        store: RecordingStore,
        *,
        storage_root: Path,
        segment_extension: str,
        interval_s: float = 300.0,
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
        self._extension = segment_extension
        self._pending: dict[str, RecordingRecord] = {}
        self._last_seen: dict[str, tuple[Path, int, int]] = {}
        self._reconciled = False
        self.moved = 0

    @property
    def pending_records(self) -> list[RecordingRecord]:
        return list(self._pending.values())

    async def _run(self) -> None:
        await self._flush_pending()
        if not self._reconciled:
            self._reconciled = await self._reconcile_archive()

        for camera in self._registry:
            if self.is_stopping:
                break
            try:
                await self._move_camera(camera)
            except Exception as exc:
                logger.error(
                    "Move pass failed: %s",
                    exc,
                    exc_info=True,
                    extra={"camera_name": camera.camera_id},
                )

    async def _move_camera(self, camera: Camera) -> None:
        segments = await self._scan_segments(camera)
        for segment, next_start in self._finalized(camera, segments):
            if self.is_stopping:
                return
            try:
                await self._archive_segment(segment, next_start)
            except FilesystemError as exc:
                logger.warning("%s", exc, extra={"camera_name": camera.camera_id})

    async def _scan_segments(self, camera: Camera) -> list[SegmentFile]:
        active_dir = AsyncPath(camera.active_dir)
        if not await active_dir.is_dir():
            return []

        segments: list[SegmentFile] = []
        async for entry in active_dir.iterdir():
            start_time = parse_segment_start(entry.name, self._extension)
            if start_time is None:
                continue
            try:
                stat_info = await entry.stat()
            except FileNotFoundError:
                continue
            segments.append(
                SegmentFile(
                    camera_id=camera.camera_id,
                    path=Path(entry),
                    start_time=start_time,
                    size=stat_info.st_size,
                    mtime_ns=stat_info.st_mtime_ns,
                )
            )
        segments.sort(key=lambda s: s.name)
        return segments

    def _finalized(
        self, camera: Camera, segments: list[SegmentFile]
    ) -> list[tuple[SegmentFile, datetime | None]]:
        if not segments:
            self._last_seen.pop(camera.camera_id, None)
            return []

        ready: list[tuple[SegmentFile, datetime | None]] = [
            (segment, segments[i + 1].start_time) for i, segment in enumerate(segments[:-1])
        ]

        newest = segments[-1]
        observed = (newest.path, newest.size, newest.mtime_ns)
        previous = self._last_seen.get(camera.camera_id)
        self._last_seen[camera.camera_id] = observed
        if (
            camera.process.state in (ProcessState.STOPPED, ProcessState.CRASHED)
            and previous == observed
        ):
            ready.append((newest, None))
            self._last_seen.pop(camera.camera_id, None)
        return ready

    async def _archive_segment(self, segment: SegmentFile, next_start: datetime | None) -> None:
        if segment.size == 0:
            try:
                await asyncio.to_thread(remove_file, segment.path)
            except OSError as exc:
                raise FilesystemError("delete", segment.path, exc, segment.camera_id) from exc
            logger.info(
                "Deleted empty segment: %s",
                segment.name,
                extra={"camera_name": segment.camera_id},
            )
            return

        dest = build_archive_path(
            self._storage_root, segment.camera_id, segment.name, segment.start_time
        )
        try:
            await asyncio.to_thread(move_file, segment.path, dest)
        except OSError as exc:
            raise FilesystemError("move", segment.path, exc, segment.camera_id) from exc

        self.moved += 1
        logger.info(
            "Archived segment: %s -> %s",
            segment.name,
            dest,
            extra={"camera_name": segment.camera_id},
        )
        record = RecordingRecord(
            camera_id=segment.camera_id,
            file_path=str(dest),
            start_time=segment.start_time,
            end_time=_end_time(segment.start_time, next_start, segment.mtime_ns),
            file_size=segment.size,
        )
        await self._insert(record)

    async def _insert(self, record: RecordingRecord) -> bool:
        try:
            await self._store.insert(record)
        except MetadataError as exc:
            logger.warning(
                "Metadata insert failed, will retry next pass: %s",
                exc,
                extra={"camera_name": record.camera_id},
            )
            self._pending[record.file_path] = record
            return False
        self._pending.pop(record.file_path, None)
        return True

    async def _flush_pending(self) -> None:
        if not self._pending:
            return
        logger.info("Retrying %d pending metadata inserts", len(self._pending))
        for record in list(self._pending.values()):
            if self.is_stopping:
                return
            if not await self._insert(record):
                # Store still unavailable; keep the rest for the next pass.
                return

    async def _reconcile_archive(self) -> bool:
        """Insert records for archived files the store does not know about.

        Covers a crash between moving a file and recording it. Returns False
        when the store could not be queried, so the next pass tries again.
        """
        complete = True
        for camera in self._registry:
            if self.is_stopping:
                return False
            try:
                known = await self._store.known_paths(camera.camera_id)
            except MetadataError as exc:
                logger.warning(
                    "Archive reconcile skipped: %s",
                    exc,
                    extra={"camera_name": camera.camera_id},
                )
                complete = False
                continue

            camera_dir = AsyncPath(archive_camera_dir(self._storage_root, camera.camera_id))
            if not await camera_dir.is_dir():
                continue
            async for entry in camera_dir.glob(f"*/*.{self._extension}"):
                path = str(Path(entry))
                if path in known or path in self._pending:
                    continue
                start_time = parse_segment_start(entry.name, self._extension)
                if start_time is None:
                    continue
                try:
                    stat_info = await entry.stat()
                except FileNotFoundError:
                    continue
                logger.info(
                    "Indexing archived segment without a record: %s",
                    path,
                    extra={"camera_name": camera.camera_id},
                )
                record = RecordingRecord(
                    camera_id=camera.camera_id,
                    file_path=path,
                    start_time=start_time,
                    end_time=_end_time(start_time, None, stat_info.st_mtime_ns),
                    file_size=stat_info.st_size,
                )
                if not await self._insert(record):
                    complete = False
        return complete
