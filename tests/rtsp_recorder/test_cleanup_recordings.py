"""Tests for CleanupRecordingsTask retention."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from rtsp_recorder.cameras.camera import Camera
from rtsp_recorder.cameras.registry import CameraRegistry
from rtsp_recorder.models.recording import RecordingRecord
from rtsp_recorder.storage_paths import build_archive_path, segment_filename
from rtsp_recorder.tasks.cleanup_recordings import CleanupRecordingsTask
from tests.rtsp_recorder.mocks import (
    FakeClock,
    FakeLauncher,
    MockRecordingStore,
    build_camera,
)

RETENTION = timedelta(days=1)


def _task(
    tmp_path: Path,
    store: MockRecordingStore,
    clock: FakeClock,
    *cameras: Camera,
    min_free_bytes: int | None = None,
    disk_free: object = None,
) -> CleanupRecordingsTask:
    kwargs: dict[str, object] = {}
    if disk_free is not None:
        kwargs["disk_free"] = disk_free
    return CleanupRecordingsTask(
        CameraRegistry(cameras),
        store,
        storage_root=tmp_path / "recordings",
        min_free_bytes=min_free_bytes,
        clock=clock,
        **kwargs,  # type: ignore[arg-type]
    )


async def _archive(
    tmp_path: Path,
    store: MockRecordingStore,
    camera_id: str,
    end_time: datetime,
    *,
    size: int = 100,
    create_file: bool = True,
) -> RecordingRecord:
    start_time = end_time - timedelta(minutes=15)
    path = build_archive_path(
        tmp_path / "recordings", camera_id, segment_filename(start_time, "mp4"), start_time
    )
    if create_file:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\x00" * size)
    record = RecordingRecord(
        camera_id=camera_id,
        file_path=str(path),
        start_time=start_time,
        end_time=end_time,
        file_size=size,
    )
    await store.insert(record)
    return record


@pytest.mark.asyncio
async def test_expired_recordings_are_deleted_and_boundary_kept(
    tmp_path: Path,
    fake_launcher: FakeLauncher,
    mock_store: MockRecordingStore,
    fake_clock: FakeClock,
) -> None:
    """Records ending before the cutoff go; one ending exactly at it stays."""
    # Given recordings ending before, at and after now - retention
    camera = build_camera("front", tmp_path, fake_launcher, retention=RETENTION)
    cutoff = fake_clock.utcnow() - RETENTION
    old = await _archive(tmp_path, mock_store, "front", cutoff - timedelta(seconds=1))
    boundary = await _archive(tmp_path, mock_store, "front", cutoff)
    fresh = await _archive(tmp_path, mock_store, "front", cutoff + timedelta(hours=1))
    task = _task(tmp_path, mock_store, fake_clock, camera)

    # When cleanup runs
    await task.run_once()

    # Then only the expired recording is gone, file and record
    assert not Path(old.file_path).exists()
    assert set(mock_store.records) == {boundary.file_path, fresh.file_path}
    assert Path(boundary.file_path).exists()
    assert task.deleted == 1


@pytest.mark.asyncio
async def test_file_is_deleted_before_record(
    tmp_path: Path,
    fake_launcher: FakeLauncher,
    mock_store: MockRecordingStore,
    fake_clock: FakeClock,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """The record is deleted only after its file is gone."""
    # Given an expired recording
    camera = build_camera("front", tmp_path, fake_launcher, retention=RETENTION)
    record = await _archive(tmp_path, mock_store, "front", fake_clock.utcnow() - timedelta(days=2))
    task = _task(tmp_path, mock_store, fake_clock, camera)

    from rtsp_recorder.tasks import cleanup_recordings

    real_remove = cleanup_recordings.remove_file

    def _remove(path: Path) -> bool:
        mock_store.calls.append(f"unlink:{path}")
        return real_remove(path)

    monkeypatch.setattr(cleanup_recordings, "remove_file", _remove)

    # When cleanup runs
    await task.run_once()

    # Then the unlink came first
    relevant = [c for c in mock_store.calls if not c.startswith("insert:")]
    assert relevant == [f"unlink:{record.file_path}", f"delete:{record.file_path}"]


@pytest.mark.asyncio
async def test_missing_file_still_removes_record(
    tmp_path: Path,
    fake_launcher: FakeLauncher,
    mock_store: MockRecordingStore,
    fake_clock: FakeClock,
) -> None:
    """A record whose file vanished is cleaned up."""
    # Given an expired record without a file
    camera = build_camera("front", tmp_path, fake_launcher, retention=RETENTION)
    await _archive(
        tmp_path,
        mock_store,
        "front",
        fake_clock.utcnow() - timedelta(days=2),
        create_file=False,
    )
    task = _task(tmp_path, mock_store, fake_clock, camera)

    # When cleanup runs
    await task.run_once()

    # Then the record is gone
    assert mock_store.records == {}
    assert task.deleted == 1


@pytest.mark.asyncio
async def test_file_delete_failure_keeps_record(
    tmp_path: Path,
    fake_launcher: FakeLauncher,
    mock_store: MockRecordingStore,
    fake_clock: FakeClock,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """If the file cannot be removed, its record stays for the next pass."""
    # Given an expired recording whose file cannot be deleted
    camera = build_camera("front", tmp_path, fake_launcher, retention=RETENTION)
    record = await _archive(tmp_path, mock_store, "front", fake_clock.utcnow() - timedelta(days=2))
    task = _task(tmp_path, mock_store, fake_clock, camera)

    from rtsp_recorder.tasks import cleanup_recordings

    def _remove(path: Path) -> bool:
        raise PermissionError(f"cannot delete {path}")

    monkeypatch.setattr(cleanup_recordings, "remove_file", _remove)

    # When cleanup runs
    await task.run_once()

    # Then file and record both remain
    assert Path(record.file_path).exists()
    assert list(mock_store.records) == [record.file_path]
    assert task.deleted == 0
    assert task.failed_runs == 0


@pytest.mark.asyncio
async def test_record_delete_failure_is_retried_next_pass(
    tmp_path: Path,
    fake_launcher: FakeLauncher,
    mock_store: MockRecordingStore,
    fake_clock: FakeClock,
) -> None:
    """A record left behind after its file was deleted is removed later."""
    # Given a store that fails record deletes
    camera = build_camera("front", tmp_path, fake_launcher, retention=RETENTION)
    record = await _archive(tmp_path, mock_store, "front", fake_clock.utcnow() - timedelta(days=2))
    mock_store.fail_deletes = True
    task = _task(tmp_path, mock_store, fake_clock, camera)

    # When cleanup runs
    await task.run_once()

    # Then the file is gone but the record remains
    assert not Path(record.file_path).exists()
    assert list(mock_store.records) == [record.file_path]

    # When the store recovers and cleanup runs again
    mock_store.fail_deletes = False
    await task.run_once()

    # Then the record is gone too
    assert mock_store.records == {}


@pytest.mark.asyncio
async def test_query_failure_skips_only_that_camera(
    tmp_path: Path,
    fake_launcher: FakeLauncher,
    mock_store: MockRecordingStore,
    fake_clock: FakeClock,
) -> None:
    """A failing retention query for one camera does not stop the others."""
    # Given two cameras with expired recordings, one whose queries fail
    broken = build_camera("broken", tmp_path, fake_launcher, retention=RETENTION)
    good = build_camera("good", tmp_path, fake_launcher, retention=RETENTION)
    expired_at = fake_clock.utcnow() - timedelta(days=2)
    kept = await _archive(tmp_path, mock_store, "broken", expired_at)
    await _archive(tmp_path, mock_store, "good", expired_at)
    mock_store.fail_cameras = {"broken"}
    task = _task(tmp_path, mock_store, fake_clock, broken, good)

    # When cleanup runs
    await task.run_once()

    # Then only the good camera was cleaned
    assert list(mock_store.records) == [kept.file_path]
    assert task.failed_runs == 0


@pytest.mark.asyncio
async def test_retention_is_per_camera(
    tmp_path: Path,
    fake_launcher: FakeLauncher,
    mock_store: MockRecordingStore,
    fake_clock: FakeClock,
) -> None:
    """Each camera's own retention decides its cutoff."""
    # Given a short and a long retention camera with equally old recordings
    short = build_camera("short", tmp_path, fake_launcher, retention=timedelta(hours=1))
    long = build_camera("long", tmp_path, fake_launcher, retention=timedelta(days=7))
    two_hours_ago = fake_clock.utcnow() - timedelta(hours=2)
    await _archive(tmp_path, mock_store, "short", two_hours_ago)
    kept = await _archive(tmp_path, mock_store, "long", two_hours_ago)
    task = _task(tmp_path, mock_store, fake_clock, short, long)

    # When cleanup runs
    await task.run_once()

    # Then only the short-retention recording expired
    assert list(mock_store.records) == [kept.file_path]


@pytest.mark.asyncio
async def test_empty_day_directories_are_pruned(
    tmp_path: Path,
    fake_launcher: FakeLauncher,
    mock_store: MockRecordingStore,
    fake_clock: FakeClock,
) -> None:
    """Day directories emptied by cleanup are removed; the root stays."""
    # Given one expired recording alone in its day directory
    camera = build_camera("front", tmp_path, fake_launcher, retention=RETENTION)
    record = await _archive(tmp_path, mock_store, "front", fake_clock.utcnow() - timedelta(days=3))
    day_dir = Path(record.file_path).parent
    task = _task(tmp_path, mock_store, fake_clock, camera)

    # When cleanup runs
    await task.run_once()

    # Then the day directory is gone, the camera directory is not
    assert not day_dir.exists()
    assert day_dir.parent.is_dir()


@pytest.mark.asyncio
async def test_low_disk_deletes_oldest_until_enough_free(
    tmp_path: Path,
    fake_launcher: FakeLauncher,
    mock_store: MockRecordingStore,
    fake_clock: FakeClock,
) -> None:
    """Below min_free_bytes, the oldest recordings go first across cameras."""
    # Given unexpired recordings and a disk that frees 100 bytes per deletion
    front = build_camera("front", tmp_path, fake_launcher, retention=timedelta(days=30))
    back = build_camera("back", tmp_path, fake_launcher, retention=timedelta(days=30))
    now = fake_clock.utcnow()
    oldest = await _archive(tmp_path, mock_store, "back", now - timedelta(hours=3))
    older = await _archive(tmp_path, mock_store, "front", now - timedelta(hours=2))
    newest = await _archive(tmp_path, mock_store, "front", now - timedelta(hours=1))

    def _disk_free(_root: Path) -> int:
        return 1000 - 100 * len(mock_store.records)

    task = _task(
        tmp_path,
        mock_store,
        fake_clock,
        front,
        back,
        min_free_bytes=800,
        disk_free=_disk_free,
    )

    # When cleanup runs with 700 bytes free
    await task.run_once()

    # Then exactly the oldest recording was deleted
    assert not Path(oldest.file_path).exists()
    assert set(mock_store.records) == {older.file_path, newest.file_path}


@pytest.mark.asyncio
async def test_free_space_pass_skipped_when_disk_has_room(
    tmp_path: Path,
    fake_launcher: FakeLauncher,
    mock_store: MockRecordingStore,
    fake_clock: FakeClock,
) -> None:
    """Nothing unexpired is deleted when free space is above the minimum."""
    # Given an unexpired recording and plenty of free space
    camera = build_camera("front", tmp_path, fake_launcher, retention=RETENTION)
    await _archive(tmp_path, mock_store, "front", fake_clock.utcnow())
    task = _task(
        tmp_path,
        mock_store,
        fake_clock,
        camera,
        min_free_bytes=10,
        disk_free=lambda _root: 10_000,
    )

    # When cleanup runs
    await task.run_once()

    # Then it is kept
    assert len(mock_store.records) == 1
