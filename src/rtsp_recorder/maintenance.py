"""One-shot archive and retention passes.

Intended to be run via the CLI (`rtsp-recorder move` / `rtsp-recorder cleanup`)
while the recorder itself is stopped, e.g. from cron or after an outage.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rtsp_recorder.app import create_store, prepare_storage_root
from rtsp_recorder.cameras.registry import CameraRegistry
from rtsp_recorder.config import load_config
from rtsp_recorder.tasks import CleanupRecordingsTask, MoveRecordingsTask

logger = logging.getLogger("rtsp_recorder.maintenance")


async def run_move(config_path: Path) -> int:
    """Archive every rolled-over segment once. Returns the number moved.

    The newest segment of each camera is left in place: without a capture
    process to watch there is no way to tell whether it is still growing.
    """
    config = load_config(config_path)
    storage_root = prepare_storage_root(config)
    store = await create_store(config)
    try:
        registry = CameraRegistry.from_config(config)
        task = MoveRecordingsTask(
            registry,
            store,
            storage_root=storage_root,
            segment_extension=config.ffmpeg.segment_extension,
        )
        await task.run_once()
        if task.pending_records:
            logger.warning("%d records could not be written", len(task.pending_records))
        logger.info("Move pass complete: moved=%d", task.moved)
        return task.moved
    finally:
        await store.shutdown()


async def run_cleanup(config_path: Path) -> int:
    """Apply retention once. Returns the number of recordings deleted."""
    config = load_config(config_path)
    storage_root = prepare_storage_root(config)
    store = await create_store(config)
    try:
        registry = CameraRegistry.from_config(config)
        task = CleanupRecordingsTask(
            registry,
            store,
            storage_root=storage_root,
            min_free_bytes=config.storage.min_free_bytes,
        )
        await task.run_once()
        logger.info("Cleanup pass complete: deleted=%d", task.deleted)
        return task.deleted
    finally:
        await store.shutdown()
