"""Blocking filesystem operations for archiving and deleting segments.

Callers run these through `asyncio.to_thread`.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".partial"


def move_file(src: Path, dest: Path) -> None:
    """Move `src` to `dest` so that `dest` is never observed half-written.

    Within one filesystem this is a single `os.replace`. Across filesystems
    the file is copied to `<dest>.partial`, fsynced, renamed into place, and
    only then is the source unlinked. If `dest` already holds a file of the
    same size (an earlier move copied it but died before the unlink), the
    source is just unlinked.

    Raises:
        FileExistsError: If `dest` holds a different file; both are left as is
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    if dest.exists():
        src_size = src.stat().st_size
        dest_size = dest.stat().st_size
        if dest_size != src_size:
            raise FileExistsError(
                errno.EEXIST,
                f"archive holds a different file ({dest_size} bytes, source {src_size} bytes)",
                str(dest),
            )
        logger.info("Archive already holds %s; removing source copy", dest.name)
        src.unlink(missing_ok=True)
        return

    try:
        os.replace(src, dest)
        return
    except OSError as exc:
        if exc.errno != errno.EXDEV:
            raise

    tmp_path = dest.with_name(dest.name + PARTIAL_SUFFIX)
    try:
        shutil.copy2(src, tmp_path)
        with tmp_path.open("rb") as handle:
            os.fsync(handle.fileno())
        os.replace(tmp_path, dest)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
    _fsync_dir(dest.parent)
    src.unlink()


def remove_file(path: Path) -> bool:
    """Delete a file. Returns False when it was already gone."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def prune_empty_dirs(root: Path) -> int:
    """Remove empty directories below `root` (never `root` itself)."""
    if not root.is_dir():
        return 0
    removed = 0
    for dirpath, _dirnames, _filenames in os.walk(root, topdown=False):
        path = Path(dirpath)
        if path == root:
            continue
        try:
            path.rmdir()
            removed += 1
        except OSError:
            # Not empty (or raced with a new segment).
            continue
    return removed


def free_bytes(path: Path) -> int:
    return shutil.disk_usage(path).free


def _fsync_dir(path: Path) -> None:
    if os.name != "posix":
        return
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)
