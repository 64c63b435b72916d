"""Helpers for segment naming and archive destination paths."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path

SEGMENT_STRFTIME = "%Y-%m-%d_%H-%M-%S"
_SEGMENT_STEM_RE = re.compile(r"^\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}$")


def sanitize_segment(value: str) -> str:
    cleaned = value.strip().replace("/", "_").replace("\\", "_")
    cleaned = "_".join(part for part in cleaned.split() if part)
    if cleaned in ("", ".", ".."):
        return "unknown"
    return cleaned


def segment_output_template(active_dir: Path, extension: str) -> Path:
    """Build the strftime output template handed to the capture subprocess."""
    return active_dir / f"{SEGMENT_STRFTIME}.{extension}"


def segment_filename(start_time: datetime, extension: str) -> str:
    """Render the file name the capture subprocess uses for a segment.

    Names are UTC: the capture subprocess runs with TZ=UTC, so `-strftime 1`
    never repeats a name when local clocks fall back. Naive times are taken
    as UTC.
    """
    utc = start_time.astimezone(timezone.utc) if start_time.tzinfo else start_time
    return f"{utc.strftime(SEGMENT_STRFTIME)}.{extension}"


def parse_segment_start(name: str, extension: str) -> datetime | None:
    """Parse the segment start time from a file name.

    Returns a timezone-aware UTC datetime, or None when the name does not
    follow the segment naming convention.
    """
    suffix = f".{extension}"
    if not name.endswith(suffix):
        return None
    stem = name[: -len(suffix)]
    if not _SEGMENT_STEM_RE.match(stem):
        return None
    try:
        naive = datetime.strptime(stem, SEGMENT_STRFTIME)
    except ValueError:
        return None
    return naive.replace(tzinfo=timezone.utc)


def archive_camera_dir(storage_root: Path, camera_id: str) -> Path:
    """Directory holding every archived segment of one camera."""
    return storage_root / sanitize_segment(camera_id)


def build_archive_path(
    storage_root: Path, camera_id: str, filename: str, start_time: datetime
) -> Path:
    """Build the archive destination: <root>/<camera>/<YYYY-MM-DD>/<filename> (UTC day)."""
    name = sanitize_segment(filename)
    day = start_time.astimezone(timezone.utc).strftime("%Y-%m-%d")
    path = archive_camera_dir(storage_root, camera_id) / day / name
    for part in path.relative_to(storage_root).parts:
        if part in ("", ".", ".."):
            raise ValueError(f"archive path contains invalid segment: {path}")
    return path
