"""Recording segment and metadata models."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from pydantic import BaseModel


class SegmentFile(BaseModel):
    """A segment file observed in a camera's active directory."""

    camera_id: str
    path: Path
    start_time: datetime
    size: int
    mtime_ns: int

    @property
    def name(self) -> str:
        return self.path.name


class RecordingRecord(BaseModel):
    """Metadata row for one archived segment."""

    id: int | None = None
    camera_id: str
    file_path: str
    start_time: datetime
    end_time: datetime
    file_size: int = 0
