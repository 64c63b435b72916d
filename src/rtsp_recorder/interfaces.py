"""Interface definitions for recorder collaborators."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rtsp_recorder.models.recording import RecordingRecord


class Shutdownable(ABC):
    """Async shutdown interface for managed components."""

    @abstractmethod
    async def shutdown(self, timeout: float | None = None) -> None:
        """Release resources and stop background work."""
        raise NotImplementedError


class RecordingStore(Shutdownable, ABC):
    """Persists one metadata record per archived segment.

    Every method raises MetadataError when the backing store cannot be reached.
    """

    @abstractmethod
    async def insert(self, record: RecordingRecord) -> None:
        """Persist a record.

        Must be idempotent on `file_path`: inserting an already-recorded path
        leaves exactly one record.
        """
        raise NotImplementedError

    @abstractmethod
    async def list_older_than(self, camera_id: str, cutoff: datetime) -> list[RecordingRecord]:
        """Return a camera's records whose end_time is strictly before cutoff."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, record: RecordingRecord) -> None:
        """Remove a record. Deleting a missing record succeeds."""
        raise NotImplementedError

    @abstractmethod
    async def known_paths(self, camera_id: str) -> set[str]:
        """Return every recorded file path for a camera."""
        raise NotImplementedError

    @abstractmethod
    async def list_oldest(self, limit: int) -> list[RecordingRecord]:
        """Return the oldest records across all cameras, oldest first."""
        raise NotImplementedError

    @abstractmethod
    async def ping(self) -> bool:
        """Health check. Returns True if the store is reachable."""
        raise NotImplementedError
