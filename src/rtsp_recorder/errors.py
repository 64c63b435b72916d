"""Error hierarchy for the recorder core."""

from __future__ import annotations

from pathlib import Path


class RecorderError(Exception):
    """Base exception for all recorder runtime errors.

    Preserves stack traces via exception chaining.
    """

    def __init__(
        self, message: str, camera_id: str | None = None, cause: Exception | None = None
    ) -> None:
        super().__init__(message)
        self.camera_id = camera_id
        self.cause = cause
        self.__cause__ = cause


class LaunchFailure(RecorderError):
    """Capture subprocess could not be started or died during startup."""

    def __init__(
        self,
        camera_id: str,
        reason: str,
        *,
        exit_code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            f"Capture launch failed for {camera_id}: {reason}",
            camera_id=camera_id,
            cause=cause,
        )
        self.reason = reason
        self.exit_code = exit_code


class StaleProcessError(RecorderError):
    """Capture subprocess is alive but has stopped producing output."""

    def __init__(self, camera_id: str, stale_for_s: float) -> None:
        super().__init__(
            f"Capture process for {camera_id} made no progress for {stale_for_s:.1f}s",
            camera_id=camera_id,
        )
        self.stale_for_s = stale_for_s


class FilesystemError(RecorderError):
    """Moving or deleting a recording file failed."""

    def __init__(
        self, operation: str, path: Path | str, cause: Exception, camera_id: str | None = None
    ) -> None:
        super().__init__(
            f"{operation} failed for {path}: {cause}",
            camera_id=camera_id,
            cause=cause,
        )
        self.operation = operation
        self.path = Path(path)


class MetadataError(RecorderError):
    """Metadata store operation failed."""

    def __init__(
        self, operation: str, cause: Exception, camera_id: str | None = None
    ) -> None:
        super().__init__(
            f"Metadata {operation} failed: {cause}",
            camera_id=camera_id,
            cause=cause,
        )
        self.operation = operation
