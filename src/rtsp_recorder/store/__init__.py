"""Recording metadata store implementations."""

from rtsp_recorder.store.database import Base, Recording, SQLAlchemyRecordingStore

__all__ = ["Base", "Recording", "SQLAlchemyRecordingStore"]
