"""Cross-field configuration validation helpers."""

from __future__ import annotations

from pathlib import Path

from rtsp_recorder.config.loader import ConfigError, ConfigErrorCode
from rtsp_recorder.models.config import Config
from rtsp_recorder.storage_paths import sanitize_segment


def validate_camera_names(config: Config) -> None:
    """Validate that camera names stay unique after sanitization.

    Archive directories are keyed by the sanitized name, so two cameras that
    sanitize to the same segment would share one archive directory.

    Raises:
        ConfigError: If names collide
    """
    seen: dict[str, str] = {}
    errors = []
    for camera in config.cameras:
        key = sanitize_segment(camera.name)
        if key in seen:
            errors.append(f"camera {camera.name!r} collides with {seen[key]!r} (both map to {key!r})")
            continue
        seen[key] = camera.name

    if errors:
        raise ConfigError(
            "Invalid camera names:\n  " + "\n  ".join(errors),
            code=ConfigErrorCode.CAMERAS_INVALID,
        )


def validate_storage_layout(config: Config) -> None:
    """Validate that active directories are distinct and outside the archive.

    The mover scans active directories only; an active directory inside the
    archive root (or shared between cameras) would make archived files look
    like fresh captures.

    Raises:
        ConfigError: If directories overlap
    """
    archive_root = Path(config.storage.root).expanduser().resolve()
    errors = []
    seen: dict[Path, str] = {}

    for camera in config.cameras:
        active_dir = config.active_dir_for(camera)
        if active_dir in seen:
            errors.append(
                f"camera {camera.name!r} shares active_dir {active_dir} with {seen[active_dir]!r}"
            )
        seen[active_dir] = camera.name
        if active_dir == archive_root or archive_root in active_dir.parents:
            errors.append(f"camera {camera.name!r} active_dir {active_dir} is inside storage.root")

    if errors:
        raise ConfigError(
            "Invalid storage layout:\n  " + "\n  ".join(errors),
            code=ConfigErrorCode.STORAGE_INVALID,
        )


def validate_config(config: Config) -> None:
    """Run all cross-field validations."""
    validate_camera_names(config)
    validate_storage_layout(config)
