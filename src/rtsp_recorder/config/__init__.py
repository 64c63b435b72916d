"""Configuration loading and validation."""

from rtsp_recorder.config.loader import (
    ConfigError,
    ConfigErrorCode,
    load_config,
    load_config_from_dict,
    resolve_env_var,
)
from rtsp_recorder.config.validation import (
    validate_camera_names,
    validate_config,
    validate_storage_layout,
)

__all__ = [
    "ConfigError",
    "ConfigErrorCode",
    "load_config",
    "load_config_from_dict",
    "resolve_env_var",
    "validate_camera_names",
    "validate_config",
    "validate_storage_layout",
]
