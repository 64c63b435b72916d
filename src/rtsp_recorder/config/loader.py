"""Configuration loading and validation."""

from __future__ import annotations

import logging
import os
import stat
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from rtsp_recorder.models.config import Config

logger = logging.getLogger(__name__)

# Camera URLs carry credentials; group/other access is worth a warning.
_GROUP_OTHER_BITS = stat.S_IRWXG | stat.S_IRWXO


class ConfigErrorCode(str, Enum):
    """Stable config error codes."""

    FILE_NOT_FOUND = "CONFIG_FILE_NOT_FOUND"
    YAML_INVALID = "CONFIG_YAML_INVALID"
    EMPTY_FILE = "CONFIG_EMPTY_FILE"
    ROOT_NOT_MAPPING = "CONFIG_ROOT_NOT_MAPPING"
    VALIDATION_FAILED = "CONFIG_VALIDATION_FAILED"
    CAMERAS_INVALID = "CONFIG_CAMERAS_INVALID"
    STORAGE_INVALID = "CONFIG_STORAGE_INVALID"
    ENV_VAR_MISSING = "CONFIG_ENV_VAR_MISSING"
    UNKNOWN = "CONFIG_UNKNOWN"


class ConfigError(Exception):
    """Configuration could not be loaded or is inconsistent."""

    def __init__(
        self,
        message: str,
        *,
        code: ConfigErrorCode = ConfigErrorCode.UNKNOWN,
        path: Path | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.path = path
        self.__cause__ = cause


def load_config(path: Path) -> Config:
    """Read, parse and validate the YAML config at `path`.

    Raises:
        ConfigError: Missing file, bad YAML, or a config that fails validation
    """
    if not path.is_file():
        raise ConfigError(
            f"Config file not found: {path}", code=ConfigErrorCode.FILE_NOT_FOUND, path=path
        )
    _check_permissions(path)
    return _build_config(_read_yaml(path), path)


def load_config_from_dict(data: dict[str, Any]) -> Config:
    """Validate an already-parsed config mapping.

    Raises:
        ConfigError: If validation fails
    """
    return _build_config(data, None)


def resolve_env_var(env_var_name: str, required: bool = True) -> str | None:
    """Look up `env_var_name`, failing with ENV_VAR_MISSING when required and unset."""
    value = os.environ.get(env_var_name)
    if value is None and required:
        raise ConfigError(
            f"Required environment variable not set: {env_var_name}",
            code=ConfigErrorCode.ENV_VAR_MISSING,
        )
    return value


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigError(
            f"Invalid YAML in {path}: {exc}",
            code=ConfigErrorCode.YAML_INVALID,
            path=path,
            cause=exc,
        ) from exc
    if raw is None:
        raise ConfigError(
            f"Config file is empty: {path}", code=ConfigErrorCode.EMPTY_FILE, path=path
        )
    if not isinstance(raw, dict):
        raise ConfigError(
            f"Config must be a YAML mapping, got {type(raw).__name__}",
            code=ConfigErrorCode.ROOT_NOT_MAPPING,
            path=path,
        )
    return raw


def _build_config(data: dict[str, Any], path: Path | None) -> Config:
    from rtsp_recorder.config.validation import validate_config

    try:
        config = Config.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(
            _describe_validation_error(exc, path),
            code=ConfigErrorCode.VALIDATION_FAILED,
            path=path,
            cause=exc,
        ) from exc
    validate_config(config)
    return config


def _describe_validation_error(exc: ValidationError, path: Path | None) -> str:
    header = f"Config validation failed ({path}):" if path else "Config validation failed:"
    lines = [header]
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"])
        lines.append(f"  {location}: {err['msg']}")
    return "\n".join(lines)


def _check_permissions(path: Path) -> None:
    if os.name != "posix":
        return
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except OSError:
        return
    if mode & _GROUP_OTHER_BITS:
        logger.warning(
            "Config file %s is readable by other users (mode %04o); "
            "it may hold camera credentials, consider chmod 600",
            path,
            mode,
        )
