from __future__ import annotations

import json
import logging
import logging.config
from typing import Any

from rtsp_recorder.settings import EnvSettings

DEFAULT_CONSOLE_FORMAT = (
    "%(asctime)s %(levelname)s [%(camera_name)s] %(module)s %(pathname)s:%(lineno)d %(message)s"
)

_NOISY_LOGGERS = ("aiohttp.access", "aiosqlite", "asyncio")

_CURRENT_CAMERA_NAME = "-"

# Attributes every LogRecord carries; anything else came from `extra=`.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "camera_name"}


class CameraNameFilter(logging.Filter):
    """Give every record a `camera_name`, defaulting to the process-wide one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "camera_name", None):
            record.camera_name = _CURRENT_CAMERA_NAME
        return True


class ExtrasJsonFormatter(logging.Formatter):
    """Standard line, followed by any `extra=` fields as indented JSON."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}
        if not extras:
            return line
        return line + "\n" + json.dumps(extras, indent=2, default=str, sort_keys=True)


def set_camera_name(name: str | None) -> None:
    """Set the `camera_name` used for records that do not carry their own."""
    global _CURRENT_CAMERA_NAME
    _CURRENT_CAMERA_NAME = name or "-"


def _logging_config(level: str, fmt: str) -> dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"camera": {"()": CameraNameFilter}},
        "formatters": {"console": {"()": ExtrasJsonFormatter, "format": fmt}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "level": level,
                "formatter": "console",
                "filters": ["camera"],
            }
        },
        "root": {"level": "DEBUG", "handlers": ["console"]},
    }


def configure_logging(*, log_level: str = "INFO", camera_name: str | None = None) -> None:
    """Send all logging to stdout at `log_level`.

    Lines are tagged with `[camera_name]`: the value passed via
    `extra={"camera_name": ...}` when present, else `camera_name` given here.
    Set CONSOLE_LOG_FORMAT (env or `.env`) to replace the line format.
    """
    fmt = EnvSettings().console_log_format or DEFAULT_CONSOLE_FORMAT
    logging.config.dictConfig(_logging_config(str(log_level).upper(), fmt))
    set_camera_name(camera_name)
    logging.captureWarnings(True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
