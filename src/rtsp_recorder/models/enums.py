"""Centralized enums and annotated field types."""

import re
from datetime import timedelta
from enum import StrEnum
from typing import Annotated, Any

from pydantic import BeforeValidator, PlainSerializer

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smhdw])\s*$", re.IGNORECASE)
_DURATION_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


class ProcessState(StrEnum):
    """Run state of a capture subprocess.

    Per run cycle the state only moves forward:
    stopped|crashed -> starting -> running -> crashed|stopped.
    """

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    CRASHED = "crashed"


def _validate_duration(value: Any) -> Any:
    """Accept shorthand durations such as "7d", "12h" or "90s".

    Anything else (timedelta, numbers of seconds, ISO-8601 strings) is left
    for pydantic's own timedelta parsing.
    """
    if isinstance(value, str):
        match = _DURATION_RE.match(value)
        if match:
            amount, unit = match.groups()
            return timedelta(**{_DURATION_UNITS[unit.lower()]: float(amount)})
    return value


def _serialize_duration(value: timedelta) -> float:
    return value.total_seconds()


DurationField = Annotated[
    timedelta,
    BeforeValidator(_validate_duration),
    PlainSerializer(_serialize_duration, return_type=float),
]
