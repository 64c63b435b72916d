from __future__ import annotations

import logging
import os
import shlex

logger = logging.getLogger(__name__)


def redact_url(url: str) -> str:
    if "://" not in url:
        return url
    scheme, rest = url.split("://", 1)
    if "@" not in rest:
        return url
    _creds, host = rest.split("@", 1)
    return f"{scheme}://***:***@{host}"


def format_cmd(cmd: list[str]) -> str:
    try:
        return shlex.join([str(x) for x in cmd])
    except Exception as exc:
        logger.warning("Failed to format command with shlex.join: %s", exc, exc_info=True)
        return " ".join([str(x) for x in cmd])


def signal_process_group(pid: int, sig: int) -> bool:
    """Best-effort process-group signal for spawned capture trees."""
    if not hasattr(os, "killpg"):
        return False
    try:
        pgid = os.getpgid(pid)
    except OSError:
        return False
    if pgid != pid:
        # Not a session leader; signalling its group would hit our own.
        return False
    try:
        os.killpg(pgid, sig)
        return True
    except OSError:
        return False


def read_tail(path: os.PathLike[str] | str, max_bytes: int = 4000) -> str:
    try:
        with open(path, "rb") as f:
            f.seek(0, os.SEEK_END)
            size = f.tell()
            f.seek(max(0, size - max_bytes))
            data = f.read()
    except OSError as exc:
        logger.warning("Failed to read capture stderr tail: %s", exc)
        return ""
    return data.decode(errors="replace")
