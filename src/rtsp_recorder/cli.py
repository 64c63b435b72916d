"""Command line interface: `rtsp-recorder run|validate|move|cleanup`."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv()

import fire  # type: ignore[import-untyped]

from rtsp_recorder.app import Application
from rtsp_recorder.config import ConfigError, load_config
from rtsp_recorder.errors import RecorderError
from rtsp_recorder.logging_setup import configure_logging
from rtsp_recorder.maintenance import run_cleanup, run_move


def setup_logging(level: str = "INFO") -> None:
    configure_logging(log_level=level)


def _fail(message: str) -> None:
    print(f"✗ {message}", file=sys.stderr)
    sys.exit(1)


def _drive(coro: Coroutine[Any, Any, Any], failure: str) -> None:
    """Run `coro` to completion, turning known errors into exit code 1."""
    try:
        asyncio.run(coro)
    except ConfigError as exc:
        _fail(f"Config invalid: {exc}")
    except RecorderError as exc:
        _fail(f"{failure}: {exc}")
    except KeyboardInterrupt:
        # SIGINT before the signal handlers are installed.
        pass


class RtspRecorder:
    """Continuous recording of RTSP cameras into dated archives."""

    def run(self, config: str, log_level: str = "INFO") -> None:
        """Record every enabled camera until SIGINT or SIGTERM.

        Args:
            config: Path to YAML config file
            log_level: DEBUG, INFO, WARNING or ERROR
        """
        setup_logging(log_level)
        _drive(Application(Path(config)).run(), "Startup failed")

    def validate(self, config: str) -> None:
        """Check a config file and print what would be recorded.

        Args:
            config: Path to YAML config file
        """
        try:
            cfg = load_config(Path(config))
        except ConfigError as exc:
            _fail(f"Config invalid: {exc}")
            return

        print(f"✓ Config valid: {config}")
        print(f"  Storage root: {cfg.storage.root}")
        for camera in cfg.cameras:
            print(
                f"  Camera {camera.name}: enabled={camera.enabled} "
                f"retention={cfg.retention_for(camera)} active_dir={cfg.active_dir_for(camera)}"
            )

    def move(self, config: str, log_level: str = "INFO") -> None:
        """Archive finished segments once, then exit."""
        setup_logging(log_level)
        _drive(run_move(Path(config)), "Move failed")

    def cleanup(self, config: str, log_level: str = "INFO") -> None:
        """Delete recordings older than their retention once, then exit."""
        setup_logging(log_level)
        _drive(run_cleanup(Path(config)), "Cleanup failed")


def main() -> None:
    # A lone --help would show Fire's help for the class docstring only.
    if sys.argv[1:] in (["--help"], ["-h"]):
        del sys.argv[1]
    fire.Fire(RtspRecorder)


if __name__ == "__main__":
    main()
