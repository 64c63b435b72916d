"""Capture subprocess lifecycle: launch, stop, and liveness tracking."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Protocol

from rtsp_recorder.clock import Clock, SystemClock
from rtsp_recorder.errors import LaunchFailure, RecorderError, StaleProcessError
from rtsp_recorder.models.config import FfmpegConfig
from rtsp_recorder.models.enums import ProcessState
from rtsp_recorder.storage_paths import parse_segment_start, segment_output_template
from rtsp_recorder.utils import format_cmd, read_tail, redact_url, signal_process_group

logger = logging.getLogger(__name__)

STDERR_LOG_NAME = ".capture-stderr.log"


class CaptureLauncher(Protocol):
    async def launch(
        self, url: str, active_dir: Path, stderr_log: Path
    ) -> asyncio.subprocess.Process: ...


def build_ffmpeg_command(config: FfmpegConfig, url: str, active_dir: Path) -> list[str]:
    """Build the segmenting ffmpeg command for one camera.

    ffmpeg names each segment after its UTC start via `-strftime 1` (the
    launcher sets TZ=UTC), so the archive mover can recover start times from
    file names alone.
    """
    cmd = [config.binary, "-nostdin", "-hide_banner"]
    if not any(x == "-loglevel" for x in config.input_args):
        cmd.extend(["-loglevel", config.loglevel])
    cmd.extend(config.input_args)
    cmd.extend(["-i", url])
    cmd.extend(config.output_args)
    cmd.extend(
        [
            "-f",
            "segment",
            "-segment_time",
            str(config.segment_time_s),
            "-reset_timestamps",
            "1",
            "-strftime",
            "1",
            "-y",
            str(segment_output_template(active_dir, config.segment_extension)),
        ]
    )
    return cmd


class SubprocessLauncher(ABC):
    """Spawns a capture command in its own session with stderr sent to a file.

    The command runs with TZ=UTC so strftime segment names are UTC.
    """

    @abstractmethod
    def command_for(self, url: str, active_dir: Path) -> list[str]:
        """Argument vector for capturing `url` into `active_dir`."""

    async def launch(
        self, url: str, active_dir: Path, stderr_log: Path
    ) -> asyncio.subprocess.Process:
        cmd = self.command_for(url, active_dir)
        safe_cmd = [redact_url(part) if part == url else part for part in cmd]
        logger.debug("Capture command: %s", format_cmd(safe_cmd))
        with open(stderr_log, "w") as stderr_file:
            return await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=stderr_file,
                env={**os.environ, "TZ": "UTC"},
                start_new_session=True,
            )


class FfmpegLauncher(SubprocessLauncher):
    def __init__(self, config: FfmpegConfig) -> None:
        self._config = config

    def command_for(self, url: str, active_dir: Path) -> list[str]:
        return build_ffmpeg_command(self._config, url, active_dir)


class RecordingProcess:
    """One camera's capture subprocess.

    start() and stop() are serialized by a per-process lock; stop() also
    aborts a start() that is still waiting for launch confirmation. Once
    shutdown() has run, start() is a no-op so a late watchdog restart
    cannot resurrect a camera during teardown.

    A process that outlives SIGKILL keeps its handle and leaves the state
    CRASHED; start() refuses to launch a second one until it is gone.
    """

    def __init__(
        self,
        *,
        camera_id: str,
        url: str,
        active_dir: Path,
        launcher: CaptureLauncher,
        segment_extension: str,
        stale_after_s: float,
        startup_check_s: float = 0.5,
        stop_timeout_s: float = 5.0,
        kill_timeout_s: float = 2.0,
        clock: Clock | None = None,
    ) -> None:
        self.camera_id = camera_id
        self.active_dir = active_dir
        self._url = url
        self._launcher = launcher
        self._segment_extension = segment_extension
        self._stale_after_s = stale_after_s
        self._startup_check_s = startup_check_s
        self._stop_timeout_s = stop_timeout_s
        self._kill_timeout_s = kill_timeout_s
        self._clock = clock or SystemClock()

        self._lock = asyncio.Lock()
        self._abort_start = asyncio.Event()
        self._closed = False
        self._state = ProcessState.STOPPED
        self._process: asyncio.subprocess.Process | None = None
        self._exit_task: asyncio.Task[None] | None = None

        self._progress_marker: tuple[str, int] | None = None
        self._last_progress_at: float | None = None
        self.last_exit_code: int | None = None
        self.last_error: RecorderError | None = None

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def stderr_log(self) -> Path:
        return self.active_dir / STDERR_LOG_NAME

    def seconds_since_progress(self) -> float | None:
        if self._last_progress_at is None:
            return None
        return max(0.0, self._clock.now() - self._last_progress_at)

    async def start(self) -> bool:
        """Launch the capture subprocess.

        Returns True when a new subprocess is running. Returns False when the
        process was already running, has been shut down, was aborted by a
        concurrent stop(), or failed to launch (see `last_error`). If the
        caller is cancelled mid-start, any launched subprocess is terminated
        and the state settles before the cancellation propagates.
        """
        async with self._lock:
            if self._closed or self._state == ProcessState.RUNNING:
                return False
            leftover = self._process
            if leftover is not None:
                if leftover.returncode is None:
                    self._fail_launch(
                        LaunchFailure(
                            self.camera_id,
                            f"previous capture process is still alive (pid {leftover.pid})",
                        )
                    )
                    return False
                self._process = None

            self._abort_start.clear()
            self._set_state(ProcessState.STARTING)
            try:
                return await self._launch()
            except asyncio.CancelledError:
                logger.warning(
                    "Capture start cancelled", extra={"camera_name": self.camera_id}
                )
                await asyncio.shield(self._release(self._process))
                raise

    async def stop(self) -> None:
        """Terminate the capture subprocess. Idempotent."""
        self._abort_start.set()
        async with self._lock:
            await self._cancel_exit_watch()
            proc = self._process
            await self._release(proc)
            if proc is not None and proc.returncode is not None:
                logger.info(
                    "Capture stopped: pid=%s rc=%s",
                    proc.pid,
                    proc.returncode,
                    extra={"camera_name": self.camera_id},
                )

    async def shutdown(self) -> None:
        """Stop for good; later start() calls do nothing."""
        self._closed = True
        await self.stop()

    def is_healthy(self) -> bool:
        """Health as of the last check, without touching the disk or any state.

        Starting counts as healthy. Otherwise the process must be running and
        its last observed progress no older than `stale_after_s`.
        """
        if self._state == ProcessState.STARTING:
            return True
        proc = self._process
        if self._state != ProcessState.RUNNING or proc is None or proc.returncode is not None:
            return False
        since_progress = self.seconds_since_progress()
        return since_progress is None or since_progress <= self._stale_after_s

    async def check_health(self) -> RecorderError | None:
        """Look for new output and return why a restart is needed, or None.

        A process that is still starting counts as healthy. A running process
        is healthy while its newest segment keeps changing name or size within
        `stale_after_s`.
        """
        if self._state == ProcessState.STARTING:
            return None
        proc = self._process
        if self._state != ProcessState.RUNNING or proc is None or proc.returncode is not None:
            return self.last_error or RecorderError(
                f"Capture process not running (state={self._state})",
                camera_id=self.camera_id,
            )

        marker = await asyncio.to_thread(self._newest_segment_marker)
        if self._process is not proc:
            # Restarted or exited while scanning; judge it on the next check.
            return None
        now = self._clock.now()
        if marker is not None and marker != self._progress_marker:
            self._progress_marker = marker
            self._last_progress_at = now
            return None

        stale_for = now - (self._last_progress_at if self._last_progress_at is not None else now)
        if stale_for > self._stale_after_s:
            error = StaleProcessError(self.camera_id, stale_for)
            self.last_error = error
            return error
        return None

    async def _launch(self) -> bool:
        try:
            await asyncio.to_thread(self.active_dir.mkdir, parents=True, exist_ok=True)
            proc = await self._launcher.launch(self._url, self.active_dir, self.stderr_log)
        except Exception as exc:
            self._fail_launch(LaunchFailure(self.camera_id, str(exc), cause=exc))
            return False

        self._process = proc
        alive = await self._confirm_launch(proc)

        if self._abort_start.is_set():
            logger.info(
                "Capture start aborted by stop request: pid=%s",
                proc.pid,
                extra={"camera_name": self.camera_id},
            )
            await self._release(proc)
            return False

        if not alive:
            self._process = None
            self.last_exit_code = proc.returncode
            self._fail_launch(
                LaunchFailure(
                    self.camera_id,
                    f"exited during startup (exit code: {proc.returncode})",
                    exit_code=proc.returncode,
                )
            )
            return False

        self._progress_marker = await asyncio.to_thread(self._newest_segment_marker)
        self._last_progress_at = self._clock.now()
        self.last_error = None
        self._exit_task = asyncio.create_task(self._watch_exit(proc))
        self._set_state(ProcessState.RUNNING)
        logger.info(
            "Capture started: pid=%s dir=%s",
            proc.pid,
            self.active_dir,
            extra={"camera_name": self.camera_id},
        )
        return True

    async def _release(self, proc: asyncio.subprocess.Process | None) -> None:
        """Terminate `proc` and settle the state.

        STOPPED once the process is gone; CRASHED with the handle kept when it
        survived SIGKILL.
        """
        if proc is not None:
            await self._terminate(proc)
            self.last_exit_code = proc.returncode
            if proc.returncode is None:
                self._process = proc
                self.last_error = RecorderError(
                    f"Capture process survived SIGKILL (pid {proc.pid})",
                    camera_id=self.camera_id,
                )
                self._set_state(ProcessState.CRASHED)
                return
        self._process = None
        self._set_state(ProcessState.STOPPED)

    async def _confirm_launch(self, proc: asyncio.subprocess.Process) -> bool:
        exit_wait = asyncio.create_task(proc.wait())
        abort_wait = asyncio.create_task(self._abort_start.wait())
        try:
            await asyncio.wait(
                {exit_wait, abort_wait},
                timeout=self._startup_check_s,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (exit_wait, abort_wait):
                task.cancel()
            await asyncio.gather(exit_wait, abort_wait, return_exceptions=True)
        return proc.returncode is None

    async def _watch_exit(self, proc: asyncio.subprocess.Process) -> None:
        return_code = await proc.wait()
        if self._process is not proc:
            return
        self._process = None
        self.last_exit_code = return_code
        self.last_error = RecorderError(
            f"Capture process exited unexpectedly (exit code: {return_code})",
            camera_id=self.camera_id,
        )
        self._set_state(ProcessState.CRASHED)
        logger.warning(
            "Capture process exited unexpectedly: pid=%s rc=%s",
            proc.pid,
            return_code,
            extra={"camera_name": self.camera_id},
        )
        self._log_stderr_tail(logging.WARNING)

    async def _cancel_exit_watch(self) -> None:
        task = self._exit_task
        self._exit_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            return

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        self._send_signal(proc, signal.SIGTERM)
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._stop_timeout_s)
            return
        except asyncio.TimeoutError:
            logger.warning(
                "Capture process did not exit after SIGTERM; killing: pid=%s",
                proc.pid,
                extra={"camera_name": self.camera_id},
            )
        self._send_signal(proc, signal.SIGKILL)
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._kill_timeout_s)
        except asyncio.TimeoutError:
            logger.error(
                "Capture process survived SIGKILL: pid=%s",
                proc.pid,
                extra={"camera_name": self.camera_id},
            )

    @staticmethod
    def _send_signal(proc: asyncio.subprocess.Process, sig: signal.Signals) -> None:
        if signal_process_group(proc.pid, sig):
            return
        try:
            proc.send_signal(sig)
        except ProcessLookupError:
            return

    def _fail_launch(self, failure: LaunchFailure) -> None:
        self.last_error = failure
        self._set_state(ProcessState.CRASHED)
        logger.error("%s", failure, extra={"camera_name": self.camera_id})
        self._log_stderr_tail(logging.ERROR)

    def _log_stderr_tail(self, level: int) -> None:
        tail = read_tail(self.stderr_log) if self.stderr_log.exists() else ""
        if tail:
            tail = tail.replace(self._url, redact_url(self._url))
            logger.log(level, "Capture stderr tail:\n%s", tail, extra={"camera_name": self.camera_id})

    def _set_state(self, state: ProcessState) -> None:
        if state != self._state:
            logger.debug(
                "Capture state %s -> %s",
                self._state,
                state,
                extra={"camera_name": self.camera_id},
            )
        self._state = state

    def _newest_segment_marker(self) -> tuple[str, int] | None:
        newest: tuple[str, int] | None = None
        try:
            with os.scandir(self.active_dir) as entries:
                for entry in entries:
                    if parse_segment_start(entry.name, self._segment_extension) is None:
                        continue
                    if newest is not None and entry.name < newest[0]:
                        continue
                    try:
                        size = entry.stat().st_size
                    except FileNotFoundError:
                        continue
                    newest = (entry.name, size)
        except FileNotFoundError:
            return None
        return newest
