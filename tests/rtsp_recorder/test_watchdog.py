"""Tests for WatchdogTask restarts."""

from __future__ import annotations

import asyncio
import signal
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from rtsp_recorder.cameras.registry import CameraRegistry
from rtsp_recorder.models.enums import ProcessState
from rtsp_recorder.tasks.watchdog import WatchdogTask
from tests.rtsp_recorder.mocks import FakeClock, FakeLauncher, build_camera


async def _wait_for(
    condition: Callable[[], bool], timeout_s: float = 5.0, interval_s: float = 0.01
) -> None:
    start = time.monotonic()
    while True:
        if condition():
            return
        if time.monotonic() - start > timeout_s:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(interval_s)


@pytest.mark.asyncio
async def test_stale_process_is_stopped_before_restart(
    tmp_path: Path, fake_launcher: FakeLauncher, fake_clock: FakeClock
) -> None:
    """A stale capture is terminated before its replacement launches."""
    # Given a running camera whose output stopped changing
    camera = build_camera("front", tmp_path, fake_launcher, clock=fake_clock)
    watchdog = WatchdogTask(CameraRegistry([camera]))
    assert await camera.start()
    first_pid = fake_launcher.processes[0].pid
    fake_clock.advance(31)

    # When the watchdog runs
    await watchdog.run_once()
    await watchdog.wait_for_restarts()

    # Then the old process was signalled before the new one launched
    second_pid = fake_launcher.processes[1].pid
    assert fake_launcher.events == [
        f"launch:{first_pid}",
        f"signal:{first_pid}:SIGTERM",
        f"launch:{second_pid}",
    ]
    assert [p.pid for p in fake_launcher.live_processes()] == [second_pid]
    assert camera.process.state == ProcessState.RUNNING
    assert camera.restart_count == 1
    assert watchdog.restarts == 1


@pytest.mark.asyncio
async def test_crashed_process_is_restarted(
    tmp_path: Path, fake_launcher: FakeLauncher
) -> None:
    """A process that exited on its own is relaunched on the next tick."""
    # Given a camera whose capture exited unexpectedly
    camera = build_camera("front", tmp_path, fake_launcher)
    watchdog = WatchdogTask(CameraRegistry([camera]))
    assert await camera.start()
    fake_launcher.processes[0].exit(1)
    await _wait_for(lambda: camera.process.state == ProcessState.CRASHED)

    # When the watchdog runs
    await watchdog.run_once()
    await watchdog.wait_for_restarts()

    # Then a fresh process is running
    assert fake_launcher.launch_count == 2
    assert camera.process.state == ProcessState.RUNNING
    assert camera.process.is_healthy()


@pytest.mark.asyncio
async def test_healthy_camera_is_left_alone(
    tmp_path: Path, fake_launcher: FakeLauncher
) -> None:
    """Healthy cameras are not restarted."""
    # Given a freshly started camera
    camera = build_camera("front", tmp_path, fake_launcher)
    watchdog = WatchdogTask(CameraRegistry([camera]))
    assert await camera.start()

    # When the watchdog runs twice
    await watchdog.run_once()
    await watchdog.run_once()

    # Then nothing was relaunched
    assert fake_launcher.launch_count == 1
    assert camera.restart_count == 0
    assert watchdog.completed_runs == 2


@pytest.mark.asyncio
async def test_crash_loop_retries_every_tick_without_blocking_others(
    tmp_path: Path,
) -> None:
    """A camera that cannot start is retried each tick; others keep running."""
    # Given one camera that always fails and one that is healthy
    broken_launcher = FakeLauncher(exit_code_on_start=1)
    good_launcher = FakeLauncher()
    broken = build_camera("broken", tmp_path, broken_launcher)
    good = build_camera("good", tmp_path, good_launcher)
    registry = CameraRegistry([broken, good])
    watchdog = WatchdogTask(registry)
    started = await registry.start_all()
    assert started == {"broken": False, "good": True}

    # When the watchdog runs three times
    for _ in range(3):
        await watchdog.run_once()
        await watchdog.wait_for_restarts()

    # Then the broken camera was retried every time and the good one never
    assert broken_launcher.launch_count == 4
    assert broken.restart_count == 3
    assert broken.process.state == ProcessState.CRASHED
    assert good_launcher.launch_count == 1
    assert good.process.state == ProcessState.RUNNING


@pytest.mark.asyncio
async def test_launch_errors_are_retried(tmp_path: Path) -> None:
    """A launcher that raises leaves the camera crashed, to be retried."""
    # Given a launcher that cannot spawn anything
    launcher = FakeLauncher(launch_error=FileNotFoundError("ffmpeg"))
    camera = build_camera("front", tmp_path, launcher)
    watchdog = WatchdogTask(CameraRegistry([camera]))
    assert await camera.start() is False

    # When the watchdog runs
    await watchdog.run_once()
    await watchdog.wait_for_restarts()

    # Then the launch was attempted again and the run itself succeeded
    assert launcher.events == ["launch-failed:front", "launch-failed:front"]
    assert watchdog.failed_runs == 0


@pytest.mark.asyncio
async def test_closed_cameras_are_not_restarted(
    tmp_path: Path, fake_launcher: FakeLauncher
) -> None:
    """Once a camera is shut down the watchdog leaves it stopped."""
    # Given a camera that has been shut down
    camera = build_camera("front", tmp_path, fake_launcher)
    watchdog = WatchdogTask(CameraRegistry([camera]))
    assert await camera.start()
    await camera.shutdown()

    # When the watchdog runs
    await watchdog.run_once()

    # Then nothing was relaunched
    assert fake_launcher.launch_count == 1
    assert fake_launcher.live_processes() == []


@pytest.mark.asyncio
async def test_watchdog_loop_recovers_crash(
    tmp_path: Path, fake_launcher: FakeLauncher
) -> None:
    """The background loop notices a crash and restarts the camera."""
    # Given a running camera and a fast watchdog loop
    camera = build_camera("front", tmp_path, fake_launcher)
    watchdog = WatchdogTask(CameraRegistry([camera]), interval_s=0.02)
    assert await camera.start()
    watchdog.start()

    # When the capture process crashes
    fake_launcher.processes[0].exit(1)

    # Then the loop brings up a replacement
    await _wait_for(
        lambda: fake_launcher.launch_count == 2
        and camera.process.state == ProcessState.RUNNING
    )
    await watchdog.shutdown()
    await camera.shutdown()
    assert len(fake_launcher.live_processes()) == 0


@pytest.mark.asyncio
async def test_hung_stop_does_not_delay_other_cameras(tmp_path: Path) -> None:
    """A camera stuck in stop() does not hold up restarts of the others."""
    # Given a stale camera whose capture ignores SIGTERM, and a healthy one
    hung_clock = FakeClock()
    hung_launcher = FakeLauncher(ignore_sigterm=True)
    good_launcher = FakeLauncher()
    hung = build_camera("hung", tmp_path, hung_launcher, clock=hung_clock, stop_timeout_s=1.0)
    good = build_camera("good", tmp_path, good_launcher)
    watchdog = WatchdogTask(
        CameraRegistry([hung, good]), interval_s=0.05, shutdown_timeout_s=0.1
    )
    assert await hung.start()
    assert await good.start()
    hung_clock.advance(31)
    watchdog.start()
    await _wait_for(lambda: signal.SIGTERM in hung_launcher.processes[0].signals)

    # When the healthy camera crashes while the hung restart waits out SIGTERM
    began = time.monotonic()
    good_launcher.processes[0].exit(1)

    # Then it is relaunched within about a tick
    await _wait_for(
        lambda: good_launcher.launch_count == 2
        and good.process.state == ProcessState.RUNNING,
        timeout_s=1.0,
    )
    assert time.monotonic() - began < 0.5
    assert watchdog.restarting() == ["hung"]
    assert hung_launcher.launch_count == 1

    await watchdog.shutdown()
    await hung.shutdown()
    await good.shutdown()
    assert hung_launcher.live_processes() == []
    assert good_launcher.live_processes() == []


@pytest.mark.asyncio
async def test_camera_with_restart_in_flight_is_not_checked_again(tmp_path: Path) -> None:
    """Ticks during a slow restart do not stack a second restart."""
    # Given a stale camera whose stop takes a while
    clock = FakeClock()
    launcher = FakeLauncher(ignore_sigterm=True)
    camera = build_camera("front", tmp_path, launcher, clock=clock, stop_timeout_s=0.3)
    watchdog = WatchdogTask(CameraRegistry([camera]))
    assert await camera.start()
    clock.advance(31)

    # When the watchdog ticks three times before the restart finishes
    for _ in range(3):
        await watchdog.run_once()
    assert watchdog.restarting() == ["front"]
    await watchdog.wait_for_restarts()

    # Then exactly one restart happened
    assert watchdog.restarts == 1
    assert camera.restart_count == 1
    assert launcher.launch_count == 2
    assert watchdog.restarting() == []
    launcher.processes[1].ignore_sigterm = False
    await camera.shutdown()
