"""Fixed-rate background task with a skip-if-running guard."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

from rtsp_recorder.interfaces import Shutdownable

logger = logging.getLogger(__name__)


class PeriodicTask(Shutdownable, ABC):
    """Runs `_run()` every `interval_s` seconds until shut down.

    Each tick launches a run as its own task unless the previous run is still
    in progress, in which case the tick is skipped with a warning. Runs never
    overlap, whether started by the loop or by `run_once()`. Exceptions
    escaping a run are logged and the loop keeps going.

    Several tasks may share one `shutdown_event`; setting it stops all of them.
    """

    name = "periodic"

    def __init__(
        self,
        *,
        interval_s: float,
        shutdown_event: asyncio.Event | None = None,
        shutdown_timeout_s: float = 10.0,
    ) -> None:
        self.interval_s = float(interval_s)
        self._shutdown_event = shutdown_event or asyncio.Event()
        self._shutdown_timeout_s = shutdown_timeout_s
        self._loop_task: asyncio.Task[None] | None = None
        self._run_task: asyncio.Task[None] | None = None
        self.completed_runs = 0
        self.skipped_runs = 0
        self.failed_runs = 0

    @property
    def is_stopping(self) -> bool:
        return self._shutdown_event.is_set()

    def is_running(self) -> bool:
        """True while a run is in progress."""
        return self._run_task is not None and not self._run_task.done()

    def start(self) -> None:
        """Start the periodic loop in the background."""
        if self._loop_task is not None:
            logger.warning("%s already started", self.name)
            return
        self._loop_task = asyncio.create_task(self._loop(), name=f"{self.name}-loop")

    async def run_once(self) -> bool:
        """Run one pass now and wait for it.

        Returns False without running when a pass is already in progress.
        """
        if self.is_running():
            logger.warning("%s run already in progress; not starting another", self.name)
            self.skipped_runs += 1
            return False
        task = self._launch_run()
        await task
        return True

    async def shutdown(self, timeout: float | None = None) -> None:
        """Signal shutdown, wait for the loop and any run, then cancel stragglers."""
        self._shutdown_event.set()
        tasks = [t for t in (self._loop_task, self._run_task) if t is not None and not t.done()]
        if tasks:
            _done, pending = await asyncio.wait(
                tasks, timeout=timeout if timeout is not None else self._shutdown_timeout_s
            )
            if pending:
                logger.warning("%s shutdown timed out, cancelling", self.name)
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
        self._loop_task = None
        self._run_task = None

    async def _loop(self) -> None:
        logger.info("%s loop started (interval=%.1fs)", self.name, self.interval_s)
        while not self._shutdown_event.is_set():
            if self.is_running():
                self.skipped_runs += 1
                logger.warning("%s previous run still in progress; skipping tick", self.name)
            else:
                self._launch_run()

            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.interval_s)
            except asyncio.TimeoutError:
                pass  # Normal - interval elapsed
        logger.info("%s loop exited", self.name)

    def _launch_run(self) -> asyncio.Task[None]:
        task = asyncio.create_task(self._guarded_run(), name=f"{self.name}-run")
        self._run_task = task
        return task

    async def _guarded_run(self) -> None:
        try:
            await self._run()
            self.completed_runs += 1
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.failed_runs += 1
            logger.error("%s run failed: %s", self.name, exc, exc_info=True)

    @abstractmethod
    async def _run(self) -> None:
        """One pass of the task's work."""
        raise NotImplementedError
