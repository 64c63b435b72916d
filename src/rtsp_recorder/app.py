"""Main application that wires all components together."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from pathlib import Path

from rtsp_recorder.cameras.process import CaptureLauncher
from rtsp_recorder.cameras.registry import CameraRegistry
from rtsp_recorder.clock import Clock, SystemClock
from rtsp_recorder.config import load_config, resolve_env_var
from rtsp_recorder.errors import RecorderError
from rtsp_recorder.health import HealthServer
from rtsp_recorder.models.config import Config
from rtsp_recorder.settings import EnvSettings
from rtsp_recorder.store import SQLAlchemyRecordingStore
from rtsp_recorder.tasks import (
    CleanupRecordingsTask,
    MoveRecordingsTask,
    PeriodicTask,
    WatchdogTask,
)

logger = logging.getLogger(__name__)


def resolve_dsn(config: Config) -> str:
    """Pick the metadata store DSN.

    Order: `database.dsn_env`, `database.dsn`, the `DB_DSN` environment
    setting, then a SQLite file next to the archive.
    """
    db_cfg = config.database
    if db_cfg.dsn_env:
        dsn = resolve_env_var(db_cfg.dsn_env)
        if dsn:
            return dsn
    if db_cfg.dsn:
        return db_cfg.dsn
    env_dsn = EnvSettings().db_dsn
    if env_dsn:
        return env_dsn
    root = Path(config.storage.root).expanduser().resolve()
    return f"sqlite:///{root / 'recordings.db'}"


async def create_store(config: Config) -> SQLAlchemyRecordingStore:
    """Create and initialize the metadata store.

    Raises:
        RecorderError: If the store cannot be reached at startup
    """
    store = SQLAlchemyRecordingStore(
        resolve_dsn(config),
        retry=config.retry,
        create_tables=config.database.create_tables,
    )
    if not await store.initialize():
        raise RecorderError("Failed to initialize recording store")
    return store


def prepare_storage_root(config: Config) -> Path:
    """Create the archive root and make sure it is writable.

    Raises:
        RecorderError: If the root cannot be created or written
    """
    root = Path(config.storage.root).expanduser().resolve()
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RecorderError(f"Cannot create storage root {root}: {exc}", cause=exc) from exc
    if not os.access(root, os.W_OK):
        raise RecorderError(f"Storage root is not writable: {root}")
    return root


class Application:
    """Main application that orchestrates all components.

    Handles component creation, lifecycle, and graceful shutdown.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        config: Config | None = None,
        launcher: CaptureLauncher | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize application.

        Args:
            config_path: Path to YAML config file (ignored when `config` is given)
            config: Already-validated config
            launcher: Capture launcher override (defaults to ffmpeg)
            clock: Clock override for liveness and retention
        """
        if config_path is None and config is None:
            raise ValueError("Application needs config_path or config")
        self._config_path = config_path
        self._config = config
        self._launcher = launcher
        self._clock = clock or SystemClock()

        # Components (created in _create_components)
        self._store: SQLAlchemyRecordingStore | None = None
        self._registry: CameraRegistry | None = None
        self._tasks: list[PeriodicTask] = []
        self._health_server: HealthServer | None = None

        # Shutdown state
        self._shutdown_event = asyncio.Event()
        self._shutdown_started = False
        self._shutdown_complete = False

    async def run(self) -> None:
        """Run the application.

        Loads config, creates components, and runs until shutdown signal.
        Capture subprocesses are released on every exit path.
        """
        logger.info("Starting rtsp-recorder...")

        if self._config is None:
            assert self._config_path is not None
            self._config = load_config(self._config_path)
            logger.info("Config loaded from %s", self._config_path)

        try:
            await self._create_components()
            self._setup_signal_handlers()
            await self.start()
            logger.info("Application started. Recording %d cameras", len(self.registry))
            await self._shutdown_event.wait()
        finally:
            await self.shutdown()

    async def start(self) -> None:
        """Start health server, capture processes and periodic tasks."""
        if self._health_server:
            await self._health_server.start()

        started = await self.registry.start_all()
        failed = [camera_id for camera_id, ok in started.items() if not ok]
        if failed:
            logger.warning("Cameras not recording yet (watchdog will retry): %s", failed)

        for task in self._tasks:
            task.start()

    async def _create_components(self) -> None:
        """Create all components based on config."""
        config = self._require_config()
        storage_root = prepare_storage_root(config)

        self._store = await create_store(config)
        self._registry = CameraRegistry.from_config(
            config, launcher=self._launcher, clock=self._clock
        )

        tasks_cfg = config.tasks
        self._tasks = [
            WatchdogTask(
                self._registry,
                interval_s=tasks_cfg.watchdog_interval_s,
                shutdown_event=self._shutdown_event,
                shutdown_timeout_s=tasks_cfg.shutdown_timeout_s,
            ),
            MoveRecordingsTask(
                self._registry,
                self._store,
                storage_root=storage_root,
                segment_extension=config.ffmpeg.segment_extension,
                interval_s=tasks_cfg.move_interval_s,
                shutdown_event=self._shutdown_event,
                shutdown_timeout_s=tasks_cfg.shutdown_timeout_s,
            ),
            CleanupRecordingsTask(
                self._registry,
                self._store,
                storage_root=storage_root,
                min_free_bytes=config.storage.min_free_bytes,
                interval_s=tasks_cfg.cleanup_interval_s,
                clock=self._clock,
                shutdown_event=self._shutdown_event,
                shutdown_timeout_s=tasks_cfg.shutdown_timeout_s,
            ),
        ]

        health_cfg = config.health
        if health_cfg.enabled:
            self._health_server = HealthServer(host=health_cfg.host, port=health_cfg.port)
            self._health_server.set_components(
                store=self._store,
                registry=self._registry,
                tasks=self._tasks,
            )

        logger.info("All components created")

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        """Handle shutdown signal."""
        if self._shutdown_started:
            logger.warning("Shutdown already in progress, ignoring signal")
            return

        logger.info("Received signal %s, initiating shutdown...", sig.name)
        self.request_shutdown()

    def request_shutdown(self) -> None:
        """Ask `run()` to return after a graceful shutdown."""
        self._shutdown_started = True
        self._shutdown_event.set()

    async def shutdown(self) -> None:
        """Graceful shutdown of all components."""
        if self._shutdown_complete:
            return
        logger.info("Shutting down application...")
        self._shutdown_started = True
        self._shutdown_event.set()

        # Stop health server first so it stops reporting half-stopped cameras.
        if self._health_server:
            await self._health_server.stop()

        # Stop periodic tasks before the processes so the watchdog cannot
        # restart a camera that is being shut down.
        for task in self._tasks:
            await task.shutdown()

        # Stop every capture subprocess
        if self._registry:
            await self._registry.shutdown_all()

        # Close metadata store
        if self._store:
            await self._store.shutdown()

        self._shutdown_complete = True
        logger.info("Application shutdown complete")

    def _require_config(self) -> Config:
        if self._config is None:
            raise RuntimeError("Config not loaded")
        return self._config

    @property
    def config(self) -> Config:
        return self._require_config()

    @property
    def registry(self) -> CameraRegistry:
        if self._registry is None:
            raise RuntimeError("Camera registry not initialized")
        return self._registry

    @property
    def store(self) -> SQLAlchemyRecordingStore:
        if self._store is None:
            raise RuntimeError("Recording store not initialized")
        return self._store

    @property
    def tasks(self) -> list[PeriodicTask]:
        return list(self._tasks)
