"""Staging service - owns the stores and their lifetime."""

import asyncio
import logging
import weakref
from datetime import datetime
from typing import Callable, Optional

from .autosave import AutoSaveController
from .config import StorageConfig
from .maintenance import RetentionSweeper
from .models import utc_now
from .storage import (
    Database,
    RecordStore,
    BlobStore,
    StorageError,
    DRAFTS_SCHEMA,
    FILES_SCHEMA,
)

logger = logging.getLogger(__name__)


class StagingService:
    """
    Long-lived holder of the draft store and the staged file store.

    Opening and closing the two databases is explicit, so callers decide
    what to do when local storage is unavailable (for example, turn off
    offline features).

    Usage:
        service = StagingService(StorageConfig(data_dir="/var/lib/app"))
        await service.start()

        controller = service.create_autosave()
        await controller.bind(job_id, form_data)

        file_id = await service.blob_store.put(job_id, attribute_id, blob)

        await service.stop()
    """

    def __init__(
        self,
        config: Optional[StorageConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config or StorageConfig()
        self.clock = clock

        self.drafts_db = Database(
            self.config.drafts_path,
            DRAFTS_SCHEMA,
            max_bytes=self.config.drafts_max_bytes,
        )
        self.files_db = Database(
            self.config.files_path,
            FILES_SCHEMA,
            max_bytes=self.config.files_max_bytes,
        )
        self.sweeper = RetentionSweeper(self.config.retention, clock=clock)
        self.record_store = RecordStore(self.drafts_db, sweeper=self.sweeper, clock=clock)
        self.blob_store = BlobStore(self.files_db, clock=clock)

        self._running = False
        self._maintenance_task: Optional[asyncio.Task] = None
        # Bound controllers stay alive through their timer task.
        self._controllers: "weakref.WeakSet[AutoSaveController]" = weakref.WeakSet()

    @property
    def is_running(self) -> bool:
        return self._running

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Open both stores."""
        if self._running:
            logger.warning("Staging service already running")
            return

        logger.info(f"Starting staging service in {self.config.data_dir}")
        await asyncio.gather(
            self.record_store.initialize(),
            self.blob_store.initialize(),
        )
        self._running = True

        if self.config.maintenance_interval_seconds:
            await self.start_maintenance_worker(self.config.maintenance_interval_seconds)

        logger.info("Staging service started")

    async def stop(self) -> None:
        """Stop autosave timers and the maintenance worker, then close both stores."""
        if not self._running:
            return

        logger.info("Stopping staging service...")
        self._running = False

        for controller in list(self._controllers):
            await controller.unbind()
        self._controllers.clear()

        await self.stop_maintenance_worker()
        await self.drafts_db.close()
        await self.files_db.close()

        logger.info("Staging service stopped")

    def create_autosave(self, interval_seconds: Optional[float] = None) -> AutoSaveController:
        """Create an autosave controller writing to this service's draft store."""
        controller = AutoSaveController(
            self.record_store,
            interval_seconds or self.config.autosave_interval_seconds,
        )
        self._controllers.add(controller)
        return controller

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def sweep(self) -> dict:
        """Evict expired drafts and staged files."""
        report = await self.sweeper.sweep_records(self.record_store)
        files_removed = await self.sweeper.sweep_files(self.blob_store)
        return {
            "drafts_removed": report.removed,
            "drafts_kept": len(report.kept),
            "files_removed": files_removed,
        }

    async def stats(self) -> dict:
        """Summarize what is stored locally."""
        files = await self.blob_store.total_size()
        return {
            "drafts": await self.record_store.count(),
            "indexed_drafts": len(await self.record_store.list_known_keys()),
            "files": files["files"],
            "file_bytes": files["bytes"],
        }

    async def start_maintenance_worker(self, interval_seconds: float) -> None:
        """Start the background worker that sweeps staged files."""
        if self._maintenance_task and not self._maintenance_task.done():
            logger.warning("Maintenance worker already running")
            return

        self._maintenance_task = asyncio.create_task(self._maintenance_loop(interval_seconds))
        logger.info(f"Maintenance worker started (every {interval_seconds}s)")

    async def stop_maintenance_worker(self) -> None:
        """Stop the maintenance worker."""
        if self._maintenance_task:
            self._maintenance_task.cancel()
            try:
                await self._maintenance_task
            except asyncio.CancelledError:
                pass
            self._maintenance_task = None
            logger.info("Maintenance worker stopped")

    async def _maintenance_loop(self, interval_seconds: float) -> None:
        """Background worker that sweeps staged files."""
        while self._running:
            try:
                await self.sweeper.sweep_files(self.blob_store)
                await asyncio.sleep(interval_seconds)
            except asyncio.CancelledError:
                break
            except StorageError as e:
                logger.error(f"Error in maintenance loop: {e}")
                await asyncio.sleep(interval_seconds)
