"""Background task for sweeping abandoned uploads."""

import asyncio
from datetime import timedelta
from typing import Optional

from common.logging_config import get_logger
from controller.config import CLEANUP_INTERVAL, STALE_UPLOAD_SECONDS
from controller.repositories.file_repository import FileRepository
from controller.services.file_service import FileService
from controller.types import FileStatus
from controller.utils import utc_now

logger = get_logger(__name__)


class StaleUploadCleaner:
    """
    Background task that removes files stuck in UPLOADING.

    An upload that was cancelled or crashed leaves its file row, key and
    any recorded placements behind; this sweep deletes them.
    """

    def __init__(
        self,
        file_service: FileService,
        interval_seconds: int = CLEANUP_INTERVAL,
        max_age_seconds: int = STALE_UPLOAD_SECONDS
    ):
        """
        Initialize cleaner task.

        Args:
            file_service: Service used to purge files
            interval_seconds: Time between sweeps (default 1 hour)
            max_age_seconds: Age after which an UPLOADING file is abandoned (default 1 hour)
        """
        self.file_service = file_service
        self.interval_seconds = interval_seconds
        self.max_age_seconds = max_age_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Start the background cleanup task."""
        if self._running:
            logger.warning("Cleanup task already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Started stale upload cleanup task (interval: {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the background cleanup task."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        logger.info("Stopped stale upload cleanup task")

    async def _run(self) -> None:
        """Main loop for cleanup task."""
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)

                if not self._running:
                    break

                await self.cleanup_cycle()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in cleanup task: {e}", exc_info=True)

    async def cleanup_cycle(self) -> int:
        """
        Execute one sweep.

        Returns:
            Number of abandoned uploads removed
        """
        cutoff = utc_now() - timedelta(seconds=self.max_age_seconds)
        stale = FileRepository.list_stale_uploads(cutoff)
        if not stale:
            logger.debug("No stale uploads to clean")
            return 0

        logger.info(f"Starting cleanup cycle for {len(stale)} stale uploads")

        cleaned = 0
        for file in stale:
            async with self.file_service.file_locks.hold(file.file_id):
                current = FileRepository.get_by_id(file.file_id)
                if current is None or current.status != FileStatus.UPLOADING:
                    continue
                if await self.file_service.purge_file(file.file_id):
                    cleaned += 1
                    logger.info(f"Removed abandoned upload {file.file_id} ({file.filename})")

        logger.info(f"Cleanup cycle complete: {cleaned} stale uploads removed")
        return cleaned
