"""Worker manager for coordinating background tasks."""

import asyncio
import logging

from ..core.config import Settings
from ..core.database import Database
from .base import BaseWorker
from .followup_worker import FollowUpWorker
from .hold_sweep_worker import HoldSweepWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """
    Manages background workers for the application.

    Coordinates starting, stopping, and monitoring of all background workers.
    """

    def __init__(self, database: Database, settings: Settings):
        self.workers: dict[str, BaseWorker] = {
            "hold_sweep": HoldSweepWorker(
                database, interval_seconds=settings.hold_sweep_interval_seconds
            ),
            "followup": FollowUpWorker(
                database,
                interval_seconds=settings.followup_retry_interval_seconds,
                max_attempts=settings.followup_max_attempts,
            ),
        }
        logger.info(f"Initialized {len(self.workers)} workers")

    async def start_all(self) -> None:
        """Start all workers."""
        for name, worker in self.workers.items():
            try:
                await worker.start()
            except Exception as e:
                logger.error(f"Failed to start worker {name}: {e!s}", exc_info=True)

        logger.info(f"Started {len(self.workers)} workers")

    async def stop_all(self) -> None:
        """Stop all workers gracefully."""
        results = await asyncio.gather(
            *(worker.stop() for worker in self.workers.values()),
            return_exceptions=True
        )

        for name, result in zip(self.workers.keys(), results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping worker {name}: {result!s}")

        logger.info("All workers stopped")

    def get_worker(self, name: str) -> BaseWorker:
        """
        Get a specific worker by name.

        Raises:
            KeyError: If worker not found
        """
        return self.workers[name]

    def get_worker_status(self) -> dict[str, bool]:
        """Map worker names to their running status."""
        return {name: worker.running for name, worker in self.workers.items()}
