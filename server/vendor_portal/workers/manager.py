"""Worker manager for coordinating background tasks."""

import asyncio
import logging
from typing import Dict

from ..core.config import settings
from .base import BaseWorker
from .departure_completion_worker import DepartureCompletionWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """
    Manages background workers for the application.

    Coordinates starting, stopping, and monitoring of all background workers.
    """

    def __init__(self, workers: Dict[str, BaseWorker] | None = None):
        if workers is None:
            workers = {
                "departure_completion": DepartureCompletionWorker(
                    interval_seconds=settings.completion_worker_interval_seconds
                ),
            }
        self.workers: Dict[str, BaseWorker] = workers
        logger.debug("Initialized workers", extra={"workers": sorted(self.workers)})

    async def start_all(self) -> None:
        """Start all workers; a worker that fails to start does not block the others."""
        for name, worker in self.workers.items():
            try:
                await worker.start()
            except Exception as e:
                logger.error(
                    "Failed to start worker",
                    exc_info=True,
                    extra={"worker": name, "error": str(e)}
                )

        logger.info("Workers started", extra={"count": len(self.workers)})

    async def stop_all(self) -> None:
        """Stop all workers gracefully."""
        names = list(self.workers)
        results = await asyncio.gather(
            *(self.workers[name].stop() for name in names),
            return_exceptions=True,
        )

        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.error("Error stopping worker", extra={"worker": name, "error": str(result)})

        logger.info("All workers stopped")

    def get_worker(self, name: str) -> BaseWorker:
        """
        Get a specific worker by name.

        Raises:
            KeyError: If worker not found
        """
        return self.workers[name]

    def get_worker_status(self) -> Dict[str, bool]:
        """Map worker names to whether they are running."""
        return {name: worker.running for name, worker in self.workers.items()}


# Global worker manager instance
worker_manager = WorkerManager()
