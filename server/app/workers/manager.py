"""Worker manager for coordinating background tasks."""

import asyncio
import logging
from typing import Dict

from ..core.config import settings
from .base import BaseWorker
from .idempotency_cleanup_worker import IdempotencyCleanupWorker
from .quota_audit_worker import QuotaAuditWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """Starts, stops and reports on the application's background workers."""

    def __init__(self):
        self.workers: Dict[str, BaseWorker] = {
            "quota_audit": QuotaAuditWorker(interval_seconds=settings.quota_audit_interval_seconds),
            "idempotency_cleanup": IdempotencyCleanupWorker(),
        }

    async def start_all(self) -> None:
        """Start all workers."""
        for worker in self.workers.values():
            await worker.start()
        logger.info("Background workers started", extra={"workers": list(self.workers)})

    async def stop_all(self) -> None:
        """Stop all workers, logging any that fail to stop cleanly."""
        results = await asyncio.gather(
            *(worker.stop() for worker in self.workers.values()),
            return_exceptions=True
        )

        for name, result in zip(self.workers, results):
            if isinstance(result, Exception):
                logger.error(
                    "Error stopping worker",
                    extra={"worker": name, "error": str(result)}
                )

        logger.info("Background workers stopped")

    def get_worker(self, name: str) -> BaseWorker:
        """
        Get a specific worker by name.

        Raises:
            KeyError: If worker not found
        """
        return self.workers[name]

    def get_worker_status(self) -> Dict[str, bool]:
        """Running state of every worker, by name."""
        return {name: worker.running for name, worker in self.workers.items()}


# Global worker manager instance
worker_manager = WorkerManager()
