"""Background worker that purges expired idempotency records."""

from ..core.database import async_session_factory
from ..services.idempotency_service import IdempotencyService
from .base import BaseWorker


class IdempotencyCleanupWorker(BaseWorker):
    """Deletes stored idempotent responses whose TTL has passed."""

    def __init__(self, interval_seconds: int = 3600, session_factory=async_session_factory):
        super().__init__(name="IdempotencyCleanup", interval_seconds=interval_seconds)
        self.session_factory = session_factory

    async def process(self) -> int:
        async with self.session_factory() as db:
            return await IdempotencyService(db).cleanup_expired_records()
