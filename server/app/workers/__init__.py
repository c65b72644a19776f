"""Background workers for the departure booking service."""

from .idempotency_cleanup_worker import IdempotencyCleanupWorker
from .quota_audit_worker import QuotaAuditWorker

__all__ = ["IdempotencyCleanupWorker", "QuotaAuditWorker"]
