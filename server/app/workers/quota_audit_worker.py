"""Background worker that audits the seat counters of open departures."""

import logging

from ..core.database import async_session_factory
from ..services.departure_service import DepartureService
from ..services.quota_ledger import AuditReport, QuotaLedger
from .base import BaseWorker

logger = logging.getLogger(__name__)


class QuotaAuditWorker(BaseWorker):
    """
    Periodically compares every open departure's reserved seats with its
    bounds and its active reservations.

    Findings are logged at CRITICAL and counted by the ledger. Nothing is
    ever corrected here; drift is left in place for an operator.
    """

    def __init__(self, interval_seconds: int = 300, session_factory=async_session_factory):
        super().__init__(name="QuotaAudit", interval_seconds=interval_seconds)
        self.session_factory = session_factory

    async def process(self) -> list[AuditReport]:
        async with self.session_factory() as db:
            ledger = QuotaLedger(db)
            departure_ids = await DepartureService(db).list_open_departure_ids()

            reports = [await ledger.audit(departure_id) for departure_id in departure_ids]

        failed = [report for report in reports if not report.ok]
        logger.info(
            "Quota audit completed",
            extra={
                "worker": self.name,
                "departures_checked": len(reports),
                "departures_inconsistent": len(failed),
            }
        )
        return reports
