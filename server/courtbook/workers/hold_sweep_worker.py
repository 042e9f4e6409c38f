"""Background worker that deletes expired holds and idempotency records."""

import logging

from ..core.database import Database
from ..core.observability import metrics_collector
from ..services.hold_service import HoldService
from ..services.idempotency_service import IdempotencyService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class HoldSweepWorker(BaseWorker):
    """
    Periodically removes holds past their expiry.

    Expired holds already stop blocking other clients, so the sweep only
    reclaims storage. Expired idempotency records are purged on the same
    schedule.
    """

    def __init__(self, database: Database, interval_seconds: int = 60, batch_size: int = 1000):
        super().__init__(name="HoldSweep", database=database, interval_seconds=interval_seconds)
        self.batch_size = batch_size

    async def process(self) -> None:
        async with self.database.session_factory() as db:
            try:
                swept = await HoldService(db).sweep_expired(batch_size=self.batch_size)
                if swept:
                    metrics_collector.record_holds_swept(swept)
                    logger.info(
                        f"Swept {swept} expired holds",
                        extra={"swept_count": swept, "worker": self.name}
                    )

                await IdempotencyService(db).cleanup_expired_records()

            except Exception:
                await db.rollback()
                raise
