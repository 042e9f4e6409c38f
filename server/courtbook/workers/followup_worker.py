"""Background worker that retries settlement follow-ups."""

import logging
from datetime import date
from uuid import UUID

from ..core.database import Database
from ..core.observability import metrics_collector
from ..models.followup import FollowUpKind, SettlementFollowUp
from ..services.followup_service import FollowUpService
from ..services.hold_service import Cell, HoldService
from ..services.membership_service import MembershipService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class FollowUpWorker(BaseWorker):
    """
    Retries membership debits and hold releases that failed after settlement.

    Both steps are idempotent, so a retry after a partial success is safe.
    Follow-ups that keep failing are handed to an operator (MANUAL).
    """

    def __init__(self, database: Database, interval_seconds: int = 120, max_attempts: int = 5):
        super().__init__(name="FollowUp", database=database, interval_seconds=interval_seconds)
        self.max_attempts = max_attempts

    async def _retry(self, db, followup: SettlementFollowUp) -> None:
        payload = followup.payload or {}
        if followup.kind == FollowUpKind.MEMBERSHIP_DEBIT:
            await MembershipService(db).debit_for_booking(
                UUID(followup.booking_id), payload["user_id"], int(payload["count"])
            )
        elif followup.kind == FollowUpKind.HOLD_RELEASE:
            cells = [Cell(court_id=int(c["court_id"]), start=c["start"]) for c in payload.get("cells", [])]
            await HoldService(db).release_cells(date.fromisoformat(payload["date"]), cells)
        else:
            raise ValueError(f"Follow-up kind {followup.kind} is not retryable")

    async def process(self) -> None:
        async with self.database.session_factory() as db:
            followups = FollowUpService(db)
            pending = await followups.retryable()

            for followup in pending:
                followup_id = str(followup.id)
                try:
                    await self._retry(db, followup)
                except Exception as e:
                    await db.rollback()
                    # Rollback expires the instance; reload before counting the attempt
                    await db.refresh(followup)
                    logger.warning(
                        "Follow-up retry failed",
                        extra={"followup_id": followup_id, "kind": followup.kind, "error": str(e)}
                    )
                    await followups.mark_failed_attempt(followup, str(e), self.max_attempts)
                    continue

                await db.refresh(followup)
                await followups.mark_done(followup)
                logger.info(
                    "Follow-up resolved",
                    extra={"followup_id": followup_id, "kind": followup.kind}
                )

            metrics_collector.set_pending_followups(await followups.count_pending())
