"""Ledger of settlement steps that did not complete inline."""

import logging
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.observability import metrics_collector
from ..models.followup import FollowUpKind, FollowUpStatus, SettlementFollowUp

logger = logging.getLogger(__name__)


class FollowUpService:
    """Service for recording and resolving settlement follow-ups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        kind: FollowUpKind,
        error: str,
        booking_id: Optional[str] = None,
        order_id: Optional[str] = None,
        payload: Optional[dict[str, Any]] = None,
        status: FollowUpStatus = FollowUpStatus.PENDING,
    ) -> SettlementFollowUp:
        """
        Persist a follow-up in its own transaction.

        The session must not hold uncommitted work the caller wants to keep
        separate; anything pending is committed along with the follow-up.
        """
        followup = SettlementFollowUp(
            kind=kind,
            status=status,
            booking_id=booking_id,
            order_id=order_id,
            payload=payload or {},
            attempts=1,
            last_error=error,
        )
        self.db.add(followup)
        await self.db.commit()

        metrics_collector.record_followup(kind.value)
        logger.warning(
            "Settlement follow-up recorded",
            extra={
                "followup_id": str(followup.id),
                "kind": kind.value,
                "status": status.value,
                "booking_id": booking_id,
                "order_id": order_id,
                "error": error,
            }
        )
        return followup

    async def find_for_order(self, kind: FollowUpKind, order_id: str) -> Optional[SettlementFollowUp]:
        """An existing follow-up of ``kind`` for an order, if one was recorded."""
        stmt = (
            select(SettlementFollowUp)
            .where(SettlementFollowUp.kind == kind, SettlementFollowUp.order_id == order_id)
            .order_by(SettlementFollowUp.created_at)
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_followups(self, status: Optional[FollowUpStatus] = None, limit: int = 100) -> list[SettlementFollowUp]:
        """Follow-ups, oldest first, optionally filtered by status."""
        stmt = select(SettlementFollowUp).order_by(SettlementFollowUp.created_at).limit(limit)
        if status is not None:
            stmt = stmt.where(SettlementFollowUp.status == status)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def retryable(self, limit: int = 100) -> list[SettlementFollowUp]:
        """PENDING follow-ups the worker knows how to retry."""
        stmt = (
            select(SettlementFollowUp)
            .where(
                SettlementFollowUp.status == FollowUpStatus.PENDING,
                SettlementFollowUp.kind.in_([FollowUpKind.MEMBERSHIP_DEBIT, FollowUpKind.HOLD_RELEASE]),
            )
            .order_by(SettlementFollowUp.created_at)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def mark_done(self, followup: SettlementFollowUp) -> None:
        followup.status = FollowUpStatus.DONE
        followup.last_error = None
        await self.db.commit()

    async def mark_failed_attempt(self, followup: SettlementFollowUp, error: str, max_attempts: int) -> None:
        """Count a failed retry; give up to an operator after ``max_attempts``."""
        followup.attempts += 1
        followup.last_error = error
        if followup.attempts >= max_attempts:
            followup.status = FollowUpStatus.MANUAL
            logger.error(
                "Settlement follow-up needs manual attention",
                extra={"followup_id": str(followup.id), "kind": followup.kind, "attempts": followup.attempts}
            )
        await self.db.commit()

    async def count_pending(self) -> int:
        stmt = select(func.count()).select_from(SettlementFollowUp).where(
            SettlementFollowUp.status == FollowUpStatus.PENDING
        )
        result = await self.db.execute(stmt)
        return result.scalar_one()
