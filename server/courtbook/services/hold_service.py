"""Hold store: short-lived per-cell claims placed by browsing clients."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, Optional, Sequence
from uuid import uuid4

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.config import settings
from ..core.database import dialect_insert
from ..core.observability import metrics_collector
from ..models.booking import BookingSlot
from ..models.hold import Hold

logger = logging.getLogger(__name__)


class HoldRejection(str, Enum):
    """Why a hold could not be placed on a cell."""
    BOOKED_ELSEWHERE = "BOOKED_ELSEWHERE"
    HELD_BY_OTHER = "HELD_BY_OTHER"


@dataclass
class HoldResult:
    """Outcome of placing one hold."""

    court_id: int
    start: str
    ok: bool
    reason: Optional[HoldRejection] = None
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class Cell:
    court_id: int
    start: str


def cell_filter(model, cells: Iterable) -> object:
    """OR of ``court_id``/``start`` matches for the given cells."""
    return or_(*[
        and_(model.court_id == cell.court_id, model.start == cell.start)
        for cell in cells
    ])


class HoldService:
    """Service for hold placement, release and expiry."""

    def __init__(self, db: AsyncSession, ttl_seconds: Optional[int] = None):
        self.db = db
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.hold_ttl_seconds

    async def _is_booked(self, slot_date: date, court_id: int, start: str) -> bool:
        stmt = select(BookingSlot.id).where(
            BookingSlot.date == slot_date,
            BookingSlot.court_id == court_id,
            BookingSlot.start == start,
        ).limit(1)
        result = await self.db.execute(stmt)
        return result.first() is not None

    async def place_or_refresh_hold(
        self,
        slot_date: date,
        court_id: int,
        start: str,
        client_id: str,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> HoldResult:
        """
        Place a hold on one cell, or refresh the caller's existing hold.

        The write is a single conditional upsert: it inserts a new row, or
        overwrites the existing one only when the caller already owns it or
        it has expired. The row is re-read afterwards to learn who owns it.

        Args:
            slot_date: Calendar date of the cell
            court_id: Court of the cell
            start: Start time ``HH:MM``
            client_id: Opaque browser identifier of the caller
            user_id: Member id, when the caller is signed in
            now: Current time, naive UTC

        Returns:
            HoldResult with ``ok`` and, on failure, the rejection reason
        """
        now = now or utcnow()

        if await self._is_booked(slot_date, court_id, start):
            logger.info(
                "Hold rejected - cell already booked",
                extra={"date": slot_date.isoformat(), "court_id": court_id, "start": start, "client_id": client_id}
            )
            metrics_collector.record_hold_rejected(HoldRejection.BOOKED_ELSEWHERE.value)
            return HoldResult(court_id=court_id, start=start, ok=False, reason=HoldRejection.BOOKED_ELSEWHERE)

        expires_at = now + timedelta(seconds=self.ttl_seconds)
        holds = Hold.__table__

        stmt = dialect_insert(self.db, holds).values(
            id=uuid4(),
            date=slot_date,
            court_id=court_id,
            start=start,
            client_id=client_id,
            user_id=user_id,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[holds.c.date, holds.c.court_id, holds.c.start],
            set_={
                "client_id": stmt.excluded.client_id,
                "user_id": stmt.excluded.user_id,
                "expires_at": stmt.excluded.expires_at,
                "updated_at": stmt.excluded.updated_at,
            },
            where=or_(holds.c.client_id == stmt.excluded.client_id, holds.c.expires_at <= now),
        )
        await self.db.execute(stmt)

        owner = await self.db.execute(
            select(holds.c.client_id, holds.c.expires_at).where(
                holds.c.date == slot_date,
                holds.c.court_id == court_id,
                holds.c.start == start,
            )
        )
        row = owner.first()
        await self.db.commit()

        if row is None or row.client_id != client_id:
            logger.info(
                "Hold rejected - cell held by another client",
                extra={"date": slot_date.isoformat(), "court_id": court_id, "start": start, "client_id": client_id}
            )
            metrics_collector.record_hold_rejected(HoldRejection.HELD_BY_OTHER.value)
            return HoldResult(court_id=court_id, start=start, ok=False, reason=HoldRejection.HELD_BY_OTHER)

        metrics_collector.record_hold_placed(court_id)
        return HoldResult(court_id=court_id, start=start, ok=True, expires_at=row.expires_at)

    async def place_holds(
        self,
        slot_date: date,
        selections: Sequence,
        client_id: str,
        user_id: Optional[str] = None,
    ) -> list[HoldResult]:
        """Place or refresh holds on every selection, one result per selection."""
        results = []
        for selection in selections:
            results.append(
                await self.place_or_refresh_hold(
                    slot_date, selection.court_id, selection.start, client_id, user_id
                )
            )

        logger.info(
            "Holds placed",
            extra={
                "date": slot_date.isoformat(),
                "client_id": client_id,
                "requested": len(selections),
                "placed": sum(1 for r in results if r.ok),
            }
        )
        return results

    async def release_holds(
        self,
        slot_date: date,
        client_id: str,
        selections: Optional[Sequence] = None,
    ) -> int:
        """
        Delete the caller's holds for a date, optionally only on some cells.

        Releasing holds that do not exist is not an error.

        Returns:
            Number of holds deleted
        """
        stmt = delete(Hold).where(Hold.date == slot_date, Hold.client_id == client_id)
        if selections is not None:
            if not selections:
                return 0
            stmt = stmt.where(cell_filter(Hold, selections))

        result = await self.db.execute(stmt)
        await self.db.commit()

        logger.info(
            "Holds released",
            extra={"date": slot_date.isoformat(), "client_id": client_id, "released": result.rowcount}
        )
        return result.rowcount

    async def release_cells(self, slot_date: date, cells: Sequence, commit: bool = True) -> int:
        """Delete holds on the given cells whoever owns them."""
        if not cells:
            return 0
        stmt = delete(Hold).where(Hold.date == slot_date, cell_filter(Hold, cells))
        result = await self.db.execute(stmt)
        if commit:
            await self.db.commit()
        return result.rowcount

    async def find_foreign_hold(
        self,
        slot_date: date,
        cells: Sequence,
        client_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[Hold]:
        """Return the first live hold on ``cells`` owned by a different client."""
        if not cells:
            return None
        now = now or utcnow()
        stmt = select(Hold).where(
            Hold.date == slot_date,
            Hold.expires_at > now,
            Hold.client_id != client_id,
            cell_filter(Hold, cells),
        ).order_by(Hold.court_id, Hold.start).limit(1)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def live_holds_for_date(self, slot_date: date, now: Optional[datetime] = None) -> list[Hold]:
        """Holds on ``slot_date`` that have not expired yet."""
        now = now or utcnow()
        stmt = select(Hold).where(Hold.date == slot_date, Hold.expires_at > now)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def sweep_expired(self, now: Optional[datetime] = None, batch_size: int = 1000) -> int:
        """
        Physically delete expired holds, at most ``batch_size`` per call.

        Returns:
            Number of holds deleted
        """
        now = now or utcnow()
        expired_ids = select(Hold.id).where(Hold.expires_at <= now).limit(batch_size)
        result = await self.db.execute(expired_ids)
        ids = list(result.scalars().all())
        if not ids:
            return 0

        deleted = await self.db.execute(delete(Hold).where(Hold.id.in_(ids), Hold.expires_at <= now))
        await self.db.commit()
        return deleted.rowcount
