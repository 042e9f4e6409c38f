"""Booking ledger: persisted PAID bookings and the cells they cover."""

import logging
from datetime import date
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import end_for_start
from ..models.booking import Booking, BookingSlot, BookingStatus
from .hold_service import cell_filter

logger = logging.getLogger(__name__)


class BookingLedger:
    """Reads and writes of bookings; member and guest bookings share one set."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def booked_cells(self, slot_date: date) -> set[tuple[int, str]]:
        """``(court_id, start)`` of every cell covered by a PAID booking on a date."""
        stmt = (
            select(BookingSlot.court_id, BookingSlot.start)
            .join(Booking, Booking.id == BookingSlot.booking_id)
            .where(BookingSlot.date == slot_date, Booking.status == BookingStatus.PAID)
        )
        result = await self.db.execute(stmt)
        return {(row.court_id, row.start) for row in result}

    async def find_booked_cell(self, slot_date: date, cells: Sequence) -> Optional[BookingSlot]:
        """First of ``cells`` already covered by a PAID booking, in request order."""
        if not cells:
            return None
        stmt = (
            select(BookingSlot)
            .join(Booking, Booking.id == BookingSlot.booking_id)
            .where(
                BookingSlot.date == slot_date,
                Booking.status == BookingStatus.PAID,
                cell_filter(BookingSlot, cells),
            )
        )
        result = await self.db.execute(stmt)
        taken = {(slot.court_id, slot.start): slot for slot in result.scalars().all()}
        for cell in cells:
            if (cell.court_id, cell.start) in taken:
                return taken[(cell.court_id, cell.start)]
        return None

    async def get_by_order(self, order_id: str) -> Optional[Booking]:
        stmt = select(Booking).where(Booking.order_id == order_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, booking_id: UUID, for_update: bool = False) -> Optional[Booking]:
        """
        Load a booking by id.

        Args:
            booking_id: Booking primary key
            for_update: Lock the row until the transaction ends (PostgreSQL)
        """
        stmt = select(Booking).where(Booking.id == booking_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: str) -> list[Booking]:
        """A member's bookings, newest first."""
        stmt = (
            select(Booking)
            .where(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    def add(self, booking: Booking, selections: Sequence) -> Booking:
        """
        Stage a booking and one slot row per selection, in order.

        Nothing is flushed; the caller's commit raises ``IntegrityError`` when
        the order id or any cell is already taken.
        """
        booking.slots = [
            BookingSlot(
                position=position,
                date=booking.date,
                court_id=selection.court_id,
                start=selection.start,
                end=getattr(selection, "end", None) or end_for_start(selection.start),
            )
            for position, selection in enumerate(selections)
        ]
        self.db.add(booking)
        return booking

    def remove_slot(self, booking: Booking, slot_index: int) -> None:
        """Drop one slot and renumber the rest so positions stay dense."""
        removed = booking.slots.pop(slot_index)
        for position, slot in enumerate(booking.slots):
            slot.position = position
        logger.debug(
            "Slot removed from booking",
            extra={"booking_id": str(booking.id), "court_id": removed.court_id, "start": removed.start}
        )
