"""Availability projector: the per-court slot grid for one date."""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import build_daily_grid, court_ids, is_past, utcnow
from ..core.config import settings
from .booking_ledger import BookingLedger
from .hold_service import HoldService

logger = logging.getLogger(__name__)


class SlotStatus(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    HELD = "held"
    HELD_BY_ME = "heldByMe"


@dataclass
class SlotView:
    court_id: int
    start: str
    end: str
    status: SlotStatus
    past: bool


@dataclass
class CourtRow:
    court_id: int
    slots: list[SlotView]


class AvailabilityService:
    """Read-only projection of bookings and live holds onto the daily grid."""

    def __init__(self, db: AsyncSession, tz_name: Optional[str] = None):
        self.db = db
        self.tz_name = tz_name or settings.local_timezone

    async def get_availability(
        self,
        slot_date: date,
        client_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[CourtRow]:
        """
        Project every court's slots for ``slot_date``.

        Status precedence is booked, then held (``heldByMe`` for the caller's
        own holds), then available. Expired holds are ignored.

        Args:
            slot_date: Date to project
            client_id: Caller's browser id, to tell its holds apart
            now: Current time, naive UTC

        Returns:
            One row per court, slots in grid order
        """
        now = now or utcnow()

        booked = await BookingLedger(self.db).booked_cells(slot_date)
        holds = await HoldService(self.db).live_holds_for_date(slot_date, now)
        held_by = {(hold.court_id, hold.start): hold.client_id for hold in holds}

        grid = build_daily_grid()
        rows = []
        for court_id in court_ids():
            slots = []
            for grid_slot in grid:
                cell = (court_id, grid_slot.start)
                if cell in booked:
                    status = SlotStatus.BOOKED
                elif cell in held_by:
                    status = SlotStatus.HELD_BY_ME if client_id and held_by[cell] == client_id else SlotStatus.HELD
                else:
                    status = SlotStatus.AVAILABLE

                slots.append(
                    SlotView(
                        court_id=court_id,
                        start=grid_slot.start,
                        end=grid_slot.end,
                        status=status,
                        past=is_past(slot_date, grid_slot.start, now, self.tz_name),
                    )
                )
            rows.append(CourtRow(court_id=court_id, slots=slots))

        logger.debug(
            "Availability projected",
            extra={"date": slot_date.isoformat(), "booked": len(booked), "held": len(held_by)}
        )
        return rows
