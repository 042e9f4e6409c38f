"""Availability-related Pydantic schemas."""

from datetime import date as date_type
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class SlotStatus(str, Enum):
    """Slot status enumeration."""
    AVAILABLE = "available"
    BOOKED = "booked"
    HELD = "held"
    HELD_BY_ME = "heldByMe"


class GetAvailabilityRequest(BaseModel):
    """Request schema for the availability grid."""

    date: date_type = Field(..., description="Date to show (YYYY-MM-DD)")
    client_id: Optional[str] = Field(None, max_length=128, description="Caller's browser id")


class SlotAvailability(BaseModel):
    """Status of one slot."""

    court_id: int = Field(..., description="Court number")
    start: str = Field(..., description="Slot start time (HH:MM)")
    end: str = Field(..., description="Slot end time (HH:MM)")
    status: SlotStatus = Field(..., description="Slot status")
    past: bool = Field(..., description="Slot has already started today")


class CourtAvailability(BaseModel):
    """All slots of one court."""

    court_id: int = Field(..., description="Court number")
    slots: List[SlotAvailability] = Field(..., description="Slots in time order")


class AvailabilityResponse(BaseModel):
    """Availability grid response schema."""

    date: date_type = Field(..., description="Date shown")
    courts: List[CourtAvailability] = Field(..., description="One entry per court")
