"""Hold-related Pydantic schemas."""

from datetime import date as date_type, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .common import SlotSelection, unique_cells


class HoldRejectionReason(str, Enum):
    """Hold rejection reason enumeration."""
    BOOKED_ELSEWHERE = "BOOKED_ELSEWHERE"
    HELD_BY_OTHER = "HELD_BY_OTHER"


class PlaceHoldsRequest(BaseModel):
    """Request schema for placing or refreshing holds."""

    date: date_type = Field(..., description="Date of the slots")
    selections: List[SlotSelection] = Field(..., min_length=1, max_length=51, description="Cells to hold")
    client_id: str = Field(..., min_length=1, max_length=128, description="Caller's browser id")
    user_id: Optional[str] = Field(None, max_length=128, description="Member id, if signed in")

    @field_validator("selections")
    @classmethod
    def validate_unique(cls, v: List[SlotSelection]) -> List[SlotSelection]:
        return unique_cells(v)


class HoldPlacement(BaseModel):
    """Result of placing one hold."""

    court_id: int = Field(..., description="Court number")
    start: str = Field(..., description="Slot start time (HH:MM)")
    ok: bool = Field(..., description="Hold is owned by the caller")
    reason: Optional[HoldRejectionReason] = Field(None, description="Why the hold was refused")
    expires_at: Optional[datetime] = Field(None, description="Hold expiry (UTC)")


class PlaceHoldsResponse(BaseModel):
    """Hold placement response schema."""

    date: date_type = Field(..., description="Date of the slots")
    results: List[HoldPlacement] = Field(..., description="One result per selection, in request order")
    all_ok: bool = Field(..., description="Every selection is held by the caller")


class ReleaseHoldsRequest(BaseModel):
    """Request schema for releasing holds."""

    date: date_type = Field(..., description="Date of the slots")
    client_id: str = Field(..., min_length=1, max_length=128, description="Caller's browser id")
    selections: Optional[List[SlotSelection]] = Field(None, description="Cells to release; all when omitted")


class ReleaseHoldsResponse(BaseModel):
    """Hold release response schema."""

    ok: bool = Field(True, description="Release completed")
    released: int = Field(..., ge=0, description="Number of holds deleted")
