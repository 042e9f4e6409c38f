"""Settlement follow-up Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class FollowUpKind(str, Enum):
    """Follow-up kind enumeration."""
    MEMBERSHIP_DEBIT = "MEMBERSHIP_DEBIT"
    HOLD_RELEASE = "HOLD_RELEASE"
    REFUND = "REFUND"
    PAID_CONFLICT = "PAID_CONFLICT"


class FollowUpStatus(str, Enum):
    """Follow-up status enumeration."""
    PENDING = "PENDING"
    DONE = "DONE"
    MANUAL = "MANUAL"


class ListFollowUpsRequest(BaseModel):
    """Request schema for listing follow-ups."""

    status: Optional[FollowUpStatus] = Field(None, description="Only follow-ups in this status")
    limit: int = Field(100, ge=1, le=500, description="Maximum number of results")


class FollowUp(BaseModel):
    """Follow-up response schema."""

    id: str = Field(..., description="Unique follow-up ID")
    kind: FollowUpKind = Field(..., description="Step that did not complete")
    status: FollowUpStatus = Field(..., description="Follow-up status")
    booking_id: Optional[str] = Field(None, description="Related booking")
    order_id: Optional[str] = Field(None, description="Related gateway order")
    payload: dict[str, Any] = Field(default_factory=dict, description="Data needed to finish the step")
    attempts: int = Field(..., description="Attempts so far")
    last_error: Optional[str] = Field(None, description="Most recent failure")
    created_at: datetime = Field(..., description="Creation time (UTC)")


class FollowUpList(BaseModel):
    """Follow-up list response schema."""

    items: List[FollowUp] = Field(..., description="Follow-ups, oldest first")
