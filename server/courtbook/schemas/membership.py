"""Membership-related Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field

from .common import Money


class MembershipStatus(str, Enum):
    """Membership status enumeration."""
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class CreateMembershipOrderRequest(BaseModel):
    """Request schema for buying a membership plan."""

    plan_id: Literal["1M", "3M", "6M"] = Field(..., description="Plan to buy")


class ConfirmMembershipRequest(BaseModel):
    """Request schema for confirming a membership payment."""

    order_id: str = Field(..., min_length=1, max_length=64, description="Membership order id")


class Membership(BaseModel):
    """Membership response schema."""

    id: str = Field(..., description="Unique membership ID")
    order_id: str = Field(..., description="Membership order id")
    plan_id: str = Field(..., description="Plan id")
    plan_name: str = Field(..., description="Plan name")
    duration_months: int = Field(..., description="Validity in months")
    total_games: int = Field(..., description="Games included")
    games_used: int = Field(..., description="Games consumed")
    remaining: int = Field(..., description="Games left")
    percent_used: int = Field(..., description="Share of games consumed, 0-100")
    price: Money = Field(..., description="Plan price")
    status: MembershipStatus = Field(..., description="Membership status")
    valid_until: datetime = Field(..., description="End of validity (UTC)")
    created_at: datetime = Field(..., description="Purchase time (UTC)")


class MembershipOrderResponse(BaseModel):
    """Membership order response schema."""

    order_id: str = Field(..., description="Membership order id")
    payment_session_id: Optional[str] = Field(None, description="Session id for the gateway checkout")
    membership: Membership = Field(..., description="Pending membership")


class ActiveMembershipResponse(BaseModel):
    """Active membership response schema."""

    membership: Optional[Membership] = Field(None, description="Latest paid membership, if any")
