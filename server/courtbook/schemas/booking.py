"""Booking-related Pydantic schemas."""

from datetime import date as date_type, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .common import Money, SlotSelection, WarningItem, unique_cells


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class PayerKind(str, Enum):
    """Payer kind enumeration."""
    MEMBER = "MEMBER"
    GUEST = "GUEST"


class Funding(str, Enum):
    """Funding source enumeration."""
    GATEWAY = "GATEWAY"
    MEMBERSHIP = "MEMBERSHIP"


class RefundStatus(str, Enum):
    """Refund outcome enumeration."""
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    NO_PAYMENT = "NO_PAYMENT"


class GuestDetails(BaseModel):
    """Contact details of a guest payer."""

    name: str = Field(..., min_length=1, max_length=255, description="Guest name")
    phone: str = Field(..., min_length=6, max_length=32, description="Guest phone number")
    email: Optional[str] = Field(None, max_length=255, description="Guest email")


class FinalizeBookingRequest(BaseModel):
    """Request schema for settling a paid gateway order into a booking."""

    order_id: str = Field(..., min_length=1, max_length=64, description="Gateway order id")
    date: date_type = Field(..., description="Date of the slots")
    selections: List[SlotSelection] = Field(..., min_length=1, max_length=51, description="Cells to book")
    price: Money = Field(..., description="Total paid for all selections")
    client_id: Optional[str] = Field(None, max_length=128, description="Caller's browser id")

    @field_validator("selections")
    @classmethod
    def validate_unique(cls, v: List[SlotSelection]) -> List[SlotSelection]:
        return unique_cells(v)


class GuestFinalizeBookingRequest(FinalizeBookingRequest):
    """Finalize request from a payer without an account."""

    guest: GuestDetails = Field(..., description="Guest contact details")


class FreeBookingRequest(BaseModel):
    """Request schema for booking with membership games."""

    date: date_type = Field(..., description="Date of the slots")
    selections: List[SlotSelection] = Field(..., min_length=1, max_length=51, description="Cells to book")
    client_id: Optional[str] = Field(None, max_length=128, description="Caller's browser id")

    @field_validator("selections")
    @classmethod
    def validate_unique(cls, v: List[SlotSelection]) -> List[SlotSelection]:
        return unique_cells(v)


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling one slot of a booking."""

    booking_id: str = Field(..., description="Booking to cancel a slot of")
    slot_index: int = Field(..., ge=0, description="Position of the slot in the booking")


class GetBookingByOrderRequest(BaseModel):
    """Request schema for looking a booking up by gateway order id."""

    order_id: str = Field(..., min_length=1, max_length=64, description="Gateway order id")


class Customer(BaseModel):
    """Payer details sent to the gateway."""

    name: str = Field(..., min_length=1, max_length=255, description="Customer name")
    email: str = Field(..., min_length=3, max_length=255, description="Customer email")
    phone: str = Field(..., min_length=6, max_length=32, description="Customer phone number")


class CreatePaymentOrderRequest(BaseModel):
    """Request schema for opening a gateway order."""

    price: Money = Field(..., description="Amount to charge")
    customer: Customer = Field(..., description="Payer details")

    @field_validator("price")
    @classmethod
    def validate_positive(cls, v: Money) -> Money:
        if v.amount <= 0:
            raise ValueError("amount must be greater than zero")
        return v


class PaymentOrder(BaseModel):
    """Gateway order response schema."""

    order_id: str = Field(..., description="Gateway order id")
    payment_session_id: Optional[str] = Field(None, description="Session id for the gateway checkout")


class BookedSlot(BaseModel):
    """One slot of a booking."""

    court_id: int = Field(..., description="Court number")
    start: str = Field(..., description="Slot start time (HH:MM)")
    end: str = Field(..., description="Slot end time (HH:MM)")


class Booking(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    order_id: str = Field(..., description="Gateway order id or membership order id")
    payer_kind: PayerKind = Field(..., description="Member or guest")
    user_id: Optional[str] = Field(None, description="Member id")
    payer_name: str = Field(..., description="Payer name")
    payer_email: Optional[str] = Field(None, description="Payer email")
    date: date_type = Field(..., description="Date of the slots")
    slots: List[BookedSlot] = Field(..., description="Booked slots in order")
    price: Money = Field(..., description="Amount still attributed to the remaining slots")
    status: BookingStatus = Field(..., description="Booking status")
    funding: Funding = Field(..., description="Gateway payment or membership games")
    payment_ref: Optional[str] = Field(None, description="Gateway payment id, or MEMBERSHIP")
    created_at: datetime = Field(..., description="Booking creation time (ISO 8601)")


class SettlementResponse(BaseModel):
    """Finalize and free-booking response schema."""

    booking: Booking = Field(..., description="Stored booking")
    replayed: bool = Field(False, description="The order had already been settled")
    warnings: List[WarningItem] = Field(default_factory=list, description="Best-effort steps that failed")


class BookingList(BaseModel):
    """Booking list response schema."""

    items: List[Booking] = Field(..., description="Bookings, newest first")


class RefundSummary(BaseModel):
    """Refund issued for a cancelled slot."""

    id: str = Field(..., description="Refund audit record id")
    refund: Money = Field(..., description="Amount refunded for the slot")
    status: RefundStatus = Field(..., description="Refund outcome")
    refund_id: Optional[str] = Field(None, description="Gateway refund id")


class CancellationResponse(BaseModel):
    """Cancellation response schema."""

    ok: bool = Field(True, description="The slot was cancelled")
    booking_id: str = Field(..., description="Booking the slot belonged to")
    slot_index: int = Field(..., description="Cancelled slot position")
    refund: RefundSummary = Field(..., description="Refund outcome")
    booking_deleted: bool = Field(..., description="The last slot was cancelled")
    remaining: Money = Field(..., description="Amount left on the booking")
    remaining_slots: int = Field(..., ge=0, description="Slots left on the booking")
    message: Optional[str] = Field(None, description="Message for the user")
    warnings: List[WarningItem] = Field(default_factory=list, description="Best-effort steps that failed")
