"""Refund audit record model definition."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class RefundSource(str, Enum):
    BOOKING = "BOOKING"
    EVENT = "EVENT"


class RefundGateway(str, Enum):
    CASHFREE = "CASHFREE"
    NONE = "NONE"


class RefundStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    NO_PAYMENT = "NO_PAYMENT"


class Refund(Base):
    """Append-only audit trail of one cancellation; never updated."""

    __tablename__ = "refunds"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    source: Mapped[RefundSource] = mapped_column(String(10), nullable=False, default=RefundSource.BOOKING)
    booking_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    slot_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    # Per-slot refund in minor units (0 for membership bookings)
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")

    gateway: Mapped[RefundGateway] = mapped_column(String(10), nullable=False, default=RefundGateway.NONE)
    refund_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    gateway_response: Mapped[Any] = mapped_column(JSON, nullable=True)

    status: Mapped[RefundStatus] = mapped_column(String(12), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Booking state around the cancellation
    amount_before: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_after: Mapped[int] = mapped_column(Integer, nullable=False)
    slots_before: Mapped[int] = mapped_column(Integer, nullable=False)
    slots_after: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_refund_amount_non_negative"),
        CheckConstraint("amount_after >= 0", name="ck_refund_amount_after_non_negative"),
        CheckConstraint("slots_after = slots_before - 1", name="ck_refund_one_slot_per_record"),
    )

    def __repr__(self) -> str:
        return (
            f"<Refund(id={self.id}, booking_id='{self.booking_id}', amount={self.amount}, "
            f"status={self.status})>"
        )
