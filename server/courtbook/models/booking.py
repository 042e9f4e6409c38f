"""Booking and booked slot model definitions."""

from datetime import date as date_type, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utcnow
from ..core.database import Base


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class PayerKind(str, Enum):
    """Who paid for a booking."""
    MEMBER = "MEMBER"
    GUEST = "GUEST"


class Funding(str, Enum):
    """How a booking was paid for."""
    GATEWAY = "GATEWAY"
    MEMBERSHIP = "MEMBERSHIP"


MEMBERSHIP_PAYMENT_REF = "MEMBERSHIP"


class Booking(Base):
    """Finalized reservation keyed by the payment-gateway order id."""

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Idempotency anchor for settlement
    order_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)

    # Tagged payer: MEMBER carries user_id, GUEST carries name/phone
    payer_kind: Mapped[PayerKind] = mapped_column(String(10), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    payer_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    payer_email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    payer_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)

    date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)

    # Minor currency units (paise)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")

    status: Mapped[BookingStatus] = mapped_column(
        String(10),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True
    )
    funding: Mapped[Funding] = mapped_column(String(12), nullable=False, default=Funding.GATEWAY)
    payment_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payment_raw: Mapped[Any] = mapped_column(JSON, nullable=True)

    # Set once, when membership credit has been debited for this booking
    membership_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("memberships.id", ondelete="SET NULL"),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_booking_amount_non_negative"),
        CheckConstraint("length(order_id) > 0", name="ck_booking_order_id_not_empty"),
        CheckConstraint("length(currency) = 3", name="ck_booking_currency_length"),
        CheckConstraint(
            "payer_kind != 'MEMBER' OR user_id IS NOT NULL",
            name="ck_booking_member_has_user"
        ),
    )

    slots: Mapped[list["BookingSlot"]] = relationship(
        "BookingSlot",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingSlot.position",
        lazy="selectin",
    )

    @property
    def is_membership_funded(self) -> bool:
        return self.funding == Funding.MEMBERSHIP or self.payment_ref == MEMBERSHIP_PAYMENT_REF

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, order_id='{self.order_id}', date={self.date}, "
            f"amount={self.amount}, status={self.status})>"
        )


class BookingSlot(Base):
    """One booked cell; the unique cell constraint forbids double booking."""

    __tablename__ = "booking_slots"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    court_id: Mapped[int] = mapped_column(Integer, nullable=False)
    start: Mapped[str] = mapped_column(String(5), nullable=False)
    end: Mapped[str] = mapped_column(String(5), nullable=False)

    __table_args__ = (
        UniqueConstraint("date", "court_id", "start", name="uq_booking_slot_cell"),
        CheckConstraint("court_id > 0", name="ck_booking_slot_court_positive"),
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="slots")

    def __repr__(self) -> str:
        return f"<BookingSlot(date={self.date}, court_id={self.court_id}, start={self.start})>"
