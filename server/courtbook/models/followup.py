"""Settlement follow-up model definition."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class FollowUpKind(str, Enum):
    """Best-effort step that did not complete inline."""
    MEMBERSHIP_DEBIT = "MEMBERSHIP_DEBIT"
    HOLD_RELEASE = "HOLD_RELEASE"
    REFUND = "REFUND"
    PAID_CONFLICT = "PAID_CONFLICT"


class FollowUpStatus(str, Enum):
    PENDING = "PENDING"  # the follow-up worker will retry it
    DONE = "DONE"
    MANUAL = "MANUAL"  # needs an operator


class SettlementFollowUp(Base):
    """Queryable record of a secondary settlement step that still needs doing."""

    __tablename__ = "settlement_followups"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    kind: Mapped[FollowUpKind] = mapped_column(String(20), nullable=False, index=True)
    status: Mapped[FollowUpStatus] = mapped_column(
        String(10),
        nullable=False,
        default=FollowUpStatus.PENDING,
        index=True
    )

    booking_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    payload: Mapped[Any] = mapped_column(JSON, nullable=False, default=dict)

    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return (
            f"<SettlementFollowUp(id={self.id}, kind={self.kind}, status={self.status}, "
            f"order_id='{self.order_id}', attempts={self.attempts})>"
        )
