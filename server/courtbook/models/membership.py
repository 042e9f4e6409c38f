"""Membership account model definition."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, DateTime, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import add_months, utcnow
from ..core.database import Base


class MembershipStatus(str, Enum):
    """Membership purchase status enumeration."""
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class MembershipAccount(Base):
    """Prepaid balance of games bought with one plan purchase."""

    __tablename__ = "memberships"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    order_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    user_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    user_email: Mapped[str] = mapped_column(String(255), nullable=False)

    plan_id: Mapped[str] = mapped_column(String(8), nullable=False)
    plan_name: Mapped[str] = mapped_column(String(64), nullable=False)
    duration_months: Mapped[int] = mapped_column(Integer, nullable=False)

    total_games: Mapped[int] = mapped_column(Integer, nullable=False)
    games_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Minor currency units
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")

    status: Mapped[MembershipStatus] = mapped_column(
        String(10),
        nullable=False,
        default=MembershipStatus.PENDING,
        index=True
    )
    payment_raw: Mapped[Any] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("games_used >= 0", name="ck_membership_games_used_non_negative"),
        CheckConstraint("games_used <= total_games", name="ck_membership_games_used_lte_total"),
        CheckConstraint("total_games > 0", name="ck_membership_total_games_positive"),
        CheckConstraint("duration_months > 0", name="ck_membership_duration_positive"),
    )

    @property
    def remaining(self) -> int:
        return max(0, self.total_games - self.games_used)

    @property
    def percent_used(self) -> int:
        if self.total_games <= 0:
            return 0
        return round(self.games_used / self.total_games * 100)

    @property
    def valid_until(self) -> datetime:
        return add_months(self.created_at, self.duration_months)

    def is_within_validity(self, now: datetime) -> bool:
        return self.status == MembershipStatus.PAID and self.valid_until > now

    def __repr__(self) -> str:
        return (
            f"<MembershipAccount(id={self.id}, user_id='{self.user_id}', plan={self.plan_id}, "
            f"games={self.games_used}/{self.total_games}, status={self.status})>"
        )
