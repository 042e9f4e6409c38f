"""Slot hold model definition."""

from datetime import date as date_type, datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, DateTime, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class Hold(Base):
    """
    Temporary claim on one (date, court, start) cell by an anonymous browser.

    A hold blocks other clients only while ``expires_at`` lies in the future;
    readers filter on it and the sweeper deletes expired rows later.
    """

    __tablename__ = "holds"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)
    court_id: Mapped[int] = mapped_column(Integer, nullable=False)
    start: Mapped[str] = mapped_column(String(5), nullable=False)

    client_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        # Only one hold per cell; the upsert conflicts on this triple
        UniqueConstraint("date", "court_id", "start", name="uq_hold_cell"),
        CheckConstraint("court_id > 0", name="ck_hold_court_positive"),
        CheckConstraint("length(client_id) > 0", name="ck_hold_client_id_not_empty"),
    )

    def __repr__(self) -> str:
        return (
            f"<Hold(date={self.date}, court_id={self.court_id}, start={self.start}, "
            f"client_id={self.client_id}, expires_at={self.expires_at})>"
        )
