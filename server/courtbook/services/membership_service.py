"""Membership ledger: prepaid game balances and their counters."""

import logging
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import add_months, utcnow
from ..core.dependencies import CurrentUser
from ..core.exceptions import NotFoundError, ValidationError
from ..models.booking import Booking
from ..models.membership import MembershipAccount, MembershipStatus
from .payment_gateway import PaymentGateway, confirmed_payments

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MembershipPlan:
    plan_id: str
    name: str
    duration_months: int
    games: int
    amount: int  # minor units


PLANS: dict[str, MembershipPlan] = {
    "1M": MembershipPlan("1M", "1 month", 1, 25, 299900),
    "3M": MembershipPlan("3M", "3 months", 3, 75, 899900),
    "6M": MembershipPlan("6M", "6 months", 6, 150, 1799900),
}


def _random_suffix(length: int = 6) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def new_order_id(prefix: str) -> str:
    """``<prefix>_<epoch ms>_<6 random chars>``."""
    return f"{prefix}_{int(time.time() * 1000)}_{_random_suffix()}"


class MembershipService:
    """Service for membership purchase and game-credit accounting."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_active(self, user_id: str) -> Optional[MembershipAccount]:
        """
        The member's most recently created PAID membership, if any.

        Validity is not checked here; only credit-back consults it.
        """
        stmt = (
            select(MembershipAccount)
            .where(MembershipAccount.user_id == user_id, MembershipAccount.status == MembershipStatus.PAID)
            .order_by(MembershipAccount.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _reload(self, membership_id: UUID) -> Optional[MembershipAccount]:
        stmt = (
            select(MembershipAccount)
            .where(MembershipAccount.id == membership_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def debit_for_booking(self, booking_id: UUID, user_id: str, count: int) -> Optional[MembershipAccount]:
        """
        Charge ``count`` games for a gateway-paid booking, exactly once.

        The booking is claimed by setting its ``membership_id`` only while it
        is still unset; the counter moves only if the claim succeeded, in the
        same transaction. The counter is clamped to ``total_games``.

        Returns:
            The debited membership, or None when the member has none or the
            booking was already debited
        """
        membership = await self.get_active(user_id)
        if membership is None:
            return None

        claim = await self.db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.membership_id.is_(None))
            .values(membership_id=membership.id)
            .execution_options(synchronize_session=False)
        )
        if claim.rowcount != 1:
            await self.db.commit()
            logger.info(
                "Membership debit skipped - booking already debited",
                extra={"booking_id": str(booking_id), "user_id": user_id}
            )
            return None

        await self.db.execute(
            update(MembershipAccount)
            .where(MembershipAccount.id == membership.id)
            .values(
                games_used=case(
                    (
                        MembershipAccount.games_used + count > MembershipAccount.total_games,
                        MembershipAccount.total_games,
                    ),
                    else_=MembershipAccount.games_used + count,
                ),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        membership = await self._reload(membership.id)
        logger.info(
            "Membership debited for booking",
            extra={
                "booking_id": str(booking_id),
                "membership_id": str(membership.id),
                "count": count,
                "games_used": membership.games_used,
                "total_games": membership.total_games,
            }
        )
        return membership

    async def try_debit(self, membership_id: UUID, count: int) -> bool:
        """
        Take ``count`` games only if that many remain. Does not commit.

        Concurrent callers cannot overdraw: the condition is evaluated by the
        store against the current counter.
        """
        result = await self.db.execute(
            update(MembershipAccount)
            .where(
                MembershipAccount.id == membership_id,
                MembershipAccount.games_used + count <= MembershipAccount.total_games,
            )
            .values(games_used=MembershipAccount.games_used + count, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def credit_back(self, user_id: str, now: Optional[datetime] = None, commit: bool = True) -> bool:
        """
        Return one game to the member's latest membership that has games used.

        Nothing happens when that membership is past its validity window.

        Returns:
            True if a game was credited back
        """
        now = now or utcnow()
        stmt = (
            select(MembershipAccount)
            .where(
                MembershipAccount.user_id == user_id,
                MembershipAccount.status == MembershipStatus.PAID,
                MembershipAccount.games_used > 0,
            )
            .order_by(MembershipAccount.created_at.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        membership = result.scalar_one_or_none()
        if membership is None:
            return False

        if add_months(membership.created_at, membership.duration_months) <= now:
            logger.info(
                "Membership credit-back skipped - membership expired",
                extra={"membership_id": str(membership.id), "user_id": user_id}
            )
            return False

        credited = await self.db.execute(
            update(MembershipAccount)
            .where(MembershipAccount.id == membership.id, MembershipAccount.games_used > 0)
            .values(games_used=MembershipAccount.games_used - 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if commit:
            await self.db.commit()
        return credited.rowcount == 1

    async def create_membership_order(
        self,
        plan_id: str,
        user: CurrentUser,
        gateway: PaymentGateway,
        return_url: Optional[str] = None,
    ) -> tuple[MembershipAccount, str | None]:
        """
        Open a PENDING membership and its gateway order.

        Returns:
            Tuple of (membership, payment_session_id)

        Raises:
            ValidationError: If the plan id is unknown
        """
        plan = PLANS.get(plan_id)
        if plan is None:
            raise ValidationError("Invalid planId", errors={"plan_id": f"must be one of {sorted(PLANS)}"})

        membership = MembershipAccount(
            order_id=new_order_id("mem"),
            user_id=user.user_id,
            user_name=user.name or "",
            user_email=user.email,
            plan_id=plan.plan_id,
            plan_name=plan.name,
            duration_months=plan.duration_months,
            total_games=plan.games,
            games_used=0,
            amount=plan.amount,
            currency="INR",
            status=MembershipStatus.PENDING,
        )
        self.db.add(membership)
        await self.db.commit()

        order = await gateway.create_order(
            order_id=membership.order_id,
            amount=plan.amount,
            currency=membership.currency,
            customer={
                "customer_id": user.user_id,
                "customer_name": user.name or "Member",
                "customer_email": user.email,
                "customer_phone": user.phone or "9999999999",
            },
            note=f"membership:{plan.plan_id}",
            return_url=return_url,
        )

        logger.info(
            "Membership order created",
            extra={"order_id": membership.order_id, "user_id": user.user_id, "plan_id": plan.plan_id}
        )
        return membership, order.payment_session_id

    async def confirm_membership(self, order_id: str, user: CurrentUser, gateway: PaymentGateway) -> MembershipAccount:
        """
        Mark a membership PAID once the gateway reports a successful payment.

        Confirming an already PAID membership returns it unchanged.

        Raises:
            PaymentNotConfirmedError: If no successful payment exists yet
            NotFoundError: If the caller has no membership with this order id
        """
        payments = await confirmed_payments(gateway, order_id)

        stmt = select(MembershipAccount).where(
            MembershipAccount.order_id == order_id,
            MembershipAccount.user_id == user.user_id,
        )
        result = await self.db.execute(stmt)
        membership = result.scalar_one_or_none()
        if membership is None:
            raise NotFoundError(
                resource_type="membership",
                resource_id=order_id,
                detail="Membership not found for this order."
            )

        if membership.status != MembershipStatus.PAID:
            membership.status = MembershipStatus.PAID
            membership.payment_raw = [payment.raw for payment in payments]
            await self.db.commit()
            logger.info(
                "Membership confirmed",
                extra={"order_id": order_id, "user_id": user.user_id, "membership_id": str(membership.id)}
            )

        return membership
