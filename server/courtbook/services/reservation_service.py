"""Reservation orchestrator: finalize, membership-funded booking and cancellation."""

import logging
import re
import secrets
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Sequence, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import end_for_start, utcnow
from ..core.config import settings
from ..core.dependencies import CurrentUser
from ..core.exceptions import (
    ForbiddenError,
    GatewayUnavailableError,
    InsufficientCreditError,
    InvalidSlotIndexError,
    NoActiveMembershipError,
    NotFoundError,
    OrderAlreadyCancelledError,
    SlotAlreadyBookedError,
    SlotHeldByOtherError,
)
from ..core.observability import metrics_collector
from ..models.booking import MEMBERSHIP_PAYMENT_REF, Booking, BookingStatus, Funding, PayerKind
from ..models.followup import FollowUpKind, FollowUpStatus
from ..models.refund import Refund, RefundGateway, RefundSource, RefundStatus
from .booking_ledger import BookingLedger
from .followup_service import FollowUpService
from .hold_service import Cell, HoldService
from .membership_service import MembershipService, new_order_id
from .payment_gateway import GatewayError, GatewayOrder, PaymentGateway, confirmed_payments

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MemberPayer:
    user_id: str
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None


@dataclass(frozen=True)
class GuestPayer:
    name: str
    phone: str
    email: Optional[str] = None


Payer = Union[MemberPayer, GuestPayer]


@dataclass
class SettlementWarning:
    """Best-effort step that failed; the primary action still stands."""

    code: str
    message: str
    followup_id: Optional[str] = None


@dataclass
class SettlementOutcome:
    booking: Booking
    warnings: list[SettlementWarning] = field(default_factory=list)
    replayed: bool = False


@dataclass
class CancellationOutcome:
    booking_id: str
    slot_index: int
    refund: Refund
    booking_deleted: bool
    remaining_amount: int
    remaining_slots: int
    warnings: list[SettlementWarning] = field(default_factory=list)


def even_split(amount: int, slot_count: int) -> int:
    """
    Refund for one slot: the current amount shared evenly over the current
    slots, rounded half up to a whole minor unit.
    """
    if slot_count <= 0:
        return 0
    return (2 * amount + slot_count) // (2 * slot_count)


def _cell_end(cell) -> str:
    return getattr(cell, "end", None) or end_for_start(cell.start)


class ReservationService:
    """Sequences verify, settle, debit and release across the ledgers."""

    def __init__(self, db: AsyncSession, gateway: PaymentGateway):
        self.db = db
        self.gateway = gateway
        self.ledger = BookingLedger(db)
        self.holds = HoldService(db)
        self.memberships = MembershipService(db)
        self.followups = FollowUpService(db)

    async def _check_cells_free(
        self,
        slot_date: date,
        selections: Sequence,
        client_id: Optional[str],
    ) -> None:
        """Raise if any cell is booked, or held by someone other than ``client_id``."""
        booked = await self.ledger.find_booked_cell(slot_date, selections)
        if booked is not None:
            raise SlotAlreadyBookedError(slot_date, booked.court_id, booked.start, booked.end)

        if client_id:
            foreign = await self.holds.find_foreign_hold(slot_date, selections, client_id)
            if foreign is not None:
                logger.info(
                    "Settlement blocked by foreign hold",
                    extra={"date": slot_date.isoformat(), "court_id": foreign.court_id, "start": foreign.start}
                )
                raise SlotHeldByOtherError(slot_date, foreign.court_id, foreign.start, end_for_start(foreign.start))

    async def _report_paid_conflict(
        self,
        order_id: str,
        slot_date: date,
        selections: Sequence,
        amount: int,
        currency: str,
        conflict: Union[SlotAlreadyBookedError, SlotHeldByOtherError],
    ) -> Union[SlotAlreadyBookedError, SlotHeldByOtherError]:
        """
        Record that money moved but no booking exists, and build the error.

        Repeated calls for the same order reuse the first follow-up. A later
        successful settlement of the order resolves it.
        """
        await self.db.rollback()
        followup = await self.followups.find_for_order(FollowUpKind.PAID_CONFLICT, order_id)
        if followup is None:
            followup = await self.followups.record(
                FollowUpKind.PAID_CONFLICT,
                error=conflict.problem_details.get("detail", conflict.code),
                order_id=order_id,
                payload={
                    "date": slot_date.isoformat(),
                    "selections": [
                        {"court_id": s.court_id, "start": s.start, "end": _cell_end(s)} for s in selections
                    ],
                    "amount": amount,
                    "currency": currency,
                },
                status=FollowUpStatus.MANUAL,
            )

        metrics_collector.record_settlement_conflict(payment_captured=True)
        logger.error(
            "Payment captured but slot unavailable",
            extra={
                "order_id": order_id,
                "code": conflict.code,
                "date": slot_date.isoformat(),
                "followup_id": str(followup.id),
            }
        )
        slot = conflict.problem_details["slot"]
        return type(conflict)(
            slot_date,
            slot["court_id"],
            slot["start"],
            slot.get("end"),
            payment_captured=True,
            followup_id=str(followup.id),
        )

    async def _resolve_paid_conflict(self, order_id: str) -> None:
        """Close a conflict follow-up once a retry of the order settles."""
        followup = await self.followups.find_for_order(FollowUpKind.PAID_CONFLICT, order_id)
        if followup is not None and followup.status != FollowUpStatus.DONE:
            await self.followups.mark_done(followup)
            logger.info(
                "Paid conflict resolved by settlement",
                extra={"order_id": order_id, "followup_id": str(followup.id)}
            )

    async def _was_cancelled(self, order_id: str) -> bool:
        """Whether a cancellation has already refunded slots of this order."""
        stmt = (
            select(Refund.id)
            .where(Refund.source == RefundSource.BOOKING, Refund.order_id == order_id)
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def _release_booked_holds(
        self,
        booking_id: UUID,
        order_id: str,
        slot_date: date,
        cells: list[Cell],
    ) -> Optional[SettlementWarning]:
        try:
            await self.holds.release_cells(slot_date, cells)
        except Exception as e:
            await self.db.rollback()
            logger.warning(
                "Hold release after settlement failed",
                extra={"booking_id": str(booking_id), "order_id": order_id, "error": str(e)},
                exc_info=True,
            )
            followup = await self.followups.record(
                FollowUpKind.HOLD_RELEASE,
                error=str(e),
                booking_id=str(booking_id),
                order_id=order_id,
                payload={
                    "date": slot_date.isoformat(),
                    "cells": [{"court_id": c.court_id, "start": c.start} for c in cells],
                },
            )
            return SettlementWarning("HOLD_RELEASE_FAILED", "Slot holds could not be released yet.", str(followup.id))
        return None

    async def _debit_membership(
        self,
        booking_id: UUID,
        order_id: str,
        user_id: str,
        count: int,
    ) -> Optional[SettlementWarning]:
        try:
            await self.memberships.debit_for_booking(booking_id, user_id, count)
        except Exception as e:
            await self.db.rollback()
            logger.warning(
                "Membership debit after settlement failed",
                extra={"booking_id": str(booking_id), "order_id": order_id, "error": str(e)},
                exc_info=True,
            )
            followup = await self.followups.record(
                FollowUpKind.MEMBERSHIP_DEBIT,
                error=str(e),
                booking_id=str(booking_id),
                order_id=order_id,
                payload={"user_id": user_id, "count": count},
            )
            return SettlementWarning(
                "MEMBERSHIP_DEBIT_FAILED",
                "Booking confirmed, but membership usage could not be updated.",
                str(followup.id),
            )
        return None

    async def _after_settlement(self, booking: Booking) -> list[SettlementWarning]:
        """
        Idempotent follow-up steps; safe to run again on replay.

        A failed step rolls the session back, so the booking is reloaded
        before it is handed back.
        """
        booking_id, order_id, slot_date, user_id = booking.id, booking.order_id, booking.date, booking.user_id
        cells = [Cell(slot.court_id, slot.start) for slot in booking.slots]
        debit = booking.payer_kind == PayerKind.MEMBER and booking.funding == Funding.GATEWAY

        warnings = []
        if debit:
            warning = await self._debit_membership(booking_id, order_id, user_id, len(cells))
            if warning:
                warnings.append(warning)

        warning = await self._release_booked_holds(booking_id, order_id, slot_date, cells)
        if warning:
            warnings.append(warning)

        if warnings:
            await self.db.refresh(booking)
        return warnings

    async def finalize_booking(
        self,
        order_id: str,
        payer: Payer,
        slot_date: date,
        selections: Sequence,
        amount: int,
        currency: str,
        client_id: Optional[str] = None,
    ) -> SettlementOutcome:
        """
        Turn a paid gateway order into a PAID booking.

        Steps: verify payment, short-circuit replays of the same order,
        check conflicts and foreign holds, write the booking, then debit
        membership credit and release holds as best-effort follow-ups.

        Raises:
            PaymentNotConfirmedError: If the gateway reports no successful payment
            SlotAlreadyBookedError: If a cell is already booked; after payment,
                with ``payment_captured`` and a follow-up id
            SlotHeldByOtherError: If another client holds a requested cell; also
                carries ``payment_captured`` and a follow-up id
            OrderAlreadyCancelledError: If the order's booking was cancelled
                in full and refunded
        """
        payments = await confirmed_payments(self.gateway, order_id)

        existing = await self.ledger.get_by_order(order_id)
        if existing is not None and existing.status == BookingStatus.PAID:
            logger.info(
                "Replayed settlement - returning stored booking",
                extra={"order_id": order_id, "booking_id": str(existing.id)}
            )
            warnings = await self._after_settlement(existing)
            return SettlementOutcome(booking=existing, warnings=warnings, replayed=True)

        if existing is None and await self._was_cancelled(order_id):
            logger.warning("Settlement refused for cancelled order", extra={"order_id": order_id})
            raise OrderAlreadyCancelledError(order_id)

        try:
            await self._check_cells_free(slot_date, selections, client_id)
        except (SlotAlreadyBookedError, SlotHeldByOtherError) as conflict:
            raise await self._report_paid_conflict(order_id, slot_date, selections, amount, currency, conflict)

        successful = next(payment for payment in payments if payment.succeeded)
        booking = Booking(
            order_id=order_id,
            date=slot_date,
            amount=amount,
            currency=currency,
            status=BookingStatus.PAID,
            funding=Funding.GATEWAY,
            payment_ref=successful.payment_id,
            payment_raw=[payment.raw for payment in payments],
        )
        if isinstance(payer, MemberPayer):
            booking.payer_kind = PayerKind.MEMBER
            booking.user_id = payer.user_id
            booking.payer_name = payer.name or ""
            booking.payer_email = payer.email
            booking.payer_phone = payer.phone
        else:
            booking.payer_kind = PayerKind.GUEST
            booking.payer_name = payer.name
            booking.payer_email = payer.email
            booking.payer_phone = payer.phone

        self.ledger.add(booking, selections)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            stored = await self.ledger.get_by_order(order_id)
            if stored is not None:
                logger.info(
                    "Concurrent replay settled first - returning stored booking",
                    extra={"order_id": order_id, "booking_id": str(stored.id)}
                )
                warnings = await self._after_settlement(stored)
                return SettlementOutcome(booking=stored, warnings=warnings, replayed=True)

            booked = await self.ledger.find_booked_cell(slot_date, selections)
            cell = booked or selections[0]
            conflict = SlotAlreadyBookedError(slot_date, cell.court_id, cell.start, _cell_end(cell))
            raise await self._report_paid_conflict(order_id, slot_date, selections, amount, currency, conflict)

        metrics_collector.record_booking_settled(booking.funding.value, booking.payer_kind.value)
        await self._resolve_paid_conflict(order_id)
        logger.info(
            "Booking settled",
            extra={
                "booking_id": str(booking.id),
                "order_id": order_id,
                "payer_kind": booking.payer_kind.value,
                "date": slot_date.isoformat(),
                "slots": len(selections),
                "amount": amount,
            }
        )

        warnings = await self._after_settlement(booking)
        return SettlementOutcome(booking=booking, warnings=warnings)

    async def book_with_membership(
        self,
        user: CurrentUser,
        slot_date: date,
        selections: Sequence,
        client_id: Optional[str] = None,
    ) -> SettlementOutcome:
        """
        Book slots paid for with membership games instead of the gateway.

        Raises:
            NoActiveMembershipError: If the member has no PAID membership
            InsufficientCreditError: If fewer games remain than slots requested
            SlotAlreadyBookedError: If a cell is already booked
            SlotHeldByOtherError: If another client holds a requested cell
        """
        count = len(selections)
        membership = await self.memberships.get_active(user.user_id)
        if membership is None:
            raise NoActiveMembershipError(user.user_id)
        if membership.remaining < count:
            raise InsufficientCreditError(membership.remaining, count)

        try:
            await self._check_cells_free(slot_date, selections, client_id)
        except SlotAlreadyBookedError:
            metrics_collector.record_settlement_conflict(payment_captured=False)
            raise

        if not await self.memberships.try_debit(membership.id, count):
            await self.db.rollback()
            latest = await self.memberships.get_active(user.user_id)
            raise InsufficientCreditError(latest.remaining if latest else 0, count)

        booking = Booking(
            order_id=new_order_id("memfree"),
            payer_kind=PayerKind.MEMBER,
            user_id=user.user_id,
            payer_name=user.name or "",
            payer_email=user.email,
            payer_phone=user.phone,
            date=slot_date,
            amount=0,
            currency=settings.default_currency,
            status=BookingStatus.PAID,
            funding=Funding.MEMBERSHIP,
            payment_ref=MEMBERSHIP_PAYMENT_REF,
            membership_id=membership.id,
        )
        self.ledger.add(booking, selections)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            booked = await self.ledger.find_booked_cell(slot_date, selections)
            cell = booked or selections[0]
            metrics_collector.record_settlement_conflict(payment_captured=False)
            raise SlotAlreadyBookedError(slot_date, cell.court_id, cell.start, _cell_end(cell))

        metrics_collector.record_booking_settled(Funding.MEMBERSHIP.value, PayerKind.MEMBER.value)
        logger.info(
            "Membership booking settled",
            extra={
                "booking_id": str(booking.id),
                "order_id": booking.order_id,
                "user_id": user.user_id,
                "membership_id": str(membership.id),
                "slots": count,
            }
        )

        warnings = await self._after_settlement(booking)
        return SettlementOutcome(booking=booking, warnings=warnings)

    async def _refund_via_gateway(self, order_id: str, amount: int) -> tuple[str, Optional[str], dict]:
        """Returns (status, refund_id, gateway_response)."""
        try:
            payments = await self.gateway.get_payments(order_id)
            if not any(payment.succeeded for payment in payments):
                raise GatewayError("No successful payment found to refund.")

            refund_id = f"refund_{order_id}_{int(time.time() * 1000)}"
            result = await self.gateway.refund(order_id, amount, refund_id)
            return RefundStatus.SUCCESS, result.refund_id, result.raw
        except GatewayError as e:
            logger.warning(
                "Gateway refund failed",
                extra={"order_id": order_id, "amount": amount, "error": str(e)}
            )
            return RefundStatus.FAILED, None, {"error": str(e)}

    async def cancel_booking_slot(
        self,
        booking_id: UUID,
        slot_index: int,
        user: CurrentUser,
        now: Optional[datetime] = None,
    ) -> CancellationOutcome:
        """
        Cancel one slot of a member's booking.

        The refund is the current amount split evenly over the current slots.
        Gateway-paid slots are refunded through the gateway; a failed refund
        does not stop the cancellation. Membership-funded slots return one
        game instead. The last slot deletes the booking. An audit record is
        always written.

        Raises:
            NotFoundError: If the booking does not exist
            ForbiddenError: If the caller does not own the booking
            InvalidSlotIndexError: If ``slot_index`` is out of range
        """
        now = now or utcnow()

        booking = await self.ledger.get_by_id(booking_id, for_update=True)
        if booking is None:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        if booking.payer_kind != PayerKind.MEMBER or booking.user_id != user.user_id:
            raise ForbiddenError()

        slot_count = len(booking.slots)
        if not 0 <= slot_index < slot_count:
            raise InvalidSlotIndexError(slot_index, slot_count)

        per_slot = even_split(booking.amount, slot_count)
        membership_funded = booking.is_membership_funded or booking.amount == 0
        amount_before = booking.amount
        order_id = booking.order_id
        cancelled = booking.slots[slot_index]
        cancelled_cell = {"court_id": cancelled.court_id, "start": cancelled.start, "end": cancelled.end}

        refund_id = None
        if membership_funded or per_slot == 0:
            refund_status, gateway_response = RefundStatus.NO_PAYMENT, None
        elif booking.status == BookingStatus.PAID:
            refund_status, refund_id, gateway_response = await self._refund_via_gateway(order_id, per_slot)
        else:
            refund_status, gateway_response = RefundStatus.FAILED, {"error": "Booking is not paid."}

        if slot_count == 1:
            await self.db.delete(booking)
            amount_after = 0
        else:
            self.ledger.remove_slot(booking, slot_index)
            booking.amount = max(0, booking.amount - per_slot)
            amount_after = booking.amount

        if membership_funded:
            await self.memberships.credit_back(user.user_id, now=now, commit=False)

        refund = Refund(
            source=RefundSource.BOOKING,
            booking_id=str(booking_id),
            order_id=order_id,
            slot_index=slot_index,
            user_id=user.user_id,
            amount=per_slot,
            currency=booking.currency,
            gateway=RefundGateway.NONE if refund_status == RefundStatus.NO_PAYMENT else RefundGateway.CASHFREE,
            refund_id=refund_id,
            gateway_response=gateway_response,
            status=refund_status,
            reason=(
                "Membership booking cancellation (credit restored)"
                if membership_funded
                else "Booking cancellation refund"
            ),
            amount_before=amount_before,
            amount_after=amount_after,
            slots_before=slot_count,
            slots_after=slot_count - 1,
        )
        self.db.add(refund)
        await self.db.commit()

        metrics_collector.record_slot_cancelled(refund_status.value)
        logger.info(
            "Booking slot cancelled",
            extra={
                "booking_id": str(booking_id),
                "order_id": order_id,
                "slot_index": slot_index,
                "refund_amount": per_slot,
                "refund_status": refund_status.value,
                "booking_deleted": slot_count == 1,
            }
        )

        warnings = []
        if refund_status == RefundStatus.FAILED:
            followup = await self.followups.record(
                FollowUpKind.REFUND,
                error=(gateway_response or {}).get("error", "refund failed"),
                booking_id=str(booking_id),
                order_id=order_id,
                payload={"refund_record_id": str(refund.id), "amount": per_slot, "slot": cancelled_cell},
                status=FollowUpStatus.MANUAL,
            )
            warnings.append(
                SettlementWarning(
                    "REFUND_FAILED",
                    "Slot cancelled, but refund failed to issue. Support will review.",
                    str(followup.id),
                )
            )

        return CancellationOutcome(
            booking_id=str(booking_id),
            slot_index=slot_index,
            refund=refund,
            booking_deleted=slot_count == 1,
            remaining_amount=amount_after,
            remaining_slots=slot_count - 1,
            warnings=warnings,
        )

    async def create_payment_order(
        self,
        amount: int,
        currency: str,
        customer_name: str,
        customer_email: str,
        customer_phone: str,
    ) -> GatewayOrder:
        """
        Open a gateway order for a slot purchase.

        Raises:
            GatewayUnavailableError: If the gateway rejects or cannot take the order
        """
        order_id = f"order_{int(time.time() * 1000)}_{secrets.randbelow(1_000_000)}"
        customer_id = re.sub(r"[^a-zA-Z0-9_-]", "_", customer_name)[:45] or "guest_user"

        try:
            order = await self.gateway.create_order(
                order_id=order_id,
                amount=amount,
                currency=currency,
                customer={
                    "customer_id": customer_id,
                    "customer_name": customer_name,
                    "customer_email": customer_email,
                    "customer_phone": customer_phone,
                },
                note="Court booking payment",
                return_url=f"{settings.public_base_url}/book/checkout?order_id={{order_id}}",
            )
        except GatewayError as e:
            logger.error("Gateway order creation failed", extra={"order_id": order_id, "error": str(e)})
            raise GatewayUnavailableError(str(e))

        logger.info("Payment order created", extra={"order_id": order_id, "amount": amount, "currency": currency})
        return order

    async def list_bookings(self, user_id: str) -> list[Booking]:
        return await self.ledger.list_for_user(user_id)

    async def get_booking_by_order(self, order_id: str) -> Booking:
        booking = await self.ledger.get_by_order(order_id)
        if booking is None:
            raise NotFoundError(resource_type="booking", resource_id=order_id)
        return booking
