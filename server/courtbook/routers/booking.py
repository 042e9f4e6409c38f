"""Booking router for settlement, membership booking and cancellation."""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import CurrentUser, IdempotencyKey, PaymentGatewayDep, RequiredAuth
from ..core.exceptions import NotFoundError, ProblemDetailsException
from ..schemas.booking import (
    BookedSlot,
    Booking,
    BookingList,
    CancelBookingRequest,
    CancellationResponse,
    FinalizeBookingRequest,
    FreeBookingRequest,
    GetBookingByOrderRequest,
    GuestFinalizeBookingRequest,
    RefundSummary,
    SettlementResponse,
)
from ..schemas.common import Money, WarningItem
from ..services.idempotency_service import IdempotencyService
from ..services.reservation_service import (
    CancellationOutcome,
    GuestPayer,
    MemberPayer,
    ReservationService,
    SettlementOutcome,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


def _convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model to schema."""
    return Booking(
        id=str(booking_model.id),
        order_id=booking_model.order_id,
        payer_kind=booking_model.payer_kind,
        user_id=booking_model.user_id,
        payer_name=booking_model.payer_name,
        payer_email=booking_model.payer_email,
        date=booking_model.date,
        slots=[
            BookedSlot(court_id=slot.court_id, start=slot.start, end=slot.end)
            for slot in booking_model.slots
        ],
        price=Money(amount=booking_model.amount, currency=booking_model.currency),
        status=booking_model.status,
        funding=booking_model.funding,
        payment_ref=booking_model.payment_ref,
        created_at=booking_model.created_at
    )


def _convert_warnings(warnings) -> list[WarningItem]:
    return [
        WarningItem(code=w.code, message=w.message, followup_id=w.followup_id)
        for w in warnings
    ]


def _settlement_response(outcome: SettlementOutcome) -> dict[str, Any]:
    return SettlementResponse(
        booking=_convert_booking_to_schema(outcome.booking),
        replayed=outcome.replayed,
        warnings=_convert_warnings(outcome.warnings),
    ).model_dump(mode="json")


def _cancellation_response(outcome: CancellationOutcome) -> dict[str, Any]:
    refund = outcome.refund
    message = outcome.warnings[0].message if outcome.warnings else None
    return CancellationResponse(
        ok=True,
        booking_id=outcome.booking_id,
        slot_index=outcome.slot_index,
        refund=RefundSummary(
            id=str(refund.id),
            refund=Money(amount=refund.amount, currency=refund.currency),
            status=refund.status,
            refund_id=refund.refund_id,
        ),
        booking_deleted=outcome.booking_deleted,
        remaining=Money(amount=outcome.remaining_amount, currency=refund.currency),
        remaining_slots=outcome.remaining_slots,
        message=message,
        warnings=_convert_warnings(outcome.warnings),
    ).model_dump(mode="json")


async def _handle_idempotent_operation(
    method: str,
    idempotency_key: str,
    user_id: str,
    request_body: dict[str, Any],
    operation_func,
    db: AsyncSession
) -> JSONResponse:
    """Run ``operation_func`` once per idempotency key and replay its response."""
    idempotency_service = IdempotencyService(db)

    cached_response = await idempotency_service.check_idempotency(
        idempotency_key=idempotency_key,
        method=method,
        request_body=request_body,
        user_id=user_id
    )
    if cached_response:
        status_code, response_body = cached_response
        return JSONResponse(status_code=status_code, content=response_body)

    try:
        response_dict = await operation_func()
    except ProblemDetailsException as e:
        # Store error response for idempotency
        await idempotency_service.store_response(
            idempotency_key=idempotency_key,
            method=method,
            request_body=request_body,
            status_code=e.status_code,
            response_body=e.problem_details,
            user_id=user_id
        )
        raise

    await idempotency_service.store_response(
        idempotency_key=idempotency_key,
        method=method,
        request_body=request_body,
        status_code=200,
        response_body=response_dict,
        user_id=user_id
    )
    return JSONResponse(status_code=200, content=response_dict)


@router.post("/finalize", response_model=SettlementResponse)
async def finalize_booking(
    request: FinalizeBookingRequest,
    user: CurrentUser = RequiredAuth,
    gateway=PaymentGatewayDep,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Settle a member's paid gateway order into a booking.

    Safe to repeat: the order id makes replays return the stored booking.
    """
    service = ReservationService(db, gateway)

    try:
        outcome = await service.finalize_booking(
            order_id=request.order_id,
            payer=MemberPayer(user_id=user.user_id, email=user.email, name=user.name, phone=user.phone),
            slot_date=request.date,
            selections=request.selections,
            amount=request.price.amount,
            currency=request.price.currency,
            client_id=request.client_id,
        )

        logger.info(
            "Member booking finalized",
            extra={
                "order_id": request.order_id,
                "booking_id": str(outcome.booking.id),
                "replayed": outcome.replayed,
                "warnings": len(outcome.warnings)
            }
        )

        return JSONResponse(status_code=200, content=_settlement_response(outcome))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking finalize",
            extra={"order_id": request.order_id, "user_id": user.user_id, "error": str(e)},
            exc_info=True
        )
        raise


@router.post("/guest-finalize", response_model=SettlementResponse)
async def guest_finalize_booking(
    request: GuestFinalizeBookingRequest,
    gateway=PaymentGatewayDep,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Settle a guest's paid gateway order into a booking.

    Safe to repeat: the order id makes replays return the stored booking.
    """
    service = ReservationService(db, gateway)

    try:
        outcome = await service.finalize_booking(
            order_id=request.order_id,
            payer=GuestPayer(name=request.guest.name, phone=request.guest.phone, email=request.guest.email),
            slot_date=request.date,
            selections=request.selections,
            amount=request.price.amount,
            currency=request.price.currency,
            client_id=request.client_id,
        )

        logger.info(
            "Guest booking finalized",
            extra={
                "order_id": request.order_id,
                "booking_id": str(outcome.booking.id),
                "replayed": outcome.replayed
            }
        )

        return JSONResponse(status_code=200, content=_settlement_response(outcome))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in guest booking finalize",
            extra={"order_id": request.order_id, "error": str(e)},
            exc_info=True
        )
        raise


@router.post("/free", response_model=SettlementResponse)
async def book_with_membership(
    request: FreeBookingRequest,
    user: CurrentUser = RequiredAuth,
    gateway=PaymentGatewayDep,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Book slots paid for with membership games."""
    service = ReservationService(db, gateway)

    try:
        outcome = await service.book_with_membership(
            user=user,
            slot_date=request.date,
            selections=request.selections,
            client_id=request.client_id,
        )
        return JSONResponse(status_code=200, content=_settlement_response(outcome))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in membership booking",
            extra={"user_id": user.user_id, "date": request.date.isoformat(), "error": str(e)},
            exc_info=True
        )
        raise


@router.post("/cancel", response_model=CancellationResponse)
async def cancel_booking_slot(
    request: CancelBookingRequest,
    user: CurrentUser = RequiredAuth,
    gateway=PaymentGatewayDep,
    idempotency_key: str = IdempotencyKey,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Cancel one slot of the caller's booking.

    This operation is idempotent based on the Idempotency-Key header.
    """
    try:
        booking_id = UUID(request.booking_id)
    except ValueError:
        raise NotFoundError(resource_type="booking", resource_id=request.booking_id)

    service = ReservationService(db, gateway)

    async def operation():
        outcome = await service.cancel_booking_slot(booking_id, request.slot_index, user)
        return _cancellation_response(outcome)

    try:
        return await _handle_idempotent_operation(
            method="booking/cancel",
            idempotency_key=idempotency_key,
            user_id=user.user_id,
            request_body=request.model_dump(),
            operation_func=operation,
            db=db
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking cancellation",
            extra={
                "booking_id": request.booking_id,
                "slot_index": request.slot_index,
                "idempotency_key": idempotency_key,
                "error": str(e)
            },
            exc_info=True
        )
        raise


@router.post("/list", response_model=BookingList)
async def list_bookings(
    user: CurrentUser = RequiredAuth,
    gateway=PaymentGatewayDep,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """List the caller's bookings, newest first."""
    bookings = await ReservationService(db, gateway).list_bookings(user.user_id)
    response_data = BookingList(items=[_convert_booking_to_schema(b) for b in bookings])
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/get-by-order", response_model=Booking)
async def get_booking_by_order(
    request: GetBookingByOrderRequest,
    gateway=PaymentGatewayDep,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Get a booking by gateway order id, for the guest confirmation page.

    This is a read operation and does not require idempotency.
    """
    booking = await ReservationService(db, gateway).get_booking_by_order(request.order_id)
    return JSONResponse(
        status_code=200,
        content=_convert_booking_to_schema(booking).model_dump(mode="json")
    )
