"""Membership router for plan purchase and balance lookup."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import get_db
from ..core.dependencies import CurrentUser, PaymentGatewayDep, RequiredAuth
from ..core.exceptions import GatewayUnavailableError, ProblemDetailsException
from ..schemas.common import Money
from ..schemas.membership import (
    ActiveMembershipResponse,
    ConfirmMembershipRequest,
    CreateMembershipOrderRequest,
    Membership,
    MembershipOrderResponse,
)
from ..services.membership_service import MembershipService
from ..services.payment_gateway import GatewayError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/membership", tags=["membership"])

DB_DEPENDENCY = Depends(get_db)


def _convert_membership_to_schema(membership_model) -> Membership:
    """Convert membership model to schema."""
    return Membership(
        id=str(membership_model.id),
        order_id=membership_model.order_id,
        plan_id=membership_model.plan_id,
        plan_name=membership_model.plan_name,
        duration_months=membership_model.duration_months,
        total_games=membership_model.total_games,
        games_used=membership_model.games_used,
        remaining=membership_model.remaining,
        percent_used=membership_model.percent_used,
        price=Money(amount=membership_model.amount, currency=membership_model.currency),
        status=membership_model.status,
        valid_until=membership_model.valid_until,
        created_at=membership_model.created_at
    )


@router.post("/create-order", response_model=MembershipOrderResponse)
async def create_membership_order(
    request: CreateMembershipOrderRequest,
    user: CurrentUser = RequiredAuth,
    gateway=PaymentGatewayDep,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Open a pending membership and its gateway order."""
    service = MembershipService(db)

    try:
        membership, payment_session_id = await service.create_membership_order(
            request.plan_id,
            user,
            gateway,
            return_url=f"{settings.public_base_url}/membership?order_id={{order_id}}",
        )
    except GatewayError as e:
        logger.error(
            "Gateway order creation failed for membership",
            extra={"user_id": user.user_id, "plan_id": request.plan_id, "error": str(e)}
        )
        raise GatewayUnavailableError(str(e))

    response_data = MembershipOrderResponse(
        order_id=membership.order_id,
        payment_session_id=payment_session_id,
        membership=_convert_membership_to_schema(membership)
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/confirm", response_model=Membership)
async def confirm_membership(
    request: ConfirmMembershipRequest,
    user: CurrentUser = RequiredAuth,
    gateway=PaymentGatewayDep,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Mark a membership paid once the gateway confirms the payment.

    Confirming twice returns the same membership.
    """
    try:
        membership = await MembershipService(db).confirm_membership(request.order_id, user, gateway)
        return JSONResponse(
            status_code=200,
            content=_convert_membership_to_schema(membership).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in membership confirmation",
            extra={"order_id": request.order_id, "user_id": user.user_id, "error": str(e)},
            exc_info=True
        )
        raise


@router.post("/active", response_model=ActiveMembershipResponse)
async def get_active_membership(
    user: CurrentUser = RequiredAuth,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Get the caller's latest paid membership with its remaining games."""
    membership = await MembershipService(db).get_active(user.user_id)
    response_data = ActiveMembershipResponse(
        membership=_convert_membership_to_schema(membership) if membership else None
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
