"""Payment router for opening gateway orders."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import PaymentGatewayDep
from ..schemas.booking import CreatePaymentOrderRequest, PaymentOrder
from ..services.reservation_service import ReservationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/payment", tags=["payment"])

DB_DEPENDENCY = Depends(get_db)


@router.post("/create-order", response_model=PaymentOrder)
async def create_payment_order(
    request: CreatePaymentOrderRequest,
    gateway=PaymentGatewayDep,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Open a gateway order for a slot purchase.

    Every call opens a new order with a fresh order id.
    """
    order = await ReservationService(db, gateway).create_payment_order(
        amount=request.price.amount,
        currency=request.price.currency,
        customer_name=request.customer.name,
        customer_email=request.customer.email,
        customer_phone=request.customer.phone,
    )

    return JSONResponse(
        status_code=200,
        content=PaymentOrder(
            order_id=order.order_id,
            payment_session_id=order.payment_session_id
        ).model_dump()
    )
