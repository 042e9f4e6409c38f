"""Availability router for the slot grid."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.exceptions import ProblemDetailsException
from ..schemas.availability import (
    AvailabilityResponse,
    CourtAvailability,
    GetAvailabilityRequest,
    SlotAvailability,
)
from ..services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/availability", tags=["availability"])

DB_DEPENDENCY = Depends(get_db)


@router.post("/get", response_model=AvailabilityResponse)
async def get_availability(
    request: GetAvailabilityRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Get the slot grid for a date.

    This is a read operation and does not require idempotency.
    """
    try:
        rows = await AvailabilityService(db).get_availability(request.date, request.client_id)

        response_data = AvailabilityResponse(
            date=request.date,
            courts=[
                CourtAvailability(
                    court_id=row.court_id,
                    slots=[
                        SlotAvailability(
                            court_id=slot.court_id,
                            start=slot.start,
                            end=slot.end,
                            status=slot.status.value,
                            past=slot.past,
                        )
                        for slot in row.slots
                    ],
                )
                for row in rows
            ],
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in availability lookup",
            extra={"date": request.date.isoformat(), "error": str(e)},
            exc_info=True
        )
        raise
