"""Hold router for placing and releasing slot holds."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.exceptions import ProblemDetailsException
from ..schemas.hold import (
    HoldPlacement,
    PlaceHoldsRequest,
    PlaceHoldsResponse,
    ReleaseHoldsRequest,
    ReleaseHoldsResponse,
)
from ..services.hold_service import HoldService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/hold", tags=["hold"])

DB_DEPENDENCY = Depends(get_db)


@router.post("/place", response_model=PlaceHoldsResponse)
async def place_holds(
    request: PlaceHoldsRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Place or refresh holds on the selected slots.

    Refused selections are reported per selection in a 200 response.
    Re-placing a hold the caller already owns extends it.
    """
    try:
        results = await HoldService(db).place_holds(
            request.date, request.selections, request.client_id, request.user_id
        )

        response_data = PlaceHoldsResponse(
            date=request.date,
            results=[
                HoldPlacement(
                    court_id=result.court_id,
                    start=result.start,
                    ok=result.ok,
                    reason=result.reason.value if result.reason else None,
                    expires_at=result.expires_at,
                )
                for result in results
            ],
            all_ok=all(result.ok for result in results),
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in hold placement",
            extra={"date": request.date.isoformat(), "client_id": request.client_id, "error": str(e)},
            exc_info=True
        )
        raise


@router.post("/release", response_model=ReleaseHoldsResponse)
async def release_holds(
    request: ReleaseHoldsRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Release the caller's holds for a date.

    Releasing holds that are already gone succeeds.
    """
    try:
        released = await HoldService(db).release_holds(request.date, request.client_id, request.selections)

        return JSONResponse(
            status_code=200,
            content=ReleaseHoldsResponse(ok=True, released=released).model_dump()
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in hold release",
            extra={"date": request.date.isoformat(), "client_id": request.client_id, "error": str(e)},
            exc_info=True
        )
        raise
