"""Follow-up router: operator view of settlement steps that did not complete."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.followup import FollowUp, FollowUpList, ListFollowUpsRequest
from ..services.followup_service import FollowUpService

router = APIRouter(prefix="/v1/followup", tags=["followup"])

DB_DEPENDENCY = Depends(get_db)


def _convert_followup_to_schema(followup_model) -> FollowUp:
    return FollowUp(
        id=str(followup_model.id),
        kind=followup_model.kind,
        status=followup_model.status,
        booking_id=followup_model.booking_id,
        order_id=followup_model.order_id,
        payload=followup_model.payload or {},
        attempts=followup_model.attempts,
        last_error=followup_model.last_error,
        created_at=followup_model.created_at
    )


@router.post("/list", response_model=FollowUpList)
async def list_followups(
    request: ListFollowUpsRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """List settlement follow-ups, oldest first."""
    followups = await FollowUpService(db).list_followups(status=request.status, limit=request.limit)
    response_data = FollowUpList(items=[_convert_followup_to_schema(f) for f in followups])
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
