"""RPC health ping: liveness plus the venue calendar clients book against."""

import logging

from fastapi import APIRouter

from ..core.clock import COURT_COUNT, build_daily_grid, local_date, utcnow
from ..core.config import settings
from ..schemas.health import HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])


@router.post("/ping", response_model=HealthResponse)
async def health_ping() -> HealthResponse:
    """
    Report service status and the venue's local date.

    Clients compare ``business_date`` with their own clock before asking for
    availability, since slots are laid out on the venue's civil calendar.
    """
    now = utcnow()
    grid = build_daily_grid()
    response = HealthResponse(
        status=HealthStatus.HEALTHY,
        timestamp=now,
        version="1.0.0",
        timezone=settings.local_timezone,
        business_date=local_date(now, settings.local_timezone),
        courts=COURT_COUNT,
        first_start=grid[0].start,
        last_start=grid[-1].start,
    )

    logger.debug(
        "Health ping",
        extra={"business_date": response.business_date.isoformat(), "timezone": response.timezone}
    )
    return response
