"""Prometheus scrape endpoint for reservation metrics."""

import logging

from fastapi import APIRouter, Request, Response
from sqlalchemy.exc import SQLAlchemyError

from ..core.observability import get_prometheus_metrics, metrics_collector
from ..services.followup_service import FollowUpService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Observability"])


async def _refresh_pending_followups(request: Request) -> None:
    database = getattr(request.app.state, "database", None)
    if database is None:
        return

    try:
        async with database.session_factory() as session:
            pending = await FollowUpService(session).count_pending()
    except SQLAlchemyError as e:
        logger.warning("Could not count pending follow-ups for scrape", extra={"error": str(e)})
        return
    metrics_collector.set_pending_followups(pending)


@router.get(
    "/metrics",
    summary="Prometheus Metrics",
    description="Hold, settlement, cancellation and follow-up metrics for Prometheus",
    response_class=Response,
)
async def metrics(request: Request):
    """
    Return Prometheus metrics.

    The pending follow-up gauge is recounted from the store on every scrape,
    so it stays current while the follow-up worker is idle or disabled.
    """
    await _refresh_pending_followups(request)
    return Response(
        content=get_prometheus_metrics(),
        media_type="text/plain; version=0.0.4; charset=utf-8"
    )
