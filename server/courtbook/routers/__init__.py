"""FastAPI routers package."""

from .availability import router as availability_router
from .booking import router as booking_router
from .followup import router as followup_router
from .health import router as health_router
from .hold import router as hold_router
from .membership import router as membership_router
from .metrics import router as metrics_router
from .payment import router as payment_router

__all__ = [
    "availability_router",
    "booking_router",
    "followup_router",
    "health_router",
    "hold_router",
    "membership_router",
    "metrics_router",
    "payment_router",
]
