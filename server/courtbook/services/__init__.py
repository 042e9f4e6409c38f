"""Service layer package."""

from .availability_service import AvailabilityService
from .booking_ledger import BookingLedger
from .followup_service import FollowUpService
from .hold_service import HoldService
from .idempotency_service import IdempotencyService
from .membership_service import MembershipService
from .payment_gateway import CashfreeGateway, PaymentGateway
from .reservation_service import ReservationService

__all__ = [
    "AvailabilityService",
    "BookingLedger",
    "CashfreeGateway",
    "FollowUpService",
    "HoldService",
    "IdempotencyService",
    "MembershipService",
    "PaymentGateway",
    "ReservationService",
]
