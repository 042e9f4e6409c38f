"""Models module exporting all database models."""

from .booking import MEMBERSHIP_PAYMENT_REF, Booking, BookingSlot, BookingStatus, Funding, PayerKind
from .followup import FollowUpKind, FollowUpStatus, SettlementFollowUp
from .hold import Hold
from .idempotency import IdempotencyRecord
from .membership import MembershipAccount, MembershipStatus
from .refund import Refund, RefundGateway, RefundSource, RefundStatus

__all__ = [
    # Slot claims
    "Hold",

    # Booking entities
    "Booking",
    "BookingSlot",
    "BookingStatus",
    "PayerKind",
    "Funding",
    "MEMBERSHIP_PAYMENT_REF",

    # Membership entity
    "MembershipAccount",
    "MembershipStatus",

    # Cancellation audit
    "Refund",
    "RefundGateway",
    "RefundSource",
    "RefundStatus",

    # Settlement follow-ups
    "SettlementFollowUp",
    "FollowUpKind",
    "FollowUpStatus",

    # Idempotency entity
    "IdempotencyRecord",
]
