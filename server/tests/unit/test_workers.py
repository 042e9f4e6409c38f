"""Unit tests for background workers."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from courtbook.core.clock import utcnow
from courtbook.core.config import settings
from courtbook.models.booking import Booking, BookingStatus, Funding, PayerKind
from courtbook.models.followup import FollowUpKind, FollowUpStatus
from courtbook.models.hold import Hold
from courtbook.models.idempotency import IdempotencyRecord
from courtbook.services.booking_ledger import BookingLedger
from courtbook.services.followup_service import FollowUpService
from courtbook.services.hold_service import Cell, HoldService
from courtbook.workers import FollowUpWorker, HoldSweepWorker, WorkerManager


async def _count(session, model) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_hold_sweep_worker(test_session, test_database, slot_date):
    holds = HoldService(test_session, ttl_seconds=60)
    await holds.place_or_refresh_hold(slot_date, 1, "06:00", "client_a", now=utcnow() - timedelta(minutes=10))
    await holds.place_or_refresh_hold(slot_date, 1, "07:00", "client_a")
    test_session.add(
        IdempotencyRecord(
            idempotency_key="stale-key",
            method="cancel_booking_slot",
            user_id="user_1",
            request_body_hash="0" * 64,
            response_status_code=200,
            response_body="{}",
            expires_at=utcnow() - timedelta(hours=1),
        )
    )
    await test_session.commit()

    await HoldSweepWorker(test_database, interval_seconds=1).process()

    remaining = (await test_session.execute(select(Hold.start))).scalars().all()
    assert remaining == ["07:00"]
    assert await _count(test_session, IdempotencyRecord) == 0


@pytest.mark.asyncio
async def test_followup_worker_releases_holds(test_session, test_database, slot_date):
    await HoldService(test_session).place_or_refresh_hold(slot_date, 2, "11:00", "client_a")
    followup = await FollowUpService(test_session).record(
        FollowUpKind.HOLD_RELEASE,
        error="hold store unavailable",
        order_id="order_x",
        payload={"date": slot_date.isoformat(), "cells": [{"court_id": 2, "start": "11:00"}]},
    )

    await FollowUpWorker(test_database).process()

    assert await _count(test_session, Hold) == 0
    await test_session.refresh(followup)
    assert followup.status == FollowUpStatus.DONE
    assert followup.last_error is None


@pytest.mark.asyncio
async def test_followup_worker_debits_membership_once(
    test_session, test_database, slot_date, membership_factory
):
    membership = await membership_factory(test_session, games_used=4)
    booking = Booking(
        order_id="order_retry_debit",
        payer_kind=PayerKind.MEMBER,
        user_id="user_1",
        payer_email="player@example.com",
        date=slot_date,
        amount=2000,
        currency="INR",
        status=BookingStatus.PAID,
        funding=Funding.GATEWAY,
        payment_ref="cf_pay_1",
    )
    BookingLedger(test_session).add(booking, [Cell(1, "13:00"), Cell(1, "14:00")])
    await test_session.commit()
    followup = await FollowUpService(test_session).record(
        FollowUpKind.MEMBERSHIP_DEBIT,
        error="counter store unavailable",
        booking_id=str(booking.id),
        order_id=booking.order_id,
        payload={"user_id": "user_1", "count": 2},
    )

    worker = FollowUpWorker(test_database)
    await worker.process()
    await worker.process()

    await test_session.refresh(membership)
    assert membership.games_used == 6
    await test_session.refresh(followup)
    assert followup.status == FollowUpStatus.DONE


@pytest.mark.asyncio
async def test_followup_worker_gives_up_after_max_attempts(test_session, test_database):
    # No date in the payload, so every retry fails
    followup = await FollowUpService(test_session).record(
        FollowUpKind.HOLD_RELEASE,
        error="hold store unavailable",
        payload={"cells": [{"court_id": 1, "start": "06:00"}]},
    )
    worker = FollowUpWorker(test_database, max_attempts=3)

    await worker.process()
    await test_session.refresh(followup)
    assert followup.status == FollowUpStatus.PENDING
    assert followup.attempts == 2

    await worker.process()
    await test_session.refresh(followup)
    assert followup.status == FollowUpStatus.MANUAL
    assert followup.attempts == 3

    # MANUAL follow-ups are left for an operator
    await worker.process()
    await test_session.refresh(followup)
    assert followup.attempts == 3


@pytest.mark.asyncio
async def test_followup_worker_skips_manual_kinds(test_session, test_database):
    followup = await FollowUpService(test_session).record(
        FollowUpKind.PAID_CONFLICT,
        error="slot already booked",
        order_id="order_lost",
        status=FollowUpStatus.MANUAL,
    )

    await FollowUpWorker(test_database).process()

    await test_session.refresh(followup)
    assert followup.status == FollowUpStatus.MANUAL
    assert followup.attempts == 1


@pytest.mark.asyncio
async def test_worker_manager_start_and_stop(file_database):
    manager = WorkerManager(file_database, settings)

    assert manager.get_worker_status() == {"hold_sweep": False, "followup": False}

    await manager.start_all()
    assert manager.get_worker_status() == {"hold_sweep": True, "followup": True}
    assert isinstance(manager.get_worker("hold_sweep"), HoldSweepWorker)

    await manager.stop_all()
    assert manager.get_worker_status() == {"hold_sweep": False, "followup": False}

    with pytest.raises(KeyError):
        manager.get_worker("reminders")
