"""Unit tests for membership purchase and game-credit accounting."""

from datetime import datetime, timedelta

import pytest

from courtbook.core.clock import utcnow
from courtbook.core.dependencies import CurrentUser
from courtbook.core.exceptions import NotFoundError, PaymentNotConfirmedError, ValidationError
from courtbook.models.membership import MembershipAccount, MembershipStatus
from courtbook.services.membership_service import PLANS, MembershipService, new_order_id


def test_new_order_id_shape():
    order_id = new_order_id("mem")
    prefix, millis, suffix = order_id.split("_")

    assert prefix == "mem"
    assert millis.isdigit()
    assert len(suffix) == 6
    assert new_order_id("mem") != order_id


def test_membership_counters():
    membership = MembershipAccount(
        total_games=25,
        games_used=10,
        duration_months=1,
        created_at=datetime(2026, 1, 31, 9, 0),
        status=MembershipStatus.PAID,
    )

    assert membership.remaining == 15
    assert membership.percent_used == 40
    # January 31st plus one month clamps to February 28th
    assert membership.valid_until == datetime(2026, 2, 28, 9, 0)
    assert membership.is_within_validity(datetime(2026, 2, 27))
    assert not membership.is_within_validity(datetime(2026, 3, 1))


@pytest.mark.asyncio
async def test_create_membership_order(test_session, stub_gateway):
    user = CurrentUser(user_id="user_9", email="new@example.com", name="New Member")

    membership, session_id = await MembershipService(test_session).create_membership_order(
        "1M", user, stub_gateway, return_url="https://courts.example.com/membership/return"
    )

    assert membership.status == MembershipStatus.PENDING
    assert membership.order_id.startswith("mem_")
    assert membership.total_games == 25
    assert membership.games_used == 0
    assert membership.amount == PLANS["1M"].amount == 299900
    assert session_id == f"session_{membership.order_id}"

    order = stub_gateway.orders[0]
    assert order["amount"] == 299900
    assert order["note"] == "membership:1M"
    assert order["customer"]["customer_phone"] == "9999999999"
    assert order["customer"]["customer_id"] == "user_9"


@pytest.mark.asyncio
async def test_unknown_plan_is_rejected(test_session, stub_gateway, member):
    with pytest.raises(ValidationError):
        await MembershipService(test_session).create_membership_order("12M", member, stub_gateway)
    assert stub_gateway.orders == []


@pytest.mark.asyncio
async def test_confirm_membership(test_session, stub_gateway, member, other_member):
    service = MembershipService(test_session)
    membership, _ = await service.create_membership_order("3M", member, stub_gateway)
    order_id = membership.order_id

    with pytest.raises(PaymentNotConfirmedError):
        await service.confirm_membership(order_id, member, stub_gateway)
    assert await service.get_active(member.user_id) is None

    stub_gateway.mark_paid(order_id, payment_id="cf_pay_mem")
    confirmed = await service.confirm_membership(order_id, member, stub_gateway)
    assert confirmed.status == MembershipStatus.PAID
    assert confirmed.payment_raw == [{"cf_payment_id": "cf_pay_mem", "payment_status": "SUCCESS"}]

    again = await service.confirm_membership(order_id, member, stub_gateway)
    assert again.id == confirmed.id
    assert again.status == MembershipStatus.PAID

    with pytest.raises(NotFoundError):
        await service.confirm_membership(order_id, other_member, stub_gateway)

    active = await service.get_active(member.user_id)
    assert active.id == confirmed.id
    assert active.total_games == 75


@pytest.mark.asyncio
async def test_get_active_returns_latest_paid(test_session, membership_factory):
    now = utcnow()
    older = await membership_factory(test_session, created_at=now - timedelta(days=20), order_id="mem_old")
    newer = await membership_factory(test_session, created_at=now - timedelta(days=1), order_id="mem_new")
    await membership_factory(test_session, user_id="user_2", order_id="mem_other")

    active = await MembershipService(test_session).get_active("user_1")

    assert active.id == newer.id
    assert active.id != older.id


@pytest.mark.asyncio
async def test_try_debit_refuses_to_overdraw(test_session, membership_factory):
    membership = await membership_factory(test_session, games_used=23)
    service = MembershipService(test_session)

    assert not await service.try_debit(membership.id, 3)
    assert await service.try_debit(membership.id, 2)
    await test_session.commit()

    await test_session.refresh(membership)
    assert membership.games_used == 25
    assert not await service.try_debit(membership.id, 1)


@pytest.mark.asyncio
async def test_credit_back(test_session, membership_factory):
    now = utcnow()
    membership = await membership_factory(test_session, games_used=2, created_at=now - timedelta(days=3))
    service = MembershipService(test_session)

    assert await service.credit_back("user_1", now=now)
    await test_session.refresh(membership)
    assert membership.games_used == 1

    # Validity has lapsed
    assert not await service.credit_back("user_1", now=now + timedelta(days=40))
    await test_session.refresh(membership)
    assert membership.games_used == 1

    assert await service.credit_back("user_1", now=now)
    # Nothing left to give back
    assert not await service.credit_back("user_1", now=now)
    await test_session.refresh(membership)
    assert membership.games_used == 0
