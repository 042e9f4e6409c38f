"""API tests for the reservation endpoints."""

import pytest
from sqlalchemy import select

from courtbook.models.booking import Booking
from courtbook.services.hold_service import HoldService


def _slots_body(slot_date, *cells):
    return {
        "date": slot_date.isoformat(),
        "selections": [{"court_id": court_id, "start": start} for court_id, start in cells],
    }


def _status_of(body, court_id, start):
    court = next(c for c in body["courts"] if c["court_id"] == court_id)
    return next(s for s in court["slots"] if s["start"] == start)["status"]


@pytest.mark.asyncio
async def test_get_availability(test_client, test_session, slot_date):
    await HoldService(test_session).place_or_refresh_hold(slot_date, 1, "06:00", "client_a")

    response = await test_client.post(
        "/v1/availability/get", json={"date": slot_date.isoformat(), "client_id": "client_b"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["date"] == slot_date.isoformat()
    assert len(body["courts"]) == 3
    first = body["courts"][0]["slots"][0]
    assert first == {"court_id": 1, "start": "06:00", "end": "07:00", "status": "held", "past": False}
    assert _status_of(body, 2, "06:00") == "available"


@pytest.mark.asyncio
async def test_place_and_release_holds(test_client, slot_date):
    body = _slots_body(slot_date, (1, "07:00"), (2, "07:00"))
    body["client_id"] = "client_a"

    response = await test_client.post("/v1/hold/place", json=body)
    assert response.status_code == 200
    placed = response.json()
    assert placed["all_ok"] is True
    assert [(r["court_id"], r["ok"]) for r in placed["results"]] == [(1, True), (2, True)]
    assert placed["results"][0]["expires_at"]

    rival = _slots_body(slot_date, (2, "07:00"), (3, "07:00"))
    rival["client_id"] = "client_b"
    response = await test_client.post("/v1/hold/place", json=rival)
    assert response.status_code == 200
    contested = response.json()
    assert contested["all_ok"] is False
    assert contested["results"][0]["reason"] == "HELD_BY_OTHER"
    assert contested["results"][1]["ok"] is True

    response = await test_client.post(
        "/v1/hold/release", json={"date": slot_date.isoformat(), "client_id": "client_a"}
    )
    assert response.json() == {"ok": True, "released": 2}

    response = await test_client.post(
        "/v1/hold/release", json={"date": slot_date.isoformat(), "client_id": "client_a"}
    )
    assert response.json() == {"ok": True, "released": 0}


@pytest.mark.asyncio
async def test_selections_are_validated(test_client, slot_date):
    off_grid = _slots_body(slot_date, (1, "06:30"))
    off_grid["client_id"] = "client_a"
    response = await test_client.post("/v1/hold/place", json=off_grid)

    assert response.status_code == 422
    problem = response.json()
    assert problem["code"] == "VALIDATION_ERROR"
    assert any("selections" in v["path"] for v in problem["violations"])

    duplicate = _slots_body(slot_date, (1, "06:00"), (1, "06:00"))
    duplicate["client_id"] = "client_a"
    response = await test_client.post("/v1/hold/place", json=duplicate)
    assert response.status_code == 422

    unknown_court = _slots_body(slot_date, (4, "06:00"))
    unknown_court["client_id"] = "client_a"
    response = await test_client.post("/v1/hold/place", json=unknown_court)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_member_endpoints_require_token(test_client, slot_date):
    body = _slots_body(slot_date, (1, "08:00"))
    body.update({"order_id": "order_anon", "price": {"amount": 1000, "currency": "INR"}})

    response = await test_client.post("/v1/booking/finalize", json=body)
    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHENTICATED"

    response = await test_client.post(
        "/v1/booking/list", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_finalize_and_look_up_booking(test_client, stub_gateway, auth_headers, slot_date):
    stub_gateway.mark_paid("order_api_1", payment_id="cf_pay_api")
    body = _slots_body(slot_date, (1, "17:00"), (2, "17:00"))
    body.update({"order_id": "order_api_1", "price": {"amount": 2000, "currency": "INR"}})

    response = await test_client.post("/v1/booking/finalize", json=body, headers=auth_headers())
    assert response.status_code == 200
    settled = response.json()
    booking = settled["booking"]
    assert settled["replayed"] is False
    assert settled["warnings"] == []
    assert booking["payer_kind"] == "MEMBER"
    assert booking["payment_ref"] == "cf_pay_api"
    assert booking["price"] == {"amount": 2000, "currency": "INR"}
    assert booking["slots"] == [
        {"court_id": 1, "start": "17:00", "end": "18:00"},
        {"court_id": 2, "start": "17:00", "end": "18:00"},
    ]

    replay = await test_client.post("/v1/booking/finalize", json=body, headers=auth_headers())
    assert replay.json()["replayed"] is True
    assert replay.json()["booking"]["id"] == booking["id"]

    listed = await test_client.post("/v1/booking/list", headers=auth_headers())
    assert [b["id"] for b in listed.json()["items"]] == [booking["id"]]
    other = await test_client.post("/v1/booking/list", headers=auth_headers("user_2"))
    assert other.json()["items"] == []

    found = await test_client.post("/v1/booking/get-by-order", json={"order_id": "order_api_1"})
    assert found.status_code == 200
    assert found.json()["id"] == booking["id"]

    missing = await test_client.post("/v1/booking/get-by-order", json={"order_id": "order_nope"})
    assert missing.status_code == 404
    assert missing.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_unpaid_finalize_is_402(test_client, auth_headers, slot_date):
    body = _slots_body(slot_date, (1, "17:00"))
    body.update({"order_id": "order_unpaid", "price": {"amount": 1000, "currency": "INR"}})

    response = await test_client.post("/v1/booking/finalize", json=body, headers=auth_headers())

    assert response.status_code == 402
    problem = response.json()
    assert problem["code"] == "PAYMENT_NOT_CONFIRMED"
    assert problem["retryable"] is True


@pytest.mark.asyncio
async def test_guest_finalize_and_conflict(test_client, test_session, stub_gateway, slot_date):
    stub_gateway.mark_paid("order_guest_api")
    stub_gateway.mark_paid("order_guest_late")
    body = _slots_body(slot_date, (3, "20:00"))
    body.update({
        "order_id": "order_guest_api",
        "price": {"amount": 1000, "currency": "INR"},
        "guest": {"name": "Walk In", "phone": "9000000000"},
    })

    response = await test_client.post("/v1/booking/guest-finalize", json=body)
    assert response.status_code == 200
    assert response.json()["booking"]["payer_kind"] == "GUEST"
    assert response.json()["booking"]["user_id"] is None

    body["order_id"] = "order_guest_late"
    response = await test_client.post("/v1/booking/guest-finalize", json=body)

    assert response.status_code == 409
    problem = response.json()
    assert problem["code"] == "SLOT_ALREADY_BOOKED"
    assert problem["payment_captured"] is True
    assert problem["slot"] == {"court_id": 3, "start": "20:00", "end": "21:00"}
    assert problem["date"] == slot_date.isoformat()

    followups = await test_client.post("/v1/followup/list", json={"status": "MANUAL"})
    items = followups.json()["items"]
    assert [(f["kind"], f["order_id"]) for f in items] == [("PAID_CONFLICT", "order_guest_late")]
    assert items[0]["id"] == problem["followup_id"]


@pytest.mark.asyncio
async def test_free_booking_and_cancel(test_client, test_session, auth_headers, membership_factory, slot_date):
    await membership_factory(test_session, games_used=1)

    response = await test_client.post(
        "/v1/booking/free", json=_slots_body(slot_date, (2, "21:00"), (2, "22:00")), headers=auth_headers()
    )
    assert response.status_code == 200
    booking = response.json()["booking"]
    assert booking["funding"] == "MEMBERSHIP"
    assert booking["payment_ref"] == "MEMBERSHIP"
    assert booking["price"]["amount"] == 0

    active = await test_client.post("/v1/membership/active", headers=auth_headers())
    assert active.json()["membership"]["games_used"] == 3
    assert active.json()["membership"]["remaining"] == 22

    cancel_body = {"booking_id": booking["id"], "slot_index": 1}
    headers = {**auth_headers(), "Idempotency-Key": "cancel-free-1"}
    first = await test_client.post("/v1/booking/cancel", json=cancel_body, headers=headers)
    assert first.status_code == 200
    cancelled = first.json()
    assert cancelled["refund"]["status"] == "NO_PAYMENT"
    assert cancelled["refund"]["refund"] == {"amount": 0, "currency": "INR"}
    assert cancelled["remaining_slots"] == 1
    assert cancelled["booking_deleted"] is False

    replay = await test_client.post("/v1/booking/cancel", json=cancel_body, headers=headers)
    assert replay.status_code == 200
    assert replay.json() == cancelled

    active = await test_client.post("/v1/membership/active", headers=auth_headers())
    assert active.json()["membership"]["games_used"] == 2

    stored = (await test_session.execute(select(Booking))).scalar_one()
    await test_session.refresh(stored)
    assert len(stored.slots) == 1


@pytest.mark.asyncio
async def test_cancel_requires_idempotency_key(test_client, auth_headers):
    response = await test_client.post(
        "/v1/booking/cancel",
        json={"booking_id": "9b2f4c1e-0000-4000-8000-000000000000", "slot_index": 0},
        headers=auth_headers(),
    )

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_cancel_someone_elses_booking(test_client, stub_gateway, auth_headers, slot_date):
    stub_gateway.mark_paid("order_owned")
    body = _slots_body(slot_date, (1, "19:00"))
    body.update({"order_id": "order_owned", "price": {"amount": 1000, "currency": "INR"}})
    settled = await test_client.post("/v1/booking/finalize", json=body, headers=auth_headers())
    booking_id = settled.json()["booking"]["id"]

    response = await test_client.post(
        "/v1/booking/cancel",
        json={"booking_id": booking_id, "slot_index": 0},
        headers={**auth_headers("user_2"), "Idempotency-Key": "cancel-foreign"},
    )
    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"

    response = await test_client.post(
        "/v1/booking/cancel",
        json={"booking_id": booking_id, "slot_index": 5},
        headers={**auth_headers(), "Idempotency-Key": "cancel-bad-index"},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_SLOT_INDEX"


@pytest.mark.asyncio
async def test_free_booking_without_membership(test_client, auth_headers, slot_date):
    response = await test_client.post(
        "/v1/booking/free", json=_slots_body(slot_date, (1, "06:00")), headers=auth_headers()
    )

    assert response.status_code == 403
    assert response.json()["code"] == "NO_ACTIVE_MEMBERSHIP"


@pytest.mark.asyncio
async def test_create_payment_order(test_client, stub_gateway):
    body = {
        "price": {"amount": 150000, "currency": "INR"},
        "customer": {"name": "Asha Player", "email": "player@example.com", "phone": "9876543210"},
    }

    response = await test_client.post("/v1/payment/create-order", json=body)

    assert response.status_code == 200
    order = response.json()
    assert order["order_id"].startswith("order_")
    assert order["payment_session_id"] == f"session_{order['order_id']}"
    assert stub_gateway.orders[0]["customer"]["customer_id"] == "Asha_Player"

    stub_gateway.fail_orders = True
    response = await test_client.post("/v1/payment/create-order", json=body)
    assert response.status_code == 502
    assert response.json()["code"] == "GATEWAY_ERROR"


@pytest.mark.asyncio
async def test_membership_purchase_flow(test_client, stub_gateway, auth_headers):
    response = await test_client.post(
        "/v1/membership/create-order", json={"plan_id": "6M"}, headers=auth_headers()
    )
    assert response.status_code == 200
    created = response.json()
    assert created["membership"]["status"] == "PENDING"
    assert created["membership"]["total_games"] == 150
    assert created["payment_session_id"] == f"session_{created['order_id']}"

    response = await test_client.post(
        "/v1/membership/confirm", json={"order_id": created["order_id"]}, headers=auth_headers()
    )
    assert response.status_code == 402

    stub_gateway.mark_paid(created["order_id"])
    response = await test_client.post(
        "/v1/membership/confirm", json={"order_id": created["order_id"]}, headers=auth_headers()
    )
    assert response.status_code == 200
    assert response.json()["status"] == "PAID"

    active = await test_client.post("/v1/membership/active", headers=auth_headers())
    assert active.json()["membership"]["order_id"] == created["order_id"]
    assert active.json()["membership"]["percent_used"] == 0

    nobody = await test_client.post("/v1/membership/active", headers=auth_headers("user_2"))
    assert nobody.json() == {"membership": None}

    response = await test_client.post(
        "/v1/membership/create-order", json={"plan_id": "2M"}, headers=auth_headers()
    )
    assert response.status_code == 422

    stub_gateway.fail_orders = True
    response = await test_client.post(
        "/v1/membership/create-order", json={"plan_id": "1M"}, headers=auth_headers()
    )
    assert response.status_code == 502
