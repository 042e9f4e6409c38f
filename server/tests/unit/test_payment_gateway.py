"""Unit tests for the Cashfree client over a mocked transport."""

import json

import httpx
import pytest

from courtbook.core.exceptions import PaymentNotConfirmedError
from courtbook.services.payment_gateway import (
    CashfreeGateway,
    GatewayError,
    GatewayTimeoutError,
    confirmed_payments,
    to_major_units,
)

BASE_URL = "https://sandbox.cashfree.com/pg"


def _gateway(handler) -> CashfreeGateway:
    return CashfreeGateway(
        base_url=BASE_URL,
        app_id="app_test",
        secret_key="secret_test",
        transport=httpx.MockTransport(handler),
    )


def test_to_major_units():
    assert to_major_units(299900) == 2999.0
    assert to_major_units(1050) == 10.5
    assert to_major_units(0) == 0


@pytest.mark.asyncio
async def test_create_order_request():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"order_id": "order_1", "payment_session_id": "session_abc"})

    gateway = _gateway(handler)
    order = await gateway.create_order(
        order_id="order_1",
        amount=150000,
        currency="INR",
        customer={"customer_id": "user_1", "customer_phone": "9876543210"},
        note="Court booking payment",
        return_url="https://courts.example.com/book/checkout?order_id={order_id}",
    )
    await gateway.close()

    assert order.payment_session_id == "session_abc"
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/pg/orders"
    assert request.headers["x-idempotency-key"] == "order_1"
    assert request.headers["x-client-id"] == "app_test"
    assert request.headers["x-api-version"] == "2023-08-01"

    body = json.loads(request.content)
    assert body["order_amount"] == 1500.0
    assert body["order_currency"] == "INR"
    assert body["order_note"] == "Court booking payment"
    assert body["order_meta"] == {"return_url": "https://courts.example.com/book/checkout?order_id={order_id}"}


@pytest.mark.asyncio
async def test_get_payments_maps_fields():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/pg/orders/order_7/payments"
        return httpx.Response(
            200,
            json=[
                {"cf_payment_id": 5114910, "payment_status": "FAILED", "payment_amount": 10.0},
                {"cf_payment_id": 5114911, "payment_status": "SUCCESS", "payment_amount": 10.0},
            ],
        )

    gateway = _gateway(handler)
    payments = await gateway.get_payments("order_7")

    assert [(p.payment_id, p.status, p.succeeded) for p in payments] == [
        ("5114910", "FAILED", False),
        ("5114911", "SUCCESS", True),
    ]
    confirmed = await confirmed_payments(gateway, "order_7")
    assert len(confirmed) == 2
    await gateway.close()


@pytest.mark.asyncio
async def test_refund_request():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/pg/orders/order_9/refunds"
        body = json.loads(request.content)
        assert body == {"refund_amount": 5.0, "refund_id": "refund_order_9_1"}
        return httpx.Response(200, json={"refund_id": "refund_order_9_1", "refund_status": "PENDING"})

    gateway = _gateway(handler)
    refund = await gateway.refund("order_9", 500, "refund_order_9_1")
    await gateway.close()

    assert refund.refund_id == "refund_order_9_1"
    assert refund.status == "PENDING"


@pytest.mark.asyncio
async def test_error_response_raises_gateway_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"message": "order_amount : invalid value", "code": "order_amount_invalid"})

    gateway = _gateway(handler)
    with pytest.raises(GatewayError) as exc_info:
        await gateway.create_order("order_bad", 0, "INR", customer={})
    await gateway.close()

    assert str(exc_info.value) == "order_amount : invalid value"
    assert exc_info.value.status_code == 400
    assert exc_info.value.payload["code"] == "order_amount_invalid"


@pytest.mark.asyncio
async def test_timeout_raises_timeout_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    gateway = _gateway(handler)
    with pytest.raises(GatewayTimeoutError):
        await gateway.get_payments("order_slow")

    with pytest.raises(PaymentNotConfirmedError) as exc_info:
        await confirmed_payments(gateway, "order_slow")
    assert exc_info.value.retryable
    await gateway.close()


@pytest.mark.asyncio
async def test_unpaid_order_is_not_confirmed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    gateway = _gateway(handler)
    with pytest.raises(PaymentNotConfirmedError):
        await confirmed_payments(gateway, "order_open")
    await gateway.close()
