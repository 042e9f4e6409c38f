"""Payment gateway boundary and the Cashfree PG client."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import httpx

from ..core.config import Settings
from ..core.exceptions import PaymentNotConfirmedError

logger = logging.getLogger(__name__)

PAYMENT_SUCCESS = "SUCCESS"


class GatewayError(Exception):
    """The gateway rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class GatewayTimeoutError(GatewayError):
    """The gateway did not answer within the configured timeout."""


@dataclass
class GatewayOrder:
    order_id: str
    payment_session_id: Optional[str]
    raw: dict = field(default_factory=dict)


@dataclass
class GatewayPayment:
    payment_id: Optional[str]
    status: Optional[str]
    amount: Optional[float] = None
    raw: dict = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == PAYMENT_SUCCESS


@dataclass
class GatewayRefund:
    refund_id: str
    status: Optional[str]
    raw: dict = field(default_factory=dict)


class PaymentGateway(Protocol):
    """Operations the reservation engine needs from a payment gateway."""

    async def create_order(
        self,
        order_id: str,
        amount: int,
        currency: str,
        customer: dict[str, str],
        note: Optional[str] = None,
        return_url: Optional[str] = None,
    ) -> GatewayOrder:
        ...

    async def get_payments(self, order_id: str) -> list[GatewayPayment]:
        ...

    async def refund(self, order_id: str, amount: int, refund_id: str) -> GatewayRefund:
        ...


def to_major_units(amount: int) -> float:
    """Gateway amounts are decimal major units; ours are integer minor units."""
    return round(amount / 100, 2)


async def confirmed_payments(gateway: PaymentGateway, order_id: str) -> list[GatewayPayment]:
    """
    Return the order's payments if at least one succeeded.

    Raises:
        PaymentNotConfirmedError: If none succeeded or the gateway failed
    """
    try:
        payments = await gateway.get_payments(order_id)
    except GatewayError as e:
        logger.warning(
            "Payment verification failed - gateway error",
            extra={"order_id": order_id, "error": str(e)}
        )
        raise PaymentNotConfirmedError(order_id, "Could not verify payment with the gateway, try again.")

    if not any(payment.succeeded for payment in payments):
        logger.info(
            "Payment not confirmed",
            extra={"order_id": order_id, "payment_count": len(payments)}
        )
        raise PaymentNotConfirmedError(order_id)

    return payments


class CashfreeGateway:
    """
    Client for the Cashfree PG REST API.

    One instance is opened at application start-up and closed at shutdown;
    it owns a pooled ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        base_url: str,
        app_id: str,
        secret_key: str,
        api_version: str = "2023-08-01",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "accept": "application/json",
                "x-api-version": api_version,
                "x-client-id": app_id,
                "x-client-secret": secret_key,
            },
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "CashfreeGateway":
        return cls(
            base_url=settings.cashfree_base_url,
            app_id=settings.cashfree_app_id,
            secret_key=settings.cashfree_secret_key,
            api_version=settings.cashfree_api_version,
            timeout=settings.gateway_timeout_seconds,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _make_request(
        self,
        method: str,
        path: str,
        json_data: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """
        Send one request and decode the JSON body.

        Raises:
            GatewayTimeoutError: If the request timed out
            GatewayError: On transport errors or non-2xx responses
        """
        try:
            response = await self._client.request(method, path, json=json_data, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning(f"Cashfree {method} {path} timed out: {e}")
            raise GatewayTimeoutError(f"Cashfree request timed out: {method} {path}") from e
        except httpx.HTTPError as e:
            logger.warning(f"Cashfree {method} {path} failed: {e}")
            raise GatewayError(f"Cashfree request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_error:
            message = data.get("message") if isinstance(data, dict) else None
            raise GatewayError(
                message or f"Cashfree returned HTTP {response.status_code}",
                status_code=response.status_code,
                payload=data,
            )
        return data

    async def create_order(
        self,
        order_id: str,
        amount: int,
        currency: str,
        customer: dict[str, str],
        note: Optional[str] = None,
        return_url: Optional[str] = None,
    ) -> GatewayOrder:
        body: dict[str, Any] = {
            "order_id": order_id,
            "order_amount": to_major_units(amount),
            "order_currency": currency,
            "customer_details": customer,
        }
        if note:
            body["order_note"] = note
        if return_url:
            body["order_meta"] = {"return_url": return_url}

        data = await self._make_request(
            "POST",
            "/orders",
            json_data=body,
            headers={"x-idempotency-key": order_id},
        )
        logger.info(f"Cashfree order created: {order_id}")
        return GatewayOrder(
            order_id=order_id,
            payment_session_id=data.get("payment_session_id") if isinstance(data, dict) else None,
            raw=data if isinstance(data, dict) else {},
        )

    async def get_payments(self, order_id: str) -> list[GatewayPayment]:
        data = await self._make_request("GET", f"/orders/{order_id}/payments")
        if not isinstance(data, list):
            return []
        return [
            GatewayPayment(
                payment_id=str(item.get("cf_payment_id")) if item.get("cf_payment_id") is not None else None,
                status=item.get("payment_status") or item.get("status"),
                amount=item.get("payment_amount"),
                raw=item,
            )
            for item in data
            if isinstance(item, dict)
        ]

    async def refund(self, order_id: str, amount: int, refund_id: str) -> GatewayRefund:
        data = await self._make_request(
            "POST",
            f"/orders/{order_id}/refunds",
            json_data={"refund_amount": to_major_units(amount), "refund_id": refund_id},
        )
        logger.info(f"Cashfree refund {refund_id} issued for order {order_id}")
        return GatewayRefund(
            refund_id=refund_id,
            status=data.get("refund_status") if isinstance(data, dict) else None,
            raw=data if isinstance(data, dict) else {},
        )
