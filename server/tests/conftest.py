"""Test configuration and fixtures."""

from datetime import date, datetime, timedelta
from typing import Optional

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from courtbook.core.clock import utcnow
from courtbook.core.config import settings
from courtbook.core.database import Base, Database, get_db
from courtbook.core.dependencies import CurrentUser, get_payment_gateway
from courtbook.models import *  # noqa: F403 - Import all models
from courtbook.models.membership import MembershipAccount, MembershipStatus
from courtbook.schemas.common import SlotSelection
from courtbook.services.membership_service import PLANS
from courtbook.services.payment_gateway import (
    PAYMENT_SUCCESS,
    GatewayError,
    GatewayOrder,
    GatewayPayment,
    GatewayRefund,
)

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class StubGateway:
    """In-memory payment gateway: orders are unpaid until ``mark_paid``."""

    def __init__(self):
        self.orders: list[dict] = []
        self.payments: dict[str, list[GatewayPayment]] = {}
        self.refunds: list[dict] = []
        self.fail_orders = False
        self.fail_payments = False
        self.fail_refunds = False

    def mark_paid(self, order_id: str, payment_id: str = "cf_pay_1") -> None:
        self.payments[order_id] = [
            GatewayPayment(
                payment_id=payment_id,
                status=PAYMENT_SUCCESS,
                raw={"cf_payment_id": payment_id, "payment_status": PAYMENT_SUCCESS},
            )
        ]

    def mark_failed(self, order_id: str) -> None:
        self.payments[order_id] = [
            GatewayPayment(payment_id="cf_pay_failed", status="FAILED", raw={"payment_status": "FAILED"})
        ]

    async def create_order(self, order_id, amount, currency, customer, note=None, return_url=None):
        if self.fail_orders:
            raise GatewayError("order rejected", status_code=400)
        self.orders.append({
            "order_id": order_id,
            "amount": amount,
            "currency": currency,
            "customer": customer,
            "note": note,
            "return_url": return_url,
        })
        return GatewayOrder(order_id=order_id, payment_session_id=f"session_{order_id}")

    async def get_payments(self, order_id):
        if self.fail_payments:
            raise GatewayError("gateway unreachable")
        return list(self.payments.get(order_id, []))

    async def refund(self, order_id, amount, refund_id):
        if self.fail_refunds:
            raise GatewayError("refund rejected", status_code=400)
        self.refunds.append({"order_id": order_id, "amount": amount, "refund_id": refund_id})
        return GatewayRefund(refund_id=refund_id, status="PENDING", raw={"refund_id": refund_id})


def make_token(
    user_id: str = "user_1",
    email: str = "player@example.com",
    name: Optional[str] = "Asha Player",
    phone: Optional[str] = "9876543210",
) -> str:
    payload = {"sub": user_id, "email": email}
    if name:
        payload["name"] = name
    if phone:
        payload["phone"] = phone
    return jwt.encode(payload, settings.bearer_token_secret, algorithm="HS256")


def auth_header(user_id: str = "user_1", **claims) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id, **claims)}"}


def selections(*cells: tuple[int, str]) -> list[SlotSelection]:
    return [SlotSelection(court_id=court_id, start=start) for court_id, start in cells]


async def create_paid_membership(
    session,
    user_id: str = "user_1",
    plan_id: str = "1M",
    games_used: int = 0,
    created_at: Optional[datetime] = None,
    order_id: Optional[str] = None,
) -> MembershipAccount:
    plan = PLANS[plan_id]
    membership = MembershipAccount(
        order_id=order_id or f"mem_test_{user_id}_{plan_id}_{games_used}",
        user_id=user_id,
        user_name="Asha Player",
        user_email="player@example.com",
        plan_id=plan.plan_id,
        plan_name=plan.name,
        duration_months=plan.duration_months,
        total_games=plan.games,
        games_used=games_used,
        amount=plan.amount,
        currency="INR",
        status=MembershipStatus.PAID,
        created_at=created_at or utcnow(),
    )
    session.add(membership)
    await session.commit()
    return membership


@pytest.fixture
def slot_date() -> date:
    """A date comfortably in the future so no slot is in the past."""
    return date.today() + timedelta(days=7)


@pytest.fixture
def member() -> CurrentUser:
    return CurrentUser(user_id="user_1", email="player@example.com", name="Asha Player", phone="9876543210")


@pytest.fixture
def other_member() -> CurrentUser:
    return CurrentUser(user_id="user_2", email="rival@example.com", name="Ravi Rival", phone="9123456780")


@pytest.fixture
def stub_gateway() -> StubGateway:
    return StubGateway()


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_database(test_engine) -> Database:
    """Database handle over the test engine, as workers and the app use it."""
    return Database.from_engine(test_engine)


@pytest_asyncio.fixture(scope="function")
async def test_session(test_database):
    """Create a test database session."""
    async with test_database.session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def file_database(tmp_path):
    """
    File-backed SQLite database for tests that race several sessions.

    Every session gets its own connection, so writers really contend.
    """
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
    await database.create_all()
    yield database
    await database.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, test_database, stub_gateway):
    """Create a test FastAPI application."""
    from fastapi import FastAPI
    from fastapi.exceptions import RequestValidationError

    from courtbook.core.exceptions import (
        ProblemDetailsException,
        generic_exception_handler,
        problem_details_handler,
        validation_exception_handler,
    )
    from courtbook.routers import availability, booking, followup, health, hold, membership, metrics, payment

    # Create a simplified test app without lifespan
    app = FastAPI(
        title="Court Booking API (Test)",
        description="Test version of the API",
        version="1.0.0-test",
    )

    # Register exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Register API routers
    app.include_router(health.router)
    app.include_router(availability.router)
    app.include_router(hold.router)
    app.include_router(payment.router)
    app.include_router(booking.router)
    app.include_router(membership.router)
    app.include_router(followup.router)
    app.include_router(metrics.router)

    app.state.database = test_database
    app.state.payment_gateway = stub_gateway

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: stub_gateway

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers():
    """Factory for Bearer headers: ``auth_headers("user_2")``."""
    return auth_header


@pytest.fixture
def cells():
    """Factory for slot selections: ``cells((1, "07:00"), (2, "07:00"))``."""
    return selections


@pytest.fixture
def membership_factory():
    """Factory that stores a PAID membership: ``await membership_factory(session, ...)``."""
    return create_paid_membership
