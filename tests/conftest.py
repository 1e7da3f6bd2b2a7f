"""
Shared test fixtures.

Uses a per-test SQLite database file (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  A file rather than ``:memory:`` gives every
session its own connection, which the concurrent-callback tests rely on.
Locks are the in-process ``KeyedAsyncLock``.
"""

import itertools
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from charter.config import GatewayConfig, SignaturePolicy
from charter.domain.enums import BookingStatus
from charter.domain.signing import CallbackAuthenticator
from charter.infrastructure.database import Base
from charter.infrastructure.locks import KeyedAsyncLock
from charter.infrastructure.models import BookingModel, DriverModel
from charter.services.reconciler import SettlementReconciler

MERCHANT_ID = "478A0001"
SECRET = "test-api-key"


# ── Database ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables in a fresh database file, yield a session factory."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'charter.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ── Gateway ───────────────────────────────────────────────────────────


@pytest.fixture
def gateway_config() -> GatewayConfig:
    return GatewayConfig(
        merchant_id=MERCHANT_ID,
        secret=SECRET,
        return_url="https://api.example.com/api/v1/payments/gomypay/return",
        app_deep_link="ridebooking://payment-result",
    )


@pytest.fixture
def log_only_config(gateway_config) -> GatewayConfig:
    return GatewayConfig(
        merchant_id=gateway_config.merchant_id,
        secret=gateway_config.secret,
        signature_policy=SignaturePolicy.LOG,
    )


@pytest.fixture
def locks() -> KeyedAsyncLock:
    return KeyedAsyncLock(wait_timeout=5.0)


@pytest.fixture
def reconciler(session_factory, locks, gateway_config) -> SettlementReconciler:
    return SettlementReconciler(session_factory, locks, gateway_config)


@pytest.fixture
def callback_payload():
    """Build a correctly signed gateway callback form."""
    authenticator = CallbackAuthenticator(MERCHANT_ID, SECRET)
    gateway_ids = itertools.count(1)

    def _payload(order_no: str, amount="500", result="1", **overrides) -> dict:
        data = {
            "result": result,
            "ret_msg": "Success" if result == "1" else "Card declined",
            "e_orderno": order_no,
            "e_money": str(amount),
            "OrderID": f"2026101800{next(gateway_ids):06d}",
            "AvCode": "A1B2C3",
            "str_check": authenticator.sign(order_no, amount),
        }
        data.update(overrides)
        return data

    return _payload


# ── Factories ─────────────────────────────────────────────────────────


@pytest.fixture
def make_booking(session_factory):
    """Insert a booking (committed) and return it detached."""
    numbers = itertools.count(1700000000000)

    async def _make(**overrides) -> BookingModel:
        fields = dict(
            booking_number=f"BK{next(numbers)}",
            customer_id="customer-1",
            status=BookingStatus.PENDING_PAYMENT,
            duration_hours=8,
            base_price=Decimal("1500"),
            deposit_amount=Decimal("500"),
            balance_amount=Decimal("1000"),
            total_amount=Decimal("1500"),
        )
        fields.update(overrides)
        async with session_factory() as session:
            async with session.begin():
                booking = BookingModel(**fields)
                session.add(booking)
        return booking

    return _make


@pytest.fixture
def make_driver(session_factory):
    async def _make(name="Driver", completed_trips=0, is_active=True) -> DriverModel:
        async with session_factory() as session:
            async with session.begin():
                driver = DriverModel(
                    name=name, completed_trips=completed_trips, is_active=is_active
                )
                session.add(driver)
        return driver

    return _make
