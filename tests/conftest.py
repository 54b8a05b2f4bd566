"""
Pytest configuration and fixtures.
"""

import sys
import os
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Add app to path
sys.path.append(os.getcwd())

from wedfund.config import GatewayConfig
from wedfund.database import Base, get_db
from wedfund.services.gateway_client import GatewayPaymentDetails, GatewayToken, SubmittedOrder
import wedfund.models  # noqa: F401

# Use in-memory SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

ADMIN_KEY = "test-admin-key"

TEST_GATEWAY_CONFIG = GatewayConfig(
    api_url="https://pay.example.test/pesapalv3",
    consumer_key="key",
    consumer_secret="secret",
    callback_url="https://site.example.test/payments/callback",
    cancel_url="https://site.example.test/payments/cancel",
    ipn_id="ipn-123",
)


@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test; one shared connection."""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; take it over
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for a test."""
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()


def make_gateway(
    tracking_id: str = "track-1",
    redirect_url: str = "https://pay.example.test/checkout/track-1",
    status: str = "COMPLETED",
):
    """AsyncMock standing in for PesapalClient."""
    gateway = AsyncMock()
    gateway.config = TEST_GATEWAY_CONFIG
    gateway.authenticate.return_value = GatewayToken(
        token="tok", expiry_date="2030-01-01T00:00:00Z"
    )
    gateway.submit_order.return_value = SubmittedOrder(
        order_tracking_id=tracking_id, redirect_url=redirect_url
    )
    gateway.query_status.return_value = GatewayPaymentDetails(
        status=status,
        method="MpesaKE",
        date="2026-10-17T10:00:00",
        confirmation_code="CONF-1",
        amount=Decimal("100.00"),
        currency="UGX",
    )
    gateway.cancel_order.return_value = {"status": "200"}
    return gateway


@pytest.fixture
def gateway():
    return make_gateway()


@pytest_asyncio.fixture
async def client(db, gateway, monkeypatch) -> AsyncGenerator[httpx.AsyncClient, None]:
    """ASGI client bound to the test session and fake gateway."""
    from wedfund.api.deps import get_gateway_client
    from wedfund.config import settings
    from wedfund.main import app

    monkeypatch.setattr(settings, "admin_api_key", ADMIN_KEY)

    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway_client] = lambda: gateway

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"X-Admin-Key": ADMIN_KEY}
