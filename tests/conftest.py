"""
Pytest configuration and fixtures for storefront checkout tests.
"""
import os
from decimal import Decimal
from typing import AsyncGenerator, Awaitable, Callable, Dict, List, Optional, Tuple

import pytest

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-for-unit-tests-only"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["CHECKOUT_COOKIE_SECURE"] = "false"

from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from storefront.core.database import Base, enable_sqlite_foreign_keys
from storefront.core.security import create_access_token
from storefront.models import Cart  # noqa: F401 - registers models on Base
from storefront.services.cart_store import CartStore
from storefront.services.checkout_service import CheckoutConfig, CheckoutService
from storefront.services.gateways import PaymentGateways
from storefront.services.gateways.base import (
    CardAuthorization,
    CardGateway,
    WalletCapture,
    WalletGateway,
    WalletOrder,
)

USER_ID = 1
OTHER_USER_ID = 2


class FakeCardGateway(CardGateway):
    """Records calls; outcome controlled through attributes."""

    def __init__(self):
        self.authorize_status = "requires_action"
        self.retrieve_status = "succeeded"
        self.retrieve_metadata: Optional[Dict[str, str]] = None
        self.error: Optional[Exception] = None
        self.authorize_calls: List[dict] = []
        self.retrieve_calls: List[str] = []
        # Awaited after the intent is created, before the result is returned
        self.on_authorize: Optional[Callable[[], Awaitable[None]]] = None
        self.closed = False

    async def authorize(self, amount_minor, payment_method_token, metadata=None):
        self.authorize_calls.append({
            "amount_minor": amount_minor,
            "payment_method_token": payment_method_token,
            "metadata": metadata,
        })
        if self.error:
            raise self.error
        if self.on_authorize:
            await self.on_authorize()
        return CardAuthorization(
            id="pi_test_123",
            status=self.authorize_status,
            client_secret="pi_test_123_secret_abc",
            amount=amount_minor,
            currency="mad",
            next_action_url=(
                "https://hooks.stripe.com/3d_secure/pi_test_123"
                if self.authorize_status == "requires_action" else None
            ),
            metadata=dict(metadata or {}),
        )

    async def retrieve(self, authorization_id):
        self.retrieve_calls.append(authorization_id)
        if self.error:
            raise self.error
        metadata = self.retrieve_metadata
        if metadata is None:
            metadata = {"user_id": str(USER_ID)}
        return CardAuthorization(id=authorization_id, status=self.retrieve_status, metadata=metadata)

    async def close(self):
        self.closed = True


class FakeWalletGateway(WalletGateway):
    """PayPal stand-in."""

    currency = "USD"

    def __init__(self):
        self.order_id = "PAYPAL-ORDER-1"
        self.approval_url: Optional[str] = "https://www.sandbox.paypal.com/checkoutnow?token=PAYPAL-ORDER-1"
        self.capture_status = "COMPLETED"
        self.error: Optional[Exception] = None
        self.create_calls: List[dict] = []
        self.capture_calls: List[str] = []
        self.on_capture: Optional[Callable[[], Awaitable[None]]] = None
        self.closed = False

    async def create_order(self, amount, reference_id, return_url, cancel_url):
        self.create_calls.append({
            "amount": amount,
            "reference_id": reference_id,
            "return_url": return_url,
            "cancel_url": cancel_url,
        })
        if self.error:
            raise self.error
        return WalletOrder(id=self.order_id, status="CREATED", approval_url=self.approval_url)

    async def capture_order(self, order_id):
        self.capture_calls.append(order_id)
        if self.error:
            raise self.error
        if self.on_capture:
            await self.on_capture()
        return WalletCapture(id=order_id, status=self.capture_status)

    async def close(self):
        self.closed = True


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    event.listen(engine.sync_engine, "connect", enable_sqlite_foreign_keys)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def card_gateway() -> FakeCardGateway:
    return FakeCardGateway()


@pytest.fixture
def wallet_gateway() -> FakeWalletGateway:
    return FakeWalletGateway()


@pytest.fixture
def gateways(card_gateway, wallet_gateway) -> PaymentGateways:
    return PaymentGateways(card=card_gateway, wallet=wallet_gateway)


@pytest.fixture
def checkout_config() -> CheckoutConfig:
    return CheckoutConfig(
        shipping_flat_rate=Decimal("50.00"),
        minimum_charge_minor=50,
        wallet_conversion_divisor=Decimal("10"),
        wallet_attempt_ttl_minutes=60,
        app_url="http://localhost:8000",
    )


@pytest.fixture
def service(db, gateways, checkout_config) -> CheckoutService:
    return CheckoutService(db, gateways, checkout_config)


async def seed_cart(
    session_factory,
    user_id: int = USER_ID,
    items: Tuple[Tuple[int, int, str], ...] = ((10, 2, "100.00"),),
) -> int:
    """Create a committed cart: items are (product_id, quantity, unit price)."""
    async with session_factory() as session:
        store = CartStore(session)
        cart = await store.get_or_create_cart(user_id)
        for product_id, quantity, price in items:
            await store.add_item(user_id, product_id, quantity, price)
        await session.commit()
        return cart.id


@pytest.fixture
async def cart(session_factory):
    """User 1 cart: one line, price 100 x 2 (total with shipping: 250)."""
    return await seed_cart(session_factory)


@pytest.fixture
def auth_headers() -> dict:
    token = create_access_token({"sub": USER_ID})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client(session_factory, gateways) -> AsyncGenerator[AsyncClient, None]:
    """API client wired to the test database and fake gateways."""
    from storefront.api.deps import get_payment_gateways
    from storefront.core.database import get_db
    from storefront.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateways] = lambda: gateways

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
