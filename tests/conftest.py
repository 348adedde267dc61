"""
Pytest configuration and shared test fixtures.

Every test gets its own SQLite database file (aiosqlite) with the schema
created from the ORM metadata, a session factory bound to it, and helpers to
seed products and carts, sign Stripe webhook payloads and mint bearer tokens.
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("APP_NOTIFICATIONS_ENABLED", "false")

import hashlib
import hmac
import json
import time
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import Settings, get_settings
from storefront.database.connection import create_engine, create_session_factory
from storefront.database.models import Base, Product
from storefront.services.cart.service import CartService
from storefront.services.notifications.dispatcher import NotificationDispatcher
from storefront.services.orders.service import OrderService, ShippingAddress
from storefront.services.payments.stripe_client import StripeGateway

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite database."""
    return Settings(
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}",
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_max_retries=3,
        notifications_enabled=False,
    )


@pytest.fixture
async def engine(settings):
    engine = create_engine(settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def create_product(session):
    """
    Factory inserting a committed product.

    Example:
        product = await create_product(price="15.00", stock=10)
    """

    async def _create(
        name: str = "Widget",
        price: str = "15.00",
        stock: int = 10,
        is_active: bool = True,
    ) -> Product:
        product = Product(
            name=name,
            price=Decimal(price),
            stock_quantity=stock,
            is_active=is_active,
        )
        session.add(product)
        await session.commit()
        return product

    return _create


@pytest.fixture
def fill_cart(session):
    """Factory adding ``(product, quantity)`` lines to a user's cart."""

    async def _fill(user_id: str, *lines):
        service = CartService(session)
        cart = None
        for product, quantity in lines:
            cart = await service.add_item(user_id, product.id, quantity)
        return cart

    return _fill


@pytest.fixture
def shipping_address() -> ShippingAddress:
    return ShippingAddress(
        street="123 Main St",
        city="Halifax",
        province="NS",
        postal_code="B3H 1A1",
        country="CA",
    )


@pytest.fixture
def order_service(session, settings) -> OrderService:
    return OrderService(session, settings=settings)


@pytest.fixture
def place_order(order_service, fill_cart, shipping_address):
    """Factory running a full checkout for ``user_id``."""

    async def _place(user_id: str, *lines, payment_intent_id: str = "pi_test_123"):
        await fill_cart(user_id, *lines)
        return await order_service.create_order(
            user_id=user_id,
            shipping_address=shipping_address,
            notes=None,
            payment_intent_id=payment_intent_id,
        )

    return _place


@pytest.fixture
def stripe_sdk() -> MagicMock:
    """Stand-in for ``stripe.StripeClient``."""
    return MagicMock()


@pytest.fixture
def gateway(stripe_sdk, settings) -> StripeGateway:
    return StripeGateway(client=stripe_sdk, settings=settings, initial_backoff=0, max_backoff=0)


@pytest.fixture
def dispatcher() -> AsyncMock:
    mock = AsyncMock(spec=NotificationDispatcher)
    mock.send_order_confirmation.return_value = True
    mock.send_refund_confirmation.return_value = True
    return mock


def _sign(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture
def sign_webhook():
    """
    Serialize an event and build a matching ``Stripe-Signature`` header.

    Returns:
        Callable returning ``(payload_bytes, header)``
    """

    def _sign_event(event: dict, secret: str = WEBHOOK_SECRET) -> tuple[bytes, str]:
        payload = json.dumps(event)
        return payload.encode("utf-8"), _sign(payload, secret)

    return _sign_event


@pytest.fixture
def make_token():
    """Mint a bearer token accepted by the API."""

    def _make(user_id: str = "user-1", role: str = "customer", email: str | None = None) -> str:
        app_settings = get_settings()
        claims = {
            "sub": user_id,
            "email": email or f"{user_id}@example.com",
            "role": role,
            "exp": int(time.time()) + 3600,
        }
        return jwt.encode(claims, app_settings.secret_key, algorithm=app_settings.jwt_algorithm)

    return _make


@pytest.fixture
def auth_headers(make_token):
    def _headers(user_id: str = "user-1", role: str = "customer") -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id, role)}"}

    return _headers


@pytest.fixture
async def api_client(session_factory, gateway, dispatcher):
    """
    HTTP client for the application, bound to the test database.

    The database session, Stripe gateway and email dispatcher dependencies
    are overridden for the duration of the test.
    """
    from httpx import ASGITransport, AsyncClient

    from storefront.api.deps import get_dispatcher, get_gateway
    from storefront.database.connection import get_db
    from storefront.main import app

    async def override_get_db():
        async with session_factory() as db_session:
            yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
