"""
Tests for checkout: converting a cart into an order in one transaction.
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from storefront.core.exceptions import (
    CheckoutPersistenceError,
    EmptyCartError,
    InsufficientStockError,
    PaymentNotConfirmedError,
    ProductNotFoundError,
)
from storefront.database.base import utc_now
from storefront.database.models import Cart, Order, OrderStatus, PaymentStatus, Product
from storefront.services.orders.repository import OrderRepository, order_number_prefix
from storefront.services.orders.service import OrderService
from storefront.services.payments.stripe_client import StripeGateway


async def count_orders(session_factory) -> int:
    async with session_factory() as fresh:
        return await fresh.scalar(select(func.count()).select_from(Order))


class TestCreateOrder:
    async def test_creates_priced_order_from_cart(self, create_product, place_order):
        product = await create_product(name="Desk Lamp", price="15.00", stock=10)

        order = await place_order("user-1", (product, 3), payment_intent_id="pi_abc")

        assert order.id is not None
        assert order.status == OrderStatus.PENDING
        assert order.user_id == "user-1"
        assert order.subtotal == Decimal("45.00")
        assert order.tax_amount == Decimal("6.75")
        assert order.shipping_amount == Decimal("10.00")
        assert order.total_amount == Decimal("61.75")

        assert len(order.items) == 1
        item = order.items[0]
        assert item.product_id == product.id
        assert item.product_name == "Desk Lamp"
        assert item.quantity == 3
        assert item.unit_price == Decimal("15.00")

        assert order.payment.payment_intent_id == "pi_abc"
        assert order.payment.amount == Decimal("61.75")
        assert order.payment.currency == "cad"
        assert order.payment.status == PaymentStatus.COMPLETED

    async def test_copies_shipping_address_and_notes(
        self, create_product, fill_cart, order_service, shipping_address
    ):
        product = await create_product()
        await fill_cart("user-1", (product, 1))

        order = await order_service.create_order(
            "user-1", shipping_address, "Ring twice", "pi_1"
        )

        assert order.shipping_address == {
            "street": "123 Main St",
            "city": "Halifax",
            "province": "NS",
            "postal_code": "B3H 1A1",
            "country": "CA",
        }
        assert order.notes == "Ring twice"

    async def test_decrements_stock_and_clears_cart(
        self, create_product, place_order, session_factory
    ):
        lamp = await create_product(name="Lamp", stock=10)
        chair = await create_product(name="Chair", price="80.00", stock=4)

        await place_order("user-1", (lamp, 2), (chair, 4))

        async with session_factory() as fresh:
            assert (await fresh.get(Product, lamp.id)).stock_quantity == 8
            assert (await fresh.get(Product, chair.id)).stock_quantity == 0
            cart = await fresh.scalar(select(Cart).where(Cart.user_id == "user-1"))
            assert cart is not None
            assert cart.items == []

    async def test_order_numbers_are_sequential_per_day(self, create_product, place_order):
        product = await create_product(stock=50)
        prefix = order_number_prefix(utc_now().date())

        numbers = [
            (await place_order("user-1", (product, 1))).order_number
            for _ in range(3)
        ]

        assert numbers == [f"{prefix}0001", f"{prefix}0002", f"{prefix}0003"]

    async def test_empty_cart_is_rejected(self, order_service, shipping_address):
        with pytest.raises(EmptyCartError):
            await order_service.create_order("nobody", shipping_address, None, "pi_1")

    async def test_insufficient_stock_rolls_back_everything(
        self, create_product, fill_cart, order_service, shipping_address, session_factory
    ):
        plenty = await create_product(name="Plenty", stock=10)
        scarce = await create_product(name="Scarce", stock=5)
        plenty_id, scarce_id = plenty.id, scarce.id
        await fill_cart("user-1", (plenty, 2), (scarce, 5))

        async with session_factory() as other:
            product = await other.get(Product, scarce_id)
            product.stock_quantity = 1
            await other.commit()

        with pytest.raises(InsufficientStockError) as exc_info:
            await order_service.create_order("user-1", shipping_address, None, "pi_1")

        assert exc_info.value.message == "Insufficient stock for Scarce"
        assert exc_info.value.context["requested"] == 5
        assert exc_info.value.context["available"] == 1

        assert await count_orders(session_factory) == 0
        async with session_factory() as fresh:
            assert (await fresh.get(Product, plenty_id)).stock_quantity == 10
            assert (await fresh.get(Product, scarce_id)).stock_quantity == 1
            cart = await fresh.scalar(select(Cart).where(Cart.user_id == "user-1"))
            assert len(cart.items) == 2

    async def test_missing_product_is_rejected(
        self, create_product, fill_cart, order_service, shipping_address, session_factory
    ):
        product = await create_product()
        await fill_cart("user-1", (product, 1))

        async with session_factory() as other:
            await other.delete(await other.get(Product, product.id))
            await other.commit()

        with pytest.raises((ProductNotFoundError, EmptyCartError)):
            await order_service.create_order("user-1", shipping_address, None, "pi_1")

        assert await count_orders(session_factory) == 0

    async def test_order_number_conflict_is_retried(
        self, create_product, place_order, monkeypatch
    ):
        product = await create_product(stock=10)
        first_number = (await place_order("user-1", (product, 1))).order_number

        original = OrderRepository.next_order_number
        calls = []

        async def stale_number(self, prefix):
            calls.append(prefix)
            if len(calls) == 1:
                return first_number
            return await original(self, prefix)

        monkeypatch.setattr(OrderRepository, "next_order_number", stale_number)

        second = await place_order("user-1", (product, 2))

        assert len(calls) == 2
        assert second.order_number != first_number
        assert second.order_number.endswith("0002")

    async def test_persistent_conflict_gives_up(
        self, create_product, place_order, fill_cart, order_service, shipping_address, monkeypatch
    ):
        product = await create_product(stock=10)
        taken = (await place_order("user-1", (product, 1))).order_number

        async def always_taken(self, prefix):
            return taken

        monkeypatch.setattr(OrderRepository, "next_order_number", always_taken)
        await fill_cart("user-1", (product, 1))

        with pytest.raises(CheckoutPersistenceError):
            await order_service.create_order("user-1", shipping_address, None, "pi_2")


class TestConcurrentCheckout:
    async def test_parallel_checkouts_get_sequential_numbers(
        self, settings, session_factory, create_product, fill_cart, shipping_address
    ):
        buyers = [f"user-{n}" for n in range(1, 6)]
        product = await create_product(price="15.00", stock=10)
        for buyer in buyers:
            await fill_cart(buyer, (product, 1))
        product_id = product.id
        checkout_settings = settings.model_copy(
            update={"checkout_max_attempts": len(buyers)}
        )

        async def checkout(buyer: str) -> str:
            async with session_factory() as own_session:
                service = OrderService(own_session, settings=checkout_settings)
                order = await service.create_order(
                    buyer, shipping_address, None, f"pi_{buyer}"
                )
                return order.order_number

        numbers = await asyncio.gather(*(checkout(buyer) for buyer in buyers))

        prefix = order_number_prefix(utc_now().date())
        assert sorted(numbers) == [f"{prefix}{n:04d}" for n in range(1, 6)]
        async with session_factory() as fresh:
            assert (await fresh.get(Product, product_id)).stock_quantity == 5
            assert await fresh.scalar(select(func.count()).select_from(Order)) == 5


class TestPaymentVerification:
    async def test_unconfirmed_payment_blocks_checkout(
        self, session, settings, create_product, fill_cart, shipping_address, session_factory
    ):
        gateway = AsyncMock(spec=StripeGateway)
        gateway.confirm.return_value = False
        service = OrderService(
            session,
            gateway=gateway,
            settings=settings.model_copy(update={"verify_payment_on_checkout": True}),
        )
        product = await create_product()
        await fill_cart("user-1", (product, 1))

        with pytest.raises(PaymentNotConfirmedError):
            await service.create_order("user-1", shipping_address, None, "pi_unpaid")

        gateway.confirm.assert_awaited_once_with("pi_unpaid")
        assert await count_orders(session_factory) == 0

    async def test_confirmed_payment_allows_checkout(
        self, session, settings, create_product, fill_cart, shipping_address
    ):
        gateway = AsyncMock(spec=StripeGateway)
        gateway.confirm.return_value = True
        service = OrderService(
            session,
            gateway=gateway,
            settings=settings.model_copy(update={"verify_payment_on_checkout": True}),
        )
        product = await create_product()
        await fill_cart("user-1", (product, 1))

        order = await service.create_order("user-1", shipping_address, None, "pi_paid")

        assert order.status == OrderStatus.PENDING
