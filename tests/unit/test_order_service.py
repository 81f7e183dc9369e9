"""
Tests for cart storage and order snapshots.
"""
from decimal import Decimal

import pytest
from sqlalchemy import func, insert, select
from sqlalchemy.orm.exc import StaleDataError

from conftest import USER_ID, seed_cart
from storefront.core.exceptions import CartChangedError, CartEmptyError, CartNotFoundError
from storefront.models import Cart, CartItem, Order, OrderItem, OrderStatus, PaymentMethod
from storefront.services.cart_store import CartStore
from storefront.services.order_service import OrderService


class TestCartStore:
    @pytest.mark.asyncio
    async def test_add_item_creates_cart(self, db):
        store = CartStore(db)
        item = await store.add_item(USER_ID, product_id=5, quantity=3, price="12.50")

        cart = await store.get_cart(USER_ID)
        assert cart is not None
        assert [i.id for i in cart.items] == [item.id]
        assert cart.items[0].price == Decimal("12.50")

    @pytest.mark.asyncio
    async def test_add_item_rejects_non_positive_quantity(self, db):
        with pytest.raises(ValueError):
            await CartStore(db).add_item(USER_ID, product_id=5, quantity=0, price="1.00")

    @pytest.mark.asyncio
    async def test_clear_deletes_cart_and_items(self, db, cart):
        assert await CartStore(db).clear(USER_ID) is True
        await db.commit()

        assert (await db.execute(select(func.count()).select_from(Cart))).scalar() == 0
        assert (await db.execute(select(func.count()).select_from(CartItem))).scalar() == 0

    @pytest.mark.asyncio
    async def test_clear_missing_cart_is_noop(self, db):
        assert await CartStore(db).clear(USER_ID) is False
        assert await CartStore(db).clear(USER_ID) is False

    @pytest.mark.asyncio
    async def test_add_item_bumps_cart_version(self, db, cart):
        store = CartStore(db)
        before = (await store.get_cart(USER_ID)).version_id

        await store.add_item(USER_ID, product_id=6, quantity=1, price="5.00")

        assert (await store.get_cart(USER_ID)).version_id == before + 1

    @pytest.mark.asyncio
    async def test_delete_of_stale_cart_raises(self, db, cart, session_factory):
        store = CartStore(db)
        loaded = await store.get_cart(USER_ID)

        async with session_factory() as other:
            await CartStore(other).add_item(USER_ID, product_id=6, quantity=1, price="5.00")
            await other.commit()

        with pytest.raises(StaleDataError):
            await store.delete(loaded)


class TestStoreOrder:
    @pytest.mark.asyncio
    async def test_snapshots_items_and_deletes_cart(self, db, session_factory):
        await seed_cart(session_factory, items=((10, 2, "100.00"), (11, 1, "35.50")))

        order = await OrderService(db).store_order(
            user_id=USER_ID,
            payment_method=PaymentMethod.CASH_ON_DELIVERY.value,
            total_amount=Decimal("285.50"),
            status=OrderStatus.PENDING.value,
        )
        await db.commit()

        async with session_factory() as check:
            stored = await OrderService(check).get_order(order.id)
            assert stored.total_amount == Decimal("285.50")
            assert stored.status == "pending"
            assert stored.completed_at is None
            assert sorted((i.product_id, i.quantity, i.price) for i in stored.items) == [
                (10, 2, Decimal("100.00")),
                (11, 1, Decimal("35.50")),
            ]
            assert await CartStore(check).get_cart(USER_ID) is None

    @pytest.mark.asyncio
    async def test_keeps_cart_when_asked(self, db, cart):
        await OrderService(db).store_order(
            user_id=USER_ID,
            payment_method=PaymentMethod.CARD.value,
            total_amount=Decimal("250.00"),
            status=OrderStatus.PENDING.value,
            payment_reference="pi_1",
            delete_cart=False,
        )
        await db.commit()

        assert await CartStore(db).get_cart(USER_ID) is not None

    @pytest.mark.asyncio
    async def test_completed_status_sets_completed_at(self, db, cart):
        order = await OrderService(db).store_order(
            user_id=USER_ID,
            payment_method=PaymentMethod.WALLET.value,
            total_amount=Decimal("250.00"),
            status=OrderStatus.COMPLETED.value,
        )
        assert order.completed_at is not None

    @pytest.mark.asyncio
    async def test_missing_cart_raises_not_found(self, db):
        with pytest.raises(CartNotFoundError):
            await OrderService(db).store_order(USER_ID, "card", Decimal("1.00"), "pending")
        assert (await db.execute(select(func.count()).select_from(Order))).scalar() == 0

    @pytest.mark.asyncio
    async def test_empty_cart_raises_empty(self, db, session_factory):
        await seed_cart(session_factory, items=())
        with pytest.raises(CartEmptyError):
            await OrderService(db).store_order(USER_ID, "card", Decimal("1.00"), "pending")
        assert (await db.execute(select(func.count()).select_from(OrderItem))).scalar() == 0

    @pytest.mark.asyncio
    async def test_rereads_lines_added_after_first_read(self, db, cart, session_factory):
        service = OrderService(db)
        first = await service.load_cart_for_checkout(USER_ID)
        assert len(first.items) == 1

        async with session_factory() as other:
            await CartStore(other).add_item(USER_ID, product_id=99, quantity=1, price="500.00")
            await other.commit()

        order = await service.store_order(USER_ID, "cash_on_delivery", Decimal("750.00"), "pending")
        await db.commit()

        assert sorted(i.product_id for i in order.items) == [10, 99]
        assert (await db.execute(select(func.count()).select_from(CartItem))).scalar() == 0

    @pytest.mark.asyncio
    async def test_version_mismatch_raises_cart_changed(self, db, cart):
        service = OrderService(db)
        version = (await service.load_cart_for_checkout(USER_ID)).version_id

        with pytest.raises(CartChangedError):
            await service.store_order(
                USER_ID, "card", Decimal("250.00"), "pending", expected_version=version - 1
            )
        assert (await db.execute(select(func.count()).select_from(Order))).scalar() == 0

    @pytest.mark.asyncio
    async def test_subtotal_mismatch_raises_cart_changed(self, db, cart, session_factory):
        service = OrderService(db)
        first = await service.load_cart_for_checkout(USER_ID)
        version = first.version_id

        # A line written without going through CartStore leaves the version alone
        async with session_factory() as other:
            await other.execute(
                insert(CartItem.__table__).values(
                    cart_id=cart, product_id=7, quantity=1, price=Decimal("5.00")
                )
            )
            await other.commit()

        with pytest.raises(CartChangedError):
            await service.store_order(
                USER_ID,
                "card",
                Decimal("250.00"),
                "pending",
                expected_version=version,
                expected_subtotal=Decimal("200.00"),
            )

    @pytest.mark.asyncio
    async def test_matching_expectations_store_order(self, db, cart):
        service = OrderService(db)
        version = (await service.load_cart_for_checkout(USER_ID)).version_id

        order = await service.store_order(
            USER_ID,
            "card",
            Decimal("250.00"),
            "pending",
            expected_version=version,
            expected_subtotal=Decimal("200.00"),
        )

        assert order.id is not None


class TestStatusTransitions:
    @pytest.mark.asyncio
    async def test_complete_then_fail_leaves_completed(self, db, cart):
        service = OrderService(db)
        order = await service.store_order(USER_ID, "card", Decimal("250.00"), "pending", delete_cart=False)

        await service.mark_completed(order)
        await service.mark_failed(order, reason="late decline")

        assert order.status == "completed"

    @pytest.mark.asyncio
    async def test_cannot_complete_failed_order(self, db, cart):
        service = OrderService(db)
        order = await service.store_order(USER_ID, "card", Decimal("250.00"), "pending", delete_cart=False)
        await service.mark_failed(order, reason="declined")

        with pytest.raises(ValueError):
            await service.mark_completed(order)
