"""
OrderService - Centralized order creation logic

Every checkout path (card, wallet, cash on delivery) records its order
through here so the cart -> order snapshot rules live in one place:
- line items are always re-read from the cart table, never from the caller
- items are copied, not referenced
- the cart is deleted once the order is recorded
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.exceptions import CartChangedError, CartEmptyError, CartNotFoundError
from storefront.core.utils import utcnow
from storefront.models import Cart, CartItem, Order, OrderItem, OrderStatus
from storefront.services.cart_store import CartStore

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")


def to_decimal(amount) -> Decimal:
    """Coerce a float/int/str/Decimal amount to a 2-place Decimal."""
    if amount is None:
        return Decimal("0.00")
    return Decimal(str(amount)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    """Convert a major-unit amount to integer minor units (cents, centimes)."""
    return int(to_decimal(amount) * 100)


def convert_amount(amount, divisor) -> Decimal:
    """Convert a store-currency amount into another currency by a fixed divisor."""
    return (to_decimal(amount) / Decimal(str(divisor))).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def cart_subtotal(items: Iterable[CartItem]) -> Decimal:
    """Sum of quantity x unit price over the cart lines."""
    return sum((to_decimal(item.price) * item.quantity for item in items), Decimal("0.00"))


class OrderService:
    """Centralized order creation service."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.carts = CartStore(db)

    async def load_cart_for_checkout(self, user_id: int, lock: bool = False) -> Cart:
        """Cart with items, or CartNotFoundError / CartEmptyError."""
        cart = await self.carts.get_cart(user_id, lock=lock)
        if cart is None:
            raise CartNotFoundError()
        if not cart.items:
            raise CartEmptyError()
        return cart

    async def get_order(self, order_id: int, user_id: Optional[int] = None) -> Optional[Order]:
        query = select(Order).where(Order.id == order_id).options(selectinload(Order.items))
        if user_id is not None:
            query = query.where(Order.user_id == user_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_by_payment_reference(self, user_id: int, payment_reference: str) -> List[Order]:
        """Orders recorded for a gateway id, newest first."""
        result = await self.db.execute(
            select(Order)
            .where(Order.user_id == user_id, Order.payment_reference == payment_reference)
            .order_by(Order.id.desc())
        )
        return list(result.scalars().all())

    async def store_order(
        self,
        user_id: int,
        payment_method: str,
        total_amount,
        status: str,
        payment_reference: Optional[str] = None,
        delete_cart: bool = True,
        expected_version: Optional[int] = None,
        expected_subtotal: Optional[Decimal] = None,
    ) -> Order:
        """
        Snapshot the user's cart into an Order and its OrderItems.

        The cart is re-read (and row-locked) here regardless of what the caller
        computed earlier; if it vanished in between, CartNotFoundError is
        raised rather than writing an order without items.

        expected_version and expected_subtotal describe the cart the caller
        priced (and possibly charged); if the re-read cart differs from it,
        CartChangedError is raised and nothing is written.
        """
        cart = await self.load_cart_for_checkout(user_id, lock=True)

        subtotal = cart_subtotal(cart.items)
        if (expected_version is not None and cart.version_id != expected_version) or (
            expected_subtotal is not None and subtotal != to_decimal(expected_subtotal)
        ):
            logger.warning(
                f"Cart changed during checkout user_id={user_id} cart_id={cart.id} "
                f"version={cart.version_id} expected_version={expected_version} "
                f"subtotal={subtotal} expected_subtotal={expected_subtotal}"
            )
            raise CartChangedError(details={
                "cart_version": cart.version_id,
                "expected_version": expected_version,
                "cart_subtotal": str(subtotal),
                "expected_subtotal": str(expected_subtotal) if expected_subtotal is not None else None,
            })

        order = Order(
            user_id=user_id,
            payment_method=payment_method,
            payment_reference=payment_reference,
            total_amount=to_decimal(total_amount),
            status=status,
            completed_at=utcnow() if status == OrderStatus.COMPLETED.value else None,
            items=[
                OrderItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price=to_decimal(item.price),
                )
                for item in cart.items
            ],
        )
        self.db.add(order)
        await self.db.flush()

        if delete_cart:
            await self.carts.delete(cart)

        logger.info(
            f"Order stored order_id={order.id} user_id={user_id} "
            f"payment_method={payment_method} status={status} "
            f"total={order.total_amount} items={len(order.items)} "
            f"payment_reference={payment_reference}"
        )
        return order

    async def mark_completed(self, order: Order) -> Order:
        """pending -> completed"""
        if order.status != OrderStatus.PENDING.value:
            raise ValueError(f"Order {order.id} is {order.status}, cannot complete")
        order.status = OrderStatus.COMPLETED.value
        order.completed_at = utcnow()
        await self.db.flush()
        logger.info(f"Order completed order_id={order.id} user_id={order.user_id}")
        return order

    async def mark_failed(self, order: Order, reason: str) -> Order:
        """pending -> failed; completed orders are left untouched."""
        if order.status != OrderStatus.PENDING.value:
            return order
        order.status = OrderStatus.FAILED.value
        await self.db.flush()
        logger.info(f"Order failed order_id={order.id} user_id={order.user_id} reason={reason}")
        return order
