"""
CartStore - access to a user's cart and its line items
"""
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.utils import utcnow
from storefront.models import Cart, CartItem

logger = logging.getLogger(__name__)


class CartStore:
    """Thin repository over carts; the authoritative source at checkout time."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_cart(self, user_id: int, lock: bool = False) -> Optional[Cart]:
        """Load the user's cart with its items, optionally row-locked."""
        query = (
            select(Cart)
            .where(Cart.user_id == user_id)
            .options(selectinload(Cart.items))
        )
        if lock:
            # Refresh an instance already in the session so the lines are the current ones
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_or_create_cart(self, user_id: int) -> Cart:
        cart = await self.get_cart(user_id)
        if cart is None:
            cart = Cart(user_id=user_id, items=[])
            self.db.add(cart)
            await self.db.flush()
        return cart

    async def add_item(self, user_id: int, product_id: int, quantity: int, price) -> CartItem:
        """Add a line to the cart, capturing the unit price now."""
        if quantity <= 0:
            raise ValueError("quantity must be positive")

        cart = await self.get_or_create_cart(user_id)
        item = CartItem(product_id=product_id, quantity=quantity, price=Decimal(str(price)))
        cart.items.append(item)
        # Item changes alone issue no UPDATE on carts; touch the row so version_id moves
        cart.updated_at = utcnow()
        await self.db.flush()
        return item

    async def clear(self, user_id: int) -> bool:
        """
        Delete the user's cart and items.

        Idempotent: returns False (and does nothing) when there is no cart.
        """
        cart = await self.get_cart(user_id)
        if cart is None:
            logger.info(f"No cart found for user user_id={user_id}")
            return False

        await self.delete(cart)
        logger.info(f"User cart cleared user_id={user_id}")
        return True

    async def delete(self, cart: Cart) -> None:
        """Delete an already-loaded cart; raises StaleDataError if someone beat us to it."""
        await self.db.delete(cart)
        await self.db.flush()
