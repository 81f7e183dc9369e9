"""
Cart models

One cart per user. The cart row is versioned so that two checkouts racing on
the same cart cannot both consume it: the second DELETE matches no row and
SQLAlchemy raises StaleDataError. Adding a line touches the cart row, so the
version also moves whenever the cart contents change.
"""
from sqlalchemy import Column, Integer, ForeignKey, DateTime, Numeric, CheckConstraint, Index
from sqlalchemy.orm import relationship

from storefront.core.database import Base
from storefront.core.utils import utcnow


class Cart(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True, index=True)
    # At most one active cart per user
    user_id = Column(Integer, nullable=False, unique=True, index=True)
    version_id = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    __mapper_args__ = {"version_id_col": version_id}


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False, index=True)

    quantity = Column(Integer, nullable=False, default=1)
    # Unit price captured when the item was added
    price = Column(Numeric(12, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    cart = relationship("Cart", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_cart_item_quantity_positive"),
        Index("ix_cart_items_cart_product", "cart_id", "product_id"),
    )
