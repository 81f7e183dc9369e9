"""
Order models

Orders and their items are snapshots of the cart at checkout time; they
outlive the cart they were built from.
"""
import enum

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Numeric, Index
from sqlalchemy.orm import relationship

from storefront.core.database import Base
from storefront.core.utils import utcnow


class PaymentMethod(str, enum.Enum):
    """How the shopper pays"""
    CARD = "card"
    WALLET = "wallet"
    CASH_ON_DELIVERY = "cash_on_delivery"


class OrderStatus(str, enum.Enum):
    """Order lifecycle: pending -> completed | failed"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False)

    payment_method = Column(String(32), nullable=False)
    # Stripe PaymentIntent id or PayPal order id
    payment_reference = Column(String(255), nullable=True)

    total_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(16), default=OrderStatus.PENDING.value, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    completed_at = Column(DateTime(timezone=True))

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    __table_args__ = (
        Index("ix_orders_user_id", "user_id"),
        Index("ix_orders_payment_reference", "payment_reference"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False, index=True)

    # Snapshot of the cart line at order time
    price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")
