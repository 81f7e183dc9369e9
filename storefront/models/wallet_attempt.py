"""
Wallet attempt model

Server-side record of a wallet payment waiting for off-site approval. No
order exists yet at that point, so this row is what the return leg is
checked against instead of trusting client-held state.
"""
from datetime import datetime, timedelta, timezone
from sqlalchemy import Column, Integer, String, DateTime, Numeric

from storefront.core.database import Base
from storefront.core.utils import as_utc

# Default attempt TTL in minutes
WALLET_ATTEMPT_TTL_MINUTES = 60


class WalletAttempt(Base):
    """
    Lifecycle:
    1. Created when the PayPal order is created (shopper redirected)
    2. Deleted when the payment is captured and the order recorded
    3. Deleted on cancel, or by the cleanup job once expired
    """
    __tablename__ = "wallet_attempts"

    id = Column(Integer, primary_key=True, index=True)
    correlation_id = Column(String(64), nullable=False, unique=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    gateway_order_id = Column(String(255), nullable=False, unique=True, index=True)
    payment_method = Column(String(32), nullable=False)

    # Store-currency total the approval was created for
    amount = Column(Numeric(12, 2), nullable=False)
    wallet_amount = Column(Numeric(12, 2), nullable=False)
    wallet_currency = Column(String(3), nullable=False)

    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def is_expired(self) -> bool:
        """Check if this attempt has expired."""
        return datetime.now(timezone.utc) > as_utc(self.expires_at)

    @classmethod
    def create_expiry(cls, ttl_minutes: int = WALLET_ATTEMPT_TTL_MINUTES) -> datetime:
        """Calculate expiry timestamp from now."""
        return datetime.now(timezone.utc) + timedelta(minutes=ttl_minutes)
