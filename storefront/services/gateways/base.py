"""
Payment gateway interfaces

Checkout talks to providers only through these two interfaces so the
concrete clients (Stripe, PayPal) can be built once at startup and injected,
and swapped for fakes in tests.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional


# =============================================================================
# Gateway-Agnostic Data Classes
# =============================================================================

@dataclass
class CardAuthorization:
    """A card charge authorization (Stripe PaymentIntent)."""
    id: str
    status: str
    client_secret: Optional[str] = None
    amount: Optional[int] = None  # minor units
    currency: Optional[str] = None
    next_action_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    @property
    def requires_action(self) -> bool:
        return self.status in ("requires_action", "requires_source_action")


@dataclass
class WalletOrder:
    """A wallet approval session (PayPal order)."""
    id: str
    status: str
    approval_url: Optional[str] = None
    raw_response: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WalletCapture:
    """Result of capturing an approved wallet order."""
    id: str
    status: str
    raw_response: Dict[str, Any] = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        return self.status == "COMPLETED"


# =============================================================================
# Interfaces
# =============================================================================

class CardGateway(ABC):
    """Card payments with synchronous and challenge (3-D Secure) outcomes."""

    @abstractmethod
    async def authorize(
        self,
        amount_minor: int,
        payment_method_token: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> CardAuthorization:
        """Create and confirm a charge in manual confirmation mode."""

    @abstractmethod
    async def retrieve(self, authorization_id: str) -> CardAuthorization:
        """Re-query the final status of an authorization."""

    async def close(self) -> None:
        """Release network resources."""


class WalletGateway(ABC):
    """Redirect wallet requiring off-site approval before capture."""

    currency: str = "USD"

    @abstractmethod
    async def create_order(
        self,
        amount: Decimal,
        reference_id: str,
        return_url: str,
        cancel_url: str,
    ) -> WalletOrder:
        """Open an approval session and return where to send the shopper."""

    @abstractmethod
    async def capture_order(self, order_id: str) -> WalletCapture:
        """Capture funds for an approved order."""

    async def close(self) -> None:
        """Release network resources."""
