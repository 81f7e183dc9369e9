"""
Storefront Exception Hierarchy

Structured exception classes for the checkout flows. Every exception carries
a machine-readable code, a client-safe message, details for the operational
log and the HTTP status the API layer responds with.

Exception Hierarchy:
    StorefrontError
    ├── CartError
    │   ├── CartNotFoundError
    │   ├── CartEmptyError
    │   ├── CartChangedError
    │   └── ConcurrentCheckoutError
    ├── InvalidRequestError
    ├── OrderNotFoundError
    ├── PaymentError
    │   ├── InvalidAmountError
    │   ├── PaymentFailedError
    │   └── GatewayError
    │       ├── CardGatewayError
    │       └── WalletGatewayError
    └── PersistenceError
"""
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    """
    Base exception for all storefront custom errors.

    Attributes:
        message: Human-readable error description (returned to the client)
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        http_status: Status code used when rendered by the API
    """

    default_code: str = "STOREFRONT_ERROR"
    default_message: str = "An unexpected error occurred."
    http_status: int = 500

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "http_status": self.http_status,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# CART ERRORS
# =============================================================================

class CartError(StorefrontError):
    """Base exception for cart state problems."""
    default_code = "CART_ERROR"
    http_status = 400


class CartNotFoundError(CartError):
    """The user has no cart."""
    default_code = "CART_NOT_FOUND"
    default_message = "Cart not found"
    http_status = 404


class CartEmptyError(CartError):
    """The cart exists but has no items."""
    default_code = "CART_EMPTY"
    default_message = "No items in cart"
    http_status = 400


class CartChangedError(CartError):
    """The cart no longer matches the amount a payment was created for."""
    default_code = "CART_CHANGED"
    default_message = "Your cart changed after the payment was started. Please check out again."
    http_status = 409


class ConcurrentCheckoutError(CartError):
    """Another checkout consumed the same cart first."""
    default_code = "CONCURRENT_CHECKOUT"
    default_message = "This cart is already being checked out."
    http_status = 409


# =============================================================================
# REQUEST / ORDER ERRORS
# =============================================================================

class InvalidRequestError(StorefrontError):
    """Missing or malformed caller input."""
    default_code = "INVALID_REQUEST"
    default_message = "Invalid request."
    http_status = 400


class OrderNotFoundError(StorefrontError):
    """Order does not exist or is not owned by the caller."""
    default_code = "ORDER_NOT_FOUND"
    default_message = "Order not found"
    http_status = 404


# =============================================================================
# PAYMENT ERRORS
# =============================================================================

class PaymentError(StorefrontError):
    """Base exception for payment-related errors."""
    default_code = "PAYMENT_ERROR"
    http_status = 400


class InvalidAmountError(PaymentError):
    """Total is below the smallest amount the card gateway can charge."""
    default_code = "INVALID_AMOUNT"
    default_message = "The amount is below the minimum charge amount allowed."

    def __init__(
        self,
        message: Optional[str] = None,
        amount_minor: Optional[int] = None,
        minimum_minor: Optional[int] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "amount_minor": amount_minor,
            "minimum_minor": minimum_minor,
        })
        super().__init__(message, details=details, **kwargs)


class PaymentFailedError(PaymentError):
    """The gateway reported a final status other than success."""
    default_code = "PAYMENT_FAILED"
    default_message = "Payment failed."

    def __init__(
        self,
        message: Optional[str] = None,
        gateway_status: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({"gateway_status": gateway_status})
        super().__init__(message, details=details, **kwargs)


class GatewayError(PaymentError):
    """Any exception raised while talking to a payment provider."""
    default_code = "GATEWAY_ERROR"
    default_message = "Payment provider error."
    http_status = 500


class CardGatewayError(GatewayError):
    """Stripe rejected the request or could not be reached."""
    default_code = "CARD_GATEWAY_ERROR"


class WalletGatewayError(GatewayError):
    """PayPal rejected the request or could not be reached."""
    default_code = "WALLET_GATEWAY_ERROR"


# =============================================================================
# PERSISTENCE ERRORS
# =============================================================================

class PersistenceError(StorefrontError):
    """The order could not be written."""
    default_code = "PERSISTENCE_FAILED"
    default_message = "Order could not be created."
    http_status = 500
