# Services layer for checkout business logic
from storefront.services.cart_store import CartStore
from storefront.services.order_service import OrderService
from storefront.services.checkout_service import (
    CartTotals,
    CheckoutConfig,
    CheckoutResult,
    CheckoutService,
)
