from typing import List, Optional
from pydantic import BaseModel


# ============================================================================
# CHECKOUT SCHEMAS
# ============================================================================
class CartItemResponse(BaseModel):
    id: int
    product_id: int
    quantity: int
    price: float

    class Config:
        from_attributes = True


class CheckoutSummaryResponse(BaseModel):
    cart_items: List[CartItemResponse]
    subtotal: float
    shipping: float
    total: float


class ProcessPaymentRequest(BaseModel):
    payment_method_id: Optional[str] = None


class ProcessPaymentResponse(BaseModel):
    client_secret: Optional[str] = None
    order_id: int
    status: str
    next_action_url: Optional[str] = None


class WalletPaymentRequest(BaseModel):
    payment_method: Optional[str] = None


class RedirectUrlResponse(BaseModel):
    redirect_url: str


class MessageResponse(BaseModel):
    message: str


class CashOnDeliveryResponse(MessageResponse):
    order_id: int
