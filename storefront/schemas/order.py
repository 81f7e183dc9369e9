from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel


# ============================================================================
# ORDER SCHEMAS
# ============================================================================
class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    quantity: int
    price: float

    class Config:
        from_attributes = True


class OrderSummaryResponse(BaseModel):
    id: int
    status: str
    payment_method: str
    total_amount: float
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderDetailResponse(OrderSummaryResponse):
    payment_reference: Optional[str] = None
    items: List[OrderItemResponse]
