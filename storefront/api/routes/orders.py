"""
Order routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_current_user_id
from storefront.core.database import get_db
from storefront.core.exceptions import OrderNotFoundError
from storefront.schemas.order import OrderDetailResponse, OrderSummaryResponse
from storefront.services.order_service import OrderService

router = APIRouter()


@router.get("/success/{order_id}", response_model=OrderSummaryResponse)
async def order_success(
    order_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Confirmation page data for a just-placed order"""
    order = await OrderService(db).get_order(order_id, user_id=user_id)
    if not order:
        raise OrderNotFoundError()
    return order


@router.get("/order-details/{order_id}", response_model=OrderDetailResponse)
async def order_details(
    order_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Order with its items; only visible to its owner"""
    order = await OrderService(db).get_order(order_id, user_id=user_id)
    if not order:
        raise OrderNotFoundError()
    return order
