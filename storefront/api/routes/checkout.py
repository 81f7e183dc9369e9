"""
Checkout API Routes

CHECKOUT FLOWS:
1. GET /checkout: cart summary with shipping and total
2. Card: POST /process-payment -> (3-D Secure) -> GET /payment-return
3. Wallet: POST /paypal/create -> PayPal approval -> GET /paypalsuccess (or /cancel)
4. POST /checkout/cash-on-delivery

Payment-initiating endpoints are rate limited. All business rules live in
CheckoutService; these handlers only translate results into responses.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from storefront.api.deps import get_checkout_service, get_current_user_id
from storefront.core.config import settings
from storefront.core.cookies import (
    clear_checkout_cookies,
    get_correlation_cookie,
    get_payment_method_cookie,
    set_checkout_cookies,
)
from storefront.core.error_handler import error_response
from storefront.core.rate_limit import limiter
from storefront.schemas.checkout import (
    CartItemResponse,
    CashOnDeliveryResponse,
    CheckoutSummaryResponse,
    MessageResponse,
    ProcessPaymentRequest,
    ProcessPaymentResponse,
    RedirectUrlResponse,
    WalletPaymentRequest,
)
from storefront.services.checkout_service import CheckoutService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/checkout", response_model=CheckoutSummaryResponse)
async def checkout_summary(
    user_id: int = Depends(get_current_user_id),
    service: CheckoutService = Depends(get_checkout_service),
):
    """Cart lines, subtotal, flat shipping and grand total."""
    logger.info(f"Checkout initiated user_id={user_id}")

    result = await service.compute_total(user_id)
    if not result.success:
        return error_response(result.error)

    totals = result.data["totals"]
    return CheckoutSummaryResponse(
        cart_items=[CartItemResponse.model_validate(item) for item in totals.items],
        subtotal=totals.subtotal,
        shipping=totals.shipping,
        total=totals.total,
    )


@router.post("/process-payment", response_model=ProcessPaymentResponse)
@limiter.limit(settings.RATE_LIMIT_CHECKOUT)
async def process_payment(
    request: Request,
    payload: ProcessPaymentRequest,
    user_id: int = Depends(get_current_user_id),
    service: CheckoutService = Depends(get_checkout_service),
):
    """
    Charge the cart to a card.

    status is "requires_action" when the client must run the 3-D Secure
    challenge with client_secret, "completed" when the charge went through
    immediately.
    """
    result = await service.initiate_card_payment(user_id, payload.payment_method_id)
    if not result.success:
        return error_response(result.error)
    return ProcessPaymentResponse(**result.data)


@router.get("/payment-return", response_model=RedirectUrlResponse)
async def payment_return(
    payment_intent: Optional[str] = None,
    user_id: int = Depends(get_current_user_id),
    service: CheckoutService = Depends(get_checkout_service),
):
    """Card return leg after the challenge step."""
    logger.info(f"Payment return user_id={user_id} payment_intent={payment_intent}")

    result = await service.finalize_card_payment(user_id, payment_intent)
    if not result.success:
        return error_response(result.error)
    return RedirectUrlResponse(redirect_url=result.data["redirect_url"])


@router.post("/paypal/create", response_model=RedirectUrlResponse)
@limiter.limit(settings.RATE_LIMIT_CHECKOUT)
async def create_paypal_payment(
    request: Request,
    payload: WalletPaymentRequest,
    user_id: int = Depends(get_current_user_id),
    service: CheckoutService = Depends(get_checkout_service),
):
    """Start a PayPal approval and hand back the approval URL."""
    result = await service.create_wallet_payment(user_id, payload.payment_method)
    if not result.success:
        return error_response(result.error)

    response = JSONResponse(content={"redirect_url": result.data["redirect_url"]})
    set_checkout_cookies(response, result.data["correlation_id"], result.data["payment_method"])
    return response


@router.get("/paypalsuccess", response_model=RedirectUrlResponse)
async def paypal_success(
    request: Request,
    token: Optional[str] = None,
    user_id: int = Depends(get_current_user_id),
    service: CheckoutService = Depends(get_checkout_service),
):
    """PayPal return leg: capture the approved order."""
    logger.info(
        f"PayPal return user_id={user_id} token={token} "
        f"payment_method={get_payment_method_cookie(request)}"
    )

    result = await service.finalize_wallet_payment(user_id, token, get_correlation_cookie(request))
    if not result.success:
        return error_response(result.error)

    response = JSONResponse(content={"redirect_url": result.data["redirect_url"]})
    clear_checkout_cookies(response)
    return response


@router.get("/cancel", response_model=MessageResponse)
async def paypal_cancel(
    token: Optional[str] = None,
    user_id: int = Depends(get_current_user_id),
    service: CheckoutService = Depends(get_checkout_service),
):
    """PayPal cancel leg: drop the pending approval."""
    result = await service.cancel_wallet_payment(user_id, token)
    if not result.success:
        return error_response(result.error)

    response = JSONResponse(content={"message": result.data["message"]})
    clear_checkout_cookies(response)
    return response


@router.post("/checkout/cash-on-delivery", response_model=CashOnDeliveryResponse)
async def cash_on_delivery(
    user_id: int = Depends(get_current_user_id),
    service: CheckoutService = Depends(get_checkout_service),
):
    logger.info(f"Cash on delivery requested user_id={user_id}")

    result = await service.checkout_cash_on_delivery(user_id)
    if not result.success:
        return error_response(result.error)
    return CashOnDeliveryResponse(**result.data)
