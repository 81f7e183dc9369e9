"""
Checkout cookie management

The wallet flow leaves the site for the approval page, so the pending attempt
is correlated through two short-lived cookies:
- order_id: signed, time-boxed correlation id of the WalletAttempt
- payment_method: the method the shopper picked
"""
from typing import Optional
from fastapi import Response
from starlette.requests import Request

from storefront.core.config import settings
from storefront.core.security import sign_checkout_value


ORDER_ID_COOKIE = "order_id"
PAYMENT_METHOD_COOKIE = "payment_method"


def _cookie_max_age() -> int:
    return settings.WALLET_ATTEMPT_TTL_MINUTES * 60


def set_checkout_cookies(response: Response, correlation_id: str, payment_method: str) -> None:
    """Set the wallet correlation cookies on the response."""
    response.set_cookie(
        key=ORDER_ID_COOKIE,
        value=sign_checkout_value(correlation_id),
        httponly=True,
        secure=settings.CHECKOUT_COOKIE_SECURE,
        samesite=settings.CHECKOUT_COOKIE_SAMESITE,
        max_age=_cookie_max_age(),
        path="/",
    )
    response.set_cookie(
        key=PAYMENT_METHOD_COOKIE,
        value=payment_method,
        httponly=True,
        secure=settings.CHECKOUT_COOKIE_SECURE,
        samesite=settings.CHECKOUT_COOKIE_SAMESITE,
        max_age=_cookie_max_age(),
        path="/",
    )


def clear_checkout_cookies(response: Response) -> None:
    """Forget both correlation cookies."""
    for cookie_name in (ORDER_ID_COOKIE, PAYMENT_METHOD_COOKIE):
        response.delete_cookie(key=cookie_name, path="/")


def get_correlation_cookie(request: Request) -> Optional[str]:
    """Raw (still signed) correlation token from the request, if any."""
    return request.cookies.get(ORDER_ID_COOKIE)


def get_payment_method_cookie(request: Request) -> Optional[str]:
    return request.cookies.get(PAYMENT_METHOD_COOKIE)
