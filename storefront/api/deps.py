"""
API dependencies
"""
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.core.database import get_db
from storefront.core.security import decode_token
from storefront.services.checkout_service import CheckoutConfig, CheckoutService
from storefront.services.gateways import PaymentGateways

security = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> int:
    """Authenticated user id from the bearer access token"""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(credentials.credentials)
    if not payload or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_payment_gateways(request: Request) -> PaymentGateways:
    """Gateways built at startup"""
    gateways = getattr(request.app.state, "gateways", None)
    if gateways is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment gateways not initialized",
        )
    return gateways


def get_checkout_config() -> CheckoutConfig:
    return CheckoutConfig.from_settings(settings)


async def get_checkout_service(
    db: AsyncSession = Depends(get_db),
    gateways: PaymentGateways = Depends(get_payment_gateways),
    config: CheckoutConfig = Depends(get_checkout_config),
) -> CheckoutService:
    return CheckoutService(db, gateways, config)
