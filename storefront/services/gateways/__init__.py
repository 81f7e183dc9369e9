"""
Payment gateways

The concrete clients are built once at application startup and kept on
app.state; request handlers receive them through a dependency.
"""
import logging
from dataclasses import dataclass

from storefront.services.gateways.base import (
    CardAuthorization,
    CardGateway,
    WalletCapture,
    WalletGateway,
    WalletOrder,
)
from storefront.services.gateways.paypal_client import PayPalClient, PayPalCredentials
from storefront.services.gateways.stripe_gateway import StripeCardGateway

logger = logging.getLogger(__name__)

CARD_RETURN_PATH = "/api/payment-return"


@dataclass
class PaymentGateways:
    """The card and wallet gateways used by checkout."""
    card: CardGateway
    wallet: WalletGateway

    async def close(self) -> None:
        await self.card.close()
        await self.wallet.close()


def build_payment_gateways(settings) -> PaymentGateways:
    """Create the production gateways from settings."""
    app_url = settings.APP_URL.rstrip("/")

    card = StripeCardGateway(
        secret_key=settings.STRIPE_SECRET_KEY,
        currency=settings.STRIPE_CURRENCY,
        return_url=f"{app_url}{CARD_RETURN_PATH}",
    )
    wallet = PayPalClient(
        credentials=PayPalCredentials(
            client_id=settings.PAYPAL_CLIENT_ID,
            client_secret=settings.PAYPAL_CLIENT_SECRET,
            mode=settings.PAYPAL_MODE,
        ),
        currency=settings.PAYPAL_CURRENCY,
        timeout=settings.PAYPAL_TIMEOUT_SECONDS,
    )

    if not settings.STRIPE_SECRET_KEY:
        logger.warning("STRIPE_SECRET_KEY not set - card payments will fail")
    if not wallet.credentials.configured:
        logger.warning("PayPal credentials not set - wallet payments will fail")

    logger.info(f"Payment gateways ready: card=stripe wallet=paypal mode={settings.PAYPAL_MODE}")
    return PaymentGateways(card=card, wallet=wallet)


__all__ = [
    "CardAuthorization",
    "CardGateway",
    "PaymentGateways",
    "PayPalClient",
    "PayPalCredentials",
    "StripeCardGateway",
    "WalletCapture",
    "WalletGateway",
    "WalletOrder",
    "build_payment_gateways",
]
