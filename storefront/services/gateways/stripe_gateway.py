"""
Stripe card gateway

PaymentIntents in manual confirmation mode: the intent is created and
confirmed in one call; if the bank wants a 3-D Secure challenge the intent
comes back as requires_action and the shopper finishes it client side, after
which the return leg re-queries the intent.

The API key is passed per call instead of being set on the stripe module, so
nothing global changes when the gateway is built.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import stripe

from storefront.core.exceptions import CardGatewayError
from storefront.services.gateways.base import CardAuthorization, CardGateway

logger = logging.getLogger(__name__)


def _next_action_url(intent: Any) -> Optional[str]:
    next_action = getattr(intent, "next_action", None)
    redirect = getattr(next_action, "redirect_to_url", None) if next_action else None
    return getattr(redirect, "url", None) if redirect else None


def _to_authorization(intent: Any) -> CardAuthorization:
    # StripeObject is not a dict: attribute access, and to_dict() for the metadata map
    metadata = getattr(intent, "metadata", None)
    return CardAuthorization(
        id=intent.id,
        status=intent.status,
        client_secret=getattr(intent, "client_secret", None),
        amount=getattr(intent, "amount", None),
        currency=getattr(intent, "currency", None),
        next_action_url=_next_action_url(intent),
        metadata=metadata.to_dict() if metadata is not None else {},
    )


class StripeCardGateway(CardGateway):
    """Card gateway backed by the Stripe SDK."""

    def __init__(self, secret_key: str, currency: str, return_url: str):
        self.secret_key = secret_key
        self.currency = (currency or "usd").lower()
        self.return_url = return_url

    def _require_key(self) -> None:
        if not self.secret_key:
            raise CardGatewayError("Stripe not configured", code="CARD_GATEWAY_NOT_CONFIGURED")

    async def authorize(
        self,
        amount_minor: int,
        payment_method_token: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> CardAuthorization:
        self._require_key()
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                api_key=self.secret_key,
                amount=amount_minor,
                currency=self.currency,
                payment_method=payment_method_token,
                confirmation_method="manual",
                confirm=True,
                return_url=self.return_url,
                metadata=metadata or {},
            )
        except stripe.StripeError as e:
            logger.error(
                f"Stripe PaymentIntent create failed: amount={amount_minor} "
                f"currency={self.currency} error={e.user_message or str(e)}"
            )
            raise CardGatewayError(
                e.user_message or str(e),
                details={"stripe_code": getattr(e, "code", None)},
            )

        logger.info(
            f"Stripe PaymentIntent created intent_id={intent.id} status={intent.status} "
            f"amount={amount_minor} currency={self.currency}"
        )
        return _to_authorization(intent)

    async def retrieve(self, authorization_id: str) -> CardAuthorization:
        self._require_key()
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.retrieve,
                authorization_id,
                api_key=self.secret_key,
            )
        except stripe.StripeError as e:
            logger.error(
                f"Stripe PaymentIntent retrieve failed: intent_id={authorization_id} "
                f"error={e.user_message or str(e)}"
            )
            raise CardGatewayError(
                e.user_message or str(e),
                details={"stripe_code": getattr(e, "code", None)},
            )

        logger.info(f"Stripe PaymentIntent retrieved intent_id={intent.id} status={intent.status}")
        return _to_authorization(intent)
