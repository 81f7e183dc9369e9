"""
Tests for the Stripe card gateway with the SDK patched out.
"""
from unittest.mock import MagicMock, patch

import pytest
import stripe

from storefront.core.exceptions import CardGatewayError
from storefront.services.gateways.stripe_gateway import StripeCardGateway


def make_gateway(secret_key: str = "sk_test_abc") -> StripeCardGateway:
    return StripeCardGateway(
        secret_key=secret_key,
        currency="MAD",
        return_url="http://localhost:8000/api/payment-return",
    )


def intent(status: str, **extra) -> stripe.PaymentIntent:
    """A PaymentIntent as the SDK returns it (a StripeObject, not a dict)."""
    data = {
        "id": "pi_3abc",
        "object": "payment_intent",
        "status": status,
        "client_secret": "pi_3abc_secret_xyz",
        "amount": 25000,
        "currency": "mad",
        "metadata": {"user_id": "1"},
        "next_action": None,
    }
    data.update(extra)
    return stripe.PaymentIntent.construct_from(data, "sk_test_abc")


class TestAuthorize:
    @pytest.mark.asyncio
    async def test_creates_manual_confirmation_intent(self):
        create = MagicMock(return_value=intent("succeeded"))

        with patch.object(stripe.PaymentIntent, "create", create):
            result = await make_gateway().authorize(25000, "pm_card_visa", {"user_id": "1"})

        kwargs = create.call_args.kwargs
        assert kwargs["api_key"] == "sk_test_abc"
        assert kwargs["amount"] == 25000
        assert kwargs["currency"] == "mad"
        assert kwargs["payment_method"] == "pm_card_visa"
        assert kwargs["confirmation_method"] == "manual"
        assert kwargs["confirm"] is True
        assert kwargs["return_url"] == "http://localhost:8000/api/payment-return"
        assert kwargs["metadata"] == {"user_id": "1"}

        assert result.id == "pi_3abc"
        assert result.succeeded
        assert result.client_secret == "pi_3abc_secret_xyz"

    @pytest.mark.asyncio
    async def test_requires_action_exposes_redirect(self):
        next_action = {
            "type": "redirect_to_url",
            "redirect_to_url": {"url": "https://hooks.stripe.com/redirect/authenticate/src_1"},
        }
        create = MagicMock(return_value=intent("requires_action", next_action=next_action))

        with patch.object(stripe.PaymentIntent, "create", create):
            result = await make_gateway().authorize(25000, "pm_card_threeDSecure2Required")

        assert result.requires_action
        assert not result.succeeded
        assert result.next_action_url == "https://hooks.stripe.com/redirect/authenticate/src_1"

    @pytest.mark.asyncio
    async def test_stripe_error_becomes_gateway_error(self):
        create = MagicMock(side_effect=stripe.CardError("Your card was declined.", None, "card_declined"))

        with patch.object(stripe.PaymentIntent, "create", create):
            with pytest.raises(CardGatewayError) as exc_info:
                await make_gateway().authorize(25000, "pm_card_chargeDeclined")

        assert exc_info.value.message == "Your card was declined."
        assert exc_info.value.details["stripe_code"] == "card_declined"
        assert exc_info.value.http_status == 500

    @pytest.mark.asyncio
    async def test_missing_key_fails_without_calling_stripe(self):
        create = MagicMock()

        with patch.object(stripe.PaymentIntent, "create", create):
            with pytest.raises(CardGatewayError):
                await make_gateway(secret_key="").authorize(25000, "pm_card_visa")

        create.assert_not_called()


class TestRetrieve:
    @pytest.mark.asyncio
    async def test_returns_final_status_and_metadata(self):
        retrieve = MagicMock(return_value=intent("succeeded"))

        with patch.object(stripe.PaymentIntent, "retrieve", retrieve):
            result = await make_gateway().retrieve("pi_3abc")

        retrieve.assert_called_once_with("pi_3abc", api_key="sk_test_abc")
        assert result.status == "succeeded"
        assert result.metadata == {"user_id": "1"}

    @pytest.mark.asyncio
    async def test_unknown_intent(self):
        retrieve = MagicMock(side_effect=stripe.InvalidRequestError("No such payment_intent: 'pi_x'", "intent"))

        with patch.object(stripe.PaymentIntent, "retrieve", retrieve):
            with pytest.raises(CardGatewayError) as exc_info:
                await make_gateway().retrieve("pi_x")

        assert "No such payment_intent" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_intent_without_metadata(self):
        retrieve = MagicMock(return_value=intent("canceled", metadata=None))

        with patch.object(stripe.PaymentIntent, "retrieve", retrieve):
            result = await make_gateway().retrieve("pi_3abc")

        assert result.status == "canceled"
        assert result.metadata == {}
        assert result.next_action_url is None
