"""
PayPal Orders v2 client

Implements PayPal OAuth 2.0 (client credentials) and the two calls the wallet
checkout needs:
- Create order (intent CAPTURE) -> approval link
- Capture order after the shopper approved it

All external API calls are logged and mapped to WalletGatewayError.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import Dict, Optional

import httpx

from storefront.core.exceptions import WalletGatewayError
from storefront.services.gateways.base import WalletCapture, WalletGateway, WalletOrder

logger = logging.getLogger(__name__)

PAYPAL_LIVE_URL = "https://api-m.paypal.com"
PAYPAL_SANDBOX_URL = "https://api-m.sandbox.paypal.com"

OAUTH_TOKEN_PATH = "/v1/oauth2/token"
ORDERS_PATH = "/v2/checkout/orders"


@dataclass
class PayPalCredentials:
    """PayPal REST app credentials."""
    client_id: str
    client_secret: str
    mode: str = "sandbox"

    @property
    def base_url(self) -> str:
        return PAYPAL_LIVE_URL if self.mode == "live" else PAYPAL_SANDBOX_URL

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


class PayPalClient(WalletGateway):
    """
    PayPal client with OAuth token caching.

    One instance is created at startup and shared; it owns a single
    httpx.AsyncClient which must be closed on shutdown.
    """

    def __init__(
        self,
        credentials: PayPalCredentials,
        currency: str = "USD",
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.credentials = credentials
        self.currency = currency.upper()
        self.timeout = timeout
        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _ensure_token(self) -> str:
        """Ensure we have a valid OAuth token."""
        if not self.credentials.configured:
            raise WalletGatewayError("PayPal not configured", code="WALLET_GATEWAY_NOT_CONFIGURED")

        if self._access_token and self._token_expires_at:
            # Refresh 5 minutes before expiry
            if datetime.now(timezone.utc) < self._token_expires_at - timedelta(minutes=5):
                return self._access_token

        client = await self._get_http_client()
        url = f"{self.credentials.base_url}{OAUTH_TOKEN_PATH}"

        try:
            response = await client.post(
                url,
                auth=(self.credentials.client_id, self.credentials.client_secret),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                data={"grant_type": "client_credentials"},
            )
        except httpx.RequestError as e:
            logger.error(f"PayPal OAuth request failed: {e}")
            raise WalletGatewayError(f"Network error during authentication: {e}", code="NETWORK_ERROR")

        if response.status_code != 200:
            logger.error(f"PayPal OAuth failed: {response.status_code} - {response.text[:500]}")
            raise WalletGatewayError(
                "Failed to authenticate with PayPal",
                code="AUTH_FAILED",
                details={"status": response.status_code},
            )

        data = response.json()
        self._access_token = data["access_token"]
        expires_in = int(data.get("expires_in", 3600))
        self._token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)

        logger.info(f"PayPal OAuth token obtained, expires in {expires_in}s")
        return self._access_token

    async def _make_request(
        self,
        method: str,
        path: str,
        data: Optional[Dict] = None,
        request_id: Optional[str] = None,
    ) -> Dict:
        """Make authenticated API request."""
        token = await self._ensure_token()
        client = await self._get_http_client()
        url = f"{self.credentials.base_url}{path}"

        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if request_id:
            # PayPal idempotency key
            headers["PayPal-Request-Id"] = request_id

        try:
            if method.upper() == "GET":
                response = await client.get(url, headers=headers)
            elif method.upper() == "POST":
                response = await client.post(url, headers=headers, json=data)
            else:
                raise ValueError(f"Unsupported HTTP method: {method}")
        except httpx.RequestError as e:
            logger.error(f"PayPal API request failed: {method} {path} error={e}")
            raise WalletGatewayError(f"Network error: {e}", code="NETWORK_ERROR")

        logger.debug(f"PayPal API {method} {path} -> {response.status_code}")

        if response.status_code >= 400:
            try:
                error_data = response.json()
            except ValueError:
                error_data = {"raw": response.text[:500]}

            error_msg = error_data.get("message") or "PayPal API error"
            error_code = error_data.get("name") or str(response.status_code)
            issues = error_data.get("details") or []
            if issues and issues[0].get("description"):
                error_msg = issues[0]["description"]

            logger.error(f"PayPal API error: {method} {path} {error_code} - {error_msg}")
            raise WalletGatewayError(error_msg, code=error_code, details=error_data)

        return response.json()

    # ==================== Orders ====================

    async def create_order(
        self,
        amount: Decimal,
        reference_id: str,
        return_url: str,
        cancel_url: str,
    ) -> WalletOrder:
        """Create a CAPTURE-intent order and extract the approval link."""
        request_data = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": reference_id,
                    "amount": {
                        "currency_code": self.currency,
                        "value": f"{amount:.2f}",
                    },
                }
            ],
            "application_context": {
                "cancel_url": cancel_url,
                "return_url": return_url,
                "user_action": "PAY_NOW",
            },
        }

        response = await self._make_request("POST", ORDERS_PATH, data=request_data, request_id=reference_id)

        order_id = response.get("id")
        if not order_id:
            logger.error(f"PayPal order creation returned no id: {response}")
            raise WalletGatewayError("PayPal Order Creation Failed.", details=response)

        approval_url = None
        for link in response.get("links", []):
            if link.get("rel") in ("approve", "payer-action"):
                approval_url = link.get("href")
                break

        logger.info(
            f"PayPal order created order_id={order_id} status={response.get('status')} "
            f"amount={amount} currency={self.currency} reference_id={reference_id}"
        )
        return WalletOrder(
            id=order_id,
            status=response.get("status", ""),
            approval_url=approval_url,
            raw_response=response,
        )

    async def capture_order(self, order_id: str) -> WalletCapture:
        """Capture payment for an approved order."""
        response = await self._make_request(
            "POST",
            f"{ORDERS_PATH}/{order_id}/capture",
            data={},
            request_id=f"capture-{order_id}",
        )
        status = response.get("status", "")
        logger.info(f"PayPal order captured order_id={order_id} status={status}")
        return WalletCapture(id=response.get("id", order_id), status=status, raw_response=response)
