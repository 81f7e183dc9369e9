"""
CheckoutService - cart to order orchestration for every payment method

Flows:
1. Card (Stripe): initiate -> optional 3-D Secure challenge -> finalize on return
2. Wallet (PayPal): create approval -> shopper approves off-site -> capture on return
3. Cash on delivery: single step, order stays pending until paid at the door

Each public method returns a CheckoutResult; expected failures (cart state,
gateway errors, declines, lost races) come back as the error variant and the
transaction is rolled back. Only the route layer decides how to render them.
"""
import logging
import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from storefront.core.exceptions import (
    CartChangedError,
    CartNotFoundError,
    ConcurrentCheckoutError,
    InvalidAmountError,
    InvalidRequestError,
    PaymentFailedError,
    PersistenceError,
    StorefrontError,
    WalletGatewayError,
)
from storefront.core.security import unsign_checkout_value
from storefront.models import Cart, CartItem, OrderStatus, PaymentMethod, WalletAttempt
from storefront.services.gateways import PaymentGateways
from storefront.services.order_service import (
    OrderService,
    cart_subtotal,
    convert_amount,
    to_decimal,
    to_minor_units,
)

logger = logging.getLogger(__name__)

WALLET_RETURN_PATH = "/api/paypalsuccess"
WALLET_CANCEL_PATH = "/api/cancel"


@dataclass
class CheckoutConfig:
    """Checkout knobs, resolved once from settings."""
    shipping_flat_rate: Decimal = Decimal("50.00")
    minimum_charge_minor: int = 50
    wallet_conversion_divisor: Decimal = Decimal("10")
    wallet_attempt_ttl_minutes: int = 60
    app_url: str = "http://localhost:8000"

    @classmethod
    def from_settings(cls, settings) -> "CheckoutConfig":
        return cls(
            shipping_flat_rate=to_decimal(settings.SHIPPING_FLAT_RATE),
            minimum_charge_minor=settings.STRIPE_MINIMUM_CHARGE,
            wallet_conversion_divisor=Decimal(str(settings.WALLET_CONVERSION_DIVISOR)),
            wallet_attempt_ttl_minutes=settings.WALLET_ATTEMPT_TTL_MINUTES,
            app_url=settings.APP_URL.rstrip("/"),
        )

    @property
    def wallet_return_url(self) -> str:
        return f"{self.app_url}{WALLET_RETURN_PATH}"

    @property
    def wallet_cancel_url(self) -> str:
        return f"{self.app_url}{WALLET_CANCEL_PATH}"


@dataclass
class CartTotals:
    """Cart lines and the amounts derived from them."""
    items: List[CartItem]
    subtotal: Decimal
    shipping: Decimal
    total: Decimal
    # version_id of the cart row the amounts were computed from
    version: Optional[int] = None


@dataclass
class CheckoutResult:
    """Outcome of a checkout operation."""
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[StorefrontError] = None

    @classmethod
    def ok(cls, **data) -> "CheckoutResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: StorefrontError) -> "CheckoutResult":
        return cls(success=False, error=error)


class CheckoutService:
    """Per-request checkout orchestrator."""

    def __init__(self, db: AsyncSession, gateways: PaymentGateways, config: CheckoutConfig):
        self.db = db
        self.gateways = gateways
        self.config = config
        self.orders = OrderService(db)
        self.carts = self.orders.carts

    # ==================== Shared plumbing ====================

    async def _run(
        self,
        flow: str,
        user_id: int,
        operation: Callable[..., Awaitable[CheckoutResult]],
        *args,
    ) -> CheckoutResult:
        """Run one flow, converting expected failures into error results."""
        start_time = time.time()
        try:
            result = await operation(user_id, *args)
        except StorefrontError as e:
            await self.db.rollback()
            log = logger.error if e.http_status >= 500 else logger.warning
            log(f"Checkout {flow} failed user_id={user_id}: {e.to_dict()}")
            return CheckoutResult.fail(e)
        except StaleDataError as e:
            await self.db.rollback()
            logger.warning(f"Checkout {flow} lost a cart race user_id={user_id}: {e}")
            return CheckoutResult.fail(ConcurrentCheckoutError())
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Checkout {flow} persistence error user_id={user_id}: {type(e).__name__}: {e}")
            return CheckoutResult.fail(PersistenceError())

        duration_ms = (time.time() - start_time) * 1000
        logger.info(f"CHECKOUT_METRIC: {flow} user_id={user_id} duration_ms={duration_ms:.2f}")
        return result

    def _totals(self, cart: Cart) -> CartTotals:
        subtotal = cart_subtotal(cart.items)
        shipping = self.config.shipping_flat_rate
        return CartTotals(
            items=list(cart.items),
            subtotal=subtotal,
            shipping=shipping,
            total=subtotal + shipping,
            version=cart.version_id,
        )

    # ==================== Totals ====================

    async def compute_total(self, user_id: int) -> CheckoutResult:
        """Cart lines, subtotal, shipping and grand total for the user's cart."""
        return await self._run("checkout_summary", user_id, self._compute_total)

    async def _compute_total(self, user_id: int) -> CheckoutResult:
        cart = await self.carts.get_cart(user_id)
        if cart is None:
            raise CartNotFoundError()

        totals = self._totals(cart)
        logger.info(
            f"Checkout summary user_id={user_id} items={len(totals.items)} "
            f"subtotal={totals.subtotal} shipping={totals.shipping} total={totals.total}"
        )
        return CheckoutResult.ok(totals=totals)

    # ==================== Card ====================

    async def initiate_card_payment(self, user_id: int, payment_method_token: Optional[str]) -> CheckoutResult:
        """
        Charge the cart total to a card.

        A pending order is recorded against the PaymentIntent id. The cart is
        kept until the payment is known to have succeeded, so a shopper who
        fails the challenge can try again.
        """
        return await self._run("card_payment_initiated", user_id, self._initiate_card_payment, payment_method_token)

    async def _initiate_card_payment(self, user_id: int, payment_method_token: Optional[str]) -> CheckoutResult:
        if not payment_method_token:
            raise InvalidRequestError("Payment method is required.", code="MISSING_PAYMENT_METHOD")

        cart = await self.orders.load_cart_for_checkout(user_id)
        totals = self._totals(cart)
        amount_minor = to_minor_units(totals.total)

        logger.info(f"Card payment requested user_id={user_id} total={totals.total} amount_minor={amount_minor}")

        if amount_minor < self.config.minimum_charge_minor:
            raise InvalidAmountError(amount_minor=amount_minor, minimum_minor=self.config.minimum_charge_minor)

        authorization = await self.gateways.card.authorize(
            amount_minor=amount_minor,
            payment_method_token=payment_method_token,
            metadata={
                "user_id": str(user_id),
                "cart_id": str(cart.id),
                "item_count": str(len(cart.items)),
            },
        )

        try:
            order = await self.orders.store_order(
                user_id=user_id,
                payment_method=PaymentMethod.CARD.value,
                total_amount=totals.total,
                status=OrderStatus.PENDING.value,
                payment_reference=authorization.id,
                delete_cart=authorization.succeeded,
                expected_version=totals.version,
                expected_subtotal=totals.subtotal,
            )
            if authorization.succeeded:
                await self.orders.mark_completed(order)
            await self.db.commit()
        except (StorefrontError, SQLAlchemyError):
            # The intent exists at Stripe; keep its id in the log for reconciliation
            logger.error(
                f"Order not recorded for card payment user_id={user_id} "
                f"intent_id={authorization.id} intent_status={authorization.status}"
            )
            raise

        if authorization.succeeded:
            response_status = "completed"
            logger.info(f"Card payment succeeded immediately order_id={order.id} intent_id={authorization.id}")
        elif authorization.requires_action:
            response_status = "requires_action"
            logger.info(
                f"Card payment requires action order_id={order.id} intent_id={authorization.id} "
                f"next_action_url={authorization.next_action_url}"
            )
        else:
            response_status = authorization.status

        return CheckoutResult.ok(
            client_secret=authorization.client_secret,
            order_id=order.id,
            status=response_status,
            next_action_url=authorization.next_action_url,
        )

    async def finalize_card_payment(self, user_id: int, payment_intent_id: Optional[str]) -> CheckoutResult:
        """Resolve a card payment after the challenge step from the intent's final status."""
        return await self._run("card_payment_finalized", user_id, self._finalize_card_payment, payment_intent_id)

    async def _finalize_card_payment(self, user_id: int, payment_intent_id: Optional[str]) -> CheckoutResult:
        if not payment_intent_id:
            raise InvalidRequestError("Payment failed.", code="MISSING_PAYMENT_INTENT")

        cart = await self.carts.get_cart(user_id, lock=True)
        if cart is None:
            raise CartNotFoundError()

        authorization = await self.gateways.card.retrieve(payment_intent_id)
        if authorization.metadata.get("user_id") != str(user_id):
            logger.warning(
                f"Payment intent owner mismatch intent_id={payment_intent_id} "
                f"user_id={user_id} intent_user_id={authorization.metadata.get('user_id')}"
            )
            raise InvalidRequestError("Payment failed.", code="PAYMENT_INTENT_MISMATCH")

        orders = await self.orders.get_by_payment_reference(user_id, payment_intent_id)
        pending = next((o for o in orders if o.status == OrderStatus.PENDING.value), None)
        completed = next((o for o in orders if o.status == OrderStatus.COMPLETED.value), None)

        if not authorization.succeeded:
            if pending is not None:
                await self.orders.mark_failed(pending, reason=f"intent_status={authorization.status}")
                await self.db.commit()
            raise PaymentFailedError(gateway_status=authorization.status)

        if completed is not None:
            # Already recorded for this intent; the current cart belongs to a later checkout
            order = completed
        elif pending is not None:
            order = await self.orders.mark_completed(pending)
            await self.carts.delete(cart)
        else:
            totals = self._totals(cart)
            order = await self.orders.store_order(
                user_id=user_id,
                payment_method=PaymentMethod.CARD.value,
                total_amount=totals.total,
                status=OrderStatus.PENDING.value,
                payment_reference=payment_intent_id,
                expected_version=totals.version,
                expected_subtotal=totals.subtotal,
            )
            await self.orders.mark_completed(order)
        await self.db.commit()

        logger.info(f"Card payment confirmed order_id={order.id} intent_id={payment_intent_id} user_id={user_id}")
        return CheckoutResult.ok(redirect_url=f"/success/{order.id}", order_id=order.id)

    # ==================== Wallet ====================

    async def create_wallet_payment(self, user_id: int, payment_method: Optional[str]) -> CheckoutResult:
        """
        Open a PayPal approval for the converted cart total.

        No order is written yet; a WalletAttempt records what was approved so
        the return leg can be checked against it.
        """
        return await self._run("wallet_payment_created", user_id, self._create_wallet_payment, payment_method)

    async def _create_wallet_payment(self, user_id: int, payment_method: Optional[str]) -> CheckoutResult:
        if payment_method != PaymentMethod.WALLET.value:
            raise InvalidRequestError("Invalid payment method.", code="INVALID_PAYMENT_METHOD")

        cart = await self.orders.load_cart_for_checkout(user_id)
        totals = self._totals(cart)
        wallet_amount = convert_amount(totals.total, self.config.wallet_conversion_divisor)
        correlation_id = f"order_{uuid.uuid4().hex}"

        logger.info(
            f"Wallet payment requested user_id={user_id} total={totals.total} "
            f"wallet_amount={wallet_amount} correlation_id={correlation_id}"
        )

        wallet_order = await self.gateways.wallet.create_order(
            amount=wallet_amount,
            reference_id=correlation_id,
            return_url=self.config.wallet_return_url,
            cancel_url=self.config.wallet_cancel_url,
        )
        if not wallet_order.approval_url:
            raise WalletGatewayError("PayPal Order Creation Failed.", details={"order_id": wallet_order.id})

        attempt = WalletAttempt(
            correlation_id=correlation_id,
            user_id=user_id,
            gateway_order_id=wallet_order.id,
            payment_method=payment_method,
            amount=totals.total,
            wallet_amount=wallet_amount,
            wallet_currency=self.gateways.wallet.currency,
            expires_at=WalletAttempt.create_expiry(self.config.wallet_attempt_ttl_minutes),
        )
        self.db.add(attempt)
        await self.db.flush()
        await self.db.commit()

        return CheckoutResult.ok(
            redirect_url=wallet_order.approval_url,
            correlation_id=correlation_id,
            payment_method=payment_method,
            wallet_order_id=wallet_order.id,
        )

    async def _get_wallet_attempt(self, user_id: int, token: str) -> Optional[WalletAttempt]:
        result = await self.db.execute(
            select(WalletAttempt).where(
                WalletAttempt.gateway_order_id == token,
                WalletAttempt.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def finalize_wallet_payment(
        self,
        user_id: int,
        token: Optional[str],
        correlation_token: Optional[str] = None,
    ) -> CheckoutResult:
        """Capture an approved PayPal order and record the completed order."""
        return await self._run(
            "wallet_payment_captured", user_id, self._finalize_wallet_payment, token, correlation_token
        )

    async def _finalize_wallet_payment(
        self,
        user_id: int,
        token: Optional[str],
        correlation_token: Optional[str],
    ) -> CheckoutResult:
        if not token:
            raise InvalidRequestError("Invalid payment ID.", code="MISSING_PAYMENT_ID")

        cart = await self.orders.load_cart_for_checkout(user_id, lock=True)

        attempt = await self._get_wallet_attempt(user_id, token)
        if attempt is None or attempt.is_expired:
            raise InvalidRequestError("Invalid payment ID.", code="WALLET_ATTEMPT_INVALID")

        if correlation_token is not None:
            correlation_id = unsign_checkout_value(
                correlation_token,
                max_age_seconds=self.config.wallet_attempt_ttl_minutes * 60,
            )
            if correlation_id != attempt.correlation_id:
                logger.warning(f"Wallet correlation cookie rejected user_id={user_id} token={token}")
                raise InvalidRequestError("Invalid payment ID.", code="CORRELATION_MISMATCH")

        totals = self._totals(cart)
        if to_decimal(attempt.amount) != totals.total:
            raise CartChangedError(details={"approved_amount": str(attempt.amount), "cart_total": str(totals.total)})

        capture = await self.gateways.wallet.capture_order(token)
        if not capture.completed:
            raise PaymentFailedError("Payment not completed.", gateway_status=capture.status)

        try:
            order = await self.orders.store_order(
                user_id=user_id,
                payment_method=attempt.payment_method,
                total_amount=totals.total,
                status=OrderStatus.COMPLETED.value,
                payment_reference=token,
                expected_version=totals.version,
                expected_subtotal=totals.subtotal,
            )
            await self.db.delete(attempt)
            await self.db.flush()
            await self.db.commit()
        except (StorefrontError, SQLAlchemyError) as e:
            logger.critical(
                f"Wallet payment captured but order not recorded user_id={user_id} "
                f"token={token} capture_id={capture.id} error={type(e).__name__}"
            )
            raise

        logger.info(f"Wallet payment captured order_id={order.id} token={token} user_id={user_id}")
        return CheckoutResult.ok(redirect_url=f"/success/{order.id}", order_id=order.id)

    async def cancel_wallet_payment(self, user_id: int, token: Optional[str] = None) -> CheckoutResult:
        """Forget the user's pending wallet approvals; safe to call repeatedly."""
        return await self._run("wallet_payment_cancelled", user_id, self._cancel_wallet_payment, token)

    async def _cancel_wallet_payment(self, user_id: int, token: Optional[str]) -> CheckoutResult:
        query = delete(WalletAttempt).where(WalletAttempt.user_id == user_id)
        if token:
            query = query.where(WalletAttempt.gateway_order_id == token)
        result = await self.db.execute(query)
        await self.db.commit()

        logger.info(f"Wallet payment cancelled user_id={user_id} token={token} attempts_removed={result.rowcount}")
        return CheckoutResult.ok(message="Payment cancelled.", attempts_removed=result.rowcount)

    # ==================== Cash on delivery ====================

    async def checkout_cash_on_delivery(self, user_id: int) -> CheckoutResult:
        """Record a pending order to be paid on delivery."""
        return await self._run("cash_on_delivery", user_id, self._checkout_cash_on_delivery)

    async def _checkout_cash_on_delivery(self, user_id: int) -> CheckoutResult:
        cart = await self.orders.load_cart_for_checkout(user_id)
        totals = self._totals(cart)

        order = await self.orders.store_order(
            user_id=user_id,
            payment_method=PaymentMethod.CASH_ON_DELIVERY.value,
            total_amount=totals.total,
            status=OrderStatus.PENDING.value,
            expected_version=totals.version,
            expected_subtotal=totals.subtotal,
        )
        await self.db.commit()

        logger.info(f"Cash on delivery order created order_id={order.id} user_id={user_id} total={totals.total}")
        return CheckoutResult.ok(message="Order created successfully", order_id=order.id)
