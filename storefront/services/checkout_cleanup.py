"""
Abandoned Checkout Cleanup Service

Background service that closes out checkouts nobody came back to:
- card orders still pending after PENDING_CARD_ORDER_TTL_MINUTES -> failed
- wallet attempts past their expiry -> deleted

Cash on delivery orders are pending by nature and never touched.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.core.database import get_db_session
from storefront.core.utils import utcnow
from storefront.models import Order, OrderStatus, PaymentMethod, WalletAttempt

logger = logging.getLogger(__name__)


async def expire_abandoned_checkouts(
    db: AsyncSession,
    now: Optional[datetime] = None,
    pending_ttl_minutes: Optional[int] = None,
) -> dict:
    """
    Fail stale pending card orders and delete expired wallet attempts.

    Returns:
        dict with counts of orders failed and attempts removed
    """
    now = now or utcnow()
    ttl = pending_ttl_minutes if pending_ttl_minutes is not None else settings.PENDING_CARD_ORDER_TTL_MINUTES
    cutoff = now - timedelta(minutes=ttl)

    stats = {
        "orders_failed": 0,
        "attempts_removed": 0,
    }

    result = await db.execute(
        select(Order)
        .where(
            Order.payment_method == PaymentMethod.CARD.value,
            Order.status == OrderStatus.PENDING.value,
            Order.created_at < cutoff,
        )
        .with_for_update()
    )
    for order in result.scalars().all():
        order.status = OrderStatus.FAILED.value
        stats["orders_failed"] += 1
        logger.info(f"Abandoned card order failed order_id={order.id} user_id={order.user_id}")

    removed = await db.execute(
        delete(WalletAttempt)
        .where(WalletAttempt.expires_at < now)
        .execution_options(synchronize_session=False)
    )
    stats["attempts_removed"] = removed.rowcount or 0

    await db.flush()

    if stats["orders_failed"] or stats["attempts_removed"]:
        logger.info(
            f"Checkout cleanup: failed {stats['orders_failed']} pending card orders, "
            f"removed {stats['attempts_removed']} expired wallet attempts"
        )
    else:
        logger.debug("No abandoned checkouts to clean up")

    return stats


async def run_checkout_cleanup(heartbeat: dict) -> None:
    """One cleanup pass in its own session, recording the outcome in heartbeat."""
    heartbeat["last_run"] = utcnow().isoformat()
    try:
        async with get_db_session() as db:
            stats = await expire_abandoned_checkouts(db)
        heartbeat["last_success"] = utcnow().isoformat()
        heartbeat["records_processed"] += stats["orders_failed"] + stats["attempts_removed"]
    except Exception as e:
        heartbeat["errors"] += 1
        logger.error(f"Checkout cleanup failed: {type(e).__name__}: {e}")


async def checkout_cleanup_scheduler(heartbeat: dict) -> None:
    """
    Run the cleanup at CHECKOUT_CLEANUP_INTERVAL_MINUTES intervals.
    Runs until cancelled during shutdown.
    """
    interval_seconds = settings.CHECKOUT_CLEANUP_INTERVAL_MINUTES * 60
    logger.info(f"Checkout cleanup scheduler started (interval: {settings.CHECKOUT_CLEANUP_INTERVAL_MINUTES} minutes)")

    while True:
        await run_checkout_cleanup(heartbeat)
        await asyncio.sleep(interval_seconds)
