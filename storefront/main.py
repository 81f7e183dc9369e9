"""
Storefront Checkout
FastAPI application entry point

- Payment gateways built once at startup, closed on shutdown
- Abandoned checkout cleanup scheduler with heartbeat metrics
- Rate limiting with SlowAPI
- Error sanitization middleware
- Health endpoint with DB ping
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.api.routes import checkout, orders
from storefront.core.config import settings
from storefront.core.database import AsyncSessionLocal, init_models
from storefront.core.error_handler import (
    ErrorSanitizationMiddleware,
    http_exception_handler,
    storefront_error_handler,
)
from storefront.core.exceptions import StorefrontError
from storefront.core.rate_limit import limiter, rate_limit_exceeded_handler
from storefront.services.checkout_cleanup import checkout_cleanup_scheduler
from storefront.services.gateways import build_payment_gateways

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Background task references
_checkout_cleanup_task: Optional[asyncio.Task] = None
_cleanup_heartbeat: dict = {
    "last_run": None,
    "last_success": None,
    "records_processed": 0,
    "errors": 0,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Create tables, build the payment gateways and start background tasks.
    """
    global _checkout_cleanup_task

    await init_models()

    app.state.gateways = build_payment_gateways(settings)

    if settings.CHECKOUT_CLEANUP_ENABLED:
        _checkout_cleanup_task = asyncio.create_task(checkout_cleanup_scheduler(_cleanup_heartbeat))
        logger.info("Checkout cleanup scheduler ENABLED")
    else:
        logger.info("Checkout cleanup scheduler DISABLED via config")

    yield

    # Cleanup on shutdown
    if _checkout_cleanup_task and not _checkout_cleanup_task.done():
        _checkout_cleanup_task.cancel()
        try:
            await _checkout_cleanup_task
        except asyncio.CancelledError:
            logger.info("Checkout cleanup scheduler cancelled")

    # Close HTTP clients to prevent connection leaks
    await app.state.gateways.close()
    logger.info("Payment gateway clients closed")


app = FastAPI(
    lifespan=lifespan,
    title="Storefront Checkout API",
    description="""
## Storefront Checkout API

Turns a shopper's cart into an order.

### Payment methods
- **Card**: Stripe PaymentIntents with 3-D Secure support
- **Wallet**: PayPal approval and capture
- **Cash on delivery**

### Authentication
All checkout and order endpoints require a bearer access token.

### Rate Limits
- Payment creation: 10 requests/minute
- General: 100 requests/minute
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Health", "description": "Health check and monitoring endpoints"},
        {"name": "Checkout", "description": "Payment and order processing"},
        {"name": "Orders", "description": "Order confirmation and details"},
    ],
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Domain and HTTP errors share the {"error": ...} body
app.add_exception_handler(StorefrontError, storefront_error_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)

app.add_middleware(ErrorSanitizationMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(checkout.router, prefix="/api", tags=["Checkout"])
app.include_router(orders.router, prefix="/api", tags=["Orders"])


@app.get("/", tags=["Health"])
async def root():
    return {
        "message": settings.APP_NAME,
        "version": "1.0.0",
        "status": "operational"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check with actual DB ping and cleanup heartbeat.
    Returns 503 if database is unreachable.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "checkout_cleanup": _cleanup_heartbeat,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except Exception as e:
        health_status["database"] = f"error: {type(e).__name__}"
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)

    return health_status
