"""
Misab Storefront - Application Entry Point
============================================
FastAPI app initialization, logging, error handlers, and router registration.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config import settings
from config.database import Base, engine
from common.exceptions import StorefrontError

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger("misab")


# ==========================================
# Exception handler: business errors → JSON
# ==========================================

async def storefront_exception_handler(request: Request, exc: StorefrontError):
    """Render any StorefrontError with its status code and class name."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {type(exc).__name__}: {exc.message}")
    return JSONResponse(
        {"detail": exc.message, "error": type(exc).__name__},
        status_code=exc.status_code,
    )


# ==========================================
# Import ALL models so Base can see them
# ==========================================
from common.storage import CacheEntry  # noqa: F401,E402

# ==========================================
# Import routers
# ==========================================
from modules.auth.routes import router as auth_router  # noqa: E402
from modules.cart.routes import router as cart_router  # noqa: E402
from modules.coupon.routes import router as coupon_router  # noqa: E402
from modules.wishlist.routes import router as wishlist_router  # noqa: E402
from modules.review.routes import router as review_router  # noqa: E402
from modules.payment.routes import router as payment_router  # noqa: E402
from modules.order.routes import router as order_router  # noqa: E402


@asynccontextmanager
async def lifespan(app):
    # Auto-create any missing tables (safe for existing tables)
    Base.metadata.create_all(bind=engine)
    logger.info("Local cache tables ready")
    yield


# ==========================================
# Create App
# ==========================================
app = FastAPI(
    title="Misab Storefront",
    description="Storefront cart reconciliation over Shopify, Firebase and Razorpay",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.add_exception_handler(StorefrontError, storefront_exception_handler)


# ==========================================
# Register Routers
# ==========================================
app.include_router(auth_router)
app.include_router(cart_router)
app.include_router(coupon_router)
app.include_router(wishlist_router)
app.include_router(review_router)
app.include_router(payment_router)
app.include_router(order_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
