"""
Dekop Store - Backend API
Storefront, payments and back office for Dekop Furniture
"""
import time
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment variables
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)

# Import API routers
from app.api import (
    admin_auth,
    admin_orders,
    admin_products,
    admin_profile,
    cart,
    maintenance,
    orders,
    payments,
    products,
    webhooks,
)
from app.core.config import settings
from app.core.csrf import CsrfMiddleware
from app.core.database import CONNECTION_TIMEOUT, get_db_connection_with_retry
from app.core.errors import register_exception_handlers
from app.core.logging_config import configure_logging
from app.core.rate_limit import RateLimitMiddleware

configure_logging()

ADMIN_API_PREFIX = "/api/v1/admin"

app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=settings.API_DESCRIPTION
)

register_exception_handlers(app)

# Middleware runs outermost-last: CORS -> rate limit -> CSRF -> routes
app.add_middleware(
    CsrfMiddleware,
    protected_prefix=ADMIN_API_PREFIX,
    exempt_paths=(f"{ADMIN_API_PREFIX}/auth/login", f"{ADMIN_API_PREFIX}/auth/reset-password"),
)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"],
)

# Storefront
app.include_router(products.router, prefix="/api/v1/products", tags=["Products"])
app.include_router(cart.router, prefix="/api/v1/cart", tags=["Cart"])
app.include_router(orders.router, prefix="/api/v1/orders", tags=["Orders"])
app.include_router(payments.router, prefix="/api/v1/payments", tags=["Payments"])
app.include_router(webhooks.router, prefix="/api/v1/webhooks", tags=["Webhooks"])

# Back office
app.include_router(admin_auth.router, prefix=f"{ADMIN_API_PREFIX}/auth", tags=["Admin Auth"])
app.include_router(admin_orders.router, prefix=f"{ADMIN_API_PREFIX}/orders", tags=["Admin Orders"])
app.include_router(admin_products.router, prefix=f"{ADMIN_API_PREFIX}/products", tags=["Admin Products"])
app.include_router(admin_profile.router, prefix=f"{ADMIN_API_PREFIX}/profile", tags=["Admin Profile"])

# Cron
app.include_router(maintenance.router, prefix="/api/v1/maintenance", tags=["Maintenance"])


@app.get("/")
async def root():
    """Root endpoint - API status"""
    return {
        "message": "Dekop Store API",
        "status": "online",
        "version": settings.API_VERSION,
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health():
    """Health check endpoint for monitoring - tests database connectivity"""
    start_time = time.time()

    db_status = "unknown"
    db_latency_ms = None
    db_error = None

    try:
        # Minimal retry for a fast check
        conn = get_db_connection_with_retry(max_retries=1, retry_delay=0.5)
        cursor = conn.cursor()

        db_start = time.time()
        cursor.execute("SELECT 1")
        cursor.fetchone()
        db_latency_ms = round((time.time() - db_start) * 1000, 2)

        cursor.close()
        conn.close()
        db_status = "connected"
    except Exception as e:
        db_status = "disconnected"
        db_error = str(e) if settings.is_development else "Database unavailable"

    total_latency_ms = round((time.time() - start_time) * 1000, 2)

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "service": "dekop-api",
        "version": settings.API_VERSION,
        "database": {
            "status": db_status,
            "latency_ms": db_latency_ms,
            "error": db_error,
            "connection_timeout_s": CONNECTION_TIMEOUT
        },
        "total_latency_ms": total_latency_ms
    }
