"""FastAPI application."""
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from .config import DEV_JWT_SECRET_KEY, settings
from .database import SessionLocal
from .problem_details import install_problem_handlers
from .routers import auth, companies, customers, inventory, products, role_requests, sales, users
from .services.rate_limit import get_counter_store, sweep_counters

logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"

# Production safety checks (fail closed on insecure config).
if settings.is_production and settings.JWT_SECRET_KEY == DEV_JWT_SECRET_KEY:
    raise RuntimeError("JWT_SECRET_KEY must be set in production.")
if settings.is_production and not settings.auth_cookie_secure:
    raise RuntimeError("AUTH_COOKIE_SECURE must be true in production (requires HTTPS).")
if settings.is_production and not settings.cors_origins:
    raise RuntimeError("ALLOWED_ORIGINS must be set in production (explicit frontend origin required).")
if settings.is_production and any(origin == "*" for origin in settings.cors_origins):
    raise RuntimeError("ALLOWED_ORIGINS must be explicit in production (no wildcard when using credentials).")


async def _sweep_rate_limits_forever(interval: int) -> None:
    store = get_counter_store()
    while True:
        await asyncio.sleep(interval)
        try:
            sweep_counters(store)
        except Exception:
            logger.exception("Rate-limit sweep failed")


@asynccontextmanager
async def lifespan(_: FastAPI):
    sweeper = asyncio.create_task(_sweep_rate_limits_forever(settings.RATE_LIMIT_SWEEP_SECONDS))
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper


# Create app
app = FastAPI(
    title="Tenant ERP",
    version=APP_VERSION,
    description="Multi-tenant ERP backend: companies, staff, products, inventory and sales",
    lifespan=lifespan,
)

install_problem_handlers(app)

# CORS
cors_methods = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
cors_headers = ["Authorization", "Content-Type"]
if not settings.is_production:
    cors_headers = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=cors_methods,
    allow_headers=cors_headers,
)

# Include routers
app.include_router(auth.router, prefix="/api/v1")
app.include_router(companies.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(role_requests.router, prefix="/api/v1")
app.include_router(products.router, prefix="/api/v1")
app.include_router(customers.router, prefix="/api/v1")
app.include_router(inventory.router, prefix="/api/v1")
app.include_router(sales.router, prefix="/api/v1")


@app.get("/api/v1/system/health")
def health_check():
    """Health check endpoint."""
    database = "ok"
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Health check: database unavailable")
        database = "unavailable"
    finally:
        db.close()
    return {
        "status": "ok" if database == "ok" else "degraded",
        "version": APP_VERSION,
        "database": database,
    }


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "Tenant ERP API",
        "version": APP_VERSION,
        "docs": "/docs",
    }
