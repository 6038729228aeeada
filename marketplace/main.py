"""
Marketplace Backend: FastAPI application
Companies, wholesalers and service providers with sponsorships, referrals and vouchers
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from marketplace.config import settings
from marketplace.db.database import engine, init_models, SessionLocal
from marketplace.exception_handler import setup_exception_handlers
from marketplace.routers import (
    auth, users, businesses, service_providers, sponsorships,
    sponsorship_requests, payments, vouchers, admin,
)
from marketplace.services.accounts import seed_admin

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Marketplace API starting...")
    await init_models()
    async with SessionLocal() as db:
        await seed_admin(db)
    if not (settings.whish_channel and settings.whish_secret and settings.whish_website_url):
        logger.warning("Whish credentials not fully configured; payments will fail")
    yield
    await engine.dispose()
    logger.info("Marketplace API shut down.")


app = FastAPI(
    title="Marketplace API",
    description="Multi-tenant marketplace backend with sponsorship subscriptions",
    version="1.0.0",
    lifespan=lifespan,
)

setup_exception_handlers(app)

# ── CORS ───────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ────────────────────────────────────────────────
app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(businesses.companies, prefix="/api/companies", tags=["Companies"])
app.include_router(businesses.wholesalers, prefix="/api/wholesalers", tags=["Wholesalers"])
app.include_router(service_providers.router, prefix="/api/service-providers", tags=["Service Providers"])
app.include_router(sponsorships.router, prefix="/api/sponsorships", tags=["Sponsorships"])
app.include_router(
    sponsorship_requests.router, prefix="/api/sponsorship-requests", tags=["Sponsorship Requests"]
)
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])
app.include_router(vouchers.router, prefix="/api/vouchers", tags=["Vouchers"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "Marketplace API"}
