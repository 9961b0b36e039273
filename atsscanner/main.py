import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from atsscanner.api.routes import auth, health, payment, profile, usage, webhook
from atsscanner.core.config import get_settings
from atsscanner.core.logging_config import sanitize_log_data, setup_logging
from atsscanner.db.init_db import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    # Fail fast before serving any request
    settings.validate_required()
    logger.info(f"Starting ATS Scanner API: {sanitize_log_data(settings.model_dump())}")

    init_db()
    yield


# ============================================
# FASTAPI APP INIT
# ============================================

app = FastAPI(title="ATS Scanner API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["Authorization", "Content-Type", "Stripe-Signature"],
)


# ============================================
# REGISTER ALL ROUTERS
# ============================================

app.include_router(auth.router)
app.include_router(usage.router)
app.include_router(payment.router)
app.include_router(profile.router)
app.include_router(webhook.router)
app.include_router(health.router)


@app.get("/")
def root():
    return {"status": "ATS Scanner API running"}
