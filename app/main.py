import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core import config
from app.core.config import get_settings
from app.core.logging_config import setup_logging, sanitize_log_data
from app.api.routes import billing_webhook, health, subscription

setup_logging(config.LOG_LEVEL, config.LOG_FILE)
logger = logging.getLogger(__name__)

settings = get_settings()

if config.RUN_MIGRATIONS:
    from app.db.migrate import run_migrations
    run_migrations()


# ============================================
# ✅ FASTAPI APP INIT
# ============================================

app = FastAPI(title="Dietitian Billing API")

# ✅ CORS: frontend origins only; Stripe calls the webhook server-to-server
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type"],
)


# ============================================
# ✅ REGISTER ALL ROUTERS
# ============================================

app.include_router(billing_webhook.router)
app.include_router(subscription.router)
app.include_router(health.router)

_config_summary = sanitize_log_data({
    "database_url": settings.database_url,
    "stripe_webhook_secret": settings.stripe_webhook_secret,
    "stripe_webhook_tolerance": settings.stripe_webhook_tolerance,
    "app_base_url": settings.app_base_url,
})
logger.info(f"Billing API configured: {_config_summary}")


# ============================================
# ✅ ROOT ENDPOINT
# ============================================

@app.get("/")
def root():
    return {"status": "Dietitian Billing API running"}
