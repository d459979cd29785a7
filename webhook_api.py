"""
================================================================================
STRIPE SYNC API
================================================================================
FastAPI application for the Stripe customer sync webhook.

Endpoints:
- POST /stripe_webhooks          - Stripe webhook receiver
- GET  /stripe_webhooks/health   - Component configuration
- GET  /metrics                  - Prometheus metrics
================================================================================
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from api.stripe_webhook import router as stripe_webhook_router
from services.customer_records import CustomerRecords
from services.event_router import EventDispatcher
from services.notification_service import NotificationService
from services.scheduler import BackgroundScheduler
from settings import Config, Organization
from storage.record_store import create_record_store

# Configure logging
logging.basicConfig(
    level=Config.LOG_LEVEL,
    format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'
)
logger = logging.getLogger("stripe_sync.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared handles once and release them on shutdown."""
    store = create_record_store(Config.SUPABASE_URL, Config.SUPABASE_KEY)
    notifier = NotificationService(
        resend_api_key=Config.RESEND_API_KEY,
        from_email=Config.RESEND_EMAIL,
        allow_dirty_email=Config.ALLOW_DIRTY_EMAIL,
    )
    scheduler = BackgroundScheduler()

    app.state.record_store = store
    app.state.dispatcher = EventDispatcher(
        records=CustomerRecords(store),
        notifier=notifier,
        scheduler=scheduler,
        organization=Organization.from_config(),
        link_attach_delay=Config.PAYMENT_LINK_ATTACH_DELAY,
        link_wait_timeout=Config.PAYMENT_LINK_WAIT_TIMEOUT,
    )
    logger.info("Stripe sync webhook ready")

    yield

    logger.info("Shutting down Stripe sync webhook...")
    await scheduler.shutdown()
    await notifier.close()
    await store.close()
    app.state.dispatcher = None
    app.state.record_store = None


app = FastAPI(
    title="Stripe Sync API",
    description="Stripe webhook → Supabase customer records → Resend email.",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(stripe_webhook_router)


@app.get("/metrics", tags=["Observability"])
async def prometheus_metrics():
    """Prometheus metrics endpoint"""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


@app.get("/", tags=["Root"])
async def root():
    """API root - returns basic info"""
    return {
        "name": "Stripe Sync API",
        "version": "1.0.0",
        "status": "operational",
        "webhook": "/stripe_webhooks",
        "health": "/stripe_webhooks/health",
        "metrics": "/metrics"
    }


# =============================================================================
# RUN SERVER
# =============================================================================

def main():
    import uvicorn
    uvicorn.run(
        "webhook_api:app",
        host=Config.HOST,
        port=Config.PORT,
    )


if __name__ == "__main__":
    main()
