"""
Stripe Webhook Endpoint
Receives Stripe events and hands them to the event dispatcher.
Always acknowledges a parsed event with 200, whatever the pipeline outcome.
"""

import json
import logging
from datetime import datetime

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from models.events import EventEnvelope
from services.event_router import EventDispatcher
from settings import Config

logger = logging.getLogger("stripe_sync.webhook")

if Config.STRIPE_API_KEY:
    stripe.api_key = Config.STRIPE_API_KEY

ACKNOWLEDGEMENT = "Received webhook"

# ============================================================================
# ROUTER
# ============================================================================

router = APIRouter(prefix="/stripe_webhooks", tags=["webhooks"])


def get_dispatcher(request: Request) -> EventDispatcher:
    """Shared dispatcher built by the application lifespan."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Webhook pipeline not initialized")
    return dispatcher


def parse_event(payload: bytes, stripe_signature: str, webhook_secret: str) -> dict:
    """Verify (when a secret is configured) and parse the raw webhook body."""
    if webhook_secret:
        try:
            event = stripe.Webhook.construct_event(payload, stripe_signature, webhook_secret)
        except ValueError as e:
            logger.error(f"Invalid payload: {e}")
            raise HTTPException(status_code=400, detail="Invalid payload")
        except stripe.SignatureVerificationError as e:
            logger.error(f"Invalid signature: {e}")
            raise HTTPException(status_code=400, detail="Invalid signature")
        return event.to_dict() if hasattr(event, "to_dict") else dict(event)

    try:
        event = json.loads(payload)
    except ValueError as e:
        logger.error(f"Invalid payload: {e}")
        raise HTTPException(status_code=400, detail="Invalid payload")
    logger.warning("Processing webhook without signature verification")
    return event


# ============================================================================
# WEBHOOK ENDPOINT
# ============================================================================

@router.post("", response_class=PlainTextResponse)
async def stripe_webhook(
    request: Request,
    dispatcher: EventDispatcher = Depends(get_dispatcher),
):
    """
    Handle Stripe webhook events.

    Events handled:
    - charge.succeeded: sync the customer record
    - checkout.session.completed: cache + attach payment link, send email
    - payment_intent.*, charge.failed: classified only
    """
    payload = await request.body()
    event = parse_event(
        payload,
        request.headers.get("stripe-signature", ""),
        Config.STRIPE_WEBHOOK_SECRET,
    )

    envelope = EventEnvelope.from_webhook(event)
    logger.info(f"Received Stripe webhook: {envelope.kind}")

    outcome = await dispatcher.dispatch(envelope)
    logger.info(f"Webhook outcome: {outcome.to_dict()}")

    return PlainTextResponse(ACKNOWLEDGEMENT, status_code=200)


class WebhookHealthResponse(BaseModel):
    status: str
    service: str
    timestamp: str
    pipeline_ready: bool
    record_store: str
    webhook_secret_configured: bool
    email_configured: bool
    template_configured: bool


@router.get("/health", response_model=WebhookHealthResponse)
async def health_check(request: Request):
    """Health check endpoint for the webhook handler."""
    store = getattr(request.app.state, "record_store", None)
    return WebhookHealthResponse(
        status="healthy",
        service="stripe-sync-webhook",
        timestamp=datetime.utcnow().isoformat(),
        pipeline_ready=getattr(request.app.state, "dispatcher", None) is not None,
        record_store=store.backend if store is not None else "unavailable",
        webhook_secret_configured=bool(Config.STRIPE_WEBHOOK_SECRET),
        email_configured=bool(Config.RESEND_API_KEY),
        template_configured=bool(Config.EMAIL_TEMPLATE_URL),
    )
