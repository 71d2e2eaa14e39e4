"""
Stripe webhook endpoint for subscription lifecycle events.

The caller is Stripe's delivery system, which only sees status codes:
200 acknowledges (including ignored events), 400 rejects an unauthenticated
or undecodable delivery, 500 asks Stripe to redeliver later.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.exceptions import WebhookPayloadError, WebhookSignatureError
from app.db.session import get_db
from app.schemas.billing import BillingErrorResponse, WebhookAck
from app.schemas.webhook_events import parse_event
from app.services import stripe_service
from app.services.subscription_reconciler import reconcile_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subscription", tags=["Billing Webhook"])


@router.get("/webhook")
def webhook_status():
    """Liveness probe for the webhook endpoint."""
    return {
        "message": "Stripe webhook endpoint is active",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post(
    "/webhook",
    response_model=WebhookAck,
    responses={400: {"model": BillingErrorResponse}, 500: {"model": BillingErrorResponse}},
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    # Raw bytes: the signature covers the body exactly as sent
    payload = await request.body()

    if not stripe_signature:
        logger.warning("Webhook rejected: missing stripe-signature header")
        return JSONResponse(status_code=400, content={"error": "Missing signature"})

    if not settings.stripe_webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET not configured")
        return JSONResponse(status_code=500, content={"error": "Webhook secret not configured"})

    try:
        raw_event = stripe_service.verify_webhook(
            payload,
            stripe_signature,
            settings.stripe_webhook_secret,
            tolerance=settings.stripe_webhook_tolerance,
        )
        event = parse_event(raw_event)
    except WebhookSignatureError as e:
        logger.warning(f"Webhook signature verification failed ({stripe_signature[:20]}...): {e}")
        return JSONResponse(status_code=400, content={"error": "Invalid signature"})
    except WebhookPayloadError as e:
        logger.warning(f"Webhook payload rejected after signature check: {e}")
        return JSONResponse(status_code=400, content={"error": "Invalid signature"})

    logger.info(f"Processing webhook event: {event.type}, id={event.id}")

    try:
        outcome = reconcile_event(db, event)
    except Exception:
        logger.exception(f"Error processing webhook event: {event.type}, id={event.id}")
        return JSONResponse(status_code=500, content={"error": "Event processing failed"})

    logger.info(f"Webhook event {event.id} ({event.type}): {outcome.value}")
    return {"received": True}
