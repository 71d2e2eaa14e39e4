"""
Subscription webhook reconciler.

Maps a verified Stripe event onto the addressed tenant's subscription columns
and appends one audit row per applied transition.

Failure policy per step:

    step                       result                          policy
    -------------------------  ------------------------------  ---------------------------
    required field missing     HandlerOutcome.SKIPPED          acknowledge, no writes
    tenant lookup miss         HandlerOutcome.TENANT_NOT_FOUND acknowledge, no writes
    tenant update commit       SubscriptionSyncError           abort, caller answers 500
    audit log append           record_subscription_event=False continue, mutation stands
    unrecognized event type    HandlerOutcome.IGNORED          acknowledge, no writes

Events are applied in arrival order with no deduplication by event id and no
sequence check; the last write wins.
"""
import enum
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import SubscriptionSyncError
from app.core.timeutils import as_naive_utc, from_unix, utcnow
from app.db.models.subscription_plan import SubscriptionPlan
from app.db.models.tenant import SubscriptionStatus, Tenant
from app.schemas.webhook_events import (
    CheckoutSessionCompletedEvent,
    InvoicePaymentFailedEvent,
    InvoicePaymentSucceededEvent,
    SubscriptionCreatedEvent,
    SubscriptionDeletedEvent,
    SubscriptionTrialWillEndEvent,
    SubscriptionUpdatedEvent,
    UnknownEvent,
    WebhookEvent,
)
from app.services.subscription_events import record_subscription_event

logger = logging.getLogger(__name__)

TRIAL_LENGTH = timedelta(days=14)


class HandlerOutcome(str, enum.Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    TENANT_NOT_FOUND = "tenant_not_found"
    IGNORED = "ignored"


def _commit(db: Session, event_type: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to update tenant subscription for {event_type}: {e}")
        raise SubscriptionSyncError(f"Failed to apply {event_type}", event_type=event_type) from e


def _trial_expired(tenant: Tenant, now: datetime) -> bool:
    trial_ends_at = as_naive_utc(tenant.trial_ends_at)
    return trial_ends_at is not None and trial_ends_at < now


def _tenant_by_subscription(db: Session, subscription_id: str) -> Optional[Tenant]:
    return db.query(Tenant).filter(Tenant.subscription_id == subscription_id).first()


def _resolve_plan_name(db: Session, price_id: Optional[str]) -> Optional[str]:
    if not price_id:
        return None
    plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.stripe_price_id == price_id).first()
    return plan.name if plan else None


# ============================================
# Event handlers
# ============================================

def handle_checkout_session_completed(
    db: Session, event: CheckoutSessionCompletedEvent, now: datetime
) -> HandlerOutcome:
    """
    checkout.session.completed: start the subscription.

    A tenant already trialing, or whose trial has expired, is activated at once
    and its trial end cleared. Anyone else starts a fresh 14-day trial.
    """
    session = event.data.object
    metadata = session.metadata or {}
    tenant_ref = metadata.get("tenant_id")

    if not session.customer or not session.subscription or not tenant_ref:
        logger.warning(f"checkout.session.completed: missing customer, subscription or tenant_id (session={session.id})")
        return HandlerOutcome.SKIPPED

    try:
        tenant_id = int(tenant_ref)
    except (TypeError, ValueError):
        logger.warning(f"checkout.session.completed: invalid tenant_id={tenant_ref!r} (session={session.id})")
        return HandlerOutcome.SKIPPED

    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    if not tenant:
        logger.warning(f"checkout.session.completed: tenant not found tenant_id={tenant_id}")
        return HandlerOutcome.TENANT_NOT_FOUND

    previous_status = tenant.subscription_status
    previous_plan = tenant.subscription_plan
    trial_expired = _trial_expired(tenant, now)
    activate_now = previous_status == SubscriptionStatus.TRIALING.value or trial_expired
    new_status = SubscriptionStatus.ACTIVE.value if activate_now else SubscriptionStatus.TRIALING.value
    plan_name = metadata.get("plan_name") or previous_plan

    tenant.subscription_id = session.subscription
    tenant.subscription_status = new_status
    tenant.subscription_plan = plan_name
    tenant.subscription_started_at = now
    tenant.trial_ends_at = None if activate_now else now + TRIAL_LENGTH
    if not tenant.stripe_customer_id:
        tenant.stripe_customer_id = session.customer
    _commit(db, event.type)

    logger.info(f"Checkout completed: tenant_id={tenant_id}, status={new_status}, plan={plan_name}, subscription_id={session.subscription}")

    record_subscription_event(
        db,
        tenant_id=tenant_id,
        event_type="checkout_completed",
        stripe_event_id=event.id,
        stripe_subscription_id=session.subscription,
        previous_status=previous_status,
        new_status=new_status,
        previous_plan=previous_plan,
        new_plan=plan_name,
        metadata={
            "session_id": session.id,
            "trial_expired": trial_expired,
            "immediate_activation": activate_now,
        },
    )
    return HandlerOutcome.APPLIED


def handle_subscription_created(
    db: Session, event: SubscriptionCreatedEvent, now: datetime
) -> HandlerOutcome:
    """customer.subscription.created: link the subscription to the customer's tenant."""
    subscription = event.data.object

    if not subscription.customer:
        logger.warning(f"customer.subscription.created: no customer on subscription_id={subscription.id}")
        return HandlerOutcome.SKIPPED

    tenant = db.query(Tenant).filter(Tenant.stripe_customer_id == subscription.customer).first()
    if not tenant:
        logger.warning(f"customer.subscription.created: tenant not found for customer={subscription.customer}")
        return HandlerOutcome.TENANT_NOT_FOUND

    tenant_id = tenant.id
    previous_status = tenant.subscription_status
    trial_expired = _trial_expired(tenant, now)
    new_status = SubscriptionStatus.ACTIVE.value if trial_expired else subscription.status

    tenant.subscription_id = subscription.id
    tenant.subscription_status = new_status
    tenant.subscription_started_at = now
    period_end = from_unix(subscription.period_end)
    if period_end is not None:
        tenant.subscription_current_period_end = period_end
    if not trial_expired and subscription.trial_end is not None:
        tenant.trial_ends_at = from_unix(subscription.trial_end)
    _commit(db, event.type)

    logger.info(f"Subscription created: tenant_id={tenant_id}, status={new_status}, subscription_id={subscription.id}")

    record_subscription_event(
        db,
        tenant_id=tenant_id,
        event_type="subscription_created",
        stripe_event_id=event.id,
        stripe_subscription_id=subscription.id,
        previous_status=previous_status,
        new_status=new_status,
        metadata={
            "customer": subscription.customer,
            "stripe_status": subscription.status,
            "trial_expired": trial_expired,
            "trial_end": subscription.trial_end,
        },
    )
    return HandlerOutcome.APPLIED


def handle_subscription_updated(
    db: Session, event: SubscriptionUpdatedEvent, now: datetime
) -> HandlerOutcome:
    """customer.subscription.updated: mirror Stripe's status, plan and cancellation date."""
    subscription = event.data.object

    tenant = _tenant_by_subscription(db, subscription.id)
    if not tenant:
        logger.warning(f"customer.subscription.updated: tenant not found for subscription_id={subscription.id}")
        return HandlerOutcome.TENANT_NOT_FOUND

    tenant_id = tenant.id
    previous_status = tenant.subscription_status
    previous_plan = tenant.subscription_plan
    plan_name = _resolve_plan_name(db, subscription.price_id) or previous_plan

    tenant.subscription_status = subscription.status
    tenant.subscription_plan = plan_name
    period_end = from_unix(subscription.period_end)
    if period_end is not None:
        tenant.subscription_current_period_end = period_end
    tenant.subscription_ends_at = from_unix(subscription.cancel_at)
    _commit(db, event.type)

    logger.info(f"Subscription updated: tenant_id={tenant_id}, status={subscription.status}, plan={plan_name}, subscription_id={subscription.id}")

    record_subscription_event(
        db,
        tenant_id=tenant_id,
        event_type="subscription_updated",
        stripe_event_id=event.id,
        stripe_subscription_id=subscription.id,
        previous_status=previous_status,
        new_status=subscription.status,
        previous_plan=previous_plan,
        new_plan=plan_name,
        metadata={
            "price_id": subscription.price_id,
            "cancel_at": subscription.cancel_at,
            "current_period_end": subscription.period_end,
        },
    )
    return HandlerOutcome.APPLIED


def handle_subscription_deleted(
    db: Session, event: SubscriptionDeletedEvent, now: datetime
) -> HandlerOutcome:
    """customer.subscription.deleted: always canceled, ending now."""
    subscription = event.data.object

    tenant = _tenant_by_subscription(db, subscription.id)
    if not tenant:
        logger.warning(f"customer.subscription.deleted: tenant not found for subscription_id={subscription.id}")
        return HandlerOutcome.TENANT_NOT_FOUND

    tenant_id = tenant.id
    previous_status = tenant.subscription_status

    tenant.subscription_status = SubscriptionStatus.CANCELED.value
    tenant.subscription_ends_at = now
    _commit(db, event.type)

    logger.info(f"Subscription canceled: tenant_id={tenant_id}, subscription_id={subscription.id}")

    record_subscription_event(
        db,
        tenant_id=tenant_id,
        event_type="subscription_canceled",
        stripe_event_id=event.id,
        stripe_subscription_id=subscription.id,
        previous_status=previous_status,
        new_status=SubscriptionStatus.CANCELED.value,
        metadata={"stripe_status": subscription.status},
    )
    return HandlerOutcome.APPLIED


def handle_invoice_payment_succeeded(
    db: Session, event: InvoicePaymentSucceededEvent, now: datetime
) -> HandlerOutcome:
    """invoice.payment_succeeded: audit only, status is left to subscription events."""
    invoice = event.data.object
    subscription_id = invoice.subscription_id

    if not subscription_id:
        logger.info(f"invoice.payment_succeeded: no subscription on invoice_id={invoice.id}")
        return HandlerOutcome.SKIPPED

    tenant = _tenant_by_subscription(db, subscription_id)
    if not tenant:
        logger.warning(f"invoice.payment_succeeded: tenant not found for subscription_id={subscription_id}")
        return HandlerOutcome.TENANT_NOT_FOUND

    logger.info(f"Invoice payment succeeded: tenant_id={tenant.id}, subscription_id={subscription_id}")

    record_subscription_event(
        db,
        tenant_id=tenant.id,
        event_type="payment_succeeded",
        stripe_event_id=event.id,
        stripe_subscription_id=subscription_id,
        metadata={"invoice_id": invoice.id, "amount": invoice.amount_paid},
    )
    return HandlerOutcome.APPLIED


def handle_invoice_payment_failed(
    db: Session, event: InvoicePaymentFailedEvent, now: datetime
) -> HandlerOutcome:
    """invoice.payment_failed: move the tenant to past_due."""
    invoice = event.data.object
    subscription_id = invoice.subscription_id

    if not subscription_id:
        logger.info(f"invoice.payment_failed: no subscription on invoice_id={invoice.id}")
        return HandlerOutcome.SKIPPED

    tenant = _tenant_by_subscription(db, subscription_id)
    if not tenant:
        logger.warning(f"invoice.payment_failed: tenant not found for subscription_id={subscription_id}")
        return HandlerOutcome.TENANT_NOT_FOUND

    tenant_id = tenant.id
    previous_status = tenant.subscription_status

    tenant.subscription_status = SubscriptionStatus.PAST_DUE.value
    _commit(db, event.type)

    logger.warning(f"Invoice payment failed: tenant_id={tenant_id}, subscription_id={subscription_id}")

    record_subscription_event(
        db,
        tenant_id=tenant_id,
        event_type="payment_failed",
        stripe_event_id=event.id,
        stripe_subscription_id=subscription_id,
        previous_status=previous_status,
        new_status=SubscriptionStatus.PAST_DUE.value,
        metadata={"invoice_id": invoice.id, "amount": invoice.amount_due},
    )
    return HandlerOutcome.APPLIED


def handle_trial_will_end(
    db: Session, event: SubscriptionTrialWillEndEvent, now: datetime
) -> HandlerOutcome:
    """customer.subscription.trial_will_end: audit only."""
    subscription = event.data.object

    tenant = _tenant_by_subscription(db, subscription.id)
    if not tenant:
        logger.warning(f"customer.subscription.trial_will_end: tenant not found for subscription_id={subscription.id}")
        return HandlerOutcome.TENANT_NOT_FOUND

    logger.info(f"Trial will end: tenant_id={tenant.id}, trial_end={subscription.trial_end}")

    # TODO: e-mail the tenant once notification templates exist
    record_subscription_event(
        db,
        tenant_id=tenant.id,
        event_type="trial_will_end",
        stripe_event_id=event.id,
        stripe_subscription_id=subscription.id,
        metadata={"trial_end": subscription.trial_end},
    )
    return HandlerOutcome.APPLIED


EVENT_HANDLERS: Dict[str, Callable[..., HandlerOutcome]] = {
    "checkout.session.completed": handle_checkout_session_completed,
    "customer.subscription.created": handle_subscription_created,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.payment_succeeded": handle_invoice_payment_succeeded,
    "invoice.payment_failed": handle_invoice_payment_failed,
    "customer.subscription.trial_will_end": handle_trial_will_end,
}


def reconcile_event(db: Session, event: WebhookEvent, now: Optional[datetime] = None) -> HandlerOutcome:
    """
    Apply exactly one subscription transition for a verified webhook event.

    Args:
        db: Database session
        event: Typed event from app.schemas.webhook_events.parse_event
        now: Naive-UTC reference time, defaults to the current time

    Returns:
        What the handler did with the event

    Raises:
        SubscriptionSyncError: If the tenant row could not be written
    """
    handler = EVENT_HANDLERS.get(event.type)
    if isinstance(event, UnknownEvent) or handler is None:
        logger.info(f"Unhandled event type: {event.type}")
        return HandlerOutcome.IGNORED

    return handler(db, event, now or utcnow())
