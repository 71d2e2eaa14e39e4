"""
Subscription service for the authenticated tenant.

Plan catalog, status summary with trial countdown, checkout and billing
portal. Subscription state itself is only written by the webhook reconciler.
"""
import logging
import math
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.timeutils import as_naive_utc, utcnow
from app.db.models.subscription_plan import SubscriptionPlan
from app.db.models.tenant import SubscriptionStatus, Tenant
from app.services import stripe_service

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


class SubscriptionExistsError(ValueError):
    """Tenant already has an active or trialing subscription."""


class NoBillingAccountError(ValueError):
    """Tenant has no Stripe customer yet."""


def list_active_plans(db: Session) -> List[SubscriptionPlan]:
    return (
        db.query(SubscriptionPlan)
        .filter(SubscriptionPlan.is_active.is_(True))
        .order_by(SubscriptionPlan.sort_order)
        .all()
    )


def trial_days_left(trial_ends_at: Optional[datetime], now: datetime) -> int:
    """Whole days left in the trial, rounded up, never negative."""
    if trial_ends_at is None:
        return 0
    remaining = (as_naive_utc(trial_ends_at) - now).total_seconds()
    return max(0, math.ceil(remaining / SECONDS_PER_DAY))


def get_status_summary(db: Session, tenant: Tenant, now: Optional[datetime] = None) -> dict:
    """
    Build the subscription summary shown on the billing settings page.

    Args:
        db: Database session
        tenant: Current tenant
        now: Naive-UTC reference time, defaults to the current time

    Returns:
        Dictionary matching SubscriptionSummary
    """
    now = now or utcnow()
    trial_ends_at = as_naive_utc(tenant.trial_ends_at)

    plan_details = None
    if tenant.subscription_plan:
        plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.name == tenant.subscription_plan).first()
        if plan:
            plan_details = plan.to_dict()
        else:
            logger.warning(f"Plan details not found: tenant_id={tenant.id}, plan={tenant.subscription_plan}")

    is_trialing = (
        tenant.subscription_status == SubscriptionStatus.TRIALING.value
        and trial_ends_at is not None
        and trial_ends_at > now
    )

    return {
        "status": tenant.subscription_status,
        "plan": tenant.subscription_plan,
        "started_at": tenant.subscription_started_at,
        "ends_at": tenant.subscription_ends_at,
        "current_period_end": tenant.subscription_current_period_end,
        "is_trialing": is_trialing,
        "trial_ends_at": tenant.trial_ends_at,
        "trial_days_left": trial_days_left(trial_ends_at, now),
        "plan_details": plan_details,
    }


def start_checkout(db: Session, tenant: Tenant, price_id: str, plan_name: str, settings: Settings) -> str:
    """
    Create a Checkout session for the tenant, creating its Stripe customer first if needed.

    Returns:
        Checkout session URL

    Raises:
        SubscriptionExistsError: If the tenant is already active or trialing
        ValueError: If Stripe rejects a request
    """
    if tenant.subscription_status in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value):
        raise SubscriptionExistsError("Subscription already exists")

    customer_id = tenant.stripe_customer_id
    if not customer_id:
        customer_id = stripe_service.create_customer(
            email=tenant.email,
            name=tenant.display_name,
            api_key=settings.stripe_secret_key,
            metadata={"tenant_id": str(tenant.id)},
        )
        tenant.stripe_customer_id = customer_id
        db.commit()

    session = stripe_service.create_checkout_session(
        customer_id=customer_id,
        price_id=price_id,
        base_url=settings.app_base_url,
        api_key=settings.stripe_secret_key,
        metadata={
            "tenant_id": str(tenant.id),
            "plan_name": plan_name,
        },
    )

    logger.info(f"Checkout started: tenant_id={tenant.id}, plan={plan_name}, session_id={session['id']}")
    return session["url"]


def open_billing_portal(tenant: Tenant, settings: Settings) -> str:
    """
    Create a billing portal session returning to the dashboard settings.

    Raises:
        NoBillingAccountError: If the tenant has no Stripe customer
    """
    if not tenant.stripe_customer_id:
        raise NoBillingAccountError("No subscription found")

    session = stripe_service.create_billing_portal_session(
        customer_id=tenant.stripe_customer_id,
        return_url=f"{settings.app_base_url}/dashboard/settings",
        api_key=settings.stripe_secret_key,
    )
    return session["url"]
