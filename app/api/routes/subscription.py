"""
Subscription endpoints for the signed-in dietitian.

Plan catalog, current status, checkout and billing portal.
"""
import logging
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_current_tenant
from app.core.config import Settings, get_settings
from app.db.models.tenant import Tenant
from app.db.session import get_db
from app.schemas.billing import (
    BillingErrorResponse,
    CreateCheckoutRequest,
    CreateCheckoutResponse,
    PlansResponse,
    PortalResponse,
    SubscriptionStatusResponse,
)
from app.services import subscription_service
from app.services.subscription_service import NoBillingAccountError, SubscriptionExistsError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subscription", tags=["Subscription"])

ERROR_RESPONSES = {400: {"model": BillingErrorResponse}, 500: {"model": BillingErrorResponse}}


@router.get("/plans", response_model=PlansResponse)
def get_plans(db: Session = Depends(get_db)):
    """Active plans, in display order. Public."""
    plans = subscription_service.list_active_plans(db)
    return {"success": True, "plans": [plan.to_dict() for plan in plans]}


@router.get("/status", response_model=SubscriptionStatusResponse)
def get_subscription_status(
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
):
    """
    Current subscription of the authenticated tenant.

    Includes whether the tenant is still in its trial and how many days are left.
    """
    summary = subscription_service.get_status_summary(db, tenant)
    return {"success": True, "subscription": summary}


@router.post("/create-checkout", response_model=CreateCheckoutResponse, responses=ERROR_RESPONSES)
def create_checkout(
    request: CreateCheckoutRequest,
    tenant: Tenant = Depends(get_current_tenant),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Start a Stripe Checkout for the chosen plan (14-day trial)."""
    try:
        checkout_url = subscription_service.start_checkout(
            db, tenant, request.price_id, request.plan_name, settings
        )
    except SubscriptionExistsError as e:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(e)})
    except ValueError as e:
        logger.error(f"Create checkout error: tenant_id={tenant.id}: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to create checkout session"},
        )

    return {"success": True, "checkout_url": checkout_url}


@router.post("/portal", response_model=PortalResponse, responses=ERROR_RESPONSES)
def create_portal(
    tenant: Tenant = Depends(get_current_tenant),
    settings: Settings = Depends(get_settings),
):
    """Open the Stripe billing portal to manage payment method or cancel."""
    try:
        portal_url = subscription_service.open_billing_portal(tenant, settings)
    except NoBillingAccountError as e:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(e)})
    except ValueError as e:
        logger.error(f"Portal session error: tenant_id={tenant.id}: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to create billing portal session"},
        )

    return {"success": True, "portal_url": portal_url}
