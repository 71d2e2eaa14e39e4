"""
Pydantic schemas for subscription endpoints.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class PlanResponse(BaseModel):
    """A plan from the catalog."""
    name: str
    display_name: str
    stripe_price_id: str
    price_monthly: float
    currency: str = "eur"
    features: List[Any] = Field(default_factory=list)
    max_clients: Optional[int] = None
    max_meal_plans: Optional[int] = None
    ai_generations_per_month: Optional[int] = None
    sort_order: int = 0


class PlansResponse(BaseModel):
    success: bool = True
    plans: List[PlanResponse]


class SubscriptionSummary(BaseModel):
    """Current subscription state of the tenant."""
    status: Optional[str] = Field(None, description="trialing | active | past_due | canceled")
    plan: Optional[str] = None
    started_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    is_trialing: bool = False
    trial_ends_at: Optional[datetime] = None
    trial_days_left: int = 0
    plan_details: Optional[Dict[str, Any]] = None


class SubscriptionStatusResponse(BaseModel):
    success: bool = True
    subscription: SubscriptionSummary


class CreateCheckoutRequest(BaseModel):
    """Request schema for creating checkout session."""
    price_id: str = Field(..., min_length=1, description="Stripe price ID of the chosen plan")
    plan_name: str = Field(..., description="Plan name: 'starter' or 'professional'", pattern="^(starter|professional)$")

    model_config = {
        "json_schema_extra": {
            "example": {
                "price_id": "price_1Starter",
                "plan_name": "starter"
            }
        }
    }


class CreateCheckoutResponse(BaseModel):
    """Response schema for checkout session creation."""
    success: bool = True
    checkout_url: str = Field(..., description="Stripe checkout session URL")


class PortalResponse(BaseModel):
    """Response schema for portal session creation."""
    success: bool = True
    portal_url: str = Field(..., description="Stripe customer portal URL")


class WebhookAck(BaseModel):
    received: bool = True


class BillingErrorResponse(BaseModel):
    """Error response schema for billing operations."""
    error: str = Field(..., description="Error message")
