"""
Pydantic schemas for Stripe webhook events.

Each recognized event type is its own model, discriminated on ``type``.
Anything else parses to ``UnknownEvent`` so new Stripe event types are
acknowledged without being rejected.
"""
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from app.core.exceptions import WebhookPayloadError


# ============================================
# Stripe objects (only the fields we read)
# ============================================

class PriceRef(BaseModel):
    id: Optional[str] = None


class SubscriptionItem(BaseModel):
    price: Optional[PriceRef] = None
    current_period_end: Optional[int] = None


class SubscriptionItemList(BaseModel):
    data: List[SubscriptionItem] = Field(default_factory=list)


class CheckoutSession(BaseModel):
    id: str
    customer: Optional[str] = None
    subscription: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class StripeSubscription(BaseModel):
    id: str
    customer: Optional[str] = None
    status: Optional[str] = None
    items: SubscriptionItemList = Field(default_factory=SubscriptionItemList)
    current_period_end: Optional[int] = None
    trial_end: Optional[int] = None
    cancel_at: Optional[int] = None

    @property
    def price_id(self) -> Optional[str]:
        if not self.items.data or not self.items.data[0].price:
            return None
        return self.items.data[0].price.id

    @property
    def period_end(self) -> Optional[int]:
        # Newer API versions report the billing period on the item
        if self.current_period_end is not None:
            return self.current_period_end
        if self.items.data:
            return self.items.data[0].current_period_end
        return None


class StatusedSubscription(StripeSubscription):
    """Subscription on created/updated events; its status is copied onto the tenant."""
    status: str


class Invoice(BaseModel):
    id: str
    subscription: Optional[str] = None
    amount_paid: Optional[int] = None
    amount_due: Optional[int] = None
    parent: Optional[Dict[str, Any]] = None

    @property
    def subscription_id(self) -> Optional[str]:
        if self.subscription:
            return self.subscription
        details = (self.parent or {}).get("subscription_details") or {}
        return details.get("subscription")


class CheckoutSessionData(BaseModel):
    object: CheckoutSession


class SubscriptionData(BaseModel):
    object: StripeSubscription


class StatusedSubscriptionData(BaseModel):
    object: StatusedSubscription


class InvoiceData(BaseModel):
    object: Invoice


# ============================================
# Event envelopes
# ============================================

class _Event(BaseModel):
    id: Optional[str] = None


class CheckoutSessionCompletedEvent(_Event):
    type: Literal["checkout.session.completed"]
    data: CheckoutSessionData


class SubscriptionCreatedEvent(_Event):
    type: Literal["customer.subscription.created"]
    data: StatusedSubscriptionData


class SubscriptionUpdatedEvent(_Event):
    type: Literal["customer.subscription.updated"]
    data: StatusedSubscriptionData


class SubscriptionDeletedEvent(_Event):
    type: Literal["customer.subscription.deleted"]
    data: SubscriptionData


class SubscriptionTrialWillEndEvent(_Event):
    type: Literal["customer.subscription.trial_will_end"]
    data: SubscriptionData


class InvoicePaymentSucceededEvent(_Event):
    type: Literal["invoice.payment_succeeded"]
    data: InvoiceData


class InvoicePaymentFailedEvent(_Event):
    type: Literal["invoice.payment_failed"]
    data: InvoiceData


class UnknownEvent(_Event):
    type: str = ""


KnownEvent = Annotated[
    Union[
        CheckoutSessionCompletedEvent,
        SubscriptionCreatedEvent,
        SubscriptionUpdatedEvent,
        SubscriptionDeletedEvent,
        SubscriptionTrialWillEndEvent,
        InvoicePaymentSucceededEvent,
        InvoicePaymentFailedEvent,
    ],
    Field(discriminator="type"),
]

WebhookEvent = Union[
    CheckoutSessionCompletedEvent,
    SubscriptionCreatedEvent,
    SubscriptionUpdatedEvent,
    SubscriptionDeletedEvent,
    SubscriptionTrialWillEndEvent,
    InvoicePaymentSucceededEvent,
    InvoicePaymentFailedEvent,
    UnknownEvent,
]

KNOWN_EVENT_TYPES = frozenset({
    "checkout.session.completed",
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "customer.subscription.trial_will_end",
    "invoice.payment_succeeded",
    "invoice.payment_failed",
})

_known_event_adapter = TypeAdapter(KnownEvent)


def parse_event(payload: Dict[str, Any]) -> WebhookEvent:
    """
    Turn a decoded webhook body into a typed event.

    Raises:
        WebhookPayloadError: If a recognized event type carries an invalid object
    """
    event_type = payload.get("type")
    event_id = payload.get("id")

    if not isinstance(event_type, str) or event_type not in KNOWN_EVENT_TYPES:
        return UnknownEvent(
            id=event_id if isinstance(event_id, str) else None,
            type=event_type if isinstance(event_type, str) else "",
        )

    try:
        return _known_event_adapter.validate_python(payload)
    except ValidationError as e:
        raise WebhookPayloadError(f"Malformed {event_type} payload: {e.error_count()} error(s)") from e
