"""
Database models module.

This module imports all database models to ensure they are registered with SQLAlchemy's Base.metadata
before table creation.

All models must be imported here to be included in database migrations and table creation.
"""
from app.db.models.tenant import Tenant, SubscriptionStatus
from app.db.models.subscription_plan import SubscriptionPlan
from app.db.models.subscription_event import SubscriptionEvent

__all__ = [
    "Tenant",
    "SubscriptionStatus",
    "SubscriptionPlan",
    "SubscriptionEvent",
]
