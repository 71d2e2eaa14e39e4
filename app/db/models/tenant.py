import enum

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from app.db.base import Base


class SubscriptionStatus(str, enum.Enum):
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class Tenant(Base):
    """
    A dietitian practice account, the unit of subscription billing.

    Subscription columns are written only by the webhook reconciler.
    Datetimes are naive UTC.
    """
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    auth_user_id = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)

    stripe_customer_id = Column(String, nullable=True, index=True)
    subscription_id = Column(String, nullable=True, index=True)
    # None until the first checkout; Stripe may also report incomplete, unpaid, ...
    subscription_status = Column(String, nullable=True)
    subscription_plan = Column(String, nullable=True)
    subscription_current_period_end = Column(DateTime, nullable=True)
    trial_ends_at = Column(DateTime, nullable=True)
    subscription_started_at = Column(DateTime, nullable=True)
    subscription_ends_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def display_name(self) -> str:
        full_name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full_name or self.email
