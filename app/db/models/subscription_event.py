from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
from app.db.base import Base


class SubscriptionEvent(Base):
    """
    Append-only audit row for a subscription transition.

    Rows are never updated or deduplicated; a redelivered webhook appends again.
    """
    __tablename__ = "subscription_events"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    event_type = Column(String, nullable=False, index=True)  # "checkout_completed", "payment_failed", ...
    stripe_event_id = Column(String, nullable=True)
    stripe_subscription_id = Column(String, nullable=True, index=True)
    previous_status = Column(String, nullable=True)
    new_status = Column(String, nullable=True)
    previous_plan = Column(String, nullable=True)
    new_plan = Column(String, nullable=True)
    event_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
