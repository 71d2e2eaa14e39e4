from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, JSON
from sqlalchemy.sql import func
from app.db.base import Base


class SubscriptionPlan(Base):
    """Plan catalog entry: maps a Stripe price ID to a plan name and its limits."""
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)  # "starter" | "professional"
    display_name = Column(String, nullable=False)
    stripe_price_id = Column(String, unique=True, index=True, nullable=False)
    price_monthly = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="eur")
    features = Column(JSON, nullable=False, default=list)
    max_clients = Column(Integer, nullable=True)  # -1 = unlimited
    max_meal_plans = Column(Integer, nullable=True)
    ai_generations_per_month = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "stripe_price_id": self.stripe_price_id,
            "price_monthly": float(self.price_monthly) if self.price_monthly is not None else None,
            "currency": self.currency,
            "features": self.features or [],
            "max_clients": self.max_clients,
            "max_meal_plans": self.max_meal_plans,
            "ai_generations_per_month": self.ai_generations_per_month,
            "sort_order": self.sort_order,
        }
