"""
Seed or refresh the subscription plan catalog.

Stripe price IDs come from the environment:
    STRIPE_PRICE_ID_STARTER, STRIPE_PRICE_ID_PROFESSIONAL

Run: python -m scripts.seed_subscription_plans
"""
import logging
import os
from typing import Dict

from sqlalchemy.orm import Session

from app.db.models.subscription_plan import SubscriptionPlan

logger = logging.getLogger(__name__)

UNLIMITED = -1

PLAN_CATALOG = [
    {
        "name": "starter",
        "display_name": "Starter",
        "price_monthly": 29,
        "features": ["Client records", "Meal plans", "Secure client messaging"],
        "max_clients": 25,
        "max_meal_plans": 100,
        "ai_generations_per_month": 20,
        "sort_order": 1,
    },
    {
        "name": "professional",
        "display_name": "Professional",
        "price_monthly": 59,
        "features": ["Everything in Starter", "Unlimited clients", "Template marketplace", "Priority support"],
        "max_clients": UNLIMITED,
        "max_meal_plans": UNLIMITED,
        "ai_generations_per_month": 200,
        "sort_order": 2,
    },
]


def seed_plans(db: Session, price_ids: Dict[str, str]) -> int:
    """
    Insert or update catalog plans that have a Stripe price ID.

    Args:
        db: Database session
        price_ids: Plan name -> Stripe price ID

    Returns:
        Number of plans written
    """
    written = 0
    for entry in PLAN_CATALOG:
        price_id = price_ids.get(entry["name"])
        if not price_id:
            logger.warning(f"No Stripe price ID for plan '{entry['name']}', skipping")
            continue

        plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.name == entry["name"]).first()
        if not plan:
            plan = SubscriptionPlan(name=entry["name"])
            db.add(plan)
            logger.info(f"Creating plan: {entry['name']}")
        else:
            logger.info(f"Updating plan: {entry['name']}")

        plan.display_name = entry["display_name"]
        plan.stripe_price_id = price_id
        plan.price_monthly = entry["price_monthly"]
        plan.currency = "eur"
        plan.features = entry["features"]
        plan.max_clients = entry["max_clients"]
        plan.max_meal_plans = entry["max_meal_plans"]
        plan.ai_generations_per_month = entry["ai_generations_per_month"]
        plan.sort_order = entry["sort_order"]
        plan.is_active = True
        written += 1

    db.commit()
    return written


def main():
    logging.basicConfig(level=logging.INFO)
    from app.db.session import SessionLocal

    price_ids = {
        "starter": os.getenv("STRIPE_PRICE_ID_STARTER"),
        "professional": os.getenv("STRIPE_PRICE_ID_PROFESSIONAL"),
    }
    db = SessionLocal()
    try:
        count = seed_plans(db, price_ids)
        logger.info(f"Seeded {count} plan(s)")
    finally:
        db.close()


if __name__ == "__main__":
    main()
