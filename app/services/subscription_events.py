"""
Append-only audit log of subscription transitions.

Appends are best effort: a failed insert is rolled back and logged, never
raised, so the tenant mutation that preceded it stands.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models.subscription_event import SubscriptionEvent

logger = logging.getLogger(__name__)


def record_subscription_event(
    db: Session,
    tenant_id: int,
    event_type: str,
    stripe_event_id: Optional[str] = None,
    stripe_subscription_id: Optional[str] = None,
    previous_status: Optional[str] = None,
    new_status: Optional[str] = None,
    previous_plan: Optional[str] = None,
    new_plan: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> bool:
    """
    Append one subscription event row.

    Returns:
        True if the row was committed, False if the append failed
    """
    try:
        db.add(SubscriptionEvent(
            tenant_id=tenant_id,
            event_type=event_type,
            stripe_event_id=stripe_event_id,
            stripe_subscription_id=stripe_subscription_id,
            previous_status=previous_status,
            new_status=new_status,
            previous_plan=previous_plan,
            new_plan=new_plan,
            event_metadata=metadata,
        ))
        db.commit()
        return True
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to log subscription event: tenant_id={tenant_id}, event_type={event_type}")
        return False
