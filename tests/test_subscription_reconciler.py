"""
Tests for the subscription webhook reconciler.
"""
from datetime import datetime, timedelta

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from app.core.exceptions import SubscriptionSyncError
from app.db.models.subscription_event import SubscriptionEvent
from app.db.models.subscription_plan import SubscriptionPlan
from app.db.models.tenant import Tenant
from app.schemas.webhook_events import parse_event
from app.services.subscription_reconciler import HandlerOutcome, reconcile_event

NOW = datetime(2026, 3, 1, 12, 0, 0)
MARCH_15 = 1773532800  # 2026-03-15T00:00:00Z


def make_event(event_type, obj, event_id="evt_test"):
    return parse_event({"id": event_id, "type": event_type, "data": {"object": obj}})


def checkout_event(tenant_id, plan_name="starter", customer="cus_1", subscription="sub_1"):
    metadata = {"tenant_id": str(tenant_id)}
    if plan_name:
        metadata["plan_name"] = plan_name
    return make_event("checkout.session.completed", {
        "id": "cs_1",
        "customer": customer,
        "subscription": subscription,
        "metadata": metadata,
    })


def logged_events(db):
    return db.query(SubscriptionEvent).order_by(SubscriptionEvent.id).all()


# ============================================
# checkout.session.completed
# ============================================

def test_checkout_first_subscription_starts_trial(db, make_tenant):
    tenant = make_tenant()

    outcome = reconcile_event(db, checkout_event(tenant.id), now=NOW)

    assert outcome == HandlerOutcome.APPLIED
    db.refresh(tenant)
    assert tenant.subscription_status == "trialing"
    assert tenant.trial_ends_at == NOW + timedelta(days=14)
    assert tenant.subscription_started_at == NOW
    assert tenant.subscription_id == "sub_1"
    assert tenant.subscription_plan == "starter"
    assert tenant.stripe_customer_id == "cus_1"

    events = logged_events(db)
    assert len(events) == 1
    assert events[0].event_type == "checkout_completed"
    assert events[0].previous_status is None
    assert events[0].new_status == "trialing"
    assert events[0].stripe_event_id == "evt_test"
    assert events[0].event_metadata["session_id"] == "cs_1"
    assert events[0].event_metadata["immediate_activation"] is False


def test_checkout_while_trialing_activates_immediately(db, make_tenant):
    tenant = make_tenant(subscription_status="trialing", trial_ends_at=NOW + timedelta(days=5))

    reconcile_event(db, checkout_event(tenant.id), now=NOW)

    db.refresh(tenant)
    assert tenant.subscription_status == "active"
    assert tenant.trial_ends_at is None

    event = logged_events(db)[0]
    assert event.previous_status == "trialing"
    assert event.new_status == "active"
    assert event.event_metadata["immediate_activation"] is True


def test_checkout_after_expired_trial_activates(db, make_tenant):
    tenant = make_tenant(subscription_status="canceled", trial_ends_at=NOW - timedelta(days=1))

    reconcile_event(db, checkout_event(tenant.id), now=NOW)

    db.refresh(tenant)
    assert tenant.subscription_status == "active"
    assert tenant.trial_ends_at is None
    assert logged_events(db)[0].event_metadata["trial_expired"] is True


def test_checkout_keeps_existing_customer_and_plan(db, make_tenant):
    tenant = make_tenant(stripe_customer_id="cus_existing", subscription_plan="professional")

    reconcile_event(db, checkout_event(tenant.id, plan_name=None, customer="cus_other"), now=NOW)

    db.refresh(tenant)
    assert tenant.stripe_customer_id == "cus_existing"
    assert tenant.subscription_plan == "professional"


@pytest.mark.parametrize("obj", [
    {"id": "cs_1", "subscription": "sub_1", "metadata": {"tenant_id": "1"}},
    {"id": "cs_1", "customer": "cus_1", "metadata": {"tenant_id": "1"}},
    {"id": "cs_1", "customer": "cus_1", "subscription": "sub_1"},
    {"id": "cs_1", "customer": "cus_1", "subscription": "sub_1", "metadata": {"tenant_id": "abc"}},
])
def test_checkout_missing_required_field_skipped(db, make_tenant, obj):
    tenant = make_tenant()

    outcome = reconcile_event(db, make_event("checkout.session.completed", obj), now=NOW)

    assert outcome == HandlerOutcome.SKIPPED
    db.refresh(tenant)
    assert tenant.subscription_status is None
    assert logged_events(db) == []


def test_checkout_unknown_tenant_writes_nothing(db, make_tenant):
    make_tenant()

    outcome = reconcile_event(db, checkout_event(9999), now=NOW)

    assert outcome == HandlerOutcome.TENANT_NOT_FOUND
    assert logged_events(db) == []


# ============================================
# customer.subscription.created
# ============================================

def test_subscription_created_mirrors_stripe_status(db, make_tenant):
    tenant = make_tenant(stripe_customer_id="cus_1")
    trial_end = MARCH_15

    outcome = reconcile_event(db, make_event("customer.subscription.created", {
        "id": "sub_1",
        "customer": "cus_1",
        "status": "trialing",
        "trial_end": trial_end,
        "items": {"data": [{"price": {"id": "price_starter"}, "current_period_end": trial_end}]},
    }), now=NOW)

    assert outcome == HandlerOutcome.APPLIED
    db.refresh(tenant)
    assert tenant.subscription_id == "sub_1"
    assert tenant.subscription_status == "trialing"
    assert tenant.subscription_started_at == NOW
    assert tenant.trial_ends_at == datetime(2026, 3, 15)
    assert tenant.subscription_current_period_end == datetime(2026, 3, 15)
    assert logged_events(db)[0].event_type == "subscription_created"


def test_subscription_created_after_expired_trial_is_active(db, make_tenant):
    expired = NOW - timedelta(days=2)
    tenant = make_tenant(stripe_customer_id="cus_1", trial_ends_at=expired)

    reconcile_event(db, make_event("customer.subscription.created", {
        "id": "sub_1",
        "customer": "cus_1",
        "status": "trialing",
        "trial_end": MARCH_15,
    }), now=NOW)

    db.refresh(tenant)
    assert tenant.subscription_status == "active"
    assert tenant.trial_ends_at == expired


def test_subscription_created_without_trial_end_keeps_trial(db, make_tenant):
    trial_end = NOW + timedelta(days=3)
    tenant = make_tenant(stripe_customer_id="cus_1", trial_ends_at=trial_end)

    reconcile_event(db, make_event("customer.subscription.created", {
        "id": "sub_1", "customer": "cus_1", "status": "active",
    }), now=NOW)

    db.refresh(tenant)
    assert tenant.subscription_status == "active"
    assert tenant.trial_ends_at == trial_end


def test_subscription_created_unknown_customer(db, make_tenant):
    make_tenant(stripe_customer_id="cus_1")

    outcome = reconcile_event(db, make_event("customer.subscription.created", {
        "id": "sub_1", "customer": "cus_unknown", "status": "active",
    }), now=NOW)

    assert outcome == HandlerOutcome.TENANT_NOT_FOUND
    assert logged_events(db) == []


# ============================================
# customer.subscription.updated
# ============================================

def test_subscription_updated_resolves_plan_from_catalog(db, make_tenant):
    db.add(SubscriptionPlan(name="Pro", display_name="Pro", stripe_price_id="price_x", price_monthly=59))
    db.commit()
    tenant = make_tenant(subscription_id="sub_1", subscription_status="trialing", subscription_plan="starter")

    outcome = reconcile_event(db, make_event("customer.subscription.updated", {
        "id": "sub_1",
        "status": "active",
        "cancel_at": None,
        "items": {"data": [{"price": {"id": "price_x"}}]},
    }), now=NOW)

    assert outcome == HandlerOutcome.APPLIED
    db.refresh(tenant)
    assert tenant.subscription_status == "active"
    assert tenant.subscription_plan == "Pro"
    assert tenant.subscription_ends_at is None

    event = logged_events(db)[0]
    assert event.event_type == "subscription_updated"
    assert event.previous_plan == "starter"
    assert event.new_plan == "Pro"


def test_subscription_updated_unknown_price_keeps_plan(db, make_tenant):
    tenant = make_tenant(subscription_id="sub_1", subscription_status="active", subscription_plan="starter")

    reconcile_event(db, make_event("customer.subscription.updated", {
        "id": "sub_1",
        "status": "past_due",
        "items": {"data": [{"price": {"id": "price_unlisted"}}]},
    }), now=NOW)

    db.refresh(tenant)
    assert tenant.subscription_status == "past_due"
    assert tenant.subscription_plan == "starter"


def test_subscription_updated_scheduled_cancellation(db, make_tenant):
    tenant = make_tenant(subscription_id="sub_1", subscription_status="active")

    reconcile_event(db, make_event("customer.subscription.updated", {
        "id": "sub_1", "status": "active", "cancel_at": MARCH_15,
    }), now=NOW)

    db.refresh(tenant)
    assert tenant.subscription_ends_at == datetime(2026, 3, 15)

    # Undoing the cancellation clears the end date again
    reconcile_event(db, make_event("customer.subscription.updated", {
        "id": "sub_1", "status": "active", "cancel_at": None,
    }), now=NOW)

    db.refresh(tenant)
    assert tenant.subscription_ends_at is None


def test_subscription_updated_unknown_subscription(db, make_tenant):
    make_tenant(subscription_id="sub_1")

    outcome = reconcile_event(db, make_event("customer.subscription.updated", {
        "id": "sub_other", "status": "active",
    }), now=NOW)

    assert outcome == HandlerOutcome.TENANT_NOT_FOUND
    assert logged_events(db) == []


# ============================================
# customer.subscription.deleted
# ============================================

@pytest.mark.parametrize("prior", ["trialing", "active", "past_due", "canceled"])
def test_subscription_deleted_always_cancels(db, make_tenant, prior):
    tenant = make_tenant(subscription_id="sub_1", subscription_status=prior)

    reconcile_event(db, make_event("customer.subscription.deleted", {"id": "sub_1", "status": "canceled"}), now=NOW)

    db.refresh(tenant)
    assert tenant.subscription_status == "canceled"
    assert tenant.subscription_ends_at == NOW
    assert logged_events(db)[0].previous_status == prior


def test_replayed_delete_appends_a_second_log_row(db, make_tenant):
    tenant = make_tenant(subscription_id="sub_1", subscription_status="active")
    event = make_event("customer.subscription.deleted", {"id": "sub_1", "status": "canceled"}, event_id="evt_del")

    reconcile_event(db, event, now=NOW)
    reconcile_event(db, event, now=NOW)

    db.refresh(tenant)
    assert tenant.subscription_status == "canceled"
    events = logged_events(db)
    assert [e.event_type for e in events] == ["subscription_canceled", "subscription_canceled"]
    assert [e.stripe_event_id for e in events] == ["evt_del", "evt_del"]
    assert events[1].previous_status == "canceled"


def test_events_apply_in_arrival_order(db, make_tenant):
    tenant = make_tenant(subscription_id="sub_1", subscription_status="active")

    reconcile_event(db, make_event("customer.subscription.deleted", {"id": "sub_1", "status": "canceled"}), now=NOW)
    reconcile_event(db, make_event("customer.subscription.updated", {"id": "sub_1", "status": "active"}), now=NOW)

    db.refresh(tenant)
    assert tenant.subscription_status == "active"


# ============================================
# invoice events
# ============================================

def test_payment_failed_moves_to_past_due(db, make_tenant):
    tenant = make_tenant(subscription_id="sub_1", subscription_status="active")

    outcome = reconcile_event(db, make_event("invoice.payment_failed", {
        "id": "in_1", "subscription": "sub_1", "amount_due": 2900,
    }), now=NOW)

    assert outcome == HandlerOutcome.APPLIED
    db.refresh(tenant)
    assert tenant.subscription_status == "past_due"

    event = logged_events(db)[0]
    assert event.event_type == "payment_failed"
    assert event.previous_status == "active"
    assert event.new_status == "past_due"
    assert event.event_metadata == {"invoice_id": "in_1", "amount": 2900}


def test_payment_failed_without_subscription_skipped(db, make_tenant):
    make_tenant(subscription_id="sub_1", subscription_status="active")

    outcome = reconcile_event(db, make_event("invoice.payment_failed", {"id": "in_1"}), now=NOW)

    assert outcome == HandlerOutcome.SKIPPED
    assert logged_events(db) == []


def test_payment_succeeded_only_logs(db, make_tenant):
    tenant = make_tenant(subscription_id="sub_1", subscription_status="past_due")

    outcome = reconcile_event(db, make_event("invoice.payment_succeeded", {
        "id": "in_2",
        "amount_paid": 5900,
        "parent": {"subscription_details": {"subscription": "sub_1"}},
    }), now=NOW)

    assert outcome == HandlerOutcome.APPLIED
    db.refresh(tenant)
    assert tenant.subscription_status == "past_due"

    event = logged_events(db)[0]
    assert event.event_type == "payment_succeeded"
    assert event.event_metadata == {"invoice_id": "in_2", "amount": 5900}


def test_trial_will_end_only_logs(db, make_tenant):
    tenant = make_tenant(subscription_id="sub_1", subscription_status="trialing", trial_ends_at=NOW + timedelta(days=3))

    outcome = reconcile_event(db, make_event("customer.subscription.trial_will_end", {
        "id": "sub_1", "status": "trialing", "trial_end": MARCH_15,
    }), now=NOW)

    assert outcome == HandlerOutcome.APPLIED
    db.refresh(tenant)
    assert tenant.subscription_status == "trialing"
    assert tenant.trial_ends_at == NOW + timedelta(days=3)
    assert logged_events(db)[0].event_type == "trial_will_end"


# ============================================
# Ignored events and failures
# ============================================

def test_unrecognized_event_ignored(db, make_tenant):
    tenant = make_tenant(subscription_id="sub_1", subscription_status="active")

    outcome = reconcile_event(db, make_event("customer.updated", {"id": "cus_1"}), now=NOW)

    assert outcome == HandlerOutcome.IGNORED
    db.refresh(tenant)
    assert tenant.subscription_status == "active"
    assert logged_events(db) == []


def test_audit_log_failure_keeps_tenant_update(db, make_tenant):
    tenant = make_tenant(subscription_id="sub_1", subscription_status="active")
    db.execute(text("DROP TABLE subscription_events"))
    db.commit()

    outcome = reconcile_event(db, make_event("invoice.payment_failed", {"id": "in_1", "subscription": "sub_1"}), now=NOW)

    assert outcome == HandlerOutcome.APPLIED
    db.refresh(tenant)
    assert tenant.subscription_status == "past_due"


def test_tenant_update_failure_raises_and_rolls_back(db, make_tenant, monkeypatch):
    tenant = make_tenant(subscription_id="sub_1", subscription_status="active")

    def failing_commit():
        raise OperationalError("UPDATE tenants", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "commit", failing_commit)

    with pytest.raises(SubscriptionSyncError) as exc_info:
        reconcile_event(db, make_event("customer.subscription.deleted", {"id": "sub_1", "status": "canceled"}), now=NOW)

    assert exc_info.value.event_type == "customer.subscription.deleted"
    monkeypatch.undo()
    assert db.query(Tenant).filter(Tenant.id == tenant.id).one().subscription_status == "active"
    assert logged_events(db) == []
