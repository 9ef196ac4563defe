"""
API tests for the subscription endpoints and scheduled-job controls.
"""
from datetime import datetime

import pytest

from konnectsphere.core import config
from konnectsphere.core.scheduler import JobScheduler
from konnectsphere.core.service_dependency import get_scheduler
from konnectsphere.db.models.payment_history import PaymentHistory
from konnectsphere.db.models.user_subscription import UserSubscription
from konnectsphere.main import app
from konnectsphere.services.billing_gateway import BillingGatewayError, serialize_subscription

from conftest import auth_headers, make_subscription, make_user


@pytest.fixture
def priced(db, plans):
    for name, stripe_id in (("Basic", "price_basic"), ("Premium", "price_premium"), ("Investor Access Plan", "price_investor")):
        plans[name].prices[0].stripe_id = stripe_id
    db.commit()
    return plans


@pytest.fixture
def scheduler(client):
    jobs = JobScheduler(clock=lambda: datetime(2025, 3, 10, 12, 0))
    jobs.add_job("expired-subscriptions", lambda: {"found": 0, "processed": 0, "failed": 0}, hour=10)
    app.dependency_overrides[get_scheduler] = lambda: jobs
    return jobs


# ============================================
# Catalog
# ============================================

def test_plans_are_public_and_filterable(client, plans):
    response = client.get("/subscriptions/plans", params={"user_type": "investor"})

    assert response.status_code == 200
    assert [p["name"] for p in response.json()["plans"]] == ["Investor Access Plan"]


def test_plans_reject_unknown_user_type(client, plans):
    assert client.get("/subscriptions/plans", params={"user_type": "admin"}).status_code == 400


def test_initialize_requires_auth(client, db):
    assert client.post("/subscriptions/initialize").status_code == 401

    user = make_user(db)
    response = client.post("/subscriptions/initialize", headers=auth_headers(user))
    assert response.json() == {"created": True, "total_plans": 3}


# ============================================
# Checkout
# ============================================

def test_checkout_returns_session_url(client, db, priced, gateway):
    user = make_user(db, stripe_customer_id="cus_existing")
    gateway.verify_price.return_value = True
    gateway.create_checkout_session.return_value = {"id": "cs_1", "url": "https://checkout.example/cs_1"}

    response = client.post(
        "/subscriptions/checkout",
        json={"price_id": priced["Premium"].prices[0].id},
        headers=auth_headers(user),
    )

    assert response.status_code == 200
    assert response.json() == {"checkout_url": "https://checkout.example/cs_1", "session_id": "cs_1"}


def test_checkout_gateway_failure_is_500(client, db, plans, gateway):
    user = make_user(db)
    gateway.create_customer.side_effect = BillingGatewayError("card network down")

    response = client.post(
        "/subscriptions/checkout",
        json={"price_id": plans["Basic"].prices[0].id},
        headers=auth_headers(user),
    )

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to create checkout session"


def test_success_activates_subscription(client, db, priced, gateway, notifier):
    user = make_user(db, stripe_customer_id="cus_new")
    gateway.get_checkout_customer_plan.return_value = {
        "customer_id": "cus_new",
        "price_id": "price_premium",
        "subscription_id": "sub_new",
        "subscription": serialize_subscription({
            "id": "sub_new",
            "customer": "cus_new",
            "status": "active",
            "current_period_start": 1740787200,
            "current_period_end": 1743465600,
            "items": {"data": [{"price": {"id": "price_premium", "recurring": {"interval": "month"}}}]},
        }),
        "payment_status": "paid",
        "session_status": "complete",
        "amount_total": 6900,
        "currency": "usd",
        "invoice_id": "in_first",
        "payment_intent_id": "pi_1",
    }

    response = client.post("/subscriptions/success", json={"session_id": "cs_1"})

    assert response.status_code == 200
    assert response.json()["subscription"]["planName"] == "Premium"
    assert db.query(PaymentHistory).count() == 1
    notifier.send_plan_confirmation.assert_called_once()

    status_response = client.get("/subscriptions/status", headers=auth_headers(user))
    assert status_response.json()["user"]["subscriptionPlan"] == "Premium"


# ============================================
# Cancel and read side
# ============================================

def test_cancel_without_body_cancels_at_period_end(client, db, plans, gateway, notifier):
    user = make_user(db)
    make_subscription(db, user, plans["Premium"])
    gateway.cancel_subscription.return_value = {
        "id": "sub_123",
        "status": "active",
        "cancel_at_period_end": True,
        "current_period_start": 1740787200,
        "current_period_end": 1743465600,
    }

    response = client.post("/subscriptions/cancel", headers=auth_headers(user))

    assert response.status_code == 200
    assert response.json()["message"] == "Subscription will be cancelled at the end of the billing period"
    assert response.json()["subscription"]["cancelAtPeriodEnd"] is True
    assert gateway.cancel_subscription.call_args.kwargs["at_period_end"] is True
    notifier.send_cancellation.assert_called_once()


def test_cancel_immediately_with_feedback(client, db, plans, gateway):
    user = make_user(db)
    make_subscription(db, user, plans["Basic"])
    gateway.cancel_subscription.return_value = {"id": "sub_123", "status": "canceled"}

    response = client.post(
        "/subscriptions/cancel",
        json={"immediate": True, "feedback": "not-a-code", "reason": "Closed the company"},
        headers=auth_headers(user),
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Subscription cancelled"
    kwargs = gateway.cancel_subscription.call_args.kwargs
    assert kwargs["feedback"] == "other"
    assert kwargs["reason"] == "Closed the company"
    db.expire_all()
    assert db.query(UserSubscription).one().active is False


def test_cancel_without_subscription_is_404(client, db):
    user = make_user(db)
    assert client.post("/subscriptions/cancel", headers=auth_headers(user)).status_code == 404


def test_current_subscription(client, db, plans):
    user = make_user(db)
    assert client.get("/subscriptions/current", headers=auth_headers(user)).json() == {"subscription": None}

    make_subscription(db, user, plans["Basic"])
    body = client.get("/subscriptions/current", headers=auth_headers(user)).json()
    assert body["subscription"]["planName"] == "Basic"
    assert body["subscription"]["pitchesRemaining"] == 1


def test_payments_reject_bad_year(client, db, plans, gateway):
    user = make_user(db)
    response = client.get("/subscriptions/payments", params={"year": "twenty"}, headers=auth_headers(user))
    assert response.status_code == 400


def test_current_invoice_not_found(client, db, plans, gateway):
    user = make_user(db)
    make_subscription(db, user, plans["Basic"])
    gateway.get_upcoming_invoice.return_value = None

    response = client.get("/subscriptions/current-invoice", headers=auth_headers(user))
    assert response.status_code == 404
    gateway.get_upcoming_invoice.assert_called_once_with("cus_123")


# ============================================
# Scheduled jobs
# ============================================

def test_manual_sweep_endpoints_require_auth(client):
    assert client.post("/subscriptions/check-two-day-reminders").status_code == 401
    assert client.post("/subscriptions/check-expired-subscriptions").status_code == 401


def test_manual_expired_check(client, db, plans, gateway, notifier):
    user = make_user(db)
    response = client.post("/subscriptions/check-expired-subscriptions", headers=auth_headers(user))

    assert response.status_code == 200
    assert response.json()["stats"] == {"found": 0, "processed": 0, "failed": 0}


def test_cron_status_without_scheduler_is_503(client, db):
    user = make_user(db)
    assert client.get("/subscriptions/cron-status", headers=auth_headers(user)).status_code == 503


def test_cron_status_lists_jobs(client, db, scheduler):
    user = make_user(db)
    jobs = client.get("/subscriptions/cron-status", headers=auth_headers(user)).json()["jobs"]
    assert jobs["expired-subscriptions"]["schedule"] == "daily 10:00 UTC"


def test_cron_run(client, db, scheduler):
    user = make_user(db)

    response = client.post("/subscriptions/cron-run/expired-subscriptions", headers=auth_headers(user))

    assert response.status_code == 200
    assert response.json()["result"] == {"found": 0, "processed": 0, "failed": 0}
    assert scheduler.status()["expired-subscriptions"]["runCount"] == 1


def test_cron_run_unknown_job(client, db, scheduler):
    user = make_user(db)
    assert client.post("/subscriptions/cron-run/nope", headers=auth_headers(user)).status_code == 404


def test_cron_run_disabled_in_production(client, db, scheduler, monkeypatch):
    monkeypatch.setattr(config, "ENVIRONMENT", "production")
    user = make_user(db)

    response = client.post("/subscriptions/cron-run/expired-subscriptions", headers=auth_headers(user))

    assert response.status_code == 403
    assert scheduler.status()["expired-subscriptions"]["runCount"] == 0
