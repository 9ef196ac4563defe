"""
Unit tests for the subscription state store: catalog, checkout,
cancellation and payment history.
"""
from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException

from konnectsphere.db.models.payment_history import PaymentHistory
from konnectsphere.db.models.subscription import SubscriptionPlan
from konnectsphere.db.models.user_subscription import UserSubscription
from konnectsphere.services import subscription_service
from konnectsphere.services.billing_gateway import serialize_subscription

from conftest import make_pitch, make_subscription, make_user

PERIOD_START = 1740787200  # 2025-03-01
PERIOD_END = 1743465600    # 2025-04-01


def _gateway_subscription(status="active", price_id="price_basic", customer="cus_new", **extra):
    data = {
        "id": "sub_new",
        "customer": customer,
        "status": status,
        "current_period_start": PERIOD_START,
        "current_period_end": PERIOD_END,
        "cancel_at_period_end": False,
        "items": {"data": [{"price": {"id": price_id, "recurring": {"interval": "month"}}}]},
    }
    data.update(extra)
    return data


def _checkout(price_id="price_basic", customer="cus_new", payment_status="paid", invoice_id="in_first"):
    return {
        "customer_id": customer,
        "price_id": price_id,
        "subscription_id": "sub_new",
        "subscription": serialize_subscription(_gateway_subscription(price_id=price_id, customer=customer)),
        "payment_status": payment_status,
        "session_status": "complete" if payment_status == "paid" else "open",
        "amount_total": 4900,
        "currency": "usd",
        "invoice_id": invoice_id,
        "payment_intent_id": "pi_1",
    }


@pytest.fixture
def priced_plans(db, plans):
    plans["Basic"].prices[0].stripe_id = "price_basic"
    plans["Premium"].prices[0].stripe_id = "price_premium"
    plans["Investor Access Plan"].prices[0].stripe_id = "price_investor"
    db.commit()
    return plans


# ============================================
# Catalog
# ============================================

def test_initialize_plans_is_idempotent(db):
    first = subscription_service.initialize_subscription_plans(db)
    second = subscription_service.initialize_subscription_plans(db)

    assert first == {"created": True, "total_plans": 3}
    assert second == {"created": False, "total_plans": 3}
    assert db.query(SubscriptionPlan).count() == 3


def test_list_plans_filters_by_user_type(db, plans):
    investor_plans = subscription_service.list_plans(db, "investor")
    assert [p["name"] for p in investor_plans] == ["Investor Access Plan"]
    assert investor_plans[0]["prices"][0]["interval"] == "year"

    all_plans = subscription_service.list_plans(db)
    assert [p["name"] for p in all_plans] == ["Basic", "Premium", "Investor Access Plan"]
    assert all_plans[1]["prices"][0]["amount"] == 69.0


# ============================================
# Checkout
# ============================================

def test_start_checkout_creates_customer_and_price(db, plans, gateway):
    user = make_user(db)
    price = plans["Premium"].prices[0]
    gateway.create_customer.return_value = {"id": "cus_created"}
    gateway.verify_product.return_value = False
    gateway.create_product.return_value = {"id": "prod_1"}
    gateway.create_price.return_value = {"id": "price_created"}
    gateway.create_checkout_session.return_value = {"id": "cs_1", "url": "https://checkout.example/cs_1"}

    result = subscription_service.start_checkout(db, user, price.id, gateway)

    assert result == {"checkout_url": "https://checkout.example/cs_1", "session_id": "cs_1"}
    db.refresh(user)
    db.refresh(price)
    assert user.stripe_customer_id == "cus_created"
    assert price.stripe_id == "price_created"
    assert price.plan.stripe_id == "prod_1"
    gateway.create_price.assert_called_once_with(
        product_id="prod_1", unit_amount=6900, currency="usd", interval="month"
    )
    kwargs = gateway.create_checkout_session.call_args.kwargs
    assert kwargs["success_url"].endswith("/payment/success?session_id={CHECKOUT_SESSION_ID}")
    assert kwargs["cancel_url"].endswith("/payment/failure?cancelled=true")


def test_start_checkout_reuses_verified_price(db, priced_plans, gateway):
    user = make_user(db, stripe_customer_id="cus_existing")
    gateway.verify_price.return_value = True
    gateway.create_checkout_session.return_value = {"id": "cs_2", "url": "https://checkout.example/cs_2"}

    subscription_service.start_checkout(db, user, priced_plans["Basic"].prices[0].id, gateway)

    gateway.create_customer.assert_not_called()
    gateway.create_price.assert_not_called()
    assert gateway.create_checkout_session.call_args.kwargs["price_id"] == "price_basic"


def test_start_checkout_replaces_deleted_customer(db, priced_plans, gateway):
    user = make_user(db, stripe_customer_id="cus_deleted")
    gateway.get_customer.return_value = None
    gateway.create_customer.return_value = {"id": "cus_fresh"}
    gateway.verify_price.return_value = True
    gateway.create_checkout_session.return_value = {"id": "cs_3", "url": "https://checkout.example/cs_3"}

    subscription_service.start_checkout(db, user, priced_plans["Basic"].prices[0].id, gateway)

    db.refresh(user)
    assert user.stripe_customer_id == "cus_fresh"
    assert gateway.create_checkout_session.call_args.kwargs["customer_id"] == "cus_fresh"


def test_start_checkout_rejects_active_subscriber(db, plans, gateway):
    user = make_user(db)
    make_subscription(db, user, plans["Basic"])

    with pytest.raises(HTTPException) as exc:
        subscription_service.start_checkout(db, user, plans["Premium"].prices[0].id, gateway)
    assert exc.value.status_code == 400


def test_start_checkout_unknown_price(db, plans, gateway):
    user = make_user(db)
    with pytest.raises(HTTPException) as exc:
        subscription_service.start_checkout(db, user, 9999, gateway)
    assert exc.value.status_code == 404


def test_start_checkout_role_mismatch(db, plans, gateway):
    investor = make_user(db, email="inv@example.com", role="Investor")
    with pytest.raises(HTTPException) as exc:
        subscription_service.start_checkout(db, investor, plans["Premium"].prices[0].id, gateway)
    assert exc.value.status_code == 403


def test_start_checkout_basic_blocked_with_several_pitches(db, plans, gateway):
    user = make_user(db)
    make_pitch(db, user, title="One")
    make_pitch(db, user, title="Two")

    with pytest.raises(HTTPException) as exc:
        subscription_service.start_checkout(db, user, plans["Basic"].prices[0].id, gateway)
    assert exc.value.status_code == 400
    assert "Premium" in exc.value.detail


def test_complete_checkout_activates_and_records_payment_once(db, priced_plans, gateway, notifier):
    user = make_user(db, stripe_customer_id="cus_new")
    gateway.get_checkout_customer_plan.return_value = _checkout()

    record = subscription_service.complete_checkout(db, "cs_1", gateway, notifier)
    subscription_service.complete_checkout(db, "cs_1", gateway, notifier)

    db.refresh(user)
    assert record.active is True
    assert record.status == "active"
    assert record.stripe_id == "sub_new"
    assert record.current_period_end == datetime(2025, 4, 1)
    assert record.original_period_start == datetime(2025, 3, 1)
    assert user.subscription_plan == "Basic"

    payments = db.query(PaymentHistory).all()
    assert len(payments) == 1
    assert payments[0].amount == 49.0
    assert payments[0].payment_type == "initial"
    notifier.send_plan_confirmation.assert_called_once()
    receipt = notifier.send_plan_confirmation.call_args.args[1]
    assert receipt["plan_name"] == "Basic"
    assert receipt["invoice_id"] == "in_first"


def test_complete_checkout_requires_payment(db, priced_plans, gateway, notifier):
    make_user(db, stripe_customer_id="cus_new")
    gateway.get_checkout_customer_plan.return_value = _checkout(payment_status="unpaid")

    with pytest.raises(HTTPException) as exc:
        subscription_service.complete_checkout(db, "cs_1", gateway, notifier)
    assert exc.value.status_code == 400
    assert db.query(UserSubscription).count() == 0


def test_complete_checkout_unknown_customer(db, priced_plans, gateway, notifier):
    gateway.get_checkout_customer_plan.return_value = _checkout(customer="cus_nobody")

    with pytest.raises(HTTPException) as exc:
        subscription_service.complete_checkout(db, "cs_1", gateway, notifier)
    assert exc.value.status_code == 404


def test_complete_checkout_monthly_premium_without_period_end(db, priced_plans, gateway, notifier):
    user = make_user(db, stripe_customer_id="cus_new")
    checkout = _checkout(price_id="price_premium")
    checkout["amount_total"] = 6900
    checkout["subscription"] = serialize_subscription(
        _gateway_subscription(price_id="price_premium", current_period_end=None)
    )
    gateway.get_checkout_customer_plan.return_value = checkout

    record = subscription_service.complete_checkout(db, "cs_1", gateway, notifier)

    db.refresh(user)
    assert record.current_period_start == datetime(2025, 3, 1)
    assert record.current_period_end == datetime(2025, 4, 1)
    assert user.subscription_plan == "Premium"
    assert db.query(PaymentHistory).one().amount == 69.0


def test_complete_checkout_yearly_plan_uses_catalog_interval(db, priced_plans, gateway, notifier):
    investor = make_user(db, email="inv@example.com", role="Investor", stripe_customer_id="cus_new")
    checkout = _checkout(price_id="price_investor")
    checkout["subscription"] = serialize_subscription(_gateway_subscription(
        price_id="price_investor",
        current_period_end=None,
        items={"data": [{"price": {"id": "price_investor"}}]},
    ))
    gateway.get_checkout_customer_plan.return_value = checkout

    record = subscription_service.complete_checkout(db, "cs_1", gateway, notifier)

    db.refresh(investor)
    assert record.current_period_end == datetime(2026, 3, 1)
    assert investor.subscription_plan == "Investor Access Plan"


# ============================================
# Cancellation
# ============================================

def test_cancel_at_period_end_keeps_access(db, plans, gateway, notifier):
    user = make_user(db)
    record = make_subscription(db, user, plans["Premium"], period_start=datetime(2025, 3, 1))
    gateway.cancel_subscription.return_value = _gateway_subscription(
        status="active", cancel_at_period_end=True, customer="cus_123"
    )

    result = subscription_service.cancel_subscription(db, user, gateway, notifier)

    gateway.cancel_subscription.assert_called_once_with(
        "sub_123", at_period_end=True, reason="User requested cancellation", feedback="other"
    )
    assert result.active is True
    assert result.cancel_at_period_end is True
    assert result.user_cancelled is True
    assert result.current_period_end == datetime(2025, 4, 1)
    assert user.subscription_plan == "Basic"
    notifier.send_cancellation.assert_called_once_with(user, "Premium", datetime(2025, 4, 1), False)
    assert record.id == result.id


def test_cancel_immediately_deactivates(db, plans, gateway, notifier):
    user = make_user(db)
    make_subscription(db, user, plans["Basic"])
    gateway.cancel_subscription.return_value = _gateway_subscription(status="canceled")

    result = subscription_service.cancel_subscription(db, user, gateway, notifier, immediate=True)

    assert result.status == "cancelled"
    assert result.active is False
    assert gateway.cancel_subscription.call_args.kwargs["at_period_end"] is False
    assert notifier.send_cancellation.call_args.args[3] is True


def test_cancel_without_subscription(db, plans, gateway, notifier):
    user = make_user(db)
    with pytest.raises(HTTPException) as exc:
        subscription_service.cancel_subscription(db, user, gateway, notifier)
    assert exc.value.status_code == 404


def test_cancel_requires_active_status(db, plans, gateway, notifier):
    user = make_user(db)
    make_subscription(db, user, plans["Basic"], status="past_due", active=False)

    with pytest.raises(HTTPException) as exc:
        subscription_service.cancel_subscription(db, user, gateway, notifier)
    assert exc.value.status_code == 400
    gateway.cancel_subscription.assert_not_called()


def test_cancel_gateway_refusal_is_500(db, plans, gateway, notifier):
    user = make_user(db)
    make_subscription(db, user, plans["Basic"])
    gateway.cancel_subscription.return_value = None

    with pytest.raises(HTTPException) as exc:
        subscription_service.cancel_subscription(db, user, gateway, notifier)
    assert exc.value.status_code == 500
    notifier.send_cancellation.assert_not_called()


# ============================================
# Read side
# ============================================

def test_payment_history_filters_and_enriches(db, plans, gateway):
    user = make_user(db)
    record = make_subscription(db, user, plans["Basic"])
    for invoice_id, payment_status, url in (
        ("in_1", "paid", "https://invoice.example/in_1"),
        ("in_2", "paid", None),
        ("in_3", "failed", None),
    ):
        db.add(PaymentHistory(
            user_id=user.id,
            user_subscription_id=record.id,
            stripe_invoice_id=invoice_id,
            amount=49.0,
            currency="usd",
            status=payment_status,
            payment_type="recurring",
            invoice_url=url,
            retry_count=0,
        ))
    db.commit()
    gateway.get_invoice_by_id.return_value = {"hosted_invoice_url": "https://invoice.example/in_2"}

    result = subscription_service.get_payment_history(db, user, gateway, payment_status="paid")

    assert result["pagination"]["total"] == 2
    urls = sorted(p["invoiceUrl"] for p in result["payments"])
    assert urls == ["https://invoice.example/in_1", "https://invoice.example/in_2"]
    gateway.get_invoice_by_id.assert_called_once_with("in_2")
    stored = db.query(PaymentHistory).filter(PaymentHistory.stripe_invoice_id == "in_2").first()
    assert stored.invoice_url == "https://invoice.example/in_2"


def test_get_invoice_hides_other_customers(db, plans, gateway):
    user = make_user(db)
    make_subscription(db, user, plans["Basic"])
    gateway.get_invoice_by_id.return_value = {"id": "in_x", "customer": "cus_other", "amount_paid": 4900}

    with pytest.raises(HTTPException) as exc:
        subscription_service.get_invoice(db, user, "in_x", gateway)
    assert exc.value.status_code == 404


def test_subscription_status_reports_usage(db, plans):
    user = make_user(db)
    make_subscription(db, user, plans["Premium"])
    make_pitch(db, user)

    summary = subscription_service.get_subscription_status(db, user)

    assert summary["subscription"]["planName"] == "Premium"
    assert summary["pitchUsage"] == {"published": 1, "limit": 5, "remaining": 4, "canAddMore": True}
    assert summary["features"]["featuredInSearch"] is True


def test_refresh_resyncs_from_gateway(db, plans, gateway):
    user = make_user(db)
    make_subscription(db, user, plans["Basic"])
    gateway.get_subscription.return_value = _gateway_subscription(status="past_due", customer="cus_123")

    record = subscription_service.refresh_subscription(db, user, gateway)

    assert record.status == "past_due"
    assert record.current_period_end == datetime(2025, 4, 1)
    gateway.get_subscription.assert_called_once_with("sub_123")
    assert record.current_period_start == datetime(2025, 3, 1)
    assert record.current_period_end - record.current_period_start == timedelta(days=31)
