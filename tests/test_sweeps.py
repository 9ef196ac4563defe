"""
Tests for the daily subscription sweeps.
"""
from datetime import datetime, timedelta

from konnectsphere.db.models.password_reset_token import PasswordResetToken
from konnectsphere.db.models.user_subscription import UserSubscription
from konnectsphere.services.billing_gateway import BillingGatewayError
from konnectsphere.services.sweeps import (
    EXPIRED_SUBSCRIPTIONS_JOB,
    RESET_TOKEN_CLEANUP_JOB,
    STRIPE_SYNC_JOB,
    TWO_DAY_REMINDER_JOB,
    build_scheduler,
    run_expired_subscription_sweep,
    run_gateway_sync_sweep,
    run_reset_token_cleanup,
    run_two_day_reminder_sweep,
)

from conftest import NOW, TestSessionLocal, make_pitch, make_subscription, make_user


def test_two_day_reminder_targets_one_calendar_day(db, plans, notifier):
    notifier.send_two_day_reminder.return_value = True
    due = make_user(db, email="due@example.com")
    make_subscription(db, due, plans["Basic"], period_end=datetime(2025, 3, 12, 18, 0), stripe_id="sub_due")
    early = make_user(db, email="early@example.com")
    make_subscription(db, early, plans["Basic"], period_end=datetime(2025, 3, 11, 23, 59), stripe_id="sub_early")
    late = make_user(db, email="late@example.com")
    make_subscription(db, late, plans["Basic"], period_end=datetime(2025, 3, 13, 0, 0), stripe_id="sub_late")
    inactive = make_user(db, email="inactive@example.com")
    make_subscription(
        db, inactive, plans["Basic"], period_end=datetime(2025, 3, 12, 9, 0),
        stripe_id="sub_off", status="cancelled", active=False,
    )

    stats = run_two_day_reminder_sweep(db, notifier, now=NOW)

    assert stats == {"found": 1, "sent": 1, "failed": 0}
    notifier.send_two_day_reminder.assert_called_once_with(due, "Basic", datetime(2025, 3, 12, 18, 0))


def test_two_day_reminder_counts_delivery_failures(db, plans, notifier):
    notifier.send_two_day_reminder.return_value = False
    user = make_user(db)
    make_subscription(db, user, plans["Premium"], period_end=datetime(2025, 3, 12, 1, 0))

    assert run_two_day_reminder_sweep(db, notifier, now=NOW) == {"found": 1, "sent": 0, "failed": 1}


def test_expired_sweep_deactivates_and_notifies(db, plans, gateway, notifier):
    user = make_user(db)
    record = make_subscription(db, user, plans["Premium"], period_end=NOW - timedelta(days=1))
    make_pitch(db, user)
    current = make_user(db, email="current@example.com")
    make_subscription(db, current, plans["Basic"], period_end=NOW + timedelta(days=3), stripe_id="sub_current")
    gateway.get_upcoming_invoice.return_value = {"amount_due": 6900, "currency": "usd", "hosted_invoice_url": "https://invoice.example/x"}

    stats = run_expired_subscription_sweep(db, gateway, notifier, now=NOW)

    assert stats == {"found": 1, "processed": 1, "failed": 0}
    db.refresh(record)
    assert record.active is False
    assert record.status == "cancelled"
    assert user.subscription_plan == "Basic"
    assert current.subscription_plan == "Basic"

    plan_name, balance = notifier.send_subscription_expired.call_args.args[1:]
    assert plan_name == "Premium"
    assert balance["amount"] == 69.0
    assert balance["due_date"] == NOW
    notifier.send_pitch_hidden.assert_called_once_with(user, 1)


def test_expired_sweep_is_idempotent(db, plans, gateway, notifier):
    user = make_user(db)
    make_subscription(db, user, plans["Basic"], period_end=NOW - timedelta(hours=2))
    gateway.get_upcoming_invoice.return_value = None

    run_expired_subscription_sweep(db, gateway, notifier, now=NOW)
    second = run_expired_subscription_sweep(db, gateway, notifier, now=NOW)

    assert second == {"found": 0, "processed": 0, "failed": 0}
    notifier.send_subscription_expired.assert_called_once_with(user, "Basic", None)
    notifier.send_pitch_hidden.assert_not_called()


def test_expired_sweep_skips_pitch_notice_for_investors(db, plans, gateway, notifier):
    investor = make_user(db, email="inv@example.com", role="Investor")
    make_subscription(db, investor, plans["Investor Access Plan"], period_end=NOW - timedelta(days=1))
    gateway.get_upcoming_invoice.side_effect = BillingGatewayError("down")

    stats = run_expired_subscription_sweep(db, gateway, notifier, now=NOW)

    assert stats["processed"] == 1
    notifier.send_subscription_expired.assert_called_once_with(investor, "Investor Access Plan", None)
    notifier.send_pitch_hidden.assert_not_called()


def _remote(subscription_id, status, cancel_at_period_end=False):
    return {
        "id": subscription_id,
        "status": status,
        "cancel_at_period_end": cancel_at_period_end,
        "current_period_start": 1740787200,  # 2025-03-01
        "current_period_end": 1743465600,    # 2025-04-01
        "items": {"data": [{"price": {"id": "price_x", "recurring": {"interval": "month"}}}]},
    }


def test_gateway_sync_updates_and_counts(db, plans, gateway):
    synced = make_subscription(db, make_user(db, email="a@example.com"), plans["Basic"], stripe_id="sub_a")
    make_subscription(db, make_user(db, email="b@example.com"), plans["Basic"], stripe_id="sub_b")
    broken = make_subscription(db, make_user(db, email="c@example.com"), plans["Basic"], stripe_id="sub_c")

    def fake_get(subscription_id):
        if subscription_id == "sub_a":
            return _remote("sub_a", "past_due", cancel_at_period_end=True)
        if subscription_id == "sub_b":
            return None
        raise BillingGatewayError("timeout")

    gateway.get_subscription.side_effect = fake_get

    stats = run_gateway_sync_sweep(db, gateway, now=NOW)

    assert stats == {"checked": 3, "updated": 1, "missing": 1, "errors": 1}
    db.refresh(synced)
    assert synced.status == "past_due"
    assert synced.active is False
    assert synced.cancel_at_period_end is True
    assert synced.current_period_end == datetime(2025, 4, 1)
    db.refresh(broken)
    assert broken.active is True


def test_gateway_sync_keeps_active_status(db, plans, gateway):
    record = make_subscription(db, make_user(db), plans["Premium"], stripe_id="sub_a")
    gateway.get_subscription.return_value = _remote("sub_a", "trialing")

    run_gateway_sync_sweep(db, gateway)

    db.refresh(record)
    assert record.status == "trialing"
    assert record.active is True


def test_reset_token_cleanup(db):
    user = make_user(db)
    db.add_all([
        PasswordResetToken(user_id=user.id, token="expired", expires_at=NOW - timedelta(minutes=1)),
        PasswordResetToken(user_id=user.id, token="used", expires_at=NOW + timedelta(minutes=5), is_used=True),
        PasswordResetToken(user_id=user.id, token="valid", expires_at=NOW + timedelta(minutes=5)),
    ])
    db.commit()

    assert run_reset_token_cleanup(db, now=NOW) == {"deleted": 2}
    assert [t.token for t in db.query(PasswordResetToken).all()] == ["valid"]


def test_build_scheduler_registers_daily_sweeps(db, plans, gateway, notifier):
    scheduler = build_scheduler(TestSessionLocal, gateway, notifier, clock=lambda: NOW)

    assert scheduler.job_names() == [
        TWO_DAY_REMINDER_JOB,
        EXPIRED_SUBSCRIPTIONS_JOB,
        STRIPE_SYNC_JOB,
        RESET_TOKEN_CLEANUP_JOB,
    ]
    assert scheduler.status()[STRIPE_SYNC_JOB]["schedule"] == "daily 03:00 UTC"

    assert scheduler.run_manually(RESET_TOKEN_CLEANUP_JOB) == {"deleted": 0}
    assert scheduler.run_manually(STRIPE_SYNC_JOB) == {"checked": 0, "updated": 0, "missing": 0, "errors": 0}
    assert db.query(UserSubscription).count() == 0
