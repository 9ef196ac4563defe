"""
Tests for template selection and best-effort delivery.
"""
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from konnectsphere.services import email_templates as templates
from konnectsphere.services.mailer import Mailer
from konnectsphere.services.notification_service import NotificationService


@pytest.fixture
def mailer():
    return MagicMock(spec=Mailer)


@pytest.fixture
def service(mailer):
    return NotificationService(mailer=mailer)


def _user(**overrides):
    data = {"id": 7, "email": "amara@example.com", "full_name": "Amara", "is_unsubscribed": False}
    data.update(overrides)
    return SimpleNamespace(**data)


def _receipt(plan_name, interval="month"):
    return {
        "plan_name": plan_name,
        "plan_display_name": plan_name,
        "interval": interval,
        "billing_period": "Monthly",
        "amount": 69.0,
        "currency": "usd",
        "payment_date": datetime(2025, 3, 1),
        "next_billing_date": datetime(2025, 4, 1),
        "invoice_id": "in_1",
        "invoice_url": None,
    }


@pytest.mark.parametrize("plan_name, interval, subject", [
    ("Premium", "month", "Your KonnectSphere Premium Subscription Has Been Activated"),
    ("basic", "month", "Your KonnectSphere Basic Plan is Active"),
    ("Investor Access Plan", "year", "Welcome to KonnectSphere - Investor Access Confirmed"),
    ("Legacy", "year", "Welcome to KonnectSphere - Investor Access Confirmed"),
    ("Legacy", "month", "Your Subscription is Now Active"),
])
def test_plan_confirmation_template(service, mailer, plan_name, interval, subject):
    assert service.send_plan_confirmation(_user(), _receipt(plan_name, interval)) is True
    to, sent_subject = mailer.send.call_args.args[:2]
    assert to == "amara@example.com"
    assert sent_subject == subject


def test_unsubscribed_users_get_no_billing_mail(service, mailer):
    user = _user(is_unsubscribed=True)

    assert service.send_two_day_reminder(user, "Basic", datetime(2025, 3, 12)) is False
    mailer.send.assert_not_called()

    assert service.send_password_reset(user, "raw-token") is True
    mailer.send.assert_called_once()


def test_transport_failure_is_reported_not_raised(service, mailer):
    mailer.send.side_effect = OSError("connection refused")
    assert service.send_cancellation(_user(), "Premium", datetime(2025, 4, 1), False) is False


def test_missing_address_is_skipped(service, mailer):
    assert service.send_pitch_hidden(_user(email=None), 2) is False
    mailer.send.assert_not_called()


def test_cancellation_subject_depends_on_timing():
    immediate = templates.render_subscription_cancellation("Amara", "Premium", datetime(2025, 4, 1), True)
    at_period_end = templates.render_subscription_cancellation("Amara", "Premium", datetime(2025, 4, 1), False)
    assert immediate.subject == "Your Subscription Has Been Cancelled"
    assert at_period_end.subject == "Your Subscription Will End Soon"


def test_expired_notice_mentions_outstanding_balance():
    with_balance = templates.render_subscription_expired("Amara", "Premium", {
        "amount": 69.0, "currency": "usd", "due_date": datetime(2025, 3, 10), "plan_name": "Premium", "invoice_url": None,
    })
    assert with_balance.subject == "Subscription Expired - Payment Due"
    assert "$69.00" in with_balance.text
    assert templates.render_subscription_expired("Amara", "Premium").subject == "Your Subscription Has Ended"


def test_templates_escape_user_values():
    rendered = templates.render_pitch_hidden("<script>alert(1)</script>", 1)
    assert "<script>" not in rendered.html
    assert "&lt;script&gt;" in rendered.html


def test_formatting_helpers():
    assert templates.format_amount(1234.5, "usd") == "$1,234.50"
    assert templates.format_amount(10, "eur") == "10.00 EUR"
    assert templates.format_date(datetime(2025, 3, 5)) == "Wednesday, March 5, 2025"
    assert templates.format_date(None) == "N/A"


def test_mailer_without_host_logs_instead_of_sending():
    assert Mailer(host="").send("amara@example.com", "Hello", "Body") is True
