"""
Notification dispatcher.

Every send_* method is best-effort: rendering or transport failures are
logged and reported as False so the calling billing flow is never aborted
by an email problem.
"""
import logging
from datetime import datetime
from typing import Optional

from konnectsphere.core.billing_periods import YEAR
from konnectsphere.core.config import PASSWORD_RESET_EXPIRY_MINUTES
from konnectsphere.core.plan_capabilities import BASIC_PLAN, PREMIUM_PLAN, INVESTOR_ACCESS_PLAN, normalize_plan
from konnectsphere.services import email_templates as templates
from konnectsphere.services.mailer import Mailer

logger = logging.getLogger(__name__)


def _display_name(user) -> str:
    return getattr(user, "full_name", None) or "there"


class NotificationService:
    def __init__(self, mailer: Optional[Mailer] = None):
        self.mailer = mailer or Mailer()

    def _deliver(self, kind: str, user, rendered: templates.RenderedEmail) -> bool:
        email = getattr(user, "email", None)
        if not email:
            logger.warning(f"Skipping {kind} email: user has no address (user_id={getattr(user, 'id', None)})")
            return False
        if getattr(user, "is_unsubscribed", False) and kind not in ("password_reset", "password_reset_success"):
            logger.info(f"Skipping {kind} email: user_id={user.id} unsubscribed")
            return False
        try:
            self.mailer.send(email, rendered.subject, rendered.text, rendered.html)
            logger.info(f"Sent {kind} email: user_id={getattr(user, 'id', None)}")
            return True
        except Exception as e:
            logger.error(f"Failed to send {kind} email to user_id={getattr(user, 'id', None)}: {e}", exc_info=True)
            return False

    # ✅ Account
    def send_password_reset(self, user, raw_token: str) -> bool:
        return self._deliver(
            "password_reset",
            user,
            templates.render_password_reset(_display_name(user), raw_token, PASSWORD_RESET_EXPIRY_MINUTES),
        )

    def send_password_reset_success(self, user) -> bool:
        return self._deliver("password_reset_success", user, templates.render_password_reset_success(_display_name(user)))

    # ✅ Subscription confirmations
    def send_plan_confirmation(self, user, receipt: dict) -> bool:
        """Pick the plan-specific confirmation template, falling back to the generic one."""
        plan = normalize_plan(receipt.get("plan_name"))
        interval = receipt.get("interval")
        name = _display_name(user)
        if plan == PREMIUM_PLAN:
            rendered = templates.render_premium_plan_confirmation(name, receipt)
        elif plan == BASIC_PLAN:
            rendered = templates.render_basic_plan_confirmation(name, receipt)
        elif plan == INVESTOR_ACCESS_PLAN or interval == YEAR:
            rendered = templates.render_investor_plan_confirmation(name, receipt)
        else:
            rendered = templates.render_subscription_confirmation(name, receipt)
        return self._deliver("subscription_confirmation", user, rendered)

    # ✅ Lifecycle
    def send_cancellation(self, user, plan_name: str, cancel_date: datetime, immediate: bool) -> bool:
        return self._deliver(
            "cancellation",
            user,
            templates.render_subscription_cancellation(_display_name(user), plan_name, cancel_date, immediate),
        )

    def send_renewal_reminder(self, user, plan_name: str, renewal_date: datetime) -> bool:
        return self._deliver(
            "renewal_reminder", user, templates.render_renewal_reminder(_display_name(user), plan_name, renewal_date)
        )

    def send_two_day_reminder(self, user, plan_name: str, expiration_date: datetime) -> bool:
        return self._deliver(
            "two_day_reminder",
            user,
            templates.render_two_day_expiration_reminder(_display_name(user), plan_name, expiration_date),
        )

    def send_subscription_expired(self, user, plan_name: Optional[str], due_balance: Optional[dict] = None) -> bool:
        return self._deliver(
            "subscription_expired",
            user,
            templates.render_subscription_expired(_display_name(user), plan_name, due_balance),
        )

    def send_pitch_hidden(self, user, pitch_count: int) -> bool:
        return self._deliver("pitch_hidden", user, templates.render_pitch_hidden(_display_name(user), pitch_count))

    # ✅ Payments
    def send_payment_failure(self, user, invoice: dict) -> bool:
        return self._deliver("payment_failure", user, templates.render_payment_failure(_display_name(user), invoice))

    def send_payment_action_required(self, user, invoice: dict) -> bool:
        return self._deliver(
            "payment_action_required", user, templates.render_payment_action_required(_display_name(user), invoice)
        )

    def send_past_due(self, user, plan_name: str, amount_due: float, currency: str) -> bool:
        return self._deliver(
            "past_due", user, templates.render_subscription_past_due(_display_name(user), plan_name, amount_due, currency)
        )

    def send_upcoming_payment(self, user, invoice: dict) -> bool:
        return self._deliver("upcoming_payment", user, templates.render_upcoming_payment(_display_name(user), invoice))

    def send_recurring_payment_success(self, user, receipt: dict) -> bool:
        return self._deliver(
            "recurring_payment_success", user, templates.render_recurring_payment_success(_display_name(user), receipt)
        )
