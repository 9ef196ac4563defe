"""
Webhook event handlers for the billing gateway.

Each handler receives the event's ``data`` dict, applies one state
transition to the local subscription record and commits. Events that
reference a subscription we do not know are logged and acknowledged.
Emails go out after the commit and never affect the outcome.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from konnectsphere.core.billing_periods import timestamp_to_datetime
from konnectsphere.core.plan_capabilities import BASE_PLAN
from konnectsphere.core.subscription_status import ACTIVE, CANCELLED, INCOMPLETE, PAST_DUE
from konnectsphere.db.models.payment_history import PaymentHistory
from konnectsphere.db.models.subscription import SubscriptionPrice
from konnectsphere.db.models.user import User
from konnectsphere.db.models.user_subscription import UserSubscription
from konnectsphere.services.billing_gateway import BillingGateway, serialize_subscription
from konnectsphere.services.notification_service import NotificationService
from konnectsphere.services.subscription_service import (
    apply_gateway_subscription,
    build_receipt,
    payment_exists,
    upsert_subscription_record,
)

logger = logging.getLogger(__name__)

# Gateway retry schedule is not exposed on failed invoices without a next attempt
DEFAULT_RETRY_DELAY = timedelta(days=3)


def _find_by_stripe_id(db: Session, subscription_id: Optional[str]) -> Optional[UserSubscription]:
    if not subscription_id:
        return None
    return db.query(UserSubscription).filter(UserSubscription.stripe_id == subscription_id).first()


def _invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    """Subscription id of an invoice; newer API versions nest it under ``parent``."""
    subscription_id = invoice.get("subscription")
    if isinstance(subscription_id, dict):
        subscription_id = subscription_id.get("id")
    if subscription_id:
        return subscription_id
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return details.get("subscription")


def _price_for_subscription(db: Session, serialized: Dict[str, Any]) -> Optional[SubscriptionPrice]:
    if not serialized.get("price_id"):
        return None
    return db.query(SubscriptionPrice).filter(SubscriptionPrice.stripe_id == serialized["price_id"]).first()


def _has_paid_payment(db: Session, record: UserSubscription) -> bool:
    return db.query(PaymentHistory).filter(
        PaymentHistory.user_subscription_id == record.id,
        PaymentHistory.status == "paid",
    ).first() is not None


# ----------------------------------------------------------------------
# Subscription events
# ----------------------------------------------------------------------

def handle_subscription_created(event_data: Dict, db: Session, gateway: BillingGateway, notifier: NotificationService) -> None:
    subscription = event_data.get("object", {})
    serialized = serialize_subscription(subscription)

    user = db.query(User).filter(User.stripe_customer_id == serialized["stripe_customer_id"]).first()
    if not user:
        logger.warning(f"subscription.created: no user for customer_id={serialized['stripe_customer_id']}")
        return

    price = _price_for_subscription(db, serialized)
    if not price:
        logger.warning(f"subscription.created: price not in catalog, stripe_price_id={serialized['price_id']}")
        return

    record = upsert_subscription_record(db, user, price, serialized)
    db.commit()
    logger.info(f"Subscription created: user_id={user.id}, subscription_id={record.stripe_id}, status={record.status}")


def handle_subscription_updated(event_data: Dict, db: Session, gateway: BillingGateway, notifier: NotificationService) -> None:
    subscription = event_data.get("object", {})
    serialized = serialize_subscription(subscription)

    record = _find_by_stripe_id(db, serialized["stripe_id"])
    if not record:
        logger.warning(f"subscription.updated: subscription not found, subscription_id={serialized['stripe_id']}")
        return

    price = _price_for_subscription(db, serialized)
    if price and price.id != record.price_id:
        logger.info(f"Plan changed: user_id={record.user_id}, old_price_id={record.price_id}, new_price_id={price.id}")
        record.price_id = price.id
        record.plan_id = price.plan_id
        record.price = price
        record.plan = price.plan
        record.user.subscription_plan = price.plan.name

    was_cancelling = bool(record.cancel_at_period_end)
    was_past_due = record.status == PAST_DUE
    apply_gateway_subscription(record, serialized)
    if record.status == PAST_DUE:
        record.active = False

    db.commit()
    logger.info(
        f"Subscription updated: user_id={record.user_id}, status={record.status}, "
        f"cancel_at_period_end={record.cancel_at_period_end}"
    )

    if record.cancel_at_period_end and not was_cancelling:
        notifier.send_cancellation(record.user, record.plan_name(), record.current_period_end, False)
    if record.status == PAST_DUE and not was_past_due and record.price:
        notifier.send_past_due(record.user, record.plan_name(), record.price.price, record.price.currency)


def handle_subscription_deleted(event_data: Dict, db: Session, gateway: BillingGateway, notifier: NotificationService) -> None:
    subscription = event_data.get("object", {})
    record = _find_by_stripe_id(db, subscription.get("id"))
    if not record:
        logger.warning(f"subscription.deleted: subscription not found, subscription_id={subscription.get('id')}")
        return

    record.status = CANCELLED
    record.active = False
    record.user_cancelled = True
    if record.user:
        record.user.subscription_plan = BASE_PLAN

    db.commit()
    logger.info(f"Subscription deleted: user_id={record.user_id}, subscription_id={record.stripe_id}")


def handle_trial_will_end(event_data: Dict, db: Session, gateway: BillingGateway, notifier: NotificationService) -> None:
    subscription = event_data.get("object", {})
    record = _find_by_stripe_id(db, subscription.get("id"))
    if not record:
        logger.warning(f"trial_will_end: subscription not found, subscription_id={subscription.get('id')}")
        return

    trial_end = timestamp_to_datetime(subscription.get("trial_end"))
    if trial_end:
        notifier.send_renewal_reminder(record.user, record.plan_name(), trial_end)
    logger.info(f"Trial ending: user_id={record.user_id}, trial_end={trial_end}")


# ----------------------------------------------------------------------
# Invoice events
# ----------------------------------------------------------------------

def handle_invoice_payment_succeeded(event_data: Dict, db: Session, gateway: BillingGateway, notifier: NotificationService) -> None:
    """
    Record a paid invoice and make sure the subscription is active.

    The ledger row is created once per invoice; the first paid row for a
    subscription is ``initial``, later ones are ``recurring``.
    """
    invoice = event_data.get("object", {})
    subscription_id = _invoice_subscription_id(invoice)
    if not subscription_id:
        logger.warning(f"invoice.payment_succeeded: no subscription on invoice_id={invoice.get('id')}")
        return

    record = _find_by_stripe_id(db, subscription_id)
    if not record:
        logger.warning(f"invoice.payment_succeeded: subscription not found, subscription_id={subscription_id}")
        return

    is_recurring = _has_paid_payment(db, record)
    amount = (invoice.get("amount_paid") or 0) / 100
    paid_at = timestamp_to_datetime((invoice.get("status_transitions") or {}).get("paid_at")) or datetime.utcnow()

    new_payment = False
    if not payment_exists(db, invoice.get("id"), "paid"):
        db.add(PaymentHistory(
            user_id=record.user_id,
            user_subscription_id=record.id,
            stripe_invoice_id=invoice.get("id"),
            stripe_payment_intent_id=invoice.get("payment_intent"),
            amount=amount,
            currency=invoice.get("currency") or "usd",
            status="paid",
            payment_type="recurring" if is_recurring else "initial",
            description=invoice.get("description") or (
                "Recurring subscription payment" if is_recurring else "Initial subscription payment"
            ),
            invoice_url=invoice.get("hosted_invoice_url"),
            paid_at=paid_at,
            due_date=timestamp_to_datetime(invoice.get("due_date")),
            retry_count=0,
        ))
        new_payment = True
    else:
        logger.info(f"invoice.payment_succeeded: already recorded invoice_id={invoice.get('id')}")

    remote = gateway.get_subscription(subscription_id)
    if remote:
        apply_gateway_subscription(record, serialize_subscription(remote))
    record.status = ACTIVE
    record.active = True

    db.commit()
    logger.info(
        f"Invoice paid: user_id={record.user_id}, invoice_id={invoice.get('id')}, "
        f"recurring={is_recurring}, new_payment={new_payment}"
    )

    if not new_payment:
        return
    receipt = build_receipt(
        record, amount, invoice.get("currency"),
        invoice_id=invoice.get("id"),
        invoice_url=invoice.get("hosted_invoice_url"),
    )
    receipt["payment_date"] = paid_at
    if is_recurring:
        notifier.send_recurring_payment_success(record.user, receipt)
    else:
        notifier.send_plan_confirmation(record.user, receipt)


def handle_invoice_payment_failed(event_data: Dict, db: Session, gateway: BillingGateway, notifier: NotificationService) -> None:
    invoice = event_data.get("object", {})
    subscription_id = _invoice_subscription_id(invoice)
    record = _find_by_stripe_id(db, subscription_id)
    if not record:
        logger.warning(f"invoice.payment_failed: subscription not found, subscription_id={subscription_id}")
        return

    now = datetime.utcnow()
    next_retry = timestamp_to_datetime(invoice.get("next_payment_attempt")) or (now + DEFAULT_RETRY_DELAY)
    attempt_count = invoice.get("attempt_count")
    retry_count = attempt_count if isinstance(attempt_count, int) and attempt_count > 0 else 1
    amount = (invoice.get("amount_due") or 0) / 100

    new_failure = False
    if not payment_exists(db, invoice.get("id"), "failed"):
        db.add(PaymentHistory(
            user_id=record.user_id,
            user_subscription_id=record.id,
            stripe_invoice_id=invoice.get("id"),
            stripe_payment_intent_id=invoice.get("payment_intent"),
            amount=amount,
            currency=invoice.get("currency") or "usd",
            status="failed",
            payment_type="retry" if retry_count > 1 else "recurring",
            description=invoice.get("description") or "Recurring subscription payment failed",
            invoice_url=invoice.get("hosted_invoice_url"),
            due_date=timestamp_to_datetime(invoice.get("due_date")),
            failed_at=now,
            retry_count=retry_count,
            last_retry_at=now,
            next_retry_at=next_retry,
        ))
        new_failure = True
    else:
        logger.info(f"invoice.payment_failed: already recorded invoice_id={invoice.get('id')}")

    record.status = PAST_DUE
    record.active = False

    db.commit()
    logger.warning(
        f"Invoice payment failed: user_id={record.user_id}, invoice_id={invoice.get('id')}, "
        f"attempt={retry_count}, next_retry={next_retry}"
    )

    if new_failure:
        notifier.send_payment_failure(record.user, {
            "invoice_id": invoice.get("id"),
            "amount": amount,
            "currency": invoice.get("currency") or "usd",
            "plan_name": record.plan_name(),
            "attempt_count": retry_count,
            "next_retry_date": next_retry,
            "invoice_url": invoice.get("hosted_invoice_url"),
        })


def handle_invoice_payment_action_required(event_data: Dict, db: Session, gateway: BillingGateway, notifier: NotificationService) -> None:
    invoice = event_data.get("object", {})
    subscription_id = _invoice_subscription_id(invoice)
    record = _find_by_stripe_id(db, subscription_id)
    if not record:
        logger.warning(f"invoice.payment_action_required: subscription not found, subscription_id={subscription_id}")
        return

    record.status = INCOMPLETE
    db.commit()
    logger.info(f"Payment action required: user_id={record.user_id}, invoice_id={invoice.get('id')}")

    notifier.send_payment_action_required(record.user, {
        "invoice_id": invoice.get("id"),
        "amount": (invoice.get("amount_due") or 0) / 100,
        "currency": invoice.get("currency") or "usd",
        "plan_name": record.plan_name(),
        "invoice_url": invoice.get("hosted_invoice_url"),
    })


def _upcoming_payment_details(record: UserSubscription, invoice: Dict[str, Any], due_date: Optional[datetime]) -> Dict[str, Any]:
    return {
        "invoice_id": invoice.get("id"),
        "amount": (invoice.get("amount_due") or 0) / 100,
        "currency": invoice.get("currency") or "usd",
        "due_date": due_date or datetime.utcnow(),
        "plan_name": record.plan_name(),
        "invoice_url": invoice.get("hosted_invoice_url"),
    }


def handle_invoice_upcoming(event_data: Dict, db: Session, gateway: BillingGateway, notifier: NotificationService) -> None:
    invoice = event_data.get("object", {})
    subscription_id = _invoice_subscription_id(invoice)
    record = _find_by_stripe_id(db, subscription_id)
    if not record:
        logger.warning(f"invoice.upcoming: subscription not found, subscription_id={subscription_id}")
        return

    due_date = timestamp_to_datetime(invoice.get("next_payment_attempt")) or timestamp_to_datetime(invoice.get("period_end"))
    notifier.send_upcoming_payment(record.user, _upcoming_payment_details(record, invoice, due_date))
    logger.info(f"Upcoming invoice notice: user_id={record.user_id}, due_date={due_date}")


def handle_invoice_finalized(event_data: Dict, db: Session, gateway: BillingGateway, notifier: NotificationService) -> None:
    """Renewal invoices only; the first invoice is covered by the confirmation email."""
    invoice = event_data.get("object", {})
    subscription_id = _invoice_subscription_id(invoice)
    record = _find_by_stripe_id(db, subscription_id)
    if not record:
        logger.warning(f"invoice.finalized: subscription not found, subscription_id={subscription_id}")
        return

    if not _has_paid_payment(db, record):
        logger.info(f"invoice.finalized: initial invoice, no notice sent, user_id={record.user_id}")
        return

    due_date = timestamp_to_datetime(invoice.get("due_date"))
    notifier.send_upcoming_payment(record.user, _upcoming_payment_details(record, invoice, due_date))
    logger.info(f"Renewal invoice finalized: user_id={record.user_id}, invoice_id={invoice.get('id')}")


WEBHOOK_HANDLERS: Dict[str, Callable[[Dict, Session, BillingGateway, NotificationService], None]] = {
    "customer.subscription.created": handle_subscription_created,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "customer.subscription.trial_will_end": handle_trial_will_end,
    "invoice.payment_succeeded": handle_invoice_payment_succeeded,
    "invoice.payment_failed": handle_invoice_payment_failed,
    "invoice.payment_action_required": handle_invoice_payment_action_required,
    "invoice.upcoming": handle_invoice_upcoming,
    "invoice.finalized": handle_invoice_finalized,
}


def dispatch_event(event: Dict[str, Any], db: Session, gateway: BillingGateway, notifier: NotificationService) -> bool:
    """
    Route a verified event to its handler.

    Returns:
        True when a handler ran, False for event types we ignore.
    """
    event_type = event.get("type")
    handler = WEBHOOK_HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Unhandled webhook event type: {event_type}")
        return False
    handler(event.get("data", {}), db, gateway, notifier)
    return True
