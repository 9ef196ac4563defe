"""
Scheduled subscription sweeps.

Each sweep opens its own work on the given session, handles records one at a
time (a failing record is logged, rolled back and counted) and returns a
stats dict. ``now`` is injectable so the sweeps can be driven from tests.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from konnectsphere.core.billing_periods import timestamp_to_datetime
from konnectsphere.core.plan_capabilities import BASE_PLAN, ENTREPRENEUR, normalize_role
from konnectsphere.core.scheduler import JobScheduler
from konnectsphere.core.subscription_status import ACTIVE_STATUSES, CANCELLED
from konnectsphere.db.models.password_reset_token import PasswordResetToken
from konnectsphere.db.models.user_subscription import UserSubscription
from konnectsphere.services.billing_gateway import BillingGateway, serialize_subscription
from konnectsphere.services.notification_service import NotificationService
from konnectsphere.services.subscription_service import apply_gateway_subscription, count_published_pitches

logger = logging.getLogger(__name__)

TWO_DAY_REMINDER_JOB = "two-day-reminder"
EXPIRED_SUBSCRIPTIONS_JOB = "expired-subscriptions"
STRIPE_SYNC_JOB = "stripe-sync"
RESET_TOKEN_CLEANUP_JOB = "reset-token-cleanup"


def _active_records(db: Session):
    return db.query(UserSubscription).filter(
        UserSubscription.active == True,  # noqa: E712
        UserSubscription.status.in_(ACTIVE_STATUSES),
    )


def run_two_day_reminder_sweep(db: Session, notifier: NotificationService, now: Optional[datetime] = None) -> Dict[str, int]:
    """Remind holders of active subscriptions whose period ends on the day two days from now."""
    now = now or datetime.utcnow()
    day_start = (now + timedelta(days=2)).replace(hour=0, minute=0, second=0, microsecond=0)
    day_end = day_start + timedelta(days=1)

    records = _active_records(db).filter(
        UserSubscription.current_period_end >= day_start,
        UserSubscription.current_period_end < day_end,
    ).all()

    stats = {"found": len(records), "sent": 0, "failed": 0}
    for record in records:
        if not record.user or not record.plan:
            stats["failed"] += 1
            continue
        if notifier.send_two_day_reminder(record.user, record.plan.name, record.current_period_end):
            stats["sent"] += 1
        else:
            stats["failed"] += 1

    logger.info(f"Two-day reminder sweep: {stats}")
    return stats


def _outstanding_balance(gateway: BillingGateway, record: UserSubscription, now: datetime) -> Optional[Dict[str, Any]]:
    if not record.stripe_customer_id:
        return None
    try:
        invoice = gateway.get_upcoming_invoice(record.stripe_customer_id)
    except Exception as e:
        logger.warning(f"Could not fetch outstanding balance: user_id={record.user_id}, error={e}")
        return None
    if not invoice or (invoice.get("amount_due") or 0) <= 0:
        return None
    return {
        "amount": invoice["amount_due"] / 100,
        "currency": invoice.get("currency") or "usd",
        "due_date": timestamp_to_datetime(invoice.get("due_date")) or now,
        "plan_name": record.plan_name(),
        "invoice_url": invoice.get("hosted_invoice_url"),
    }


def run_expired_subscription_sweep(
    db: Session,
    gateway: BillingGateway,
    notifier: NotificationService,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    Deactivate subscriptions whose period ended without a renewal.

    Only records still flagged active with an active status are touched, so a
    second run over the same data is a no-op.
    """
    now = now or datetime.utcnow()
    records = _active_records(db).filter(UserSubscription.current_period_end < now).all()

    stats = {"found": len(records), "processed": 0, "failed": 0}
    for record in records:
        try:
            user = record.user
            record.active = False
            record.status = CANCELLED
            user.subscription_plan = BASE_PLAN
            db.commit()
        except Exception as e:
            db.rollback()
            stats["failed"] += 1
            logger.error(f"Failed to expire subscription: user_id={record.user_id}, error={e}", exc_info=True)
            continue

        stats["processed"] += 1
        logger.info(f"Subscription expired: user_id={record.user_id}, period_end={record.current_period_end}")

        notifier.send_subscription_expired(user, record.plan_name(), _outstanding_balance(gateway, record, now))
        if normalize_role(user.role) == ENTREPRENEUR:
            published = count_published_pitches(db, user.id)
            if published:
                notifier.send_pitch_hidden(user, published)

    logger.info(f"Expired subscription sweep: {stats}")
    return stats


def run_gateway_sync_sweep(db: Session, gateway: BillingGateway, now: Optional[datetime] = None) -> Dict[str, int]:
    """Refresh status, dates and cancel flag of active records from the gateway."""
    records = db.query(UserSubscription).filter(
        UserSubscription.active == True,  # noqa: E712
        UserSubscription.stripe_id.isnot(None),
    ).all()

    stats = {"checked": len(records), "updated": 0, "missing": 0, "errors": 0}
    for record in records:
        try:
            remote = gateway.get_subscription(record.stripe_id)
            if remote is None:
                stats["missing"] += 1
                continue
            apply_gateway_subscription(record, serialize_subscription(remote, now=now))
            record.active = record.status in ACTIVE_STATUSES
            db.commit()
            stats["updated"] += 1
        except Exception as e:
            db.rollback()
            stats["errors"] += 1
            logger.error(f"Gateway sync failed: user_id={record.user_id}, subscription_id={record.stripe_id}, error={e}")

    logger.info(f"Gateway sync sweep: {stats}")
    return stats


def run_reset_token_cleanup(db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    now = now or datetime.utcnow()
    deleted = db.query(PasswordResetToken).filter(
        or_(PasswordResetToken.expires_at < now, PasswordResetToken.is_used == True)  # noqa: E712
    ).delete(synchronize_session=False)
    db.commit()
    logger.info(f"Reset token cleanup: deleted={deleted}")
    return {"deleted": deleted}


def _with_session(session_factory: Callable[[], Session], sweep: Callable[[Session], Dict[str, int]]) -> Callable[[], Dict[str, int]]:
    def run() -> Dict[str, int]:
        db = session_factory()
        try:
            return sweep(db)
        finally:
            db.close()
    return run


def build_scheduler(
    session_factory: Callable[[], Session],
    gateway: BillingGateway,
    notifier: NotificationService,
    clock: Optional[Callable[[], datetime]] = None,
) -> JobScheduler:
    """Register the daily sweeps on a new scheduler (not started)."""
    scheduler = JobScheduler(clock=clock)
    scheduler.add_job(
        TWO_DAY_REMINDER_JOB,
        _with_session(session_factory, lambda db: run_two_day_reminder_sweep(db, notifier)),
        hour=9,
        description="Two-day expiration reminder check",
    )
    scheduler.add_job(
        EXPIRED_SUBSCRIPTIONS_JOB,
        _with_session(session_factory, lambda db: run_expired_subscription_sweep(db, gateway, notifier)),
        hour=10,
        description="Expired subscription check",
    )
    scheduler.add_job(
        STRIPE_SYNC_JOB,
        _with_session(session_factory, lambda db: run_gateway_sync_sweep(db, gateway)),
        hour=3,
        description="Billing gateway subscription sync",
    )
    scheduler.add_job(
        RESET_TOKEN_CLEANUP_JOB,
        _with_session(session_factory, run_reset_token_cleanup),
        hour=4,
        description="Expired password reset token cleanup",
    )
    return scheduler
