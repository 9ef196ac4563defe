"""
Subscription endpoints: catalog, checkout, cancellation, payment history and
the scheduled-job controls.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from konnectsphere.core.auth_dependency import get_current_user_obj, get_db
from konnectsphere.core import config
from konnectsphere.core.scheduler import JobScheduler
from konnectsphere.core.service_dependency import get_billing_gateway, get_notification_service, get_scheduler
from konnectsphere.db.models.user import User
from konnectsphere.schemas.billing import (
    CancelSubscriptionRequest,
    CheckoutSuccessRequest,
    CreateCheckoutSessionRequest,
    CreateCheckoutSessionResponse,
)
from konnectsphere.services import subscription_service, sweeps
from konnectsphere.services.billing_gateway import BillingGateway
from konnectsphere.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


def _internal_error(db: Session, action: str, user_id: Optional[int], e: Exception) -> HTTPException:
    db.rollback()
    logger.error(f"Failed to {action}: user_id={user_id}, error={e}", exc_info=True)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to {action}")


# ============================================
# ✅ CATALOG
# ============================================

@router.post("/initialize")
def initialize_plans(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    try:
        return subscription_service.initialize_subscription_plans(db)
    except Exception as e:
        raise _internal_error(db, "initialize subscription plans", user.id, e)


@router.get("/plans")
def get_plans(
    user_type: Optional[str] = Query(None, pattern="^(entrepreneur|investor)$"),
    db: Session = Depends(get_db)
):
    return {
        "plans": subscription_service.list_plans(db, user_type),
        "publishableKey": config.STRIPE_PUBLISHABLE_KEY,
    }


# ============================================
# ✅ CURRENT SUBSCRIPTION
# ============================================

@router.get("/current")
def get_current_subscription(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    record = subscription_service.get_user_subscription(db, user.id)
    return {"subscription": record.serialize() if record else None}


@router.get("/status")
def get_status(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    return subscription_service.get_subscription_status(db, user)


# ============================================
# ✅ CHECKOUT
# ============================================

@router.post("/checkout", response_model=CreateCheckoutSessionResponse)
def create_checkout(
    payload: CreateCheckoutSessionRequest,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_billing_gateway),
):
    try:
        return subscription_service.start_checkout(db, user, payload.price_id, gateway)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error(db, "create checkout session", user.id, e)


@router.post("/success")
def checkout_success(
    payload: CheckoutSuccessRequest,
    db: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_billing_gateway),
    notifier: NotificationService = Depends(get_notification_service),
):
    """Called by the payment success page with the session id from the redirect URL."""
    try:
        record = subscription_service.complete_checkout(db, payload.session_id, gateway, notifier)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error(db, "confirm checkout", None, e)
    return {"message": "Subscription activated", "subscription": record.serialize()}


# ============================================
# ✅ CANCEL / REFRESH
# ============================================

@router.post("/cancel")
def cancel(
    payload: Optional[CancelSubscriptionRequest] = None,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_billing_gateway),
    notifier: NotificationService = Depends(get_notification_service),
):
    payload = payload or CancelSubscriptionRequest()
    try:
        record = subscription_service.cancel_subscription(
            db,
            user,
            gateway,
            notifier,
            reason=payload.reason,
            feedback=payload.feedback_code(),
            immediate=payload.immediate,
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error(db, "cancel subscription", user.id, e)

    message = (
        "Subscription cancelled"
        if payload.immediate
        else "Subscription will be cancelled at the end of the billing period"
    )
    return {"message": message, "subscription": record.serialize()}


@router.post("/refresh")
def refresh(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_billing_gateway),
):
    try:
        record = subscription_service.refresh_subscription(db, user, gateway)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error(db, "refresh subscription", user.id, e)
    return {"subscription": record.serialize()}


# ============================================
# ✅ PAYMENTS / INVOICES
# ============================================

@router.get("/payments")
def payment_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    year: Optional[str] = Query(None),
    payment_status: Optional[str] = Query(None, alias="status"),
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_billing_gateway),
):
    try:
        return subscription_service.get_payment_history(db, user, gateway, page, limit, year, payment_status)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error(db, "fetch payment history", user.id, e)


@router.get("/current-invoice")
def current_invoice(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_billing_gateway),
):
    try:
        return subscription_service.get_current_invoice(db, user, gateway)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error(db, "fetch current invoice", user.id, e)


@router.get("/invoices/{invoice_id}")
def invoice_by_id(
    invoice_id: str,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_billing_gateway),
):
    try:
        return subscription_service.get_invoice(db, user, invoice_id, gateway)
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error(db, "fetch invoice", user.id, e)


# ============================================
# ✅ SCHEDULED JOBS
# ============================================

@router.post("/check-two-day-reminders")
def check_two_day_reminders(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notification_service),
):
    try:
        stats = sweeps.run_two_day_reminder_sweep(db, notifier)
    except Exception as e:
        raise _internal_error(db, "run two-day reminder check", user.id, e)
    return {"message": "Two-day reminder check completed", "stats": stats}


@router.post("/check-expired-subscriptions")
def check_expired_subscriptions(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_billing_gateway),
    notifier: NotificationService = Depends(get_notification_service),
):
    try:
        stats = sweeps.run_expired_subscription_sweep(db, gateway, notifier)
    except Exception as e:
        raise _internal_error(db, "run expired subscription check", user.id, e)
    return {"message": "Expired subscription check completed", "stats": stats}


@router.get("/cron-status")
def cron_status(
    user: User = Depends(get_current_user_obj),
    scheduler: JobScheduler = Depends(get_scheduler),
):
    return {"jobs": scheduler.status()}


@router.post("/cron-run/{job_name}")
def cron_run(
    job_name: str,
    user: User = Depends(get_current_user_obj),
    scheduler: JobScheduler = Depends(get_scheduler),
):
    if config.ENVIRONMENT == "production":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Manual job runs are disabled in production")
    if job_name not in scheduler.job_names():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Job '{job_name}' not found")

    try:
        result = scheduler.run_manually(job_name)
    except Exception as e:
        logger.error(f"Manual job run failed: job={job_name}, user_id={user.id}, error={e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Job '{job_name}' failed")

    logger.info(f"Manual job run: job={job_name}, user_id={user.id}")
    return {"job": job_name, "result": result}
