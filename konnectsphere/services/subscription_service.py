"""
Subscription state store.

Checkout, cancellation and the read-side views of a user's subscription.
Webhook-driven transitions live in billing_webhook_handlers; scheduled
transitions live in sweeps. All of them share apply_gateway_subscription so
gateway data lands on the local record the same way.
"""
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from konnectsphere.core.billing_periods import YEAR, derive_period_end, timestamp_to_datetime
from konnectsphere.core.config import FRONTEND_URL
from konnectsphere.core.plan_capabilities import BASE_PLAN, BASIC_PLAN, get_capabilities, normalize_role
from konnectsphere.core.subscription_status import CANCELLED, normalize_status
from konnectsphere.db.models.payment_history import PaymentHistory
from konnectsphere.db.models.pitch import Pitch
from konnectsphere.db.models.subscription import SubscriptionPlan, SubscriptionPrice
from konnectsphere.db.models.user import User
from konnectsphere.db.models.user_subscription import UserSubscription
from konnectsphere.services.billing_gateway import CHECKOUT_SESSION_PLACEHOLDER, BillingGateway, serialize_subscription
from konnectsphere.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

SUCCESSFUL_CHECKOUT_PAYMENT_STATUSES = ("paid", "no_payment_required")

DEFAULT_PLANS = [
    {
        "name": "Basic",
        "subtitle": "Local Visibility. Essential Access.",
        "user_type": "entrepreneur",
        "pitch_limit": 1,
        "global_visibility": False,
        "features": "\n".join([
            "Pitch listed and visible only in your selected country",
            "Submit one business pitch",
            "Standard customer support",
            "Access to investor network within your region",
            "Designed for local market exposure",
        ]),
        "permissions": ["basic"],
        "order": 1,
        "price": {"interval": "month", "price": 49.0, "order": 1},
    },
    {
        "name": "Premium",
        "subtitle": "Global Reach. Premium Benefits.",
        "user_type": "entrepreneur",
        "pitch_limit": 5,
        "global_visibility": True,
        "features": "\n".join([
            "Pitch listed and visible across all countries",
            "Featured at the top of global search results",
            "Upload supporting documents for investors",
            "Submit up to 5 pitches",
            "Priority customer support",
            "Wider exposure to international investors",
        ]),
        "permissions": ["pro"],
        "order": 2,
        "price": {"interval": "month", "price": 69.0, "order": 2},
    },
    {
        "name": "Investor Access Plan",
        "subtitle": "Discover High-Potential Ventures. Connect Globally.",
        "user_type": "investor",
        "pitch_limit": 0,
        "global_visibility": True,
        "features": "\n".join([
            "Browse and view business pitches from all countries",
            "Advanced search filters by industry, country, and funding stage",
            "Access to detailed pitch information and supporting documents",
            "Save pitches to review or revisit anytime",
            "Priority customer support",
        ]),
        "permissions": ["pro"],
        "order": 3,
        "price": {"interval": "year", "price": 49.0, "order": 3},
    },
]


# ----------------------------------------------------------------------
# Catalog
# ----------------------------------------------------------------------

def initialize_subscription_plans(db: Session) -> Dict[str, Any]:
    """Seed the plan catalog when it is empty. Returns created flag and plan count."""
    existing = db.query(SubscriptionPlan).count()
    if existing > 0:
        logger.info(f"Subscription plans already initialized: total={existing}")
        return {"created": False, "total_plans": existing}

    for definition in DEFAULT_PLANS:
        price_def = definition["price"]
        plan = SubscriptionPlan(
            name=definition["name"],
            subtitle=definition["subtitle"],
            user_type=definition["user_type"],
            pitch_limit=definition["pitch_limit"],
            global_visibility=definition["global_visibility"],
            features=definition["features"],
            permissions=definition["permissions"],
            order=definition["order"],
            featured=True,
            active=True,
        )
        plan.prices.append(SubscriptionPrice(
            interval=price_def["interval"],
            price=price_def["price"],
            currency="usd",
            featured=True,
            order=price_def["order"],
            active=True,
        ))
        db.add(plan)

    db.commit()
    logger.info(f"Subscription plans initialized: total={len(DEFAULT_PLANS)}")
    return {"created": True, "total_plans": len(DEFAULT_PLANS)}


def list_plans(db: Session, user_type: Optional[str] = None) -> List[Dict[str, Any]]:
    query = db.query(SubscriptionPlan).filter(SubscriptionPlan.active == True)  # noqa: E712
    if user_type in ("entrepreneur", "investor"):
        query = query.filter(SubscriptionPlan.user_type == user_type)
    plans = query.order_by(SubscriptionPlan.order.asc(), SubscriptionPlan.featured.desc()).all()

    return [
        {
            "id": plan.id,
            "name": plan.name,
            "subtitle": plan.subtitle,
            "userType": plan.user_type,
            "pitchLimit": plan.pitch_limit,
            "globalVisibility": plan.global_visibility,
            "features": plan.feature_list(),
            "prices": [
                {
                    "id": price.id,
                    "amount": price.price,
                    "currency": price.currency,
                    "interval": price.interval,
                    "stripeId": price.stripe_id,
                }
                for price in plan.prices
                if price.active and price.featured
            ],
        }
        for plan in plans
    ]


# ----------------------------------------------------------------------
# Shared helpers
# ----------------------------------------------------------------------

def get_user_subscription(db: Session, user_id: int) -> Optional[UserSubscription]:
    return db.query(UserSubscription).filter(UserSubscription.user_id == user_id).first()


def count_published_pitches(db: Session, user_id: int) -> int:
    return db.query(Pitch).filter(
        Pitch.user_id == user_id,
        Pitch.status == "published",
        Pitch.is_active == True,  # noqa: E712
    ).count()


def apply_gateway_period(record: UserSubscription, serialized: Dict[str, Any]) -> None:
    """Copy the billing period, deriving a missing end from the local price interval."""
    record.current_period_start = serialized["current_period_start"]
    record.current_period_end = serialized["current_period_end"]
    if not serialized.get("interval") and record.price is not None:
        record.current_period_end = derive_period_end(
            record.current_period_start,
            record.price.interval,
            serialized.get("reported_period_end"),
        )


def apply_gateway_subscription(record: UserSubscription, serialized: Dict[str, Any]) -> UserSubscription:
    """
    Copy a serialized gateway subscription onto the local record.

    Does not touch ``active``; each caller decides that for its transition.
    """
    if serialized.get("stripe_id"):
        record.stripe_id = serialized["stripe_id"]
    if serialized.get("stripe_customer_id"):
        record.stripe_customer_id = serialized["stripe_customer_id"]
    if serialized.get("status"):
        record.status = serialized["status"]
    apply_gateway_period(record, serialized)
    record.cancel_at_period_end = bool(serialized.get("cancel_at_period_end"))
    record.billing_cycle_anchor = serialized.get("billing_cycle_anchor") or serialized["current_period_start"]
    return record


def payment_exists(db: Session, invoice_id: Optional[str], payment_status: str) -> bool:
    if not invoice_id:
        return False
    return db.query(PaymentHistory).filter(
        PaymentHistory.stripe_invoice_id == invoice_id,
        PaymentHistory.status == payment_status,
    ).first() is not None


def plan_display_name(plan: Optional[SubscriptionPlan]) -> str:
    if not plan:
        return "Subscription"
    return f"{plan.name} ({plan.user_type})" if plan.user_type else plan.name


def build_receipt(
    record: UserSubscription,
    amount: float,
    currency: Optional[str],
    invoice_id: Optional[str] = None,
    invoice_url: Optional[str] = None,
) -> Dict[str, Any]:
    interval = record.price.interval if record.price else None
    return {
        "plan_name": record.plan.name if record.plan else None,
        "plan_display_name": plan_display_name(record.plan),
        "interval": interval,
        "billing_period": "Annual" if interval == YEAR else "Monthly",
        "amount": amount,
        "currency": currency or "usd",
        "payment_date": datetime.utcnow(),
        "next_billing_date": record.current_period_end,
        "invoice_id": invoice_id,
        "invoice_url": invoice_url,
    }


# ----------------------------------------------------------------------
# Checkout
# ----------------------------------------------------------------------

def _ensure_gateway_customer(db: Session, user: User, gateway: BillingGateway) -> str:
    if user.stripe_customer_id:
        if gateway.get_customer(user.stripe_customer_id):
            return user.stripe_customer_id
        logger.warning(f"Stored billing customer is gone, recreating: user_id={user.id}, customer_id={user.stripe_customer_id}")
    customer = gateway.create_customer(
        email=user.email,
        name=user.full_name,
        metadata={"user_id": str(user.id)},
    )
    user.stripe_customer_id = customer["id"]
    db.commit()
    logger.info(f"Linked billing customer: user_id={user.id}, customer_id={user.stripe_customer_id}")
    return user.stripe_customer_id


def _ensure_gateway_price(db: Session, price: SubscriptionPrice, gateway: BillingGateway) -> str:
    """Verify the stored product/price ids and recreate whichever the gateway no longer knows."""
    if price.stripe_id and gateway.verify_price(price.stripe_id):
        return price.stripe_id
    if price.stripe_id:
        logger.warning(f"Stored gateway price is gone, recreating: price_id={price.id}, stripe_id={price.stripe_id}")
        price.stripe_id = None

    plan = price.plan
    if not plan.stripe_id or not gateway.verify_product(plan.stripe_id):
        product = gateway.create_product(
            name=f"{plan.name} - {plan.user_type}",
            description=plan.subtitle,
            metadata={"plan_id": str(plan.id)},
        )
        plan.stripe_id = product["id"]

    created = gateway.create_price(
        product_id=plan.stripe_id,
        unit_amount=price.stripe_unit_amount(),
        currency=price.currency,
        interval=price.interval,
    )
    price.stripe_id = created["id"]
    db.commit()
    return price.stripe_id


def start_checkout(db: Session, user: User, price_id: int, gateway: BillingGateway) -> Dict[str, str]:
    """
    Open a hosted checkout session for one of our catalog prices.

    Raises:
        HTTPException: 400 active subscription or Basic with several pitches,
            404 unknown price, 403 plan not sold to the user's role
    """
    now = datetime.utcnow()
    existing = get_user_subscription(db, user.id)
    if existing and existing.active and existing.is_active_status() and (
        existing.current_period_end is None or existing.current_period_end > now
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You already have an active subscription. Please cancel your current subscription before purchasing a new one.",
        )

    price = db.query(SubscriptionPrice).filter(SubscriptionPrice.id == price_id).first()
    if not price or not price.active or not price.plan or not price.plan.active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Selected subscription plan is not available",
        )

    plan = price.plan
    expected_type = "entrepreneur" if normalize_role(user.role) == "Entrepreneur" else "investor"
    if plan.user_type != expected_type:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not allowed to purchase this plan. Please select a plan that matches your account type.",
        )

    if plan.user_type == "entrepreneur" and plan.name == BASIC_PLAN:
        if count_published_pitches(db, user.id) > 1:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="You have more than one published pitch. You cannot purchase the Basic plan. Please choose Premium.",
            )

    customer_id = _ensure_gateway_customer(db, user, gateway)
    gateway_price_id = _ensure_gateway_price(db, price, gateway)

    session = gateway.create_checkout_session(
        customer_id=customer_id,
        price_id=gateway_price_id,
        success_url=f"{FRONTEND_URL}/payment/success?session_id={CHECKOUT_SESSION_PLACEHOLDER}",
        cancel_url=f"{FRONTEND_URL}/payment/failure?cancelled=true",
        metadata={"user_id": str(user.id), "price_id": str(price.id)},
    )
    logger.info(f"Checkout started: user_id={user.id}, plan={plan.name}, session_id={session['id']}")
    return {"checkout_url": session["url"], "session_id": session["id"]}


def upsert_subscription_record(
    db: Session,
    user: User,
    price: SubscriptionPrice,
    serialized: Dict[str, Any],
) -> UserSubscription:
    """Create or update the user's record from gateway data and activate it."""
    record = get_user_subscription(db, user.id)
    if record is None:
        record = UserSubscription(user_id=user.id, plan_id=price.plan_id, price_id=price.id, pitches_used=0)
        db.add(record)
    else:
        record.plan_id = price.plan_id
        record.price_id = price.id

    record.plan = price.plan
    record.price = price
    apply_gateway_subscription(record, serialized)
    record.active = True
    record.user_cancelled = False
    user.subscription_plan = price.plan.name
    if serialized.get("stripe_customer_id"):
        user.stripe_customer_id = serialized["stripe_customer_id"]
    return record


def complete_checkout(
    db: Session,
    session_id: str,
    gateway: BillingGateway,
    notifier: NotificationService,
) -> UserSubscription:
    """
    Activate the subscription bought through a completed checkout session.

    Safe to call repeatedly for the same session: the record is updated in
    place and the initial payment row (and its email) is only created once.
    """
    checkout = gateway.get_checkout_customer_plan(session_id)

    if checkout["payment_status"] not in SUCCESSFUL_CHECKOUT_PAYMENT_STATUSES and checkout["session_status"] != "complete":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payment has not been completed for this checkout session",
        )

    price = db.query(SubscriptionPrice).filter(SubscriptionPrice.stripe_id == checkout["price_id"]).first()
    if not price:
        logger.warning(f"Checkout price not in catalog: stripe_price_id={checkout['price_id']}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription price not found")

    user = db.query(User).filter(User.stripe_customer_id == checkout["customer_id"]).first()
    if not user:
        logger.warning(f"Checkout customer has no local user: customer_id={checkout['customer_id']}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    record = upsert_subscription_record(db, user, price, checkout["subscription"])
    db.flush()

    invoice_id = checkout.get("invoice_id")
    amount = (checkout.get("amount_total") or 0) / 100
    new_payment = False
    if invoice_id and not payment_exists(db, invoice_id, "paid"):
        now = datetime.utcnow()
        db.add(PaymentHistory(
            user_id=user.id,
            user_subscription_id=record.id,
            stripe_invoice_id=invoice_id,
            stripe_payment_intent_id=checkout.get("payment_intent_id"),
            amount=amount,
            currency=checkout.get("currency") or "usd",
            status="paid",
            payment_type="initial",
            description=f"{price.plan.name} subscription payment",
            paid_at=now,
            due_date=now,
            retry_count=0,
        ))
        new_payment = True

    db.commit()
    db.refresh(record)
    logger.info(
        f"Checkout completed: user_id={user.id}, plan={price.plan.name}, status={record.status}, "
        f"period_end={record.current_period_end}, new_payment={new_payment}"
    )

    if new_payment:
        notifier.send_plan_confirmation(
            user, build_receipt(record, amount, checkout.get("currency"), invoice_id=invoice_id)
        )
    return record


# ----------------------------------------------------------------------
# Cancellation
# ----------------------------------------------------------------------

def cancel_subscription(
    db: Session,
    user: User,
    gateway: BillingGateway,
    notifier: NotificationService,
    reason: Optional[str] = "User requested cancellation",
    feedback: str = "other",
    immediate: bool = False,
) -> UserSubscription:
    """
    Cancel the user's subscription at period end (default) or immediately.

    The plan label drops to the base tier right away in both modes.

    Raises:
        HTTPException: 404 no subscription, 400 not active, 500 gateway refused
    """
    record = get_user_subscription(db, user.id)
    if not record or not record.stripe_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active subscription found")
    if not record.is_active_status():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Subscription is not active")

    cancelled = gateway.cancel_subscription(
        record.stripe_id,
        at_period_end=not immediate,
        reason=reason,
        feedback=feedback,
    )
    if cancelled is None:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to cancel subscription")

    gateway_status = normalize_status(cancelled.get("status"))
    record.status = gateway_status or record.status
    record.cancel_at_period_end = bool(cancelled.get("cancel_at_period_end"))
    record.user_cancelled = True

    # Missing gateway dates fall back to the stored period start
    apply_gateway_period(record, serialize_subscription(cancelled, now=record.current_period_start))

    ended_now = immediate or gateway_status == CANCELLED
    if ended_now:
        record.active = False

    user.subscription_plan = BASE_PLAN
    db.commit()
    db.refresh(record)

    logger.info(
        f"Subscription cancelled: user_id={user.id}, stripe_id={record.stripe_id}, immediate={immediate}, "
        f"status={record.status}"
    )
    notifier.send_cancellation(user, record.plan_name(), record.current_period_end or datetime.utcnow(), ended_now)
    return record


# ----------------------------------------------------------------------
# Read side
# ----------------------------------------------------------------------

def refresh_subscription(db: Session, user: User, gateway: BillingGateway) -> UserSubscription:
    record = get_user_subscription(db, user.id)
    if not record or not record.stripe_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No subscription found")

    remote = gateway.get_subscription(record.stripe_id)
    if not remote:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found in billing gateway")

    apply_gateway_subscription(record, serialize_subscription(remote))
    db.commit()
    db.refresh(record)
    logger.info(f"Subscription refreshed: user_id={user.id}, status={record.status}")
    return record


def _payment_to_dict(payment: PaymentHistory) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "stripeInvoiceId": payment.stripe_invoice_id,
        "stripePaymentIntentId": payment.stripe_payment_intent_id,
        "amount": payment.amount,
        "currency": payment.currency,
        "status": payment.status,
        "paymentType": payment.payment_type,
        "description": payment.description or "Subscription payment",
        "invoiceUrl": payment.invoice_url,
        "paidAt": payment.paid_at.isoformat() if payment.paid_at else None,
        "dueDate": payment.due_date.isoformat() if payment.due_date else None,
        "createdAt": payment.created_at.isoformat() if payment.created_at else None,
    }


def get_payment_history(
    db: Session,
    user: User,
    gateway: BillingGateway,
    page: int = 1,
    limit: int = 20,
    year: Optional[str] = None,
    payment_status: Optional[str] = None,
) -> Dict[str, Any]:
    """Paginated ledger for the user, newest first, with missing invoice URLs filled in from the gateway."""
    query = db.query(PaymentHistory).filter(PaymentHistory.user_id == user.id)

    if year and year != "all":
        try:
            year_value = int(year)
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid year filter")
        query = query.filter(
            PaymentHistory.created_at >= datetime(year_value, 1, 1),
            PaymentHistory.created_at < datetime(year_value + 1, 1, 1),
        )
    if payment_status and payment_status != "all":
        query = query.filter(PaymentHistory.status == payment_status)

    total = query.count()
    payments = (
        query.order_by(PaymentHistory.created_at.desc(), PaymentHistory.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    enriched = False
    for payment in payments:
        if payment.invoice_url or not payment.stripe_invoice_id:
            continue
        try:
            invoice = gateway.get_invoice_by_id(payment.stripe_invoice_id)
        except Exception as e:
            logger.warning(f"Invoice URL lookup failed: invoice_id={payment.stripe_invoice_id}, error={e}")
            continue
        url = invoice and (invoice.get("hosted_invoice_url") or invoice.get("invoice_pdf"))
        if url:
            payment.invoice_url = url
            enriched = True
    if enriched:
        db.commit()

    return {
        "payments": [_payment_to_dict(p) for p in payments],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        },
    }


def _invoice_amount(invoice: Dict[str, Any], *keys: str) -> float:
    for key in keys:
        if invoice.get(key):
            return invoice[key] / 100
    return 0.0


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def get_current_invoice(db: Session, user: User, gateway: BillingGateway) -> Dict[str, Any]:
    record = get_user_subscription(db, user.id)
    if not record or not record.stripe_customer_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active subscription found")

    invoice = gateway.get_upcoming_invoice(record.stripe_customer_id)
    if not invoice:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No invoice found")

    created = timestamp_to_datetime(invoice.get("created"))
    return {
        "id": invoice.get("id"),
        "amount": _invoice_amount(invoice, "amount_due", "amount_paid", "total"),
        "currency": invoice.get("currency") or "usd",
        "dueDate": _iso(timestamp_to_datetime(invoice.get("due_date")) or created),
        "periodStart": _iso(timestamp_to_datetime(invoice.get("period_start")) or created),
        "periodEnd": _iso(timestamp_to_datetime(invoice.get("period_end"))),
        "hostedInvoiceUrl": invoice.get("hosted_invoice_url"),
        "invoicePdf": invoice.get("invoice_pdf"),
        "status": invoice.get("status") or "draft",
    }


def get_invoice(db: Session, user: User, invoice_id: str, gateway: BillingGateway) -> Dict[str, Any]:
    record = get_user_subscription(db, user.id)
    if not record or not record.stripe_customer_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active subscription found")

    invoice = gateway.get_invoice_by_id(invoice_id)
    if not invoice or (invoice.get("customer") and invoice.get("customer") != record.stripe_customer_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")

    return {
        "id": invoice.get("id"),
        "amount": _invoice_amount(invoice, "amount_paid", "amount_due", "total"),
        "currency": invoice.get("currency") or "usd",
        "hostedInvoiceUrl": invoice.get("hosted_invoice_url"),
        "invoicePdf": invoice.get("invoice_pdf"),
        "status": invoice.get("status") or "draft",
        "created": _iso(timestamp_to_datetime(invoice.get("created"))),
    }


def get_subscription_status(db: Session, user: User) -> Dict[str, Any]:
    """Subscription summary with pitch usage and the plan's feature flags."""
    record = get_user_subscription(db, user.id)
    published = count_published_pitches(db, user.id)
    caps = get_capabilities(user.role, user.subscription_plan)

    return {
        "user": {
            "id": user.id,
            "fullName": user.full_name,
            "role": user.role,
            "subscriptionPlan": user.subscription_plan,
            "countryName": user.country_name,
        },
        "subscription": record.serialize() if record else None,
        "pitchUsage": {
            "published": published,
            "limit": caps.pitch_limit,
            "remaining": max(0, caps.pitch_limit - published),
            "canAddMore": published < caps.pitch_limit,
        },
        "features": {
            "globalVisibility": caps.global_visibility,
            "documentsAllowed": caps.documents_allowed,
            "investorAccessGlobal": caps.investor_access_global,
            "featuredInSearch": caps.featured_in_search,
        },
    }
