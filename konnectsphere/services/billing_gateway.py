"""
Billing gateway adapter for Stripe.

Translates local subscription intents (customers, products, prices, checkout,
cancellation, invoices) into Stripe API calls and normalizes the responses
into plain dictionaries. Any SDK failure surfaces as BillingGatewayError; no
retries happen at this layer.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import stripe

from konnectsphere.core.billing_periods import derive_period_end, timestamp_to_datetime
from konnectsphere.core.config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET
from konnectsphere.core.logging_config import sanitize_log_data
from konnectsphere.core.subscription_status import normalize_status

logger = logging.getLogger(__name__)

CHECKOUT_SESSION_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"

CANCELLATION_FEEDBACK = (
    "customer_service",
    "low_quality",
    "missing_features",
    "other",
    "switched_service",
    "too_complex",
    "too_expensive",
    "unused",
)


class BillingGatewayError(Exception):
    """Raised when a call to the billing gateway fails."""


class WebhookVerificationError(ValueError):
    """Raised when an inbound webhook cannot be authenticated or parsed."""


def to_plain(obj: Any) -> Any:
    """Convert a Stripe object (or list of them) into plain Python data."""
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, list):
        return [to_plain(item) for item in obj]
    if hasattr(obj, "to_dict"):
        obj = obj.to_dict()
    if isinstance(obj, dict):
        return {key: to_plain(value) for key, value in obj.items()}
    return obj


def _first_item(subscription: Dict[str, Any]) -> Dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def serialize_subscription(subscription: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Normalize a gateway subscription into local UserSubscription fields.

    The period start defaults to ``now`` when missing; the period end always
    goes through derive_period_end using the first item's billing interval.
    Newer API versions report periods on the subscription item rather than
    the subscription itself, so both places are read.

    ``interval`` is None when the payload carries no recurring interval; the
    end is then derived monthly here and callers that know the local price
    re-derive it with ``reported_period_end``.
    """
    subscription = to_plain(subscription) or {}
    item = _first_item(subscription)
    price = item.get("price") or {}
    interval = (price.get("recurring") or {}).get("interval")

    start = timestamp_to_datetime(
        subscription.get("current_period_start") or item.get("current_period_start")
    ) or (now or datetime.utcnow())
    reported_end = subscription.get("current_period_end") or item.get("current_period_end")

    customer = subscription.get("customer")
    if isinstance(customer, dict):
        customer = customer.get("id")

    return {
        "stripe_id": subscription.get("id"),
        "stripe_customer_id": customer,
        "status": normalize_status(subscription.get("status")),
        "current_period_start": start,
        "current_period_end": derive_period_end(start, interval, reported_end),
        "reported_period_end": reported_end,
        "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
        "billing_cycle_anchor": timestamp_to_datetime(subscription.get("billing_cycle_anchor")),
        "price_id": price.get("id"),
        "interval": interval,
    }


class BillingGateway:
    """Thin, stateless wrapper around the stripe SDK."""

    def __init__(self, api_key: Optional[str] = STRIPE_SECRET_KEY, webhook_secret: Optional[str] = STRIPE_WEBHOOK_SECRET):
        self.webhook_secret = webhook_secret
        if api_key:
            stripe.api_key = api_key
        else:
            logger.warning("STRIPE_SECRET_KEY not configured - billing features disabled")

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    def create_customer(self, email: str, name: str, metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        try:
            customer = stripe.Customer.create(email=email, name=name, metadata=metadata or {})
        except stripe.error.StripeError as e:
            logger.error(f"Stripe error creating customer: {e}")
            raise BillingGatewayError(f"Failed to create customer: {e}") from e
        logger.info(f"Created Stripe customer: customer_id={customer.id}")
        return to_plain(customer)

    def get_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        """Return the customer, or None when it no longer exists or was deleted."""
        try:
            customer = to_plain(stripe.Customer.retrieve(customer_id))
        except stripe.error.InvalidRequestError:
            logger.warning(f"Stripe customer not found: customer_id={customer_id}")
            return None
        except stripe.error.StripeError as e:
            logger.error(f"Stripe error retrieving customer: {e}")
            raise BillingGatewayError(f"Failed to retrieve customer: {e}") from e
        if customer.get("deleted"):
            return None
        return customer

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def create_product(self, name: str, description: Optional[str] = None, metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"name": name, "metadata": metadata or {}}
        if description:
            params["description"] = description
        try:
            product = stripe.Product.create(**params)
        except stripe.error.StripeError as e:
            logger.error(f"Stripe error creating product: {e}")
            raise BillingGatewayError(f"Failed to create product: {e}") from e
        logger.info(f"Created Stripe product: product_id={product.id}, name={name}")
        return to_plain(product)

    def create_price(self, product_id: str, unit_amount: int, currency: str, interval: str) -> Dict[str, Any]:
        try:
            price = stripe.Price.create(
                product=product_id,
                unit_amount=unit_amount,
                currency=currency,
                recurring={"interval": interval},
            )
        except stripe.error.StripeError as e:
            logger.error(f"Stripe error creating price: {e}")
            raise BillingGatewayError(f"Failed to create price: {e}") from e
        logger.info(f"Created Stripe price: price_id={price.id}, product_id={product_id}, amount={unit_amount}, interval={interval}")
        return to_plain(price)

    def verify_product(self, product_id: Optional[str]) -> bool:
        """True when the stored product id still exists and is not archived."""
        if not product_id:
            return False
        try:
            product = to_plain(stripe.Product.retrieve(product_id))
        except stripe.error.InvalidRequestError:
            return False
        except stripe.error.StripeError as e:
            raise BillingGatewayError(f"Failed to verify product: {e}") from e
        return product.get("active") is not False

    def verify_price(self, price_id: Optional[str]) -> bool:
        """True when the stored price id still exists and is not archived."""
        if not price_id:
            return False
        try:
            price = to_plain(stripe.Price.retrieve(price_id))
        except stripe.error.InvalidRequestError:
            return False
        except stripe.error.StripeError as e:
            raise BillingGatewayError(f"Failed to verify price: {e}") from e
        return price.get("active") is not False

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Create a hosted subscription checkout session.

        Args:
            customer_id: Stripe customer ID
            price_id: Stripe price ID
            success_url: Redirect after payment; the session id placeholder is
                appended when missing
            cancel_url: Redirect when the user abandons checkout
            metadata: Copied onto both the session and the subscription

        Returns:
            Dictionary with the session ``id`` and ``url``
        """
        if CHECKOUT_SESSION_PLACEHOLDER not in success_url:
            separator = "&" if "?" in success_url else "?"
            success_url = f"{success_url}{separator}session_id={CHECKOUT_SESSION_PLACEHOLDER}"

        metadata = metadata or {}
        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                payment_method_types=["card"],
                mode="subscription",
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=success_url,
                cancel_url=cancel_url,
                billing_address_collection="required",
                allow_promotion_codes=True,
                metadata=metadata,
                subscription_data={"metadata": metadata},
            )
        except stripe.error.StripeError as e:
            logger.error(f"Stripe error creating checkout session: {e}")
            raise BillingGatewayError(f"Failed to create checkout session: {e}") from e

        logger.info(f"Created checkout session: session_id={session.id}, customer_id={customer_id}, metadata={sanitize_log_data(metadata)}")
        return {"id": session.id, "url": session.url}

    def get_checkout_session(self, session_id: str) -> Dict[str, Any]:
        try:
            session = stripe.checkout.Session.retrieve(session_id, expand=["subscription", "customer"])
        except stripe.error.StripeError as e:
            logger.error(f"Stripe error retrieving checkout session: {e}")
            raise BillingGatewayError(f"Failed to retrieve checkout session: {e}") from e
        return to_plain(session)

    def get_checkout_customer_plan(self, session_id: str) -> Dict[str, Any]:
        """
        Resolve what a completed checkout session bought.

        Returns:
            Dictionary with customer_id, price_id, subscription_id, the
            serialized subscription, payment status and the initial invoice
            details used for the payment ledger.
        """
        session = self.get_checkout_session(session_id)

        subscription = session.get("subscription")
        if isinstance(subscription, str):
            subscription = self.get_subscription(subscription)
        if not subscription:
            raise BillingGatewayError(f"Checkout session has no subscription: session_id={session_id}")

        customer = session.get("customer")
        if isinstance(customer, dict):
            customer = customer.get("id")

        serialized = serialize_subscription(subscription)
        invoice = session.get("invoice")
        if isinstance(invoice, dict):
            invoice = invoice.get("id")
        if not invoice:
            invoice = subscription.get("latest_invoice")
            if isinstance(invoice, dict):
                invoice = invoice.get("id")

        return {
            "customer_id": customer or serialized["stripe_customer_id"],
            "price_id": serialized["price_id"],
            "subscription_id": serialized["stripe_id"],
            "subscription": serialized,
            "payment_status": session.get("payment_status"),
            "session_status": session.get("status"),
            "amount_total": session.get("amount_total"),
            "currency": session.get("currency"),
            "invoice_id": invoice,
            "payment_intent_id": session.get("payment_intent"),
        }

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def get_subscription(self, subscription_id: str) -> Optional[Dict[str, Any]]:
        """Return the gateway subscription, or None when it does not exist."""
        try:
            return to_plain(stripe.Subscription.retrieve(subscription_id))
        except stripe.error.InvalidRequestError:
            logger.warning(f"Stripe subscription not found: subscription_id={subscription_id}")
            return None
        except stripe.error.StripeError as e:
            logger.error(f"Stripe error retrieving subscription: {e}")
            raise BillingGatewayError(f"Failed to retrieve subscription: {e}") from e

    def cancel_subscription(
        self,
        subscription_id: str,
        at_period_end: bool = True,
        reason: Optional[str] = None,
        feedback: str = "other",
    ) -> Optional[Dict[str, Any]]:
        """
        Cancel a subscription at period end or immediately.

        Returns:
            The updated gateway subscription, or None if it no longer exists.
        """
        details: Dict[str, Any] = {"feedback": feedback if feedback in CANCELLATION_FEEDBACK else "other"}
        if reason:
            details["comment"] = reason[:500]
        try:
            if at_period_end:
                subscription = stripe.Subscription.modify(
                    subscription_id,
                    cancel_at_period_end=True,
                    cancellation_details=details,
                )
            else:
                subscription = stripe.Subscription.cancel(subscription_id, cancellation_details=details)
        except stripe.error.InvalidRequestError as e:
            logger.warning(f"Stripe subscription could not be cancelled: subscription_id={subscription_id}, error={e}")
            return None
        except stripe.error.StripeError as e:
            logger.error(f"Stripe error cancelling subscription: {e}")
            raise BillingGatewayError(f"Failed to cancel subscription: {e}") from e

        logger.info(f"Cancelled Stripe subscription: subscription_id={subscription_id}, at_period_end={at_period_end}")
        return to_plain(subscription)

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def get_upcoming_invoice(self, customer_id: str) -> Optional[Dict[str, Any]]:
        """Most recent paid invoice for the customer, else the most recent invoice of any status."""
        try:
            paid = stripe.Invoice.list(customer=customer_id, status="paid", limit=1)
            invoices: List[Any] = list(paid.data)
            if not invoices:
                recent = stripe.Invoice.list(customer=customer_id, limit=1)
                invoices = list(recent.data)
        except stripe.error.StripeError as e:
            logger.error(f"Stripe error listing invoices: {e}")
            raise BillingGatewayError(f"Failed to list invoices: {e}") from e
        return to_plain(invoices[0]) if invoices else None

    def get_invoice_by_id(self, invoice_id: str) -> Optional[Dict[str, Any]]:
        try:
            return to_plain(stripe.Invoice.retrieve(invoice_id))
        except stripe.error.InvalidRequestError:
            return None
        except stripe.error.StripeError as e:
            logger.error(f"Stripe error retrieving invoice: {e}")
            raise BillingGatewayError(f"Failed to retrieve invoice: {e}") from e

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def verify_webhook(self, request_body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Raises:
            WebhookVerificationError: Missing secret/signature, bad payload or
                signature mismatch
        """
        if not self.webhook_secret:
            raise WebhookVerificationError("STRIPE_WEBHOOK_SECRET not configured")
        if not signature:
            raise WebhookVerificationError("Missing Stripe-Signature header")

        try:
            event = stripe.Webhook.construct_event(request_body, signature, self.webhook_secret)
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {e}")
            raise WebhookVerificationError(f"Invalid webhook payload: {e}") from e
        except stripe.error.SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {e}")
            raise WebhookVerificationError(f"Invalid signature: {e}") from e

        logger.info(f"Verified webhook event: {event['type']}, id={event['id']}")
        return to_plain(event)
