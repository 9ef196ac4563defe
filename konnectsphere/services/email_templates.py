"""
Transactional email templates.

Each render_* function returns a RenderedEmail with subject, plain-text body
and HTML body. User-supplied values are HTML-escaped before interpolation.
"""
from datetime import datetime
from html import escape
from typing import NamedTuple, Optional

from konnectsphere.core.config import FRONTEND_URL

BRAND = "KonnectSphere"


class RenderedEmail(NamedTuple):
    subject: str
    text: str
    html: str


def format_date(value: Optional[datetime]) -> str:
    if not value:
        return "N/A"
    return value.strftime("%A, %B %d, %Y").replace(" 0", " ")


def format_amount(amount: Optional[float], currency: Optional[str] = "usd") -> str:
    code = (currency or "usd").upper()
    value = amount or 0.0
    if code == "USD":
        return f"${value:,.2f}"
    return f"{value:,.2f} {code}"


def _layout(title: str, body_html: str, accent: str = "#2563eb") -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; color: #111827; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 24px; }}
        .header {{ text-align: center; border-bottom: 3px solid {accent}; padding-bottom: 12px; }}
        .header h1 {{ color: {accent}; margin: 8px 0; font-size: 22px; }}
        .content {{ padding: 20px 0; line-height: 1.6; }}
        .panel {{ background: #f9fafb; padding: 16px; border-radius: 8px; border-left: 4px solid {accent}; margin: 16px 0; }}
        .row {{ margin: 6px 0; }}
        .label {{ font-weight: 600; color: #374151; }}
        .cta {{ display: inline-block; background: {accent}; color: #ffffff; padding: 12px 24px; border-radius: 6px; text-decoration: none; }}
        .footer {{ text-align: center; margin-top: 32px; font-size: 12px; color: #6b7280; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h1>{escape(title)}</h1></div>
        <div class="content">
{body_html}
        </div>
        <div class="footer">&copy; {datetime.utcnow().year} {BRAND}. All rights reserved.</div>
    </div>
</body>
</html>"""


def _rows(*pairs) -> str:
    return "\n".join(
        f'            <div class="row"><span class="label">{escape(label)}:</span> {escape(str(value))}</div>'
        for label, value in pairs
    )


def _cta(url: str, label: str) -> str:
    return f'            <p style="text-align:center"><a class="cta" href="{escape(url, quote=True)}">{escape(label)}</a></p>'


# ----------------------------------------------------------------------
# Account
# ----------------------------------------------------------------------

def render_password_reset(user_name: str, reset_token: str, expiry_minutes: int) -> RenderedEmail:
    link = f"{FRONTEND_URL}/reset-password/{reset_token}"
    text = (
        f"Hello {user_name},\n\n"
        f"We received a request to reset your {BRAND} password. Use the link below within "
        f"{expiry_minutes} minutes:\n\n{link}\n\n"
        "If you did not request this, you can ignore this email."
    )
    html = _layout("Password Reset Request", f"""            <p>Hello {escape(user_name)},</p>
            <p>We received a request to reset your password. This link expires in {expiry_minutes} minutes.</p>
{_cta(link, "Reset Password")}
            <p>If you did not request this, you can ignore this email.</p>""")
    return RenderedEmail("Password Reset Request", text, html)


def render_password_reset_success(user_name: str) -> RenderedEmail:
    text = (
        f"Hello {user_name},\n\nYour {BRAND} password was changed successfully. "
        "If this wasn't you, contact support immediately."
    )
    html = _layout("Password Reset Successful", f"""            <p>Hello {escape(user_name)},</p>
            <p>Your password was changed successfully.</p>
            <p>If this wasn't you, contact support immediately.</p>
{_cta(f"{FRONTEND_URL}/login", "Log In")}""", accent="#10b981")
    return RenderedEmail("Password Reset Successful", text, html)


# ----------------------------------------------------------------------
# Subscription confirmations
# ----------------------------------------------------------------------

def _receipt_rows(receipt: dict) -> str:
    pairs = [
        ("Plan", receipt.get("plan_name")),
        ("Amount", format_amount(receipt.get("amount"), receipt.get("currency"))),
        ("Billing period", receipt.get("billing_period") or "monthly"),
        ("Payment date", format_date(receipt.get("payment_date"))),
    ]
    if receipt.get("next_billing_date"):
        pairs.append(("Next billing date", format_date(receipt.get("next_billing_date"))))
    if receipt.get("invoice_id"):
        pairs.append(("Invoice", receipt.get("invoice_id")))
    return _rows(*pairs)


def _receipt_text(receipt: dict) -> str:
    lines = [
        f"Plan: {receipt.get('plan_name')}",
        f"Amount: {format_amount(receipt.get('amount'), receipt.get('currency'))}",
        f"Payment date: {format_date(receipt.get('payment_date'))}",
    ]
    if receipt.get("next_billing_date"):
        lines.append(f"Next billing date: {format_date(receipt.get('next_billing_date'))}")
    if receipt.get("invoice_url"):
        lines.append(f"Invoice: {receipt.get('invoice_url')}")
    return "\n".join(lines)


def _receipt_panel(receipt: dict) -> str:
    panel = f"""            <div class="panel">
{_receipt_rows(receipt)}
            </div>"""
    if receipt.get("invoice_url"):
        panel += "\n" + _cta(receipt["invoice_url"], "View Invoice")
    return panel


def render_subscription_confirmation(user_name: str, receipt: dict) -> RenderedEmail:
    subject = "Your Subscription is Now Active"
    text = f"Hello {user_name},\n\nYour {receipt.get('plan_name')} subscription is now active.\n\n{_receipt_text(receipt)}"
    html = _layout(subject, f"""            <p>Hello {escape(user_name)},</p>
            <p>Your subscription is now active. Thank you for joining {BRAND}!</p>
{_receipt_panel(receipt)}""", accent="#10b981")
    return RenderedEmail(subject, text, html)


def render_basic_plan_confirmation(user_name: str, receipt: dict) -> RenderedEmail:
    subject = f"Your {BRAND} Basic Plan is Active"
    text = (
        f"Hello {user_name},\n\nYour Basic plan is active. You can publish 1 pitch visible to investors "
        f"in your country and attach supporting documents.\n\n{_receipt_text(receipt)}"
    )
    html = _layout(subject, f"""            <p>Hello {escape(user_name)},</p>
            <p>Your Basic plan is active. You can now:</p>
            <ul>
                <li>Publish 1 pitch</li>
                <li>Reach investors in your country</li>
                <li>Attach business plans and financial documents</li>
            </ul>
{_receipt_panel(receipt)}
{_cta(f"{FRONTEND_URL}/add-pitch", "Create Your Pitch")}""")
    return RenderedEmail(subject, text, html)


def render_premium_plan_confirmation(user_name: str, receipt: dict) -> RenderedEmail:
    subject = f"Your {BRAND} Premium Subscription Has Been Activated"
    text = (
        f"Hello {user_name},\n\nYour Premium subscription is active. You can publish up to 5 pitches "
        f"with global visibility and priority placement.\n\n{_receipt_text(receipt)}"
    )
    html = _layout(subject, f"""            <p>Hello {escape(user_name)},</p>
            <p>Your Premium subscription is active. You can now:</p>
            <ul>
                <li>Publish up to 5 pitches</li>
                <li>Be discovered by investors worldwide</li>
                <li>Appear first in investor searches</li>
            </ul>
{_receipt_panel(receipt)}
{_cta(f"{FRONTEND_URL}/enterpreneur/dashboard", "Go to Dashboard")}""", accent="#7c3aed")
    return RenderedEmail(subject, text, html)


def render_investor_plan_confirmation(user_name: str, receipt: dict) -> RenderedEmail:
    subject = f"Welcome to {BRAND} - Investor Access Confirmed"
    text = (
        f"Hello {user_name},\n\nYour Investor Access Plan is active for one year. You can browse pitches "
        f"from every country.\n\n{_receipt_text(receipt)}"
    )
    html = _layout(subject, f"""            <p>Hello {escape(user_name)},</p>
            <p>Your annual Investor Access Plan is active. Pitches from every country are now open to you.</p>
{_receipt_panel(receipt)}
{_cta(f"{FRONTEND_URL}/explore-pitches", "Explore Pitches")}""")
    return RenderedEmail(subject, text, html)


# ----------------------------------------------------------------------
# Lifecycle
# ----------------------------------------------------------------------

def render_subscription_cancellation(user_name: str, plan_name: str, cancel_date: datetime, immediate: bool) -> RenderedEmail:
    if immediate:
        subject = "Your Subscription Has Been Cancelled"
        detail = f"Your {plan_name} subscription was cancelled on {format_date(cancel_date)}."
    else:
        subject = "Your Subscription Will End Soon"
        detail = (
            f"Your {plan_name} subscription will not renew and ends on {format_date(cancel_date)}. "
            "Premium features were switched off when you cancelled."
        )
    text = f"Hello {user_name},\n\n{detail}\n\nYou can resubscribe at any time from the pricing page."
    html = _layout(subject, f"""            <p>Hello {escape(user_name)},</p>
            <p>{escape(detail)}</p>
{_cta(f"{FRONTEND_URL}/pricing", "View Plans")}""", accent="#f59e0b")
    return RenderedEmail(subject, text, html)


def render_renewal_reminder(user_name: str, plan_name: str, renewal_date: datetime) -> RenderedEmail:
    subject = "Your Subscription Will Renew Soon"
    text = f"Hello {user_name},\n\nYour {plan_name} subscription renews on {format_date(renewal_date)}."
    html = _layout(subject, f"""            <p>Hello {escape(user_name)},</p>
            <p>Your {escape(plan_name)} subscription renews on <strong>{format_date(renewal_date)}</strong>.</p>
{_cta(f"{FRONTEND_URL}/account", "Manage Subscription")}""")
    return RenderedEmail(subject, text, html)


def render_two_day_expiration_reminder(user_name: str, plan_name: str, expiration_date: datetime) -> RenderedEmail:
    subject = "Your Subscription Expires in 2 Days"
    text = (
        f"Hello {user_name},\n\nYour {plan_name} subscription expires on {format_date(expiration_date)}. "
        "Renew to keep your pitches visible."
    )
    html = _layout(subject, f"""            <p>Hello {escape(user_name)},</p>
            <p>Your {escape(plan_name)} subscription expires on <strong>{format_date(expiration_date)}</strong>.</p>
            <p>Renew now to keep your pitches and investor access uninterrupted.</p>
{_cta(f"{FRONTEND_URL}/pricing", "Renew Subscription")}""", accent="#f59e0b")
    return RenderedEmail(subject, text, html)


def render_subscription_expired(user_name: str, plan_name: Optional[str], due_balance: Optional[dict] = None) -> RenderedEmail:
    plan_label = plan_name or "subscription"
    if due_balance:
        subject = "Subscription Expired - Payment Due"
        balance_text = (
            f"\n\nOutstanding invoice: {format_amount(due_balance.get('amount'), due_balance.get('currency'))} "
            f"due {format_date(due_balance.get('due_date'))}."
        )
        balance_html = f"""            <div class="panel">
{_rows(("Outstanding amount", format_amount(due_balance.get("amount"), due_balance.get("currency"))),
       ("Due date", format_date(due_balance.get("due_date"))),
       ("Plan", due_balance.get("plan_name") or plan_label))}
            </div>"""
        if due_balance.get("invoice_url"):
            balance_html += "\n" + _cta(due_balance["invoice_url"], "Pay Invoice")
    else:
        subject = "Your Subscription Has Ended"
        balance_text = ""
        balance_html = ""

    text = f"Hello {user_name},\n\nYour {plan_label} has expired and premium access has been removed.{balance_text}"
    html = _layout(subject, f"""            <p>Hello {escape(user_name)},</p>
            <p>Your {escape(plan_label)} has expired and premium access has been removed.</p>
{balance_html}
{_cta(f"{FRONTEND_URL}/pricing", "Resubscribe")}""", accent="#dc2626")
    return RenderedEmail(subject, text, html)


def render_pitch_hidden(user_name: str, pitch_count: int) -> RenderedEmail:
    subject = "Your Pitch is Currently Hidden and Your Access is Denied"
    noun = "pitch is" if pitch_count == 1 else "pitches are"
    text = (
        f"Hello {user_name},\n\nYour subscription is no longer active, so your {pitch_count} published "
        f"{noun} hidden from investors. Renew to make them visible again."
    )
    html = _layout(subject, f"""            <p>Hello {escape(user_name)},</p>
            <p>Your subscription is no longer active, so your {pitch_count} published {noun} hidden from investors.</p>
{_cta(f"{FRONTEND_URL}/pricing", "Reactivate")}""", accent="#dc2626")
    return RenderedEmail(subject, text, html)


# ----------------------------------------------------------------------
# Payments
# ----------------------------------------------------------------------

def render_payment_failure(user_name: str, invoice: dict) -> RenderedEmail:
    plan_name = invoice.get("plan_name") or "subscription"
    subject = f"Payment Failed - Action Required for Your {plan_name} Plan"
    text = (
        f"Hello {user_name},\n\nWe couldn't process {format_amount(invoice.get('amount'), invoice.get('currency'))} "
        f"for your {plan_name} plan (attempt {invoice.get('attempt_count', 1)}). "
        f"We'll retry on {format_date(invoice.get('next_retry_date'))}. Please update your payment method."
    )
    html = _layout(subject, f"""            <p>Hello {escape(user_name)},</p>
            <p>We couldn't process your latest payment. Your access is paused until payment succeeds.</p>
            <div class="panel">
{_rows(("Plan", plan_name),
       ("Amount", format_amount(invoice.get("amount"), invoice.get("currency"))),
       ("Attempt", invoice.get("attempt_count", 1)),
       ("Next retry", format_date(invoice.get("next_retry_date"))))}
            </div>
{_cta(invoice.get("invoice_url") or f"{FRONTEND_URL}/account", "Update Payment Method")}""", accent="#dc2626")
    return RenderedEmail(subject, text, html)


def render_payment_action_required(user_name: str, invoice: dict) -> RenderedEmail:
    plan_name = invoice.get("plan_name") or "subscription"
    subject = f"Payment Authentication Required - {plan_name} Plan"
    text = (
        f"Hello {user_name},\n\nYour bank needs you to confirm a payment of "
        f"{format_amount(invoice.get('amount'), invoice.get('currency'))} for your {plan_name} plan."
    )
    if invoice.get("invoice_url"):
        text += f"\n\nConfirm here: {invoice['invoice_url']}"
    html = _layout(subject, f"""            <p>Hello {escape(user_name)},</p>
            <p>Your bank needs you to confirm this payment before it can complete.</p>
            <div class="panel">
{_rows(("Plan", plan_name), ("Amount", format_amount(invoice.get("amount"), invoice.get("currency"))))}
            </div>
{_cta(invoice.get("invoice_url") or f"{FRONTEND_URL}/account", "Confirm Payment")}""", accent="#f59e0b")
    return RenderedEmail(subject, text, html)


def render_subscription_past_due(user_name: str, plan_name: str, amount_due: float, currency: str) -> RenderedEmail:
    subject = f"Subscription Past Due - {plan_name} Plan"
    text = (
        f"Hello {user_name},\n\nYour {plan_name} subscription is past due "
        f"({format_amount(amount_due, currency)} outstanding)."
    )
    html = _layout(subject, f"""            <p>Hello {escape(user_name)},</p>
            <p>Your {escape(plan_name)} subscription is past due with {format_amount(amount_due, currency)} outstanding.</p>
{_cta(f"{FRONTEND_URL}/account", "Pay Now")}""", accent="#dc2626")
    return RenderedEmail(subject, text, html)


def render_upcoming_payment(user_name: str, invoice: dict) -> RenderedEmail:
    plan_name = invoice.get("plan_name") or "subscription"
    subject = f"Upcoming Payment: {plan_name} Plan Renewal"
    text = (
        f"Hello {user_name},\n\nYour {plan_name} plan renews on {format_date(invoice.get('due_date'))} for "
        f"{format_amount(invoice.get('amount'), invoice.get('currency'))}."
    )
    html = _layout(subject, f"""            <p>Hello {escape(user_name)},</p>
            <p>Your plan renews soon.</p>
            <div class="panel">
{_rows(("Plan", plan_name),
       ("Amount", format_amount(invoice.get("amount"), invoice.get("currency"))),
       ("Payment date", format_date(invoice.get("due_date"))))}
            </div>""")
    return RenderedEmail(subject, text, html)


def render_recurring_payment_success(user_name: str, receipt: dict) -> RenderedEmail:
    subject = f"Payment Successful - {receipt.get('plan_name')} Renewed"
    text = f"Hello {user_name},\n\nYour subscription renewed successfully.\n\n{_receipt_text(receipt)}"
    html = _layout(subject, f"""            <p>Hello {escape(user_name)},</p>
            <p>Your subscription renewed successfully.</p>
{_receipt_panel(receipt)}""", accent="#10b981")
    return RenderedEmail(subject, text, html)
