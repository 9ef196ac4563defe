"""
Subscription lifecycle status values.

The billing gateway reports ``canceled`` while older local records and
internal paths use ``cancelled``. Both spellings are accepted on input and
stored as ``cancelled``. Other gateway statuses (``unpaid``, ``paused``,
``incomplete_expired``) are stored as reported.
"""
from typing import Optional, Tuple

INCOMPLETE = "incomplete"
TRIALING = "trialing"
ACTIVE = "active"
PAST_DUE = "past_due"
CANCELLED = "cancelled"
CANCELED = "canceled"

ACTIVE_STATUSES: Tuple[str, ...] = (ACTIVE, TRIALING)
CANCELLED_STATUSES: Tuple[str, ...] = (CANCELLED, CANCELED)


def normalize_status(status: Optional[str]) -> Optional[str]:
    """Normalize a gateway or local status string for storage."""
    if status is None:
        return None
    value = status.strip().lower()
    if value in CANCELLED_STATUSES:
        return CANCELLED
    return value


def is_active_status(status: Optional[str]) -> bool:
    return normalize_status(status) in ACTIVE_STATUSES
