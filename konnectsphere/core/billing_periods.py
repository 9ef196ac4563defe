"""
Billing period arithmetic.

Every ingestion of a gateway subscription goes through ``derive_period_end``:
the gateway occasionally reports a period end that is missing, unparseable or
not after the period start, and the local record must still carry a usable
end date.
"""
import calendar
from datetime import datetime
from typing import Any, Optional

MONTH = "month"
YEAR = "year"


def add_months(start: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of the target month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def add_interval(start: datetime, interval: Optional[str]) -> datetime:
    """Return ``start`` plus one billing interval (monthly unless ``year``)."""
    if interval == YEAR:
        return add_months(start, 12)
    return add_months(start, 1)


def derive_period_end(
    start: datetime,
    interval: Optional[str],
    reported_end: Optional[Any],
) -> datetime:
    """
    Derive the end of a billing period.

    Args:
        start: Period start
        interval: Billing interval (``month`` or ``year``); anything else is monthly
        reported_end: Period end reported by the gateway (datetime, unix
            timestamp or None)

    Returns:
        ``reported_end`` when it is valid and strictly after ``start``,
        otherwise ``start`` plus one interval.
    """
    end = reported_end
    if not isinstance(end, datetime):
        end = timestamp_to_datetime(end)
    if end is not None and end > start:
        return end
    return add_interval(start, interval)


def timestamp_to_datetime(value: Any) -> Optional[datetime]:
    """Convert a gateway unix timestamp to a naive UTC datetime."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return None
    if seconds <= 0:
        return None
    try:
        return datetime.utcfromtimestamp(seconds)
    except (OverflowError, OSError, ValueError):
        return None
