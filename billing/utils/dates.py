import calendar
from datetime import datetime, timezone
from typing import Optional

from dateutil.relativedelta import relativedelta

# Stored on SubscriptionPayment.expiry_extended for lifetime plans
LIFETIME_SENTINEL = datetime(2099, 12, 31)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every billing column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def add_months(value: datetime, months: int) -> datetime:
    # relativedelta clamps to the last day of the target month (Jan 31 -> Feb 28/29)
    return value + relativedelta(months=months)


def add_years(value: datetime, years: int) -> datetime:
    return value + relativedelta(years=years)


def day_in_month(year: int, month: int, day: int) -> datetime:
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, min(day, last_day))


def months_between(start: datetime, end: datetime) -> int:
    return (end.year - start.year) * 12 + (end.month - start.month)


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)
