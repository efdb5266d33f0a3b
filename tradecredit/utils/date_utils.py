"""Date manipulation utilities"""

from datetime import date, datetime, timedelta, timezone


def utc_now() -> datetime:
    """Timezone-aware current time in UTC"""
    return datetime.now(timezone.utc)


def utc_today() -> date:
    return utc_now().date()


def add_calendar_days(from_date: date, days: int) -> date:
    """Add calendar days to a date (payment terms count calendar days, not business days)"""
    return from_date + timedelta(days=days)
