"""
Time-zone aware follow-up timing for missed calls.

A missed call gets two follow-ups: one two hours later, and one at 09:30
tenant-local time on the next weekday.
"""
import logging
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.conf import settings

logger = logging.getLogger(__name__)

BUSINESS_DAY_START = time(9, 30)
FIRST_FOLLOW_UP_DELAY = timedelta(hours=2)


def _zone(tz_name: str | None) -> ZoneInfo:
    fallback = settings.DEFAULT_TENANT_TIMEZONE
    try:
        return ZoneInfo(tz_name or fallback)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown time zone %r; using %s", tz_name, fallback)
        return ZoneInfo(fallback)


def compute_next_business_day_run_at(now: datetime, tz_name: str | None) -> datetime:
    """09:30 local on the next calendar day that is not a Saturday or Sunday, in UTC."""
    zone = _zone(tz_name)
    cursor = now.astimezone(zone).date()

    cursor += timedelta(days=1)
    while cursor.weekday() >= 5:
        cursor += timedelta(days=1)

    local_run_at = datetime.combine(cursor, BUSINESS_DAY_START, tzinfo=zone)
    return local_run_at.astimezone(timezone.utc)


def compute_missed_call_follow_up_run_times(now: datetime, tz_name: str | None) -> list[datetime]:
    return [
        now + FIRST_FOLLOW_UP_DELAY,
        compute_next_business_day_run_at(now, tz_name),
    ]
