"""
Weekly hour ledger for tutors.

The week runs Sunday 00:00 to the following Sunday 00:00 in QUOTA_TIMEZONE. It is
anchored to `as_of` (the call time), not to the start of the session being
booked: a booking for next week is checked against this week's usage.
"""

from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.enums import QUOTA_SESSION_STATUSES
from app.core.exceptions import QuotaExceededError
from app.core.models import Tutor, TutoringSession
from app.db.types import as_utc

from .schemas import QuotaUsage

logger = structlog.get_logger(__name__)

SECONDS_PER_HOUR = 3600


def quota_timezone() -> tzinfo:
    return ZoneInfo(settings.quota_timezone)


def week_window(as_of: datetime, tz: Optional[tzinfo] = None) -> Tuple[datetime, datetime]:
    """[start, end) of the Sunday-Saturday week containing `as_of`, returned in UTC."""
    tz = tz or quota_timezone()
    local = as_utc(as_of).astimezone(tz)
    # datetime.weekday(): Monday=0 .. Sunday=6
    days_since_sunday = (local.weekday() + 1) % 7
    sunday = local.date() - timedelta(days=days_since_sunday)
    start = datetime.combine(sunday, time.min, tzinfo=tz)
    end = datetime.combine(sunday + timedelta(days=7), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def duration_hours(start_time: datetime, end_time: datetime) -> float:
    return (end_time - start_time).total_seconds() / SECONDS_PER_HOUR


async def _seconds_used(
    db: AsyncSession,
    tutor_id: int,
    week_start: datetime,
    week_end: datetime,
    exclude_session_id: Optional[int] = None,
) -> float:
    q = select(TutoringSession.start_time, TutoringSession.end_time).where(
        TutoringSession.tutor_id == tutor_id,
        TutoringSession.status.in_(list(QUOTA_SESSION_STATUSES)),
        TutoringSession.start_time >= week_start,
        TutoringSession.start_time < week_end,
    )
    if exclude_session_id is not None:
        q = q.where(TutoringSession.id != exclude_session_id)
    rows = (await db.execute(q)).all()
    return sum((end - start).total_seconds() for start, end in rows)


async def weekly_usage(
    db: AsyncSession,
    tutor: Tutor,
    as_of: datetime,
    exclude_session_id: Optional[int] = None,
) -> QuotaUsage:
    week_start, week_end = week_window(as_of)
    seconds = await _seconds_used(db, tutor.user_id, week_start, week_end, exclude_session_id)
    return QuotaUsage(
        tutor_id=tutor.user_id,
        week_start=week_start,
        week_end=week_end,
        hours_used=seconds / SECONDS_PER_HOUR,
        weekly_limit=tutor.hourly_limit,
    )


async def ensure_within_quota(
    db: AsyncSession,
    tutor: Tutor,
    new_duration_hours: float,
    as_of: datetime,
    exclude_session_id: Optional[int] = None,
) -> QuotaUsage:
    """Admit `new_duration_hours` iff used + new <= hourly_limit; QuotaExceededError otherwise.

    Must run under the tutor's lock together with the insert/update it guards.
    """
    usage = await weekly_usage(db, tutor, as_of, exclude_session_id)
    # Compare in whole seconds so fractional hours do not drift
    used_seconds = round(usage.hours_used * SECONDS_PER_HOUR)
    new_seconds = round(new_duration_hours * SECONDS_PER_HOUR)
    if used_seconds + new_seconds > tutor.hourly_limit * SECONDS_PER_HOUR:
        logger.info(
            "quota_exceeded",
            tutor_id=tutor.user_id,
            hours_used=usage.hours_used,
            attempting_to_add=new_duration_hours,
            weekly_limit=tutor.hourly_limit,
        )
        raise QuotaExceededError(
            hours_used=usage.hours_used,
            attempting_to_add=new_duration_hours,
            weekly_limit=tutor.hourly_limit,
        )
    return usage
