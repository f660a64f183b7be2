"""
Business Calendar
=================

Date arithmetic against a weekly working schedule, holidays and a
timezone. Schedule times are wall-clock times in the calendar's
timezone; inputs and outputs are aware datetimes, results are UTC.
"""

from datetime import datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from servicedesk.core.exceptions import ConfigurationException
from servicedesk.sla.domain.entities import BusinessHours, BusinessSchedule


def weekday_index(day) -> int:
    """Python weekday (Monday = 0) to schedule day (Sunday = 0)."""
    return (day.weekday() + 1) % 7


class BusinessCalendar:
    """
    Stateless business-hours calculator.

    Usage:
        due = BusinessCalendar.add_business_minutes(created_at, 240, policy.business_hours)
    """

    @staticmethod
    def is_working(instant: datetime, business_hours: BusinessHours) -> bool:
        """Check whether instant falls inside a working window."""
        tz = _zone(business_hours)
        local = instant.astimezone(tz)
        entry = _working_entry(business_hours, local)
        if entry is None:
            return False
        return entry.opens_at <= local.time() < entry.closes_at

    @staticmethod
    def add_business_minutes(
        start: datetime,
        minutes: float,
        business_hours: BusinessHours
    ) -> datetime:
        """
        Add working minutes to start, skipping closed hours, non-working
        days and holidays.

        Raises:
            ConfigurationException: If the schedule has no working window
                or the timezone is unknown
        """
        tz = _zone(business_hours)
        if not any(entry.has_window for entry in business_hours.schedule):
            raise ConfigurationException(
                "Business hours define no working day",
                {"timezone": business_hours.timezone}
            )

        remaining = timedelta(minutes=minutes)
        if remaining <= timedelta(0):
            return start.astimezone(timezone.utc)

        cursor = start.astimezone(timezone.utc)
        while True:
            local_day = cursor.astimezone(tz).date()
            entry = _working_entry(business_hours, cursor.astimezone(tz))

            if entry is not None:
                day_start = _at(local_day, entry.opens_at, tz)
                day_end = _at(local_day, entry.closes_at, tz)

                if cursor < day_start:
                    cursor = day_start

                if day_start <= cursor < day_end:
                    available = day_end - cursor
                    if available >= remaining:
                        return cursor + remaining
                    remaining -= available

            cursor = _at(local_day + timedelta(days=1), time.min, tz)

    @classmethod
    def due_date(
        cls,
        start: datetime,
        hours: float,
        business_hours_only: bool,
        business_hours: Optional[BusinessHours] = None
    ) -> datetime:
        """Due date for a target of hours, in business time when requested."""
        if not business_hours_only or business_hours is None:
            return start.astimezone(timezone.utc) + timedelta(hours=hours)
        return cls.add_business_minutes(start, hours * 60, business_hours)


def _zone(business_hours: BusinessHours) -> ZoneInfo:
    try:
        return ZoneInfo(business_hours.timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationException(
            f"Unknown business timezone {business_hours.timezone!r}"
        ) from exc


def _working_entry(business_hours: BusinessHours, local: datetime) -> Optional[BusinessSchedule]:
    if local.date() in business_hours.holidays:
        return None
    entry = business_hours.entry_for(weekday_index(local))
    if entry is None or not entry.has_window:
        return None
    return entry


def _at(day, at: time, tz: ZoneInfo) -> datetime:
    """Local wall-clock time on day, as UTC."""
    return datetime.combine(day, at, tzinfo=tz).astimezone(timezone.utc)
