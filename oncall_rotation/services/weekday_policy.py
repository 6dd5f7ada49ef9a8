# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Service: weekday policy, when rotation announcements are deferred."""

from datetime import datetime, time, timedelta, tzinfo

from oncall_rotation.services.sprint_windows import to_local

WEEKEND = (5, 6)  # Saturday, Sunday


def is_business_day(now: datetime, tz: tzinfo) -> bool:
    return to_local(now, tz).weekday() not in WEEKEND


def should_defer(now: datetime, tz: tzinfo) -> bool:
    """Announcements triggered on a non-business day are postponed."""
    return not is_business_day(now, tz)


def next_business_day(now: datetime, tz: tzinfo, hour: int) -> datetime:
    """The next business day after ``now`` at ``hour``:00 in the canonical zone."""
    day = to_local(now, tz).date() + timedelta(days=1)
    while day.weekday() in WEEKEND:
        day += timedelta(days=1)
    return datetime.combine(day, time(hour, 0), tzinfo=tz)
