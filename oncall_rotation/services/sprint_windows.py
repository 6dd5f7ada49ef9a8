# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Sprint window resolution. Pure computation, no I/O.

Decides which sprint is current for an instant. Adjacent sprints share their
boundary date; on that day the earlier sprint stays current until the cutover
time in the canonical zone, the later one from the cutover onwards.
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from oncall_rotation.models.domain import DateLike, Sprint

DEFAULT_CUTOVER = time(8, 0)


def to_calendar_date(value: DateLike) -> date:
    """
    Calendar date of a sprint boundary regardless of representation.

    Datetimes are midnight-truncated dates, so their own date component is the
    boundary; converting them between zones would shift the day.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) > 10:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    return date.fromisoformat(text)


def to_local(now: datetime, tz: tzinfo) -> datetime:
    """Convert ``now`` into the canonical zone. Naive values are taken as UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz)


def contains(sprint: Sprint, day: date) -> bool:
    return to_calendar_date(sprint.start_date) <= day <= to_calendar_date(sprint.end_date)


def resolve_current_sprint(
    sprints: Iterable[Sprint],
    now: datetime,
    tz: tzinfo = ZoneInfo("America/Los_Angeles"),
    cutover: time = DEFAULT_CUTOVER,
) -> Optional[Sprint]:
    """
    The single current sprint at ``now``, or None outside the schedule.

    Ties are broken by index, never by input order: at/after cutover the
    highest-index candidate wins; before cutover only candidates that started
    on an earlier day are eligible (if any), and the highest of those wins.
    """
    local = to_local(now, tz)
    today = local.date()
    candidates = [s for s in sprints if contains(s, today)]
    if not candidates:
        return None
    if len(candidates) == 1:
        return candidates[0]

    if local.time() < cutover:
        started = [s for s in candidates if to_calendar_date(s.start_date) < today]
        if started:
            candidates = started
    return max(candidates, key=lambda s: s.index)


def find_next_sprint(sprints: Iterable[Sprint], current_index: int) -> Optional[Sprint]:
    """The sprint with the smallest index greater than ``current_index``."""
    later = [s for s in sprints if s.index > current_index]
    return min(later, key=lambda s: s.index) if later else None


def is_last_day(sprint: Sprint, now: datetime, tz: tzinfo) -> bool:
    """True when ``now`` falls on the sprint's end date in the canonical zone."""
    return to_local(now, tz).date() == to_calendar_date(sprint.end_date)


def hands_over_at_next_cutover(
    sprints: Iterable[Sprint],
    sprint: Sprint,
    now: datetime,
    tz: tzinfo,
    cutover: time = DEFAULT_CUTOVER,
) -> bool:
    """
    True on a sprint's last day of duty: its end date, or the day before an
    end date it shares with the next sprint, which takes over at that cutover.
    """
    if is_last_day(sprint, now, tz):
        return True
    tomorrow = to_local(now, tz).date() + timedelta(days=1)
    following = resolve_current_sprint(sprints, datetime.combine(tomorrow, cutover, tzinfo=tz), tz, cutover)
    return following is not None and following.index != sprint.index
