"""
Free-Slot Finder

Searches an assignee's calendar for free windows inside business hours.
Business hours are wall-clock times in the configured timezone; every
returned slot is a timezone-aware UTC datetime.
"""
import datetime as dt
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from src.config import get_settings
from src.models.calendar import BusinessHours, CalendarEvent
from src.repositories.calendar_events import CalendarEventRepository
from src.utils.observability import logger


def ceil_to_granularity(moment: dt.datetime, granularity_minutes: int) -> dt.datetime:
    """Round up to the next granularity boundary (a boundary maps to itself)."""
    floored = moment.replace(
        minute=moment.minute - moment.minute % granularity_minutes,
        second=0,
        microsecond=0,
    )
    if floored < moment:
        floored += dt.timedelta(minutes=granularity_minutes)
    return floored


def business_window(day: dt.date, business_hours: BusinessHours) -> tuple[dt.datetime, dt.datetime]:
    """UTC bounds of one day's business hours."""
    tz = ZoneInfo(business_hours.timezone)
    start = dt.datetime.combine(day, business_hours.start_time, tzinfo=tz)
    end = dt.datetime.combine(day, business_hours.end_time, tzinfo=tz)
    return start.astimezone(dt.UTC), end.astimezone(dt.UTC)


def find_free_slots_in_day(
    day: dt.date,
    business_hours: BusinessHours,
    existing_events: Iterable[CalendarEvent],
    duration_minutes: int,
    now: dt.datetime,
    granularity_minutes: int = 15
) -> List[dt.datetime]:
    """
    Candidate start times on ``day`` whose ``[start, start + duration)``
    window fits in business hours and overlaps no blocking event.

    On the current local day the search starts at ``now`` rounded up to the
    next granularity boundary.
    """
    day_start, day_end = business_window(day, business_hours)
    duration = dt.timedelta(minutes=duration_minutes)
    step = dt.timedelta(minutes=granularity_minutes)
    busy = [event for event in existing_events if event.blocks_time]

    cursor = day_start
    if now.astimezone(ZoneInfo(business_hours.timezone)).date() == day:
        cursor = max(day_start, ceil_to_granularity(now.astimezone(dt.UTC), granularity_minutes))

    slots = []
    while cursor + duration <= day_end:
        if not any(event.overlaps(cursor, cursor + duration) for event in busy):
            slots.append(cursor)
        cursor += step

    return slots


class SlotFinder:
    """
    Multi-day free-slot search over the calendar repository.

    Usage:
        finder = SlotFinder(event_repo)
        slots = await finder.find_free_slots("user-1", 30, BusinessHours(), days_ahead=3)
    """

    def __init__(
        self,
        event_repo: CalendarEventRepository,
        granularity_minutes: Optional[int] = None,
        max_candidates: Optional[int] = None
    ):
        settings = get_settings()
        self.event_repo = event_repo
        self.granularity_minutes = granularity_minutes or settings.slot_granularity_minutes
        self.max_candidates = max_candidates or settings.max_slot_candidates

    async def find_free_slots(
        self,
        user_id: str,
        duration_minutes: int,
        business_hours: BusinessHours,
        days_ahead: int,
        now: Optional[dt.datetime] = None
    ) -> List[dt.datetime]:
        """
        Earliest-first free start times over today and the following
        ``days_ahead - 1`` working days, capped at ``max_candidates``.

        Args:
            user_id: Assignee whose calendar is searched
            duration_minutes: Requested meeting length
            business_hours: Daily window, timezone and ISO working days
            days_ahead: Number of calendar days to scan, today included
            now: Reference time (default: current UTC time)
        """
        now = now or dt.datetime.now(dt.UTC)
        today = now.astimezone(ZoneInfo(business_hours.timezone)).date()

        slots: List[dt.datetime] = []
        for offset in range(days_ahead):
            day = today + dt.timedelta(days=offset)
            if day.isoweekday() not in business_hours.working_days:
                continue

            day_start, day_end = business_window(day, business_hours)
            busy = await self.event_repo.find_busy_between(user_id, day_start, day_end)

            slots.extend(find_free_slots_in_day(
                day, business_hours, busy, duration_minutes, now, self.granularity_minutes
            ))
            if len(slots) >= self.max_candidates:
                break

        logger.debug(
            f"Found {len(slots)} free slots for {user_id} "
            f"({duration_minutes} min, {days_ahead} days)"
        )
        return slots[:self.max_candidates]
