"""
Calendar Event Repository
Busy-window and date-range queries over assignees' calendars.
"""
from typing import Any, Dict, List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
import datetime as dt

from .base import BaseRepository
from ..models.calendar import CalendarEvent, CalendarEventStatus, INACTIVE_EVENT_STATUSES


class CalendarEventRepository(BaseRepository[CalendarEvent]):

    def __init__(self, database: AsyncIOMotorDatabase):
        super().__init__(database, "calendar_events", CalendarEvent)

    async def find_busy_between(
        self,
        user_id: str,
        window_start: dt.datetime,
        window_end: dt.datetime
    ) -> List[CalendarEvent]:
        """
        Events of one assignee that block time inside ``[window_start, window_end)``.

        Canceled and completed events never block; any event overlapping the
        window is returned, including ones that started before it.
        """
        return await self.find_many(
            {
                "user_id": user_id,
                "status": {"$nin": [status.value for status in INACTIVE_EVENT_STATUSES]},
                "start_time": {"$lt": window_end},
                "end_time": {"$gt": window_start},
            },
            limit=0,
            sort=[("start_time", 1)]
        )

    async def find_upcoming(
        self,
        user_id: Optional[str] = None,
        lead_id: Optional[str] = None,
        days: int = 7,
        now: Optional[dt.datetime] = None,
        limit: int = 50
    ) -> List[CalendarEvent]:
        """Scheduled or confirmed events starting within the next ``days`` days."""
        now = now or dt.datetime.now(dt.UTC)
        filter_dict: Dict[str, Any] = {
            "start_time": {"$gte": now, "$lte": now + dt.timedelta(days=days)},
            "status": {"$in": [CalendarEventStatus.SCHEDULED.value, CalendarEventStatus.CONFIRMED.value]},
        }
        if user_id:
            filter_dict["user_id"] = user_id
        if lead_id:
            filter_dict["lead_id"] = lead_id

        return await self.find_many(filter_dict, limit=limit, sort=[("start_time", 1)])

    async def find_in_range(
        self,
        start: dt.datetime,
        end: dt.datetime,
        user_id: Optional[str] = None
    ) -> List[CalendarEvent]:
        filter_dict: Dict[str, Any] = {"start_time": {"$gte": start, "$lte": end}}
        if user_id:
            filter_dict["user_id"] = user_id
        return await self.find_many(filter_dict, limit=0, sort=[("start_time", 1)])

    async def complete(
        self,
        event_id: str,
        outcome_notes: Optional[str] = None,
        next_action: Optional[str] = None
    ) -> bool:
        fields: Dict[str, Any] = {
            "status": CalendarEventStatus.COMPLETED.value,
            "completed_at": dt.datetime.now(dt.UTC),
        }
        if outcome_notes is not None:
            fields["outcome_notes"] = outcome_notes
        if next_action is not None:
            fields["next_action"] = next_action
        return await self.update_fields(event_id, fields)

    async def cancel(self, event_id: str) -> bool:
        return await self.update_fields(
            event_id,
            {
                "status": CalendarEventStatus.CANCELED.value,
                "canceled_at": dt.datetime.now(dt.UTC),
            }
        )
