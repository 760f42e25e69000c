"""
Calendar & Auto-Scheduling Endpoints
"""
import datetime as dt
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from src.api.dependencies import get_calendar_service
from src.models.calendar import AutoSchedulingResult, BatchSchedulingResult
from src.services.calendar_service import CalendarService

router = APIRouter(prefix="/calendar", tags=["Calendar"])


class AutoScheduleRequest(BaseModel):
    lead_id: str
    user_id: str


class BatchAutoScheduleRequest(BaseModel):
    user_id: str
    tenant_id: Optional[str] = None


class FreeSlotsResponse(BaseModel):
    user_id: str
    duration_minutes: int
    slots: List[dt.datetime]


@router.post("/auto-schedule", response_model=AutoSchedulingResult)
async def auto_schedule(
    body: AutoScheduleRequest,
    calendar: CalendarService = Depends(get_calendar_service)
):
    return await calendar.auto_schedule(body.lead_id, body.user_id)


@router.post("/batch-auto-schedule", response_model=BatchSchedulingResult)
async def batch_auto_schedule(
    body: BatchAutoScheduleRequest,
    calendar: CalendarService = Depends(get_calendar_service)
):
    return await calendar.process_batch_auto_scheduling(body.user_id, body.tenant_id)


@router.get("/free-slots", response_model=FreeSlotsResponse)
async def free_slots(
    user_id: str,
    duration_minutes: int = Query(30, gt=0, le=480),
    days_ahead: Optional[int] = Query(None, ge=1, le=30),
    calendar: CalendarService = Depends(get_calendar_service)
):
    slots = await calendar.find_free_slots(user_id, duration_minutes, days_ahead)
    return FreeSlotsResponse(user_id=user_id, duration_minutes=duration_minutes, slots=slots)
