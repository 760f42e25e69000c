"""
Tests for the Calendar Service & Auto-Scheduler

Covers manual bookings, conflict detection, the auto-scheduling
decision flow and batch processing.
"""

import asyncio
import pytest
import datetime as dt
from unittest.mock import AsyncMock

from src.core.errors import SchedulingConflictError
from src.models.calendar import (
    AutoSchedulingResult,
    CalendarEvent,
    CalendarEventStatus,
    FollowUpType,
    MeetingPlatform,
    Priority,
)
from src.models.lead import ConversationAnalysis, CriticalMoment, LeadStatus
from src.services.calendar_service import CalendarService
from src.services.qualification_detector import QualifiedLeadDetector


def utc(day: int, hour: int, minute: int = 0) -> dt.datetime:
    return dt.datetime(2025, 6, day, hour, minute, tzinfo=dt.UTC)


@pytest.fixture
def service(event_repo, lead_repo):
    return CalendarService(event_repo, lead_repo, QualifiedLeadDetector(lead_repo), batch_delay_seconds=0)


@pytest.fixture
def hot_lead(lead_repo, make_lead):
    """Interested lead whose latest conversation carried a buying signal."""
    return lead_repo.add(make_lead(
        status=LeadStatus.INTERESTED,
        sentiment_score=0.8,
        engagement_score=85,
        conversation_analyses=[ConversationAnalysis(
            conversation_id="conv-1",
            critical_moments=[CriticalMoment(type="buying_signal", time_point=42.0)],
        )],
    ))


# ============================================
# BOOKINGS
# ============================================

@pytest.mark.asyncio
class TestBookings:

    async def test_create_event_books_free_window(self, service, event_repo, make_event):
        event = await service.create_event(make_event("rep-1", utc(11, 15)))

        assert event.id in event_repo.events

    async def test_overlapping_booking_is_rejected(self, service, make_event):
        existing = await service.create_event(make_event("rep-1", utc(11, 15), minutes=60))

        with pytest.raises(SchedulingConflictError) as exc_info:
            await service.create_event(make_event("rep-1", utc(11, 15, 30)))

        assert exc_info.value.conflicting_event_id == existing.id

    async def test_back_to_back_bookings_are_allowed(self, service, make_event):
        await service.create_event(make_event("rep-1", utc(11, 15)))
        await service.create_event(make_event("rep-1", utc(11, 15, 30)))

    async def test_other_assignees_do_not_conflict(self, service, make_event):
        await service.create_event(make_event("rep-1", utc(11, 15)))
        await service.create_event(make_event("rep-2", utc(11, 15)))

    async def test_canceled_event_frees_its_window(self, service, make_event):
        first = await service.create_event(make_event("rep-1", utc(11, 15)))
        assert await service.cancel_event(first.id) is True

        await service.create_event(make_event("rep-1", utc(11, 15)))

    async def test_complete_unknown_event_returns_false(self, service):
        assert await service.complete_event("missing", outcome_notes="n/a") is False

    async def test_find_free_slots_uses_configured_hours(self, service, now):
        slots = await service.find_free_slots("rep-1", 30, now=now)

        assert slots[0] == utc(11, 14)
        assert len(slots) == 10


def test_update_config_validates_changes(service):
    config = service.update_auto_scheduling_config(days_ahead=5, enabled=False)

    assert config.days_ahead == 5
    assert config.enabled is False
    assert service.get_auto_scheduling_config() is config


# ============================================
# AUTO-SCHEDULING
# ============================================

@pytest.mark.asyncio
class TestAutoSchedule:

    async def test_books_demo_in_first_free_slot(self, service, lead_repo, event_repo, hot_lead, now):
        result = await service.auto_schedule(hot_lead.id, "rep-1", now=now)

        assert result.success is True
        event = result.event
        assert event.id == result.event_id
        assert event.title == "Product Demo - Scheduled Automatically"
        assert event.start_time == utc(11, 14)
        assert event.end_time == utc(11, 14, 45)
        assert event.priority == Priority.URGENT
        assert event.follow_up_type == FollowUpType.DEMO
        assert event.meeting_platform == MeetingPlatform.ZOOM
        assert event.automated is True
        assert event.sentiment_trigger == 0.8
        assert result.suggested_times[0] == event.start_time
        assert lead_repo.leads[hot_lead.id].next_follow_up_date == event.start_time
        assert event.status == CalendarEventStatus.SCHEDULED

    async def test_auto_confirm_books_confirmed(self, service, hot_lead, now):
        service.update_auto_scheduling_config(auto_confirm=True)

        result = await service.auto_schedule(hot_lead.id, "rep-1", now=now)

        assert result.event.status == CalendarEventStatus.CONFIRMED

    async def test_follow_up_without_confirmation_is_confirmed(self, service, lead_repo, make_lead, now):
        lead = lead_repo.add(make_lead(
            sentiment_score=0.55,
            conversation_analyses=[ConversationAnalysis(conversation_id="conv-2")],
        ))

        result = await service.auto_schedule(lead.id, "rep-1", now=now)

        assert result.event.follow_up_type == FollowUpType.FOLLOW_UP
        assert result.event.meeting_platform == MeetingPlatform.PHONE
        assert result.event.status == CalendarEventStatus.CONFIRMED

    async def test_skips_busy_window(self, service, event_repo, hot_lead, make_event, now):
        await event_repo.create(make_event("rep-1", utc(11, 14), minutes=60))

        result = await service.auto_schedule(hot_lead.id, "rep-1", now=now)

        assert result.event.start_time == utc(11, 15)

    async def test_disabled_config_short_circuits(self, service, hot_lead, now):
        service.update_auto_scheduling_config(enabled=False)

        result = await service.auto_schedule(hot_lead.id, "rep-1", now=now)

        assert result.success is False
        assert result.error == "Auto-scheduling disabled"

    async def test_lead_without_analysis_has_no_recommendation(self, service, lead_repo, make_lead, now):
        lead = lead_repo.add(make_lead(sentiment_score=0.9))

        result = await service.auto_schedule(lead.id, "rep-1", now=now)

        assert result.success is False
        assert result.error == "No scheduling recommendation generated"

    async def test_low_sentiment_needs_no_action(self, service, lead_repo, make_lead, event_repo, now):
        lead = lead_repo.add(make_lead(
            sentiment_score=-0.3,
            conversation_analyses=[ConversationAnalysis(conversation_id="conv-2")],
        ))

        result = await service.auto_schedule(lead.id, "rep-1", now=now)

        assert result.success is False
        assert result.error == "No action recommended"
        assert result.reason == "Low sentiment score"
        assert event_repo.events == {}

    async def test_full_calendar_reports_no_slots(self, service, event_repo, hot_lead, make_event, now):
        for day in (11, 12, 13):
            await event_repo.create(make_event("rep-1", utc(day, 14), minutes=480))

        result = await service.auto_schedule(hot_lead.id, "rep-1", now=now)

        assert result.success is False
        assert result.error == "No available time slots"

    async def test_concurrent_bookings_never_share_a_slot(self, service, lead_repo, hot_lead, make_lead, now):
        other = lead_repo.add(hot_lead.model_copy(update={"id": None}))

        first, second = await asyncio.gather(
            service.auto_schedule(hot_lead.id, "rep-1", now=now),
            service.auto_schedule(other.id, "rep-1", now=now),
        )

        assert first.success and second.success
        assert not first.event.overlaps(second.event.start_time, second.event.end_time)


# ============================================
# BATCH
# ============================================

@pytest.mark.asyncio
class TestBatchAutoScheduling:

    async def test_schedules_every_qualified_lead(self, service, lead_repo, hot_lead):
        lead_repo.add(hot_lead.model_copy(update={"id": None}))
        service.update_auto_scheduling_config(days_ahead=7)

        batch = await service.process_batch_auto_scheduling("rep-1")

        assert batch.processed == 2
        assert batch.scheduled == 2
        assert batch.errors == 0

    async def test_exceptions_are_counted_not_raised(self, service, hot_lead):
        lead_repo_copy = service.lead_repo
        lead_repo_copy.add(hot_lead.model_copy(update={"id": None}))
        service.auto_schedule = AsyncMock(side_effect=[
            RuntimeError("boom"),
            AutoSchedulingResult(success=True, lead_id="x"),
        ])

        batch = await service.process_batch_auto_scheduling("rep-1")

        assert batch.processed == 2
        assert batch.scheduled == 1
        assert batch.errors == 1
        assert batch.results[0].error == "boom"

    async def test_no_qualified_leads(self, service):
        batch = await service.process_batch_auto_scheduling("rep-1")

        assert batch.processed == 0
        assert batch.results == []
