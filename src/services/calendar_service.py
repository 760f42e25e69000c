"""
Calendar Service & Auto-Scheduler

Books follow-up meetings for leads. Auto-scheduling turns a lead's
scheduling recommendation into a concrete event in the assignee's first
free slot; slot search and booking are serialized per assignee so two
concurrent bookings can never pick the same window.
"""
import asyncio
import datetime as dt
from typing import List, Optional

from pymongo.errors import PyMongoError

from src.config import get_settings
from src.core.errors import SchedulingConflictError
from src.models.calendar import (
    AutoSchedulingConfig,
    AutoSchedulingResult,
    BatchSchedulingResult,
    BusinessHours,
    CalendarEvent,
    CalendarEventStatus,
    DEFAULT_FOLLOW_UP_CONFIGS,
)
from src.models.qualification import RecommendedAction
from src.repositories.calendar_events import CalendarEventRepository
from src.repositories.leads import LeadRepository
from src.services.qualification_detector import QualifiedLeadDetector
from src.services.slot_finder import SlotFinder
from src.utils.keyed_lock import KeyedLock
from src.utils.observability import logger, log_business_event

DEFAULT_MEETING_DURATION = 30


def default_auto_scheduling_config() -> AutoSchedulingConfig:
    """Auto-scheduling defaults taken from settings."""
    settings = get_settings()
    return AutoSchedulingConfig(
        business_hours=BusinessHours(
            start=settings.business_hours_start,
            end=settings.business_hours_end,
            timezone=settings.business_timezone,
            working_days=settings.working_days,
        ),
        days_ahead=settings.scheduling_days_ahead,
    )


class CalendarService:
    """
    Calendar bookings plus sentiment-driven auto-scheduling.

    Usage:
        service = CalendarService(event_repo, lead_repo, detector)
        result = await service.auto_schedule(lead_id, user_id="rep-7")
        if not result.success:
            logger.info(result.reason)
    """

    def __init__(
        self,
        event_repo: CalendarEventRepository,
        lead_repo: LeadRepository,
        detector: QualifiedLeadDetector,
        slot_finder: Optional[SlotFinder] = None,
        config: Optional[AutoSchedulingConfig] = None,
        batch_delay_seconds: Optional[float] = None
    ):
        settings = get_settings()
        self.event_repo = event_repo
        self.lead_repo = lead_repo
        self.detector = detector
        self.slot_finder = slot_finder or SlotFinder(event_repo)
        self.config = config or default_auto_scheduling_config()
        self.batch_delay_seconds = (
            batch_delay_seconds if batch_delay_seconds is not None
            else settings.batch_scheduling_delay_seconds
        )
        self._calendar_locks = KeyedLock()

    # ============================================
    # CONFIGURATION
    # ============================================

    def get_auto_scheduling_config(self) -> AutoSchedulingConfig:
        return self.config

    def update_auto_scheduling_config(self, **changes) -> AutoSchedulingConfig:
        self.config = AutoSchedulingConfig.model_validate({**self.config.model_dump(), **changes})
        logger.info("📝 Auto-scheduling config updated")
        return self.config

    # ============================================
    # EVENTS
    # ============================================

    async def create_event(self, event: CalendarEvent) -> CalendarEvent:
        """
        Book an event on the assignee's calendar.

        Raises:
            SchedulingConflictError: If the window overlaps a blocking event
        """
        async with self._calendar_locks.hold(event.user_id):
            return await self._book(event)

    async def _book(self, event: CalendarEvent) -> CalendarEvent:
        # Caller holds the assignee's calendar lock
        busy = await self.event_repo.find_busy_between(event.user_id, event.start_time, event.end_time)
        for existing in busy:
            if existing.overlaps(event.start_time, event.end_time):
                raise SchedulingConflictError(event.user_id, existing.id)

        created = await self.event_repo.create(event)
        log_business_event(
            "event_scheduled",
            event.lead_id,
            event_id=created.id,
            user_id=event.user_id,
            start_time=event.start_time.isoformat(),
            automated=event.automated,
        )
        return created

    async def get_upcoming_events(self, user_id: str, days: int = 7) -> List[CalendarEvent]:
        return await self.event_repo.find_upcoming(user_id=user_id, days=days)

    async def get_events_by_date_range(
        self,
        start: dt.datetime,
        end: dt.datetime,
        user_id: Optional[str] = None
    ) -> List[CalendarEvent]:
        return await self.event_repo.find_in_range(start, end, user_id)

    async def complete_event(
        self,
        event_id: str,
        outcome_notes: Optional[str] = None,
        next_action: Optional[str] = None
    ) -> bool:
        return await self.event_repo.complete(event_id, outcome_notes, next_action)

    async def cancel_event(self, event_id: str) -> bool:
        return await self.event_repo.cancel(event_id)

    async def find_free_slots(
        self,
        user_id: str,
        duration_minutes: int,
        days_ahead: Optional[int] = None,
        now: Optional[dt.datetime] = None
    ) -> List[dt.datetime]:
        return await self.slot_finder.find_free_slots(
            user_id,
            duration_minutes,
            self.config.business_hours,
            days_ahead or self.config.days_ahead,
            now=now,
        )

    # ============================================
    # AUTO-SCHEDULING
    # ============================================

    async def auto_schedule(
        self,
        lead_id: str,
        user_id: str,
        now: Optional[dt.datetime] = None
    ) -> AutoSchedulingResult:
        """
        Book the recommended follow-up for a lead in the first free slot.

        Args:
            lead_id: Lead to schedule
            user_id: Assignee whose calendar receives the event
            now: Reference time for the slot search

        Returns:
            AutoSchedulingResult; "no recommendation", "no action" and
            "no free slot" are unsuccessful results, never exceptions
        """
        config = self.config
        if not config.enabled:
            return AutoSchedulingResult(
                success=False, lead_id=lead_id,
                error="Auto-scheduling disabled",
                reason="Auto-scheduling is turned off",
            )

        logger.info(f"🤖 Auto-scheduling lead {lead_id} for {user_id}")

        recommendation = await self.detector.generate_scheduling_recommendation(lead_id)
        if recommendation is None:
            return AutoSchedulingResult(
                success=False, lead_id=lead_id,
                error="No scheduling recommendation generated",
                reason="Lead does not meet criteria for automatic scheduling",
            )

        if recommendation.recommended_action == RecommendedAction.NO_ACTION:
            return AutoSchedulingResult(
                success=False, lead_id=lead_id,
                error="No action recommended",
                reason=recommendation.reasoning,
            )

        follow_up = DEFAULT_FOLLOW_UP_CONFIGS[recommendation.suggested_follow_up_type]
        duration = config.meeting_durations.get(recommendation.suggested_follow_up_type, DEFAULT_MEETING_DURATION)

        try:
            async with self._calendar_locks.hold(user_id):
                slots = await self.slot_finder.find_free_slots(
                    user_id, duration, config.business_hours, config.days_ahead, now=now
                )
                if not slots:
                    return AutoSchedulingResult(
                        success=False, lead_id=lead_id,
                        error="No available time slots",
                        reason="No suitable time slots found within business hours",
                    )

                start = slots[0]
                event = await self._book(CalendarEvent(
                    lead_id=lead_id,
                    user_id=user_id,
                    title=f"{follow_up.title} - Scheduled Automatically",
                    description=(
                        f"{follow_up.description}\n\n"
                        f"Scheduled automatically from sentiment analysis.\n\n"
                        f"Reason: {recommendation.reasoning}\n\n"
                        f"Sentiment score: {recommendation.sentiment_score:.2f}"
                    ),
                    start_time=start,
                    end_time=start + dt.timedelta(minutes=duration),
                    event_type=follow_up.type.value,
                    reminder_minutes=follow_up.reminder_minutes,
                    priority=recommendation.urgency,
                    automated=True,
                    sentiment_trigger=recommendation.sentiment_score,
                    follow_up_type=recommendation.suggested_follow_up_type,
                    meeting_platform=follow_up.meeting_platform,
                    status=(
                        CalendarEventStatus.CONFIRMED
                        if config.auto_confirm or not follow_up.requires_confirmation
                        else CalendarEventStatus.SCHEDULED
                    ),
                ))
        except (SchedulingConflictError, PyMongoError) as e:
            logger.error(f"❌ Auto-scheduling failed for lead {lead_id}: {e}")
            return AutoSchedulingResult(
                success=False, lead_id=lead_id,
                error=str(e),
                reason="Technical error during automatic scheduling",
            )

        await self.lead_repo.set_next_follow_up(lead_id, start)

        logger.info(
            f"✅ Scheduled {follow_up.type} for lead {lead_id} at {start.isoformat()} "
            f"(priority={event.priority})"
        )
        return AutoSchedulingResult(
            success=True,
            event_id=event.id,
            event=event,
            lead_id=lead_id,
            reason=f"Automatically scheduled {follow_up.title.lower()} based on sentiment analysis",
            suggested_times=slots,
        )

    async def process_batch_auto_scheduling(
        self,
        user_id: str,
        tenant_id: Optional[str] = None
    ) -> BatchSchedulingResult:
        """
        Auto-schedule every qualified lead, one at a time with a short pause
        between leads to keep load on the data store flat.
        """
        logger.info("🔄 Starting batch auto-scheduling for qualified leads")

        qualified = await self.detector.detect_qualified_leads(tenant_id)
        batch = BatchSchedulingResult(processed=len(qualified))

        for qualification in qualified:
            try:
                result = await self.auto_schedule(qualification.lead_id, user_id)
            except Exception as e:
                logger.error(f"❌ Error auto-scheduling lead {qualification.lead_id}: {e}")
                batch.errors += 1
                result = AutoSchedulingResult(
                    success=False, lead_id=qualification.lead_id,
                    error=str(e), reason="Processing error",
                )
            else:
                if result.success:
                    batch.scheduled += 1
                else:
                    logger.warning(f"⚠️ Could not schedule {qualification.lead_id}: {result.reason}")

            batch.results.append(result)
            await asyncio.sleep(self.batch_delay_seconds)

        logger.info(f"✅ Batch complete: {batch.scheduled} scheduled, {batch.errors} errors")
        return batch
