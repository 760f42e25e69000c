import datetime as dt
from enum import StrEnum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, model_validator
from src.models.base import MongoBaseModel


class CalendarEventStatus(StrEnum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELED = "canceled"
    RESCHEDULED = "rescheduled"
    NO_SHOW = "no_show"
    PENDING = "pending"


# Events in these states no longer block their time window
INACTIVE_EVENT_STATUSES = frozenset({CalendarEventStatus.CANCELED, CalendarEventStatus.COMPLETED})


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class FollowUpType(StrEnum):
    DEMO = "demo"
    PROPOSAL = "proposal"
    CLOSING = "closing"
    FOLLOW_UP = "follow_up"
    NURTURING = "nurturing"
    TECHNICAL_CALL = "technical_call"
    DISCOVERY = "discovery"
    ONBOARDING = "onboarding"


class MeetingPlatform(StrEnum):
    INTERNAL = "internal"
    ZOOM = "zoom"
    TEAMS = "teams"
    MEET = "meet"
    PHONE = "phone"
    IN_PERSON = "in_person"


class CalendarEvent(MongoBaseModel):
    """A meeting on an assignee's calendar, optionally booked automatically."""
    lead_id: str
    user_id: str
    title: str
    description: Optional[str] = None
    start_time: dt.datetime
    end_time: dt.datetime
    all_day: bool = False
    location: Optional[str] = None
    event_type: str = "meeting"
    reminder_minutes: int = 30
    status: CalendarEventStatus = CalendarEventStatus.SCHEDULED
    priority: Priority = Priority.MEDIUM

    automated: bool = False
    sentiment_trigger: Optional[float] = Field(None, ge=-1.0, le=1.0)
    follow_up_type: Optional[FollowUpType] = None
    meeting_platform: MeetingPlatform = MeetingPlatform.INTERNAL
    meeting_link: Optional[str] = None
    attendee_emails: List[str] = Field(default_factory=list)

    rescheduled_count: int = 0
    canceled_at: Optional[dt.datetime] = None
    completed_at: Optional[dt.datetime] = None
    outcome_notes: Optional[str] = None
    next_action: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _window_is_positive(self) -> "CalendarEvent":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

    @property
    def blocks_time(self) -> bool:
        return self.status not in INACTIVE_EVENT_STATUSES

    def overlaps(self, start: dt.datetime, end: dt.datetime) -> bool:
        """
        Three-way overlap test against ``[start, end)``: the window starts
        inside this event, ends inside it, or fully contains it.
        """
        return (
            (self.start_time <= start < self.end_time)
            or (self.start_time < end <= self.end_time)
            or (start <= self.start_time and end >= self.end_time)
        )


class FollowUpConfig(BaseModel):
    """Template used when a follow-up meeting is booked automatically."""
    type: FollowUpType
    title: str
    description: str
    duration: int  # minutes
    priority: Priority
    reminder_minutes: int
    meeting_platform: MeetingPlatform
    requires_confirmation: bool


DEFAULT_FOLLOW_UP_CONFIGS: Dict[FollowUpType, FollowUpConfig] = {
    FollowUpType.DEMO: FollowUpConfig(
        type=FollowUpType.DEMO,
        title="Product Demo",
        description="Personalized product or service demonstration",
        duration=45, priority=Priority.HIGH, reminder_minutes=60,
        meeting_platform=MeetingPlatform.ZOOM, requires_confirmation=True,
    ),
    FollowUpType.PROPOSAL: FollowUpConfig(
        type=FollowUpType.PROPOSAL,
        title="Proposal Presentation",
        description="Detailed walkthrough of the commercial proposal",
        duration=60, priority=Priority.HIGH, reminder_minutes=120,
        meeting_platform=MeetingPlatform.TEAMS, requires_confirmation=True,
    ),
    FollowUpType.CLOSING: FollowUpConfig(
        type=FollowUpType.CLOSING,
        title="Closing Meeting",
        description="Session to finalize the sale",
        duration=30, priority=Priority.URGENT, reminder_minutes=60,
        meeting_platform=MeetingPlatform.ZOOM, requires_confirmation=True,
    ),
    FollowUpType.FOLLOW_UP: FollowUpConfig(
        type=FollowUpType.FOLLOW_UP,
        title="Follow-up",
        description="General follow-up call",
        duration=30, priority=Priority.MEDIUM, reminder_minutes=30,
        meeting_platform=MeetingPlatform.PHONE, requires_confirmation=False,
    ),
    FollowUpType.NURTURING: FollowUpConfig(
        type=FollowUpType.NURTURING,
        title="Nurturing Call",
        description="Relationship maintenance call",
        duration=20, priority=Priority.LOW, reminder_minutes=30,
        meeting_platform=MeetingPlatform.PHONE, requires_confirmation=False,
    ),
    FollowUpType.TECHNICAL_CALL: FollowUpConfig(
        type=FollowUpType.TECHNICAL_CALL,
        title="Technical Consultation",
        description="Meeting to resolve technical questions",
        duration=45, priority=Priority.MEDIUM, reminder_minutes=60,
        meeting_platform=MeetingPlatform.TEAMS, requires_confirmation=True,
    ),
    FollowUpType.DISCOVERY: FollowUpConfig(
        type=FollowUpType.DISCOVERY,
        title="Discovery Call",
        description="Session to better understand the customer's needs",
        duration=30, priority=Priority.MEDIUM, reminder_minutes=60,
        meeting_platform=MeetingPlatform.PHONE, requires_confirmation=False,
    ),
    FollowUpType.ONBOARDING: FollowUpConfig(
        type=FollowUpType.ONBOARDING,
        title="Customer Onboarding",
        description="Introduction and initial setup session",
        duration=60, priority=Priority.HIGH, reminder_minutes=120,
        meeting_platform=MeetingPlatform.ZOOM, requires_confirmation=True,
    ),
}


class BusinessHours(BaseModel):
    """Daily booking window, interpreted in ``timezone``."""
    start: str = Field("09:00", pattern=r"^\d{2}:\d{2}$")
    end: str = Field("17:00", pattern=r"^\d{2}:\d{2}$")
    timezone: str = "America/Panama"
    working_days: List[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])  # ISO weekdays

    @model_validator(mode="after")
    def _start_before_end(self) -> "BusinessHours":
        if self.start_time >= self.end_time:
            raise ValueError("business hours must start before they end")
        return self

    @property
    def start_time(self) -> dt.time:
        return dt.time.fromisoformat(self.start)

    @property
    def end_time(self) -> dt.time:
        return dt.time.fromisoformat(self.end)


def default_meeting_durations() -> Dict[FollowUpType, int]:
    return {kind: config.duration for kind, config in DEFAULT_FOLLOW_UP_CONFIGS.items()}


class AutoSchedulingConfig(BaseModel):
    enabled: bool = True
    business_hours: BusinessHours = Field(default_factory=BusinessHours)
    meeting_durations: Dict[FollowUpType, int] = Field(default_factory=default_meeting_durations)
    days_ahead: int = Field(3, ge=1)
    # Book as confirmed even when the follow-up template asks for confirmation
    auto_confirm: bool = False


class AutoSchedulingResult(BaseModel):
    success: bool
    event_id: Optional[str] = None
    event: Optional[CalendarEvent] = None
    lead_id: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None
    suggested_times: List[dt.datetime] = Field(default_factory=list)


class BatchSchedulingResult(BaseModel):
    processed: int = 0
    scheduled: int = 0
    errors: int = 0
    results: List[AutoSchedulingResult] = Field(default_factory=list)
