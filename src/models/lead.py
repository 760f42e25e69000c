import datetime as dt
from enum import StrEnum
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from src.models.base import MongoBaseModel, utc_now


class LeadStatus(StrEnum):
    NEW = "new"
    CONTACTED = "contacted"
    INTERESTED = "interested"
    QUALIFIED = "qualified"
    FOLLOW_UP = "follow_up"
    PROPOSAL_CURRENT = "proposal_current"
    PROPOSAL_SENT = "proposal_sent"
    NEGOTIATION = "negotiation"
    NURTURING = "nurturing"
    WON = "won"
    LOST = "lost"
    COLD = "cold"


# Leads in these statuses never take part in auto-progression
TERMINAL_STATUSES = frozenset({LeadStatus.WON, LeadStatus.LOST, LeadStatus.COLD})

# Working-memory windows; older entries stored by other writers are dropped on read
RECENT_CALLS_WINDOW = 10
ANALYSES_WINDOW = 5


class CriticalMomentType(StrEnum):
    BUYING_SIGNAL = "buying_signal"
    INTEREST_PEAK = "interest_peak"
    OBJECTION = "objection"
    CONCERN = "concern"
    SENTIMENT_DROP = "sentiment_drop"


class CriticalMoment(BaseModel):
    """A timestamped, conversation-derived event used as qualification evidence."""
    type: str
    description: str = ""
    time_point: float = Field(0.0, description="Seconds into the conversation.")
    impact: Optional[str] = None


class ConversationAnalysis(BaseModel):
    """Summary of one analysed conversation (sentiment timeline output)."""
    conversation_id: str
    created_at: dt.datetime = Field(default_factory=utc_now)
    sentiment_score: Optional[float] = Field(None, ge=-1.0, le=1.0)
    critical_moments: List[CriticalMoment] = Field(default_factory=list)


class CallLog(BaseModel):
    call_id: str
    created_at: dt.datetime = Field(default_factory=utc_now)
    duration_seconds: int = 0
    outcome: Optional[str] = None


class Lead(MongoBaseModel):
    """
    A prospect or debtor moving through the sales/collections pipeline.

    Recent calls and conversation analyses are embedded newest-first as
    working memory, so scoring and qualification need a single read.
    """
    tenant_id: Optional[str] = None
    name: str
    company: Optional[str] = None
    position: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    status: LeadStatus = LeadStatus.NEW
    status_updated_at: Optional[dt.datetime] = None

    sentiment_score: Optional[float] = Field(None, ge=-1.0, le=1.0)
    engagement_score: Optional[float] = Field(None, ge=0, le=100)
    previous_engagement_score: Optional[float] = Field(None, ge=0, le=100)
    qualification_score: Optional[float] = Field(None, ge=0, le=100)
    response_rate: Optional[float] = Field(None, ge=0, le=100)
    consecutive_failures: int = 0

    last_contact_date: Optional[dt.datetime] = None
    assigned_to: Optional[str] = None

    # Auto-progression bookkeeping
    auto_progression_enabled: bool = True
    last_auto_progression_at: Optional[dt.datetime] = None
    next_follow_up_date: Optional[dt.datetime] = None
    last_progression_date: Optional[dt.datetime] = None

    recent_calls: List[CallLog] = Field(default_factory=list)
    conversation_analyses: List[ConversationAnalysis] = Field(default_factory=list)

    @field_validator("recent_calls", mode="before")
    @classmethod
    def _keep_recent_calls(cls, value):
        return value[:RECENT_CALLS_WINDOW] if isinstance(value, list) else value

    @field_validator("conversation_analyses", mode="before")
    @classmethod
    def _keep_recent_analyses(cls, value):
        return value[:ANALYSES_WINDOW] if isinstance(value, list) else value

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_eligible_for_progression(self) -> bool:
        return self.auto_progression_enabled and not self.is_terminal

    def days_since_last_contact(self, now: Optional[dt.datetime] = None) -> Optional[float]:
        if self.last_contact_date is None:
            return None
        now = now or dt.datetime.now(dt.UTC)
        return (now - self.last_contact_date).total_seconds() / 86400

    def days_in_current_status(self, now: Optional[dt.datetime] = None) -> float:
        """Days since the last status change (falls back to creation time)."""
        now = now or dt.datetime.now(dt.UTC)
        since = self.status_updated_at or self.created_at
        return (now - since).total_seconds() / 86400
