from enum import StrEnum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from src.models.calendar import FollowUpType, Priority
from src.models.lead import CriticalMoment, LeadStatus, TERMINAL_STATUSES


class RecommendedAction(StrEnum):
    SCHEDULE_IMMEDIATELY = "schedule_immediately"
    SCHEDULE_FOLLOW_UP = "schedule_follow_up"
    NURTURE = "nurture"
    NO_ACTION = "no_action"


class QualificationCriteria(BaseModel):
    """Candidate filter for the qualification detector."""
    min_sentiment_score: float = Field(0.4, ge=-1.0, le=1.0)
    min_engagement_score: float = Field(60, ge=0, le=100)
    required_critical_moments: List[str] = Field(
        default_factory=lambda: ["buying_signal", "interest_peak"]
    )
    exclude_statuses: List[LeadStatus] = Field(
        default_factory=lambda: sorted(TERMINAL_STATUSES)
    )
    days_since_last_contact: int = Field(7, ge=0)


class QualificationResult(BaseModel):
    lead_id: str
    score: int = Field(ge=0, le=100)
    reasons: List[str] = Field(default_factory=list)
    suggested_follow_up_type: FollowUpType
    suggested_priority: Priority
    sentiment_score: Optional[float] = None
    engagement_score: Optional[float] = None
    last_critical_moment: Optional[CriticalMoment] = None


class SchedulingRecommendation(BaseModel):
    lead_id: str
    conversation_id: Optional[str] = None
    sentiment_score: float
    critical_moments: List[CriticalMoment] = Field(default_factory=list, max_length=3)
    recommended_action: RecommendedAction
    suggested_follow_up_type: FollowUpType
    urgency: Priority
    reasoning: str


class QualificationStats(BaseModel):
    total_leads: int = 0
    qualified_leads: int = 0
    qualification_rate: float = 0.0  # percent
    average_sentiment: float = 0.0
    average_engagement: float = 0.0
    by_priority: Dict[Priority, int] = Field(
        default_factory=lambda: {priority: 0 for priority in Priority}
    )
