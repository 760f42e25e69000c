"""
Progression rule models.

Triggers and actions are discriminated unions keyed on ``type`` so every
variant carries its own typed parameters and the engine dispatches on the
concrete class instead of on untyped parameter maps.
"""
import datetime as dt
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field
from src.models.base import MongoBaseModel, utc_now
from src.models.lead import LeadStatus


# ============================================
# TRIGGERS
# ============================================

class TriggerBase(BaseModel):
    weight: float = Field(1.0, gt=0)
    condition: Optional[str] = Field(None, description="Human-readable description of the condition.")


class SentimentThresholdTrigger(TriggerBase):
    type: Literal["sentiment_threshold"] = "sentiment_threshold"
    threshold: float = 0.7


class EngagementIncreaseTrigger(TriggerBase):
    type: Literal["engagement_increase"] = "engagement_increase"
    min_increase: float = 10


class TimeBasedTrigger(TriggerBase):
    type: Literal["time_based"] = "time_based"
    days_in_status: float = 7


class BehaviorPatternTrigger(TriggerBase):
    type: Literal["behavior_pattern"] = "behavior_pattern"
    pattern: str


class ExternalSignalTrigger(TriggerBase):
    type: Literal["external_signal"] = "external_signal"
    signal: Optional[str] = None


Trigger = Annotated[
    Union[
        SentimentThresholdTrigger,
        EngagementIncreaseTrigger,
        TimeBasedTrigger,
        BehaviorPatternTrigger,
        ExternalSignalTrigger,
    ],
    Field(discriminator="type"),
]


# ============================================
# ACTIONS
# ============================================

class StatusChangeAction(BaseModel):
    type: Literal["status_change"] = "status_change"
    new_status: LeadStatus


class ScheduleCallAction(BaseModel):
    type: Literal["schedule_call"] = "schedule_call"
    delay_hours: int = Field(24, ge=0)
    user_id: Optional[str] = None


class SendEmailAction(BaseModel):
    type: Literal["send_email"] = "send_email"
    template: str


class CreateTaskAction(BaseModel):
    type: Literal["create_task"] = "create_task"
    task_type: str
    due_in_hours: Optional[int] = None


class AssignToUserAction(BaseModel):
    type: Literal["assign_to_user"] = "assign_to_user"
    user_id: str


class PersonalizeScriptAction(BaseModel):
    type: Literal["personalize_script"] = "personalize_script"
    strategy: str


Action = Annotated[
    Union[
        StatusChangeAction,
        ScheduleCallAction,
        SendEmailAction,
        CreateTaskAction,
        AssignToUserAction,
        PersonalizeScriptAction,
    ],
    Field(discriminator="type"),
]


# ============================================
# RULES
# ============================================

class RuleConstraints(BaseModel):
    min_score: Optional[float] = None
    required_statuses: List[LeadStatus] = Field(default_factory=list)
    excluded_statuses: List[LeadStatus] = Field(default_factory=list)
    max_days_since_last_touch: Optional[float] = None


class RuleStatistics(BaseModel):
    times_triggered: int = 0
    successful_executions: int = 0
    success_rate: float = 0.0  # percent
    total_impact: float = 0.0
    average_impact: float = 0.0
    last_executed_at: Optional[dt.datetime] = None


class ProgressionRule(MongoBaseModel):
    """A configurable rule that advances leads when its weighted triggers agree."""
    tenant_id: Optional[str] = None
    name: str
    description: str = ""
    is_active: bool = True
    triggers: List[Trigger] = Field(min_length=1)
    actions: List[Action] = Field(min_length=1)
    constraints: RuleConstraints = Field(default_factory=RuleConstraints)
    statistics: RuleStatistics = Field(default_factory=RuleStatistics)
    created_by: Optional[str] = None

    @property
    def total_weight(self) -> float:
        return sum(trigger.weight for trigger in self.triggers)


# ============================================
# EVALUATION RESULTS
# ============================================

class BehaviorAnalysis(BaseModel):
    """Structured output contract for the behavior-pattern classifier."""
    matches_pattern: bool
    confidence: float = Field(ge=0, le=1.0)
    reasoning: str = Field(..., max_length=600)


class TriggerEvaluation(BaseModel):
    trigger_type: str
    weight: float
    satisfied: bool
    confidence: float = Field(ge=0, le=1.0)
    detail: Optional[str] = None


class ActionResult(BaseModel):
    action_type: str
    success: bool
    result: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    executed_at: dt.datetime = Field(default_factory=utc_now)


class ProgressionResult(BaseModel):
    lead_id: str
    rule_id: Optional[str] = None
    rule_name: str
    fired: bool = False
    overall_success: bool = False
    reason: Optional[str] = None
    satisfied_weight: float = 0.0
    total_weight: float = 0.0
    trigger_evaluations: List[TriggerEvaluation] = Field(default_factory=list)
    action_results: List[ActionResult] = Field(default_factory=list)
    impact: Optional[float] = None
    evaluated_at: dt.datetime = Field(default_factory=utc_now)


class ProcessingSummary(BaseModel):
    leads: int = 0
    rules: int = 0
    evaluations: int = 0
    progressed: int = 0
    errors: int = 0
    duration_ms: float = 0.0
    aborted: bool = False


class EngineStats(BaseModel):
    is_running: bool
    total_rules_executed: int
    success_rate: float
    average_impact: float
    last_run_at: Optional[dt.datetime] = None
    last_summary: Optional[ProcessingSummary] = None
