import datetime as dt
from enum import StrEnum
from typing import List, Optional
from pydantic import BaseModel, Field
from src.models.base import utc_now


class NextBestAction(StrEnum):
    CLOSE_DEAL = "close_deal"
    SCHEDULE_DEMO = "schedule_demo"
    NURTURE = "nurture"


class FactorScores(BaseModel):
    """The four independently clamped sub-scores, each 0-25."""
    engagement: int = Field(ge=0, le=25)
    sentiment: int = Field(ge=0, le=25)
    behavioral: int = Field(ge=0, le=25)
    firmographic: int = Field(ge=0, le=25)

    def as_list(self) -> List[int]:
        return [self.engagement, self.sentiment, self.behavioral, self.firmographic]


class RiskFactor(BaseModel):
    type: str
    severity: str  # low | medium | high
    description: str
    impact: int
    mitigation: str


class Opportunity(BaseModel):
    type: str
    strength: str  # strong | very_strong
    description: str
    impact: int
    actionable: bool = True


class LeadScore(BaseModel):
    lead_id: str
    total_score: int = Field(ge=0, le=100)
    factor_scores: FactorScores
    probability_to_close: float = Field(ge=0, le=1)
    estimated_value: int = Field(ge=0)
    estimated_close_date: Optional[dt.datetime] = None
    risk_factors: List[RiskFactor] = Field(default_factory=list)
    opportunities: List[Opportunity] = Field(default_factory=list)
    next_best_action: NextBestAction
    last_updated: dt.datetime = Field(default_factory=utc_now)
