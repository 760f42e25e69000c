"""
Lead Scorer
Composite 4-factor lead score, close probability and value estimate.

The scorer itself is a pure function of a lead snapshot (including its
embedded call/analysis history and upcoming events); LeadScoringService
adds the repository reads around it.
"""
import datetime as dt
import math
from typing import Iterable, List, Optional

from src.core.errors import LeadNotFoundError
from src.models.calendar import CalendarEvent
from src.models.lead import Lead, LeadStatus
from src.models.scoring import FactorScores, LeadScore, NextBestAction, Opportunity, RiskFactor
from src.repositories.calendar_events import CalendarEventRepository
from src.repositories.leads import LeadRepository
from src.utils.observability import logger

FACTOR_MAX = 25
BASE_DEAL_VALUE = 5000

# Firmographic adjustment per pipeline status; unlisted statuses add 0
STATUS_FIRMOGRAPHIC_DELTA = {
    LeadStatus.NEW: 0,
    LeadStatus.CONTACTED: 1,
    LeadStatus.INTERESTED: 3,
    LeadStatus.QUALIFIED: 5,
    LeadStatus.PROPOSAL_SENT: 7,
    LeadStatus.NEGOTIATION: 9,
    LeadStatus.WON: 10,
    LeadStatus.LOST: -5,
    LeadStatus.COLD: -2,
}


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _clamp_factor(value: float) -> int:
    return max(0, min(FACTOR_MAX, round_half_up(value)))


class LeadScorer:
    """
    Stateless scorer. Every factor is clamped to 0-25 before aggregation and
    the total is the rounded mean of the four factors.
    """

    def score(
        self,
        lead: Lead,
        upcoming_events: Iterable[CalendarEvent] = (),
        now: Optional[dt.datetime] = None
    ) -> LeadScore:
        now = now or dt.datetime.now(dt.UTC)

        factors = FactorScores(
            engagement=self.engagement_score(lead, now),
            sentiment=self.sentiment_score(lead),
            behavioral=self.behavioral_score(lead, list(upcoming_events), now),
            firmographic=self.firmographic_score(lead),
        )
        total = round_half_up(sum(factors.as_list()) / 4)
        probability = self.probability_to_close(lead)

        return LeadScore(
            lead_id=lead.id or "",
            total_score=total,
            factor_scores=factors,
            probability_to_close=probability,
            estimated_value=round_half_up(BASE_DEAL_VALUE * total / 100),
            estimated_close_date=self.estimate_close_date(probability, now),
            risk_factors=self.identify_risk_factors(lead),
            opportunities=self.identify_opportunities(lead),
            next_best_action=self.next_best_action(probability),
            last_updated=now,
        )

    # ============================================
    # FACTORS
    # ============================================

    def engagement_score(self, lead: Lead, now: dt.datetime) -> int:
        score = min((lead.engagement_score or 0) * 0.25, FACTOR_MAX)

        days = lead.days_since_last_contact(now)
        if days is not None:
            if days < 7:
                score += 5
            elif days < 30:
                score += 2

        return _clamp_factor(score)

    def sentiment_score(self, lead: Lead) -> int:
        if lead.sentiment_score is None:
            return 10
        return _clamp_factor(((lead.sentiment_score + 1) / 2) * FACTOR_MAX)

    def behavioral_score(
        self,
        lead: Lead,
        upcoming_events: List[CalendarEvent],
        now: dt.datetime
    ) -> int:
        score = 10.0
        score += (lead.response_rate or 0) * 0.1

        call_count = len(lead.recent_calls)
        if call_count > 3:
            score += 5
        elif call_count >= 2:
            score += 2

        if any(event.start_time > now and event.blocks_time for event in upcoming_events):
            score += 5

        return _clamp_factor(score)

    def firmographic_score(self, lead: Lead) -> int:
        score = 15
        if lead.company:
            score += 3
        if lead.position:
            score += 2
        score += STATUS_FIRMOGRAPHIC_DELTA.get(lead.status, 0)
        return _clamp_factor(score)

    # ============================================
    # FORECAST
    # ============================================

    def probability_to_close(self, lead: Lead) -> float:
        qualification = lead.qualification_score if lead.qualification_score is not None else 50
        sentiment = lead.sentiment_score if lead.sentiment_score is not None else 0
        engagement = lead.engagement_score if lead.engagement_score is not None else 50

        probability = (
            0.4 * qualification / 100
            + 0.3 * (sentiment + 1) / 2
            + 0.3 * engagement / 100
        )
        return max(0.0, min(1.0, probability))

    def estimate_close_date(self, probability: float, now: dt.datetime) -> Optional[dt.datetime]:
        if probability < 0.5:
            return None
        days_to_close = round_half_up((1 - probability) * 60) + 7
        return now + dt.timedelta(days=days_to_close)

    def next_best_action(self, probability: float) -> NextBestAction:
        if probability >= 0.8:
            return NextBestAction.CLOSE_DEAL
        if probability >= 0.6:
            return NextBestAction.SCHEDULE_DEMO
        return NextBestAction.NURTURE

    def identify_risk_factors(self, lead: Lead) -> List[RiskFactor]:
        risks = []
        if lead.consecutive_failures > 3:
            risks.append(RiskFactor(
                type="no_response",
                severity="high",
                description="Multiple failed contact attempts",
                impact=-10,
                mitigation="Change contact strategy or timing",
            ))
        if lead.sentiment_score is not None and lead.sentiment_score < 0:
            risks.append(RiskFactor(
                type="negative_sentiment",
                severity="medium",
                description="Negative sentiment in recent interactions",
                impact=-5,
                mitigation="Address concerns directly",
            ))
        return risks

    def identify_opportunities(self, lead: Lead) -> List[Opportunity]:
        opportunities = []
        if lead.sentiment_score is not None and lead.sentiment_score > 0.5:
            opportunities.append(Opportunity(
                type="positive_sentiment",
                strength="strong",
                description="Very positive sentiment in recent interactions",
                impact=10,
            ))
        if lead.engagement_score is not None and lead.engagement_score > 80:
            opportunities.append(Opportunity(
                type="engagement_increase",
                strength="very_strong",
                description="High engagement level detected",
                impact=15,
            ))
        return opportunities


class LeadScoringService:
    """Loads a lead and its upcoming events, then scores it."""

    def __init__(
        self,
        lead_repo: LeadRepository,
        event_repo: CalendarEventRepository,
        scorer: Optional[LeadScorer] = None
    ):
        self.lead_repo = lead_repo
        self.event_repo = event_repo
        self.scorer = scorer or LeadScorer()

    async def score_lead(self, lead: Lead, now: Optional[dt.datetime] = None) -> LeadScore:
        now = now or dt.datetime.now(dt.UTC)
        upcoming = await self.event_repo.find_upcoming(lead_id=lead.id, now=now)
        return self.scorer.score(lead, upcoming, now)

    async def calculate_lead_score(self, lead_id: str) -> LeadScore:
        """
        Score a stored lead.

        Raises:
            LeadNotFoundError: If the lead does not exist
        """
        lead = await self.lead_repo.find_by_id(lead_id)
        if lead is None:
            raise LeadNotFoundError(lead_id)

        score = await self.score_lead(lead)
        logger.debug(
            f"Scored lead {lead_id}: total={score.total_score} "
            f"p_close={score.probability_to_close:.2f}"
        )
        return score
