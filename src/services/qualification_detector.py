"""
Qualified Lead Detector
Finds leads ready for accelerated follow-up and suggests what kind of
meeting to book and how urgently.

Scoring is additive over independent evidence: sentiment and engagement
thresholds, conversation critical moments, recent call frequency and how
far the lead already is in the pipeline.
"""
import datetime as dt
from typing import Dict, List, Optional

from pymongo.errors import PyMongoError

from src.core.errors import QualificationError
from src.models.calendar import FollowUpType, Priority
from src.models.lead import ConversationAnalysis, CriticalMoment, CriticalMomentType, Lead, LeadStatus
from src.models.qualification import (
    QualificationCriteria,
    QualificationResult,
    QualificationStats,
    RecommendedAction,
    SchedulingRecommendation,
)
from src.repositories.leads import LeadRepository
from src.utils.observability import logger

QUALIFICATION_CUTOFF = 70

# How many of the newest analyses / calls count as recent evidence
ANALYSES_CONSIDERED = 3
CALLS_CONSIDERED = 5

STATUS_PROGRESSION_BONUS: Dict[LeadStatus, int] = {
    LeadStatus.NEW: 5,
    LeadStatus.INTERESTED: 10,
    LeadStatus.QUALIFIED: 15,
    LeadStatus.FOLLOW_UP: 12,
    LeadStatus.PROPOSAL_CURRENT: 20,
    LeadStatus.NEGOTIATION: 25,
    LeadStatus.NURTURING: 8,
    LeadStatus.COLD: 0,
    LeadStatus.LOST: 0,
    LeadStatus.WON: 0,
}
DEFAULT_STATUS_BONUS = 5


def extract_critical_moments(analyses: List[ConversationAnalysis]) -> List[CriticalMoment]:
    """Flatten critical moments, latest point in the conversation first."""
    moments = [moment for analysis in analyses for moment in analysis.critical_moments]
    return sorted(moments, key=lambda moment: moment.time_point, reverse=True)


def status_progression_bonus(status: LeadStatus) -> int:
    return STATUS_PROGRESSION_BONUS.get(status, DEFAULT_STATUS_BONUS)


def suggest_follow_up_type(
    status: LeadStatus,
    moments: List[CriticalMoment],
    sentiment: float
) -> FollowUpType:
    """First matching rule wins; only the two most recent moments are considered."""
    recent_types = {moment.type for moment in moments[:2]}

    if CriticalMomentType.BUYING_SIGNAL in recent_types and sentiment > 0.6:
        return FollowUpType.CLOSING if status == LeadStatus.NEGOTIATION else FollowUpType.DEMO

    if CriticalMomentType.INTEREST_PEAK in recent_types:
        if status in (LeadStatus.NEW, LeadStatus.INTERESTED):
            return FollowUpType.DISCOVERY
        return FollowUpType.PROPOSAL

    if status == LeadStatus.PROPOSAL_CURRENT:
        return FollowUpType.FOLLOW_UP

    if status == LeadStatus.QUALIFIED:
        return FollowUpType.DEMO

    if sentiment > 0.5:
        return FollowUpType.FOLLOW_UP

    return FollowUpType.NURTURING


def suggest_priority(score: int, sentiment: float, relevant_moment_count: int) -> Priority:
    if score >= 90 and sentiment > 0.7:
        return Priority.URGENT
    if score >= 80 and relevant_moment_count >= 2:
        return Priority.HIGH
    if score >= QUALIFICATION_CUTOFF:
        return Priority.MEDIUM
    return Priority.LOW


class QualifiedLeadDetector:
    """
    Detects qualified leads and produces per-lead scheduling recommendations.
    """

    def __init__(
        self,
        lead_repo: LeadRepository,
        criteria: Optional[QualificationCriteria] = None
    ):
        self.lead_repo = lead_repo
        self.criteria = criteria or QualificationCriteria()

    def update_criteria(self, **changes) -> QualificationCriteria:
        """Merge new values into the default criteria (validated)."""
        self.criteria = QualificationCriteria.model_validate({**self.criteria.model_dump(), **changes})
        logger.info(f"📝 Qualification criteria updated: {self.criteria.model_dump()}")
        return self.criteria

    async def detect_qualified_leads(
        self,
        tenant_id: Optional[str] = None,
        criteria: Optional[QualificationCriteria] = None,
        now: Optional[dt.datetime] = None
    ) -> List[QualificationResult]:
        """
        Score every candidate and return those at or above the cutoff.

        Args:
            tenant_id: Restrict to one tenant (None = all tenants)
            criteria: Override the detector's criteria for this call
            now: Reference time for contact windows

        Returns:
            Qualified leads, highest score first

        Raises:
            QualificationError: If candidates cannot be loaded
        """
        criteria = criteria or self.criteria
        now = now or dt.datetime.now(dt.UTC)

        try:
            candidates = await self.lead_repo.get_qualification_candidates(criteria, tenant_id, now)
        except PyMongoError as e:
            logger.error(f"❌ Failed to load qualification candidates: {e}")
            raise QualificationError(f"Failed to detect qualified leads: {e}") from e

        logger.info(f"🔍 Found {len(candidates)} qualification candidates")

        qualified: List[QualificationResult] = []
        for lead in candidates:
            try:
                result = self.analyze_lead(lead, criteria, now)
            except Exception as e:
                logger.warning(f"⚠️ Error analyzing lead {lead.id}: {e}")
                continue
            if result is not None:
                qualified.append(result)

        qualified.sort(key=lambda result: result.score, reverse=True)
        logger.info(f"✅ Detected {len(qualified)} qualified leads")
        return qualified

    def analyze_lead(
        self,
        lead: Lead,
        criteria: QualificationCriteria,
        now: dt.datetime
    ) -> Optional[QualificationResult]:
        """Score one lead; None when it falls below the cutoff."""
        reasons: List[str] = []
        score = 0

        sentiment = lead.sentiment_score or 0
        if sentiment >= criteria.min_sentiment_score:
            score += 25
            reasons.append(f"Positive sentiment: {sentiment:.2f}")

        engagement = lead.engagement_score or 0
        if engagement >= criteria.min_engagement_score:
            score += 20
            reasons.append(f"High engagement: {engagement:g}%")

        moments = extract_critical_moments(lead.conversation_analyses[:ANALYSES_CONSIDERED])
        relevant = [m for m in moments if m.type in criteria.required_critical_moments]
        if relevant:
            score += 15 * len(relevant)
            reasons.append(f"{len(relevant)} critical moments detected")

        window = dt.timedelta(days=criteria.days_since_last_contact)
        recent_calls = [
            call for call in lead.recent_calls[:CALLS_CONSIDERED]
            if now - call.created_at <= window
        ]
        if len(recent_calls) > 1:
            score += 10
            reasons.append(f"{len(recent_calls)} recent calls")

        bonus = status_progression_bonus(lead.status)
        score += bonus
        if bonus > 0:
            reasons.append(f"Pipeline status: {lead.status}")

        if score < QUALIFICATION_CUTOFF:
            return None

        return QualificationResult(
            lead_id=lead.id,
            score=min(score, 100),
            reasons=reasons,
            suggested_follow_up_type=suggest_follow_up_type(lead.status, moments, sentiment),
            suggested_priority=suggest_priority(score, sentiment, len(relevant)),
            sentiment_score=lead.sentiment_score,
            engagement_score=lead.engagement_score,
            last_critical_moment=relevant[0] if relevant else None,
        )

    async def generate_scheduling_recommendation(
        self,
        lead_id: str,
        conversation_id: Optional[str] = None
    ) -> Optional[SchedulingRecommendation]:
        """
        Map a lead's sentiment (and latest buying signals) to a scheduling action.

        Returns:
            The recommendation, or None when the lead is missing or has no
            analysed conversation
        """
        lead = await self.lead_repo.find_by_id(lead_id)
        if lead is None or not lead.conversation_analyses:
            return None

        analysis = lead.conversation_analyses[0]
        sentiment = lead.sentiment_score or 0
        moments = extract_critical_moments([analysis])

        if sentiment > 0.7:
            action, urgency = RecommendedAction.SCHEDULE_IMMEDIATELY, Priority.HIGH
            reasoning = "Very positive sentiment, schedule immediately"
        elif sentiment > 0.4:
            action, urgency = RecommendedAction.SCHEDULE_FOLLOW_UP, Priority.MEDIUM
            reasoning = "Positive sentiment, schedule a follow-up"
        elif sentiment > 0:
            action, urgency = RecommendedAction.NURTURE, Priority.LOW
            reasoning = "Neutral sentiment, keep nurturing"
        else:
            action, urgency = RecommendedAction.NO_ACTION, Priority.LOW
            reasoning = "Low sentiment score"

        if any(moment.type == CriticalMomentType.BUYING_SIGNAL for moment in moments):
            action, urgency = RecommendedAction.SCHEDULE_IMMEDIATELY, Priority.URGENT
            reasoning = "Buying signals detected, immediate action required"

        return SchedulingRecommendation(
            lead_id=lead_id,
            conversation_id=conversation_id or analysis.conversation_id,
            sentiment_score=sentiment,
            critical_moments=moments[:3],
            recommended_action=action,
            suggested_follow_up_type=suggest_follow_up_type(lead.status, moments, sentiment),
            urgency=urgency,
            reasoning=reasoning,
        )

    async def get_qualification_stats(self, tenant_id: Optional[str] = None) -> QualificationStats:
        total = await self.lead_repo.count_active(tenant_id)
        qualified = await self.detect_qualified_leads(tenant_id)
        averages = await self.lead_repo.average_scores(tenant_id)

        by_priority = {priority: 0 for priority in Priority}
        for result in qualified:
            by_priority[result.suggested_priority] += 1

        return QualificationStats(
            total_leads=total,
            qualified_leads=len(qualified),
            qualification_rate=(len(qualified) / total * 100) if total > 0 else 0.0,
            average_sentiment=averages["sentiment"],
            average_engagement=averages["engagement"],
            by_priority=by_priority,
        )
