"""
Tests for the Qualified Lead Detector

Validates additive scoring, follow-up/priority suggestions,
scheduling recommendations and aggregate stats.
"""

import pytest
import datetime as dt
from unittest.mock import AsyncMock, MagicMock
from pymongo.errors import PyMongoError

from src.core.errors import QualificationError
from src.models.calendar import FollowUpType, Priority
from src.models.lead import CallLog, ConversationAnalysis, CriticalMoment, LeadStatus
from src.models.qualification import QualificationCriteria, RecommendedAction
from src.services.qualification_detector import (
    QualifiedLeadDetector,
    extract_critical_moments,
    status_progression_bonus,
    suggest_follow_up_type,
    suggest_priority,
)


def analysis(*moments, conversation_id="conv-1"):
    return ConversationAnalysis(
        conversation_id=conversation_id,
        critical_moments=[
            CriticalMoment(type=kind, time_point=point) for kind, point in moments
        ],
    )


@pytest.fixture
def detector(lead_repo):
    return QualifiedLeadDetector(lead_repo)


# ============================================
# PURE HELPERS
# ============================================

class TestHelpers:

    def test_moments_are_sorted_latest_first(self):
        moments = extract_critical_moments([
            analysis(("objection", 30.0), ("buying_signal", 120.0)),
            analysis(("interest_peak", 60.0)),
        ])
        assert [m.time_point for m in moments] == [120.0, 60.0, 30.0]

    def test_unknown_status_gets_default_bonus(self):
        assert status_progression_bonus(LeadStatus.NEGOTIATION) == 25
        assert status_progression_bonus(LeadStatus.CONTACTED) == 5
        assert status_progression_bonus(LeadStatus.LOST) == 0

    @pytest.mark.parametrize("status, moments, sentiment, expected", [
        (LeadStatus.NEGOTIATION, ["buying_signal"], 0.8, FollowUpType.CLOSING),
        (LeadStatus.INTERESTED, ["buying_signal"], 0.8, FollowUpType.DEMO),
        (LeadStatus.NEW, ["interest_peak"], 0.3, FollowUpType.DISCOVERY),
        (LeadStatus.QUALIFIED, ["interest_peak"], 0.3, FollowUpType.PROPOSAL),
        (LeadStatus.PROPOSAL_CURRENT, [], 0.3, FollowUpType.FOLLOW_UP),
        (LeadStatus.QUALIFIED, [], 0.3, FollowUpType.DEMO),
        (LeadStatus.CONTACTED, [], 0.55, FollowUpType.FOLLOW_UP),
        (LeadStatus.CONTACTED, [], 0.2, FollowUpType.NURTURING),
    ])
    def test_follow_up_type_rules(self, status, moments, sentiment, expected):
        moment_list = [CriticalMoment(type=kind) for kind in moments]
        assert suggest_follow_up_type(status, moment_list, sentiment) == expected

    def test_only_two_most_recent_moments_count(self):
        moments = [
            CriticalMoment(type="objection"),
            CriticalMoment(type="concern"),
            CriticalMoment(type="buying_signal"),
        ]
        assert suggest_follow_up_type(LeadStatus.CONTACTED, moments, 0.9) == FollowUpType.FOLLOW_UP

    @pytest.mark.parametrize("score, sentiment, count, expected", [
        (95, 0.8, 0, Priority.URGENT),
        (95, 0.7, 2, Priority.HIGH),
        (85, 0.9, 1, Priority.MEDIUM),
        (70, 0.5, 0, Priority.MEDIUM),
        (65, 0.9, 3, Priority.LOW),
    ])
    def test_priority_cascade(self, score, sentiment, count, expected):
        assert suggest_priority(score, sentiment, count) == expected


# ============================================
# ANALYSIS
# ============================================

class TestAnalyzeLead:

    def test_single_buying_signal_lands_exactly_on_cutoff(self, detector, make_lead, now):
        lead = make_lead(
            sentiment_score=0.8,
            engagement_score=85,
            status=LeadStatus.INTERESTED,
            conversation_analyses=[analysis(("buying_signal", 90.0))],
        )

        result = detector.analyze_lead(lead, QualificationCriteria(), now)

        assert result.score == 70
        assert result.reasons == [
            "Positive sentiment: 0.80",
            "High engagement: 85%",
            "1 critical moments detected",
            "Pipeline status: interested",
        ]
        assert result.suggested_follow_up_type == FollowUpType.DEMO
        assert result.suggested_priority == Priority.MEDIUM
        assert result.last_critical_moment.type == "buying_signal"

    def test_score_is_capped_but_priority_uses_raw_score(self, detector, make_lead, now):
        lead = make_lead(
            sentiment_score=0.8,
            engagement_score=85,
            status=LeadStatus.NEGOTIATION,
            conversation_analyses=[
                analysis(("buying_signal", 200.0), ("interest_peak", 100.0), ("buying_signal", 50.0)),
            ],
        )

        result = detector.analyze_lead(lead, QualificationCriteria(), now)

        assert result.score == 100
        assert result.suggested_priority == Priority.URGENT
        assert result.suggested_follow_up_type == FollowUpType.CLOSING
        assert result.last_critical_moment.time_point == 200.0

    def test_below_cutoff_returns_none(self, detector, make_lead, now):
        lead = make_lead(sentiment_score=0.5, engagement_score=65, status=LeadStatus.NEW)
        assert detector.analyze_lead(lead, QualificationCriteria(), now) is None

    def test_recent_calls_inside_window_add_points(self, detector, make_lead, now):
        calls = [
            CallLog(call_id="a", created_at=now - dt.timedelta(days=1)),
            CallLog(call_id="b", created_at=now - dt.timedelta(days=2)),
            CallLog(call_id="c", created_at=now - dt.timedelta(days=30)),
        ]
        lead = make_lead(
            sentiment_score=0.5, engagement_score=65, status=LeadStatus.QUALIFIED, recent_calls=calls
        )

        result = detector.analyze_lead(lead, QualificationCriteria(), now)

        assert result.score == 70  # 25 + 20 + 10 + 15
        assert "2 recent calls" in result.reasons

    def test_only_three_newest_analyses_are_evidence(self, detector, make_lead, now):
        analyses = [analysis(("objection", 10.0)) for _ in range(3)]
        analyses.append(analysis(("buying_signal", 10.0)))
        lead = make_lead(
            sentiment_score=0.8, engagement_score=85,
            status=LeadStatus.INTERESTED, conversation_analyses=analyses,
        )

        assert detector.analyze_lead(lead, QualificationCriteria(), now) is None


@pytest.mark.asyncio
class TestDetectQualifiedLeads:

    async def test_returns_qualified_sorted_by_score(self, detector, lead_repo, make_lead, now):
        lead_repo.add(make_lead(
            sentiment_score=0.8, engagement_score=85, status=LeadStatus.INTERESTED,
            conversation_analyses=[analysis(("buying_signal", 10.0))],
        ))
        top = lead_repo.add(make_lead(
            sentiment_score=0.9, engagement_score=90, status=LeadStatus.NEGOTIATION,
            conversation_analyses=[analysis(("buying_signal", 10.0))],
        ))
        lead_repo.add(make_lead(sentiment_score=0.45, engagement_score=61, status=LeadStatus.NEW))
        lead_repo.add(make_lead(sentiment_score=0.9, engagement_score=90, status=LeadStatus.WON))

        results = await detector.detect_qualified_leads(now=now)

        assert [r.score for r in results] == [85, 70]
        assert results[0].lead_id == top.id

    async def test_stale_contact_is_excluded(self, detector, lead_repo, make_lead, now):
        lead_repo.add(make_lead(
            sentiment_score=0.9, engagement_score=90, status=LeadStatus.NEGOTIATION,
            last_contact_date=now - dt.timedelta(days=10),
            conversation_analyses=[analysis(("buying_signal", 10.0))],
        ))

        assert await detector.detect_qualified_leads(now=now) == []

    async def test_data_store_failure_raises(self):
        repo = MagicMock()
        repo.get_qualification_candidates = AsyncMock(side_effect=PyMongoError("down"))

        with pytest.raises(QualificationError):
            await QualifiedLeadDetector(repo).detect_qualified_leads()


def test_update_criteria_merges_values(detector):
    criteria = detector.update_criteria(min_engagement_score=75)

    assert criteria.min_engagement_score == 75
    assert criteria.min_sentiment_score == 0.4


# ============================================
# RECOMMENDATIONS
# ============================================

@pytest.mark.asyncio
class TestSchedulingRecommendation:

    async def test_missing_lead_or_analysis_returns_none(self, detector, lead_repo, make_lead):
        lead = lead_repo.add(make_lead(sentiment_score=0.9))

        assert await detector.generate_scheduling_recommendation("missing") is None
        assert await detector.generate_scheduling_recommendation(lead.id) is None

    @pytest.mark.parametrize("sentiment, action, urgency", [
        (0.8, RecommendedAction.SCHEDULE_IMMEDIATELY, Priority.HIGH),
        (0.5, RecommendedAction.SCHEDULE_FOLLOW_UP, Priority.MEDIUM),
        (0.2, RecommendedAction.NURTURE, Priority.LOW),
        (0.0, RecommendedAction.NO_ACTION, Priority.LOW),
    ])
    async def test_sentiment_bands(self, detector, lead_repo, make_lead, sentiment, action, urgency):
        lead = lead_repo.add(make_lead(
            sentiment_score=sentiment, conversation_analyses=[analysis(("concern", 5.0))]
        ))

        recommendation = await detector.generate_scheduling_recommendation(lead.id)

        assert recommendation.recommended_action == action
        assert recommendation.urgency == urgency
        assert recommendation.conversation_id == "conv-1"

    async def test_buying_signal_overrides_to_urgent(self, detector, lead_repo, make_lead):
        lead = lead_repo.add(make_lead(
            sentiment_score=-0.2,
            conversation_analyses=[analysis(("buying_signal", 5.0))],
        ))

        recommendation = await detector.generate_scheduling_recommendation(lead.id, "conv-9")

        assert recommendation.recommended_action == RecommendedAction.SCHEDULE_IMMEDIATELY
        assert recommendation.urgency == Priority.URGENT
        assert recommendation.conversation_id == "conv-9"

    async def test_at_most_three_moments_reported(self, detector, lead_repo, make_lead):
        lead = lead_repo.add(make_lead(
            sentiment_score=0.5,
            conversation_analyses=[analysis(*[("concern", float(i)) for i in range(5)])],
        ))

        recommendation = await detector.generate_scheduling_recommendation(lead.id)

        assert len(recommendation.critical_moments) == 3


@pytest.mark.asyncio
async def test_qualification_stats(detector, lead_repo, make_lead):
    lead_repo.add(make_lead(
        sentiment_score=0.8, engagement_score=80, status=LeadStatus.INTERESTED,
        conversation_analyses=[analysis(("buying_signal", 10.0))],
    ))
    lead_repo.add(make_lead(sentiment_score=0.0, engagement_score=20))
    lead_repo.add(make_lead(status=LeadStatus.LOST))

    stats = await detector.get_qualification_stats()

    assert stats.total_leads == 2
    assert stats.qualified_leads == 1
    assert stats.qualification_rate == 50.0
    assert stats.average_sentiment == pytest.approx(0.4)
    assert stats.average_engagement == pytest.approx(50.0)
    assert stats.by_priority[Priority.MEDIUM] == 1
    assert stats.by_priority[Priority.URGENT] == 0
