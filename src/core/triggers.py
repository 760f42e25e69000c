"""
Trigger evaluation and weighted consensus.

Each trigger variant has exactly one evaluator, looked up by class. A rule
fires when the satisfied share of its trigger weight reaches
CONSENSUS_THRESHOLD (boundary inclusive).
"""
import datetime as dt
from typing import Awaitable, Callable, Dict, Iterable, Protocol, Type

from src.models.lead import Lead
from src.models.progression import (
    BehaviorAnalysis,
    BehaviorPatternTrigger,
    EngagementIncreaseTrigger,
    ExternalSignalTrigger,
    SentimentThresholdTrigger,
    TimeBasedTrigger,
    TriggerEvaluation,
)
from src.utils.observability import logger

CONSENSUS_THRESHOLD = 0.6

# Float tolerance so 0.6 of a total like 1.2 or 0.3 still fires
_EPSILON = 1e-9


class BehaviorAnalyzer(Protocol):
    async def analyze(self, lead: Lead, pattern: str) -> BehaviorAnalysis:
        ...


def _ratio_confidence(value: float, target: float) -> float:
    if target <= 0:
        return 1.0 if value >= target else 0.0
    return max(0.0, min(1.0, value / target))


class TriggerEvaluator:
    """
    Evaluates single triggers against a lead snapshot.

    Usage:
        evaluator = TriggerEvaluator(behavior_analyzer)
        evaluation = await evaluator.evaluate(trigger, lead)
    """

    def __init__(self, behavior_analyzer: BehaviorAnalyzer):
        self.behavior_analyzer = behavior_analyzer
        self._evaluators: Dict[Type, Callable[..., Awaitable[TriggerEvaluation]]] = {
            SentimentThresholdTrigger: self._sentiment_threshold,
            EngagementIncreaseTrigger: self._engagement_increase,
            TimeBasedTrigger: self._time_based,
            BehaviorPatternTrigger: self._behavior_pattern,
            ExternalSignalTrigger: self._external_signal,
        }

    async def evaluate(self, trigger, lead: Lead, now: dt.datetime | None = None) -> TriggerEvaluation:
        evaluator = self._evaluators.get(type(trigger))
        if evaluator is None:
            raise TypeError(f"No evaluator for trigger type {type(trigger).__name__}")
        return await evaluator(trigger, lead, now or dt.datetime.now(dt.UTC))

    async def _sentiment_threshold(
        self, trigger: SentimentThresholdTrigger, lead: Lead, now: dt.datetime
    ) -> TriggerEvaluation:
        sentiment = lead.sentiment_score or 0
        return TriggerEvaluation(
            trigger_type=trigger.type,
            weight=trigger.weight,
            satisfied=sentiment >= trigger.threshold,
            confidence=_ratio_confidence(sentiment, trigger.threshold),
            detail=f"sentiment {sentiment:.2f} vs threshold {trigger.threshold:.2f}",
        )

    async def _engagement_increase(
        self, trigger: EngagementIncreaseTrigger, lead: Lead, now: dt.datetime
    ) -> TriggerEvaluation:
        increase = (lead.engagement_score or 0) - (lead.previous_engagement_score or 0)
        return TriggerEvaluation(
            trigger_type=trigger.type,
            weight=trigger.weight,
            satisfied=increase >= trigger.min_increase,
            confidence=_ratio_confidence(increase, trigger.min_increase),
            detail=f"engagement change {increase:+g} vs minimum {trigger.min_increase:g}",
        )

    async def _time_based(
        self, trigger: TimeBasedTrigger, lead: Lead, now: dt.datetime
    ) -> TriggerEvaluation:
        days = lead.days_in_current_status(now)
        return TriggerEvaluation(
            trigger_type=trigger.type,
            weight=trigger.weight,
            satisfied=days >= trigger.days_in_status,
            confidence=_ratio_confidence(days, trigger.days_in_status),
            detail=f"{days:.1f} days in status {lead.status}",
        )

    async def _behavior_pattern(
        self, trigger: BehaviorPatternTrigger, lead: Lead, now: dt.datetime
    ) -> TriggerEvaluation:
        try:
            analysis = await self.behavior_analyzer.analyze(lead, trigger.pattern)
        except Exception as e:
            logger.warning(f"Behavior analysis failed for lead {lead.id}: {e}")
            analysis = BehaviorAnalysis(matches_pattern=False, confidence=0.0, reasoning="analysis failed")

        return TriggerEvaluation(
            trigger_type=trigger.type,
            weight=trigger.weight,
            satisfied=analysis.matches_pattern,
            confidence=analysis.confidence if analysis.matches_pattern else 0.0,
            detail=analysis.reasoning,
        )

    async def _external_signal(
        self, trigger: ExternalSignalTrigger, lead: Lead, now: dt.datetime
    ) -> TriggerEvaluation:
        # No signal source is wired in yet
        return TriggerEvaluation(
            trigger_type=trigger.type,
            weight=trigger.weight,
            satisfied=False,
            confidence=0.0,
            detail="external signals not supported",
        )


def satisfied_weight(evaluations: Iterable[TriggerEvaluation]) -> float:
    return sum(evaluation.weight for evaluation in evaluations if evaluation.satisfied)


def reaches_consensus(satisfied: float, total: float) -> bool:
    """True iff satisfied / total >= CONSENSUS_THRESHOLD; never fires on zero weight."""
    if total <= 0:
        return False
    return satisfied >= CONSENSUS_THRESHOLD * total - _EPSILON
