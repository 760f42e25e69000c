import itertools
import pytest
import datetime as dt
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

from src.config import get_settings
from src.core.automation_core import AutomationCore
from src.core.progression_engine import AutoProgressionEngine
from src.core.triggers import TriggerEvaluator
from src.models.calendar import CalendarEvent, INACTIVE_EVENT_STATUSES, CalendarEventStatus
from src.models.lead import Lead, LeadStatus, TERMINAL_STATUSES
from src.models.progression import ProgressionRule
from src.models.qualification import QualificationCriteria
from src.services.action_executors import DefaultActionExecutors
from src.services.calendar_service import CalendarService
from src.services.lead_scorer import LeadScoringService
from src.services.qualification_detector import QualifiedLeadDetector

# Wednesday 13:00 UTC == 08:00 in America/Panama, before business hours open
FIXED_NOW = dt.datetime(2025, 6, 11, 13, 0, tzinfo=dt.UTC)

_ids = itertools.count(1)


def next_id() -> str:
    return f"{next(_ids):024x}"


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    """Keep retries, delays and timeouts short for every test."""
    get_settings.cache_clear()
    monkeypatch.setenv("RETRY_MIN_WAIT_SECONDS", "0")
    monkeypatch.setenv("RETRY_MAX_WAIT_SECONDS", "0")
    monkeypatch.setenv("BATCH_SCHEDULING_DELAY_SECONDS", "0")
    yield
    get_settings.cache_clear()


# ============================================
# IN-MEMORY REPOSITORIES
# ============================================

class InMemoryLeadRepository:
    """Mirrors LeadRepository's query semantics over a dict."""

    def __init__(self, leads: Optional[List[Lead]] = None):
        self.leads: Dict[str, Lead] = {}
        for lead in leads or []:
            self.add(lead)

    def add(self, lead: Lead) -> Lead:
        lead.id = lead.id or next_id()
        self.leads[lead.id] = lead
        return lead

    async def create(self, lead: Lead) -> Lead:
        return self.add(lead)

    async def find_by_id(self, lead_id: str) -> Optional[Lead]:
        lead = self.leads.get(lead_id)
        return lead.model_copy(deep=True) if lead else None

    async def update_fields(self, lead_id: str, fields: dict) -> bool:
        lead = self.leads.get(lead_id)
        if lead is None:
            return False
        self.leads[lead_id] = lead.model_copy(update=fields)
        return True

    async def get_eligible_for_progression(self, tenant_id=None, limit=0) -> List[Lead]:
        return [
            lead.model_copy(deep=True) for lead in self.leads.values()
            if lead.auto_progression_enabled
            and lead.status not in TERMINAL_STATUSES
            and (tenant_id is None or lead.tenant_id == tenant_id)
        ]

    async def get_qualification_candidates(
        self, criteria: QualificationCriteria, tenant_id=None, now=None
    ) -> List[Lead]:
        now = now or dt.datetime.now(dt.UTC)
        cutoff = now - dt.timedelta(days=criteria.days_since_last_contact)
        return [
            lead.model_copy(deep=True) for lead in self.leads.values()
            if lead.status not in criteria.exclude_statuses
            and lead.sentiment_score is not None
            and lead.sentiment_score >= criteria.min_sentiment_score
            and lead.engagement_score is not None
            and lead.engagement_score >= criteria.min_engagement_score
            and (lead.last_contact_date is None or lead.last_contact_date >= cutoff)
            and (tenant_id is None or lead.tenant_id == tenant_id)
        ]

    async def update_status(self, lead_id: str, new_status: LeadStatus, automated: bool = False) -> bool:
        fields = {"status": new_status, "status_updated_at": dt.datetime.now(dt.UTC)}
        if automated:
            fields["last_auto_progression_at"] = fields["status_updated_at"]
        return await self.update_fields(lead_id, fields)

    async def assign(self, lead_id: str, user_id: str, automated: bool = False) -> bool:
        fields = {"assigned_to": user_id}
        if automated:
            fields["last_auto_progression_at"] = dt.datetime.now(dt.UTC)
        return await self.update_fields(lead_id, fields)

    async def set_next_follow_up(self, lead_id: str, follow_up_at: dt.datetime) -> bool:
        return await self.update_fields(
            lead_id,
            {"next_follow_up_date": follow_up_at, "last_progression_date": dt.datetime.now(dt.UTC)},
        )

    async def count_active(self, tenant_id=None) -> int:
        return sum(1 for lead in self.leads.values() if lead.status not in TERMINAL_STATUSES)

    async def average_scores(self, tenant_id=None) -> dict:
        known = [lead for lead in self.leads.values() if lead.sentiment_score is not None]
        if not known:
            return {"sentiment": 0.0, "engagement": 0.0}
        return {
            "sentiment": sum(lead.sentiment_score for lead in known) / len(known),
            "engagement": sum(lead.engagement_score or 0 for lead in known) / len(known),
        }


class InMemoryRuleRepository:

    def __init__(self, rules: Optional[List[ProgressionRule]] = None):
        self.rules: Dict[str, ProgressionRule] = {}
        for rule in rules or []:
            rule.id = rule.id or next_id()
            self.rules[rule.id] = rule
        self.executions: List[tuple] = []

    async def get_active_rules(self, tenant_id=None) -> List[ProgressionRule]:
        return [rule for rule in self.rules.values() if rule.is_active]

    async def find_by_id(self, rule_id: str) -> Optional[ProgressionRule]:
        return self.rules.get(rule_id)

    async def create(self, rule: ProgressionRule) -> ProgressionRule:
        rule.id = next_id()
        self.rules[rule.id] = rule
        return rule

    async def record_execution(self, rule_id, success, impact=0.0, executed_at=None) -> bool:
        self.executions.append((rule_id, success, impact))
        stats = self.rules[rule_id].statistics
        stats.times_triggered += 1
        stats.successful_executions += int(success)
        stats.total_impact += impact
        stats.success_rate = stats.successful_executions / stats.times_triggered * 100
        stats.average_impact = stats.total_impact / stats.times_triggered
        stats.last_executed_at = executed_at
        return True


class InMemoryEventRepository:

    def __init__(self, events: Optional[List[CalendarEvent]] = None):
        self.events: Dict[str, CalendarEvent] = {}
        for event in events or []:
            event.id = event.id or next_id()
            self.events[event.id] = event

    async def create(self, event: CalendarEvent) -> CalendarEvent:
        event.id = next_id()
        self.events[event.id] = event
        return event

    async def find_busy_between(self, user_id, window_start, window_end) -> List[CalendarEvent]:
        return sorted(
            (
                event for event in self.events.values()
                if event.user_id == user_id
                and event.status not in INACTIVE_EVENT_STATUSES
                and event.start_time < window_end
                and event.end_time > window_start
            ),
            key=lambda event: event.start_time,
        )

    async def find_upcoming(self, user_id=None, lead_id=None, days=7, now=None, limit=50):
        now = now or dt.datetime.now(dt.UTC)
        horizon = now + dt.timedelta(days=days)
        return [
            event for event in self.events.values()
            if now <= event.start_time <= horizon
            and event.status in (CalendarEventStatus.SCHEDULED, CalendarEventStatus.CONFIRMED)
            and (user_id is None or event.user_id == user_id)
            and (lead_id is None or event.lead_id == lead_id)
        ]

    async def find_in_range(self, start, end, user_id=None):
        return [
            event for event in self.events.values()
            if start <= event.start_time <= end and (user_id is None or event.user_id == user_id)
        ]

    async def complete(self, event_id, outcome_notes=None, next_action=None) -> bool:
        if event_id not in self.events:
            return False
        self.events[event_id].status = CalendarEventStatus.COMPLETED
        self.events[event_id].outcome_notes = outcome_notes
        return True

    async def cancel(self, event_id) -> bool:
        if event_id not in self.events:
            return False
        self.events[event_id].status = CalendarEventStatus.CANCELED
        return True


# ============================================
# FIXTURES
# ============================================

@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def make_lead():
    """Factory for leads with sensible defaults and a stable id."""
    def _make(**overrides) -> Lead:
        data = {"name": "Ana Torres", "status": LeadStatus.INTERESTED}
        data.update(overrides)
        lead = Lead(**data)
        lead.id = lead.id or next_id()
        return lead
    return _make


@pytest.fixture
def lead_repo():
    return InMemoryLeadRepository()


@pytest.fixture
def rule_repo():
    return InMemoryRuleRepository()


@pytest.fixture
def event_repo():
    return InMemoryEventRepository()


@pytest.fixture
def make_event():
    def _make(user_id: str, start: dt.datetime, minutes: int = 30, **overrides) -> CalendarEvent:
        return CalendarEvent(
            lead_id=overrides.pop("lead_id", "lead-x"),
            user_id=user_id,
            title=overrides.pop("title", "Existing meeting"),
            start_time=start,
            end_time=start + dt.timedelta(minutes=minutes),
            **overrides,
        )
    return _make


@pytest.fixture
def automation_core(lead_repo, rule_repo, event_repo):
    """AutomationCore wired to the in-memory repositories and a stub behavior analyzer."""
    core = AutomationCore()
    core.lead_repo, core.rule_repo, core.event_repo = lead_repo, rule_repo, event_repo
    core.scoring = LeadScoringService(lead_repo, event_repo)
    core.detector = QualifiedLeadDetector(lead_repo)
    core.calendar = CalendarService(event_repo, lead_repo, core.detector)
    core.engine = AutoProgressionEngine(
        lead_repo=lead_repo,
        rule_repo=rule_repo,
        scoring_service=core.scoring,
        executors=DefaultActionExecutors(lead_repo, core.calendar, default_assignee="rep-1"),
        trigger_evaluator=TriggerEvaluator(AsyncMock()),
    )
    return core
