"""
Auto-Progression Engine

Timer-driven control loop that evaluates every active progression rule
against every eligible lead:

    constraint gate -> trigger evaluation -> weighted consensus
        -> ordered action execution -> impact measurement -> rule statistics

Leads are processed with bounded concurrency; the rules of one lead run in
declared order under that lead's lock, so two rules never race on the same
lead's fields. A failing (lead, rule) pair is counted and logged, never
propagated out of a pass.
"""
import asyncio
import datetime as dt
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from src.config import get_settings
from src.core.errors import ActionExecutionError, LeadNotFoundError, RuleNotFoundError
from src.core.triggers import TriggerEvaluator, reaches_consensus, satisfied_weight
from src.models.lead import Lead
from src.models.progression import (
    ActionResult,
    AssignToUserAction,
    CreateTaskAction,
    EngineStats,
    PersonalizeScriptAction,
    ProcessingSummary,
    ProgressionResult,
    ProgressionRule,
    ScheduleCallAction,
    SendEmailAction,
    StatusChangeAction,
)
from src.repositories.leads import LeadRepository
from src.repositories.rules import ProgressionRuleRepository
from src.services.action_executors import ActionExecutors
from src.services.lead_scorer import LeadScoringService
from src.utils.keyed_lock import KeyedLock
from src.utils.observability import logger, log_business_event, log_rule_evaluation


def check_constraints(rule: ProgressionRule, lead: Lead, now: dt.datetime) -> Optional[str]:
    """Reason the rule may not run for this lead, or None when every constraint holds."""
    constraints = rule.constraints

    if constraints.min_score is not None:
        score = lead.qualification_score or 0
        if score < constraints.min_score:
            return f"Score {score:g} below minimum {constraints.min_score:g}"

    if constraints.required_statuses and lead.status not in constraints.required_statuses:
        return f"Status {lead.status} not in required statuses"

    if lead.status in constraints.excluded_statuses:
        return f"Status {lead.status} is excluded"

    if constraints.max_days_since_last_touch is not None:
        days = lead.days_since_last_contact(now)
        if days is not None and days > constraints.max_days_since_last_touch:
            return f"Last touch {days:.1f} days ago exceeds {constraints.max_days_since_last_touch:g}"

    return None


class AutoProgressionEngine:
    """
    Explicit engine instance owning its timer task and running flag.

    Usage:
        engine = AutoProgressionEngine(lead_repo, rule_repo, scoring, executors, evaluator)
        await engine.start(interval_minutes=15)
        ...
        await engine.stop()
    """

    def __init__(
        self,
        lead_repo: LeadRepository,
        rule_repo: ProgressionRuleRepository,
        scoring_service: LeadScoringService,
        executors: ActionExecutors,
        trigger_evaluator: TriggerEvaluator,
        max_concurrency: Optional[int] = None,
        action_timeout_seconds: Optional[float] = None
    ):
        settings = get_settings()
        self.lead_repo = lead_repo
        self.rule_repo = rule_repo
        self.scoring_service = scoring_service
        self.executors = executors
        self.trigger_evaluator = trigger_evaluator
        self.max_concurrency = max_concurrency or settings.progression_max_concurrency
        self.action_timeout_seconds = action_timeout_seconds or settings.action_timeout_seconds

        self._lead_locks = KeyedLock()
        self._pass_lock = asyncio.Lock()
        self._running = False
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

        # Aggregates since process start, exposed by get_engine_stats()
        self._total_executed = 0
        self._total_successful = 0
        self._total_impact = 0.0
        self._last_run_at: Optional[dt.datetime] = None
        self._last_summary: Optional[ProcessingSummary] = None

        self._action_handlers: Dict[Type, Callable[[Lead, Any], Awaitable[Dict[str, Any]]]] = {
            StatusChangeAction: self._change_status,
            ScheduleCallAction: self.executors.schedule_call,
            SendEmailAction: self.executors.send_email,
            CreateTaskAction: self.executors.create_task,
            AssignToUserAction: self.executors.assign_to_user,
            PersonalizeScriptAction: self.executors.personalize_script,
        }

    @property
    def is_running(self) -> bool:
        return self._running

    # ============================================
    # LIFECYCLE
    # ============================================

    async def start(self, interval_minutes: Optional[float] = None) -> None:
        """
        Start the periodic loop. The first pass runs immediately.
        Idempotent: a second call while running is a no-op.
        """
        if self._running:
            logger.warning("Auto-progression engine already running")
            return

        interval = interval_minutes or get_settings().progression_interval_minutes
        self._running = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(interval * 60, self._stop_event))
        logger.info(f"🚀 Auto-progression engine started (interval={interval} min)")

    async def stop(self, wait: bool = False) -> None:
        """
        Stop scheduling further passes. An in-flight pass always runs to
        completion; ``wait=True`` blocks until it has.
        """
        if not self._running:
            return

        self._running = False
        self._stop_event.set()
        logger.info("🛑 Auto-progression engine stopping")

        if wait and self._task is not None:
            await self._task

    async def _loop(self, interval_seconds: float, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.process_all_leads()
            except Exception as e:
                logger.error(f"❌ Auto-progression pass crashed: {e}")

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                continue

        logger.info("Auto-progression loop exited")

    # ============================================
    # BATCH
    # ============================================

    async def process_all_leads(self, tenant_id: Optional[str] = None) -> ProcessingSummary:
        """
        Run one pass over all eligible leads and active rules.

        Never raises for per-pair failures; a failure loading rules or leads
        aborts only this pass.
        """
        async with self._pass_lock:
            started = time.perf_counter()
            summary = ProcessingSummary()

            try:
                rules = await self.rule_repo.get_active_rules(tenant_id)
                if not rules:
                    logger.info("No active progression rules, skipping pass")
                    return self._finish_pass(summary, started)

                leads = await self.lead_repo.get_eligible_for_progression(tenant_id)
            except Exception as e:
                logger.error(f"❌ Auto-progression pass aborted while loading data: {e}")
                summary.aborted = True
                summary.errors += 1
                return self._finish_pass(summary, started)

            summary.rules = len(rules)
            summary.leads = len(leads)
            logger.info(f"🔄 Processing {len(leads)} leads against {len(rules)} rules")

            semaphore = asyncio.Semaphore(self.max_concurrency)

            async def run_lead(lead: Lead) -> Tuple[int, int, int]:
                async with semaphore:
                    return await self._process_lead(lead, rules)

            for evaluations, progressed, errors in await asyncio.gather(*(run_lead(lead) for lead in leads)):
                summary.evaluations += evaluations
                summary.progressed += progressed
                summary.errors += errors

            summary = self._finish_pass(summary, started)
            logger.info(
                f"✅ Auto-progression pass: {summary.evaluations} evaluations, "
                f"{summary.progressed} progressed, {summary.errors} errors "
                f"in {summary.duration_ms:.0f} ms"
            )
            return summary

    def _finish_pass(self, summary: ProcessingSummary, started: float) -> ProcessingSummary:
        summary.duration_ms = (time.perf_counter() - started) * 1000
        self._last_run_at = dt.datetime.now(dt.UTC)
        self._last_summary = summary
        return summary

    async def _process_lead(self, lead: Lead, rules: List[ProgressionRule]) -> Tuple[int, int, int]:
        evaluations = progressed = errors = 0

        async with self._lead_locks.hold(lead.id):
            for rule in rules:
                try:
                    result = await self._evaluate_locked(lead, rule)
                    evaluations += 1
                    if result.overall_success:
                        progressed += 1
                        # Later rules see the effects of earlier ones
                        lead = await self.lead_repo.find_by_id(lead.id) or lead
                except Exception as e:
                    errors += 1
                    logger.error(f"❌ Rule '{rule.name}' failed for lead {lead.id}: {e}")

        return evaluations, progressed, errors

    # ============================================
    # SINGLE EVALUATION
    # ============================================

    async def evaluate_rule_for_lead(self, rule_id: str, lead_id: str) -> ProgressionResult:
        """
        Evaluate one stored rule against one stored lead on demand.

        Raises:
            RuleNotFoundError: If the rule does not exist
            LeadNotFoundError: If the lead does not exist
        """
        rule = await self.rule_repo.find_by_id(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)

        async with self._lead_locks.hold(lead_id):
            lead = await self.lead_repo.find_by_id(lead_id)
            if lead is None:
                raise LeadNotFoundError(lead_id)
            return await self._evaluate_locked(lead, rule)

    async def evaluate_lead_against_rule(
        self,
        lead: Lead,
        rule: ProgressionRule,
        now: Optional[dt.datetime] = None
    ) -> ProgressionResult:
        async with self._lead_locks.hold(lead.id):
            return await self._evaluate_locked(lead, rule, now)

    async def _evaluate_locked(
        self,
        lead: Lead,
        rule: ProgressionRule,
        now: Optional[dt.datetime] = None
    ) -> ProgressionResult:
        # Caller holds the lead's lock
        started = time.perf_counter()
        now = now or dt.datetime.now(dt.UTC)
        result = ProgressionResult(
            lead_id=lead.id,
            rule_id=rule.id,
            rule_name=rule.name,
            total_weight=rule.total_weight,
        )

        rejection = check_constraints(rule, lead, now)
        if rejection:
            result.reason = rejection
            log_rule_evaluation(rule.name, lead.id, fired=False, success=False, rejected=rejection)
            return result

        for trigger in rule.triggers:
            result.trigger_evaluations.append(await self.trigger_evaluator.evaluate(trigger, lead, now))

        result.satisfied_weight = satisfied_weight(result.trigger_evaluations)
        if not reaches_consensus(result.satisfied_weight, result.total_weight):
            result.reason = (
                f"Trigger consensus not reached "
                f"({result.satisfied_weight:g}/{result.total_weight:g})"
            )
            log_rule_evaluation(
                rule.name, lead.id, fired=False, success=False,
                duration_ms=(time.perf_counter() - started) * 1000,
                trigger_ratio=result.satisfied_weight / result.total_weight,
            )
            return result

        result.fired = True
        score_before = await self.scoring_service.score_lead(lead, now)

        for action in rule.actions:
            result.action_results.append(await self._execute_action(lead, action))

        result.overall_success = any(action_result.success for action_result in result.action_results)
        impact = 0.0
        if result.overall_success:
            refreshed = await self.lead_repo.find_by_id(lead.id) or lead
            score_after = await self.scoring_service.score_lead(refreshed, now)
            impact = float(score_after.total_score - score_before.total_score)
            result.impact = impact

        if rule.id:
            await self.rule_repo.record_execution(rule.id, result.overall_success, impact, now)

        self._total_executed += 1
        if result.overall_success:
            self._total_successful += 1
            self._total_impact += impact

        result.reason = (
            f"{sum(r.success for r in result.action_results)}/{len(result.action_results)} actions succeeded"
        )
        log_rule_evaluation(
            rule.name, lead.id, fired=True, success=result.overall_success,
            duration_ms=(time.perf_counter() - started) * 1000,
            trigger_ratio=result.satisfied_weight / result.total_weight,
            impact=impact,
        )
        return result

    async def _execute_action(self, lead: Lead, action) -> ActionResult:
        handler = self._action_handlers.get(type(action))
        if handler is None:
            return ActionResult(action_type=action.type, success=False, error="unsupported action")

        try:
            payload = await asyncio.wait_for(handler(lead, action), timeout=self.action_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ Action {action.type} timed out for lead {lead.id}")
            return ActionResult(
                action_type=action.type, success=False,
                error=f"timed out after {self.action_timeout_seconds}s",
            )
        except Exception as e:
            logger.warning(f"⚠️ Action {action.type} failed for lead {lead.id}: {e}")
            return ActionResult(action_type=action.type, success=False, error=str(e))

        return ActionResult(action_type=action.type, success=True, result=payload)

    async def _change_status(self, lead: Lead, action: StatusChangeAction) -> Dict[str, Any]:
        if not await self.lead_repo.update_status(lead.id, action.new_status, automated=True):
            raise ActionExecutionError(action.type, f"lead {lead.id} not found")

        log_business_event(
            "status_change",
            lead.id,
            previous_status=lead.status.value,
            new_status=action.new_status.value,
            automated=True,
        )
        return {"previous_status": lead.status.value, "new_status": action.new_status.value}

    # ============================================
    # RULES & STATS
    # ============================================

    async def create_rule(self, rule: ProgressionRule) -> ProgressionRule:
        created = await self.rule_repo.create(rule)
        logger.info(f"📝 Created progression rule '{rule.name}' ({created.id})")
        return created

    def get_engine_stats(self) -> EngineStats:
        total = self._total_executed
        return EngineStats(
            is_running=self._running,
            total_rules_executed=total,
            success_rate=(self._total_successful / total * 100) if total else 0.0,
            average_impact=(self._total_impact / total) if total else 0.0,
            last_run_at=self._last_run_at,
            last_summary=self._last_summary,
        )
