"""
Automation Core
Wires repositories, services and the progression engine together.

Architecture:
    MongoDB repositories -> Scorer / Qualification Detector / Calendar Service
        -> Action Executors -> Auto-Progression Engine
"""
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from loguru import logger

from src.agents.behavior_agent import BehaviorPatternAnalyzer
from src.core.progression_engine import AutoProgressionEngine
from src.core.triggers import TriggerEvaluator
from src.repositories import db_manager, LeadRepository, ProgressionRuleRepository, CalendarEventRepository
from src.services.action_executors import DefaultActionExecutors
from src.services.calendar_service import CalendarService
from src.services.lead_scorer import LeadScoringService
from src.services.qualification_detector import QualifiedLeadDetector


class AutomationCore:
    """
    Owns one instance of every automation component.

    Usage:
        core = AutomationCore()
        await core.initialize()
        await core.engine.start()
        ...
        await core.shutdown()
    """

    def __init__(self):
        self.lead_repo: Optional[LeadRepository] = None
        self.rule_repo: Optional[ProgressionRuleRepository] = None
        self.event_repo: Optional[CalendarEventRepository] = None
        self.scoring: Optional[LeadScoringService] = None
        self.detector: Optional[QualifiedLeadDetector] = None
        self.calendar: Optional[CalendarService] = None
        self.engine: Optional[AutoProgressionEngine] = None

    def build(self, database: AsyncIOMotorDatabase, behavior_analyzer=None) -> "AutomationCore":
        """Construct every component on top of an already connected database."""
        self.lead_repo = LeadRepository(database)
        self.rule_repo = ProgressionRuleRepository(database)
        self.event_repo = CalendarEventRepository(database)

        self.scoring = LeadScoringService(self.lead_repo, self.event_repo)
        self.detector = QualifiedLeadDetector(self.lead_repo)
        self.calendar = CalendarService(self.event_repo, self.lead_repo, self.detector)

        self.engine = AutoProgressionEngine(
            lead_repo=self.lead_repo,
            rule_repo=self.rule_repo,
            scoring_service=self.scoring,
            executors=DefaultActionExecutors(self.lead_repo, self.calendar),
            trigger_evaluator=TriggerEvaluator(behavior_analyzer or BehaviorPatternAnalyzer()),
        )
        return self

    async def initialize(self) -> None:
        """Connect to MongoDB, ensure indexes and build the components."""
        logger.info("Initializing automation core with MongoDB persistence")

        await db_manager.connect()
        await db_manager.create_indexes()
        self.build(db_manager.database)

        logger.info("✅ Automation core initialized")

    @property
    def is_ready(self) -> bool:
        return self.engine is not None

    async def shutdown(self) -> None:
        """Stop the engine (letting an in-flight pass finish) and disconnect."""
        logger.info("Shutting down automation core")
        if self.engine is not None:
            await self.engine.stop(wait=True)
        await db_manager.disconnect()
        logger.info("✅ Automation core shutdown complete")
