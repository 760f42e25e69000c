from pydantic_ai import Agent
from loguru import logger
from src.config import get_settings
from src.models.lead import Lead
from src.models.progression import BehaviorAnalysis
from src.utils.circuit_breaker import CircuitBreaker
from src.utils.llm_client import run_agent_with_circuit_breaker
import datetime as dt


def failed_analysis() -> BehaviorAnalysis:
    """Fail-closed result used whenever the classifier cannot answer."""
    return BehaviorAnalysis(matches_pattern=False, confidence=0.0, reasoning="analysis failed")


class BehaviorPatternAnalyzer:
    """
    Asks an LLM whether a lead's recent behavior matches a target pattern.

    The output is decoded strictly into BehaviorAnalysis; any error, timeout,
    open circuit or schema mismatch yields failed_analysis() instead of an
    exception, so a behavior_pattern trigger is simply unsatisfied.
    """

    def __init__(
        self,
        agent: Agent | None = None,
        model_override: str | None = None,
        circuit: CircuitBreaker | None = None
    ):
        self._agent = agent
        self._model_name = model_override or get_settings().behavior_model
        self._circuit = circuit

    @property
    def agent(self) -> Agent:
        # Built on first use so the service starts without model credentials
        if self._agent is None:
            self._agent: Agent[None, BehaviorAnalysis] = Agent(
                self._model_name,
                output_type=BehaviorAnalysis,
                instructions=(
                    "You analyse CRM lead behavior. Decide whether the lead's behavior "
                    "matches the target pattern. Answer with matches_pattern, a confidence "
                    "between 0 and 1, and a short reasoning grounded in the data provided. "
                    "If the data is insufficient, answer matches_pattern=false with low confidence."
                )
            )
            logger.info(f"BehaviorPatternAnalyzer initialized with model: {self._model_name}")
        return self._agent

    def build_prompt(self, lead: Lead, pattern: str) -> str:
        last_contact = lead.last_contact_date.isoformat() if lead.last_contact_date else "never"
        return f"""
        CURRENT DATE:
        {dt.datetime.now(dt.UTC).isoformat()}

        LEAD BEHAVIOR:
        - Status: {lead.status}
        - Sentiment score: {lead.sentiment_score if lead.sentiment_score is not None else "unknown"}
        - Engagement score: {lead.engagement_score if lead.engagement_score is not None else "unknown"}
        - Recent calls: {len(lead.recent_calls)}
        - Last contact: {last_contact}

        TARGET PATTERN:
        {pattern}
        """

    async def analyze(self, lead: Lead, pattern: str) -> BehaviorAnalysis:
        prompt = self.build_prompt(lead, pattern)
        logger.debug(f"Analyzing behavior pattern '{pattern}' for lead {lead.id}")

        try:
            agent = self.agent
        except Exception as e:
            logger.error(f"Behavior agent unavailable: {e}")
            return failed_analysis()

        analysis = await run_agent_with_circuit_breaker(
            agent,
            prompt,
            fallback_factory=failed_analysis,
            circuit=self._circuit,
        )
        if not isinstance(analysis, BehaviorAnalysis):
            logger.warning(f"Unexpected behavior analysis output: {type(analysis).__name__}")
            return failed_analysis()
        return analysis
